"""
Document Store Port

Collection/document database with point reads and writes, dotted-path
field updates, filtered queries, live subscriptions and atomic
multi-document transactions.

Transactions follow read-then-write discipline: ``Transaction.get``
returns committed state, writes are buffered and applied together on
commit. A write precondition failure (create on an existing document,
update on a missing one) aborts the whole transaction.

Subscribers are plain callables. They are invoked with the current
result immediately on subscribe and again after every commit that
touches their collection.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncContextManager, Awaitable, Callable, Literal, Optional, Sequence
from uuid import uuid4

from safecampus.config.logging_config import get_logger
from safecampus.infrastructure.documents.field_ops import (
    Filter,
    apply_updates,
    deep_merge,
    resolve_document,
    select_documents,
)

logger = get_logger(__name__)

DocumentKey = tuple[str, str]
QueryCallback = Callable[[list[dict]], None]
DocumentCallback = Callable[[Optional[dict]], None]


class DocumentStoreError(Exception):
    """Base class for store precondition failures."""

    def __init__(self, collection: str, doc_id: str, message: str) -> None:
        super().__init__(f"{message}: {collection}/{doc_id}")
        self.collection = collection
        self.doc_id = doc_id


class DocumentExistsError(DocumentStoreError):
    """Create was attempted on an existing document."""

    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(collection, doc_id, "Document already exists")


class DocumentNotFoundError(DocumentStoreError):
    """Update was attempted on a missing document."""

    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(collection, doc_id, "Document not found")


@dataclass(frozen=True)
class WriteOp:
    """One buffered transactional write."""

    kind: Literal["set", "create", "update", "delete"]
    collection: str
    doc_id: str
    data: dict = field(default_factory=dict)
    merge: bool = False


def apply_write(current: Optional[dict], op: WriteOp, now: datetime) -> Optional[dict]:
    """
    Compute the new state of one document.

    Returns:
        New document body, or None when the document is deleted

    Raises:
        DocumentExistsError: create on an existing document
        DocumentNotFoundError: update on a missing document
    """
    match op.kind:
        case "create":
            if current is not None:
                raise DocumentExistsError(op.collection, op.doc_id)
            return resolve_document(op.data, now)
        case "set":
            body = resolve_document(op.data, now)
            if op.merge and current is not None:
                return deep_merge(current, body)
            return body
        case "update":
            if current is None:
                raise DocumentNotFoundError(op.collection, op.doc_id)
            return apply_updates(current, op.data, now)
        case "delete":
            return None
    raise ValueError(f"Unknown write kind: {op.kind}")


class Transaction:
    """
    Buffered multi-document transaction.

    Obtained from ``DocumentStore.transaction()``; never constructed
    by callers.
    """

    def __init__(self, reader: Callable[[str, str], Awaitable[Optional[dict]]]) -> None:
        self._reader = reader
        self._writes: list[WriteOp] = []

    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        """Read committed state (locked for the transaction where supported)."""
        return await self._reader(collection, doc_id)

    def set(self, collection: str, doc_id: str, data: dict, merge: bool = False) -> None:
        self._writes.append(WriteOp("set", collection, doc_id, data, merge))

    def create(self, collection: str, doc_id: str, data: dict) -> None:
        self._writes.append(WriteOp("create", collection, doc_id, data))

    def update(self, collection: str, doc_id: str, updates: dict) -> None:
        self._writes.append(WriteOp("update", collection, doc_id, updates))

    def delete(self, collection: str, doc_id: str) -> None:
        self._writes.append(WriteOp("delete", collection, doc_id))

    @property
    def writes(self) -> tuple[WriteOp, ...]:
        return tuple(self._writes)

    async def stage(self, now: datetime) -> dict[DocumentKey, Optional[dict]]:
        """
        Apply buffered writes in order and return the final state of
        every touched document (None = deleted).
        """
        staged: dict[DocumentKey, Optional[dict]] = {}
        for op in self._writes:
            key = (op.collection, op.doc_id)
            current = staged[key] if key in staged else await self._reader(*key)
            staged[key] = apply_write(current, op, now)
        return staged


@dataclass
class Subscription:
    """Handle returned by subscribe calls."""

    collection: str
    callback: Callable[[Any], None]
    doc_id: Optional[str] = None
    filters: Sequence[Filter] = ()
    order_by: Optional[str] = None
    descending: bool = False
    _store: Optional["DocumentStore"] = None

    def unsubscribe(self) -> None:
        if self._store is not None:
            self._store._remove_subscription(self)
            self._store = None


class DocumentStore(ABC):
    """
    Abstract document store.

    Implementations provide ``get``, ``query`` and ``transaction``;
    single-document writes are one-write transactions.
    """

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        """Read one document, None when missing."""
        ...

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """Return documents matching every filter."""
        ...

    @abstractmethod
    def transaction(self) -> AsyncContextManager[Transaction]:
        """
        Open an atomic transaction.

        Usage:
            async with store.transaction() as tx:
                doc = await tx.get("sos_events", sos_id)
                tx.update("sos_events", sos_id, {...})
        """
        ...

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        self._subscriptions.clear()

    async def set(self, collection: str, doc_id: str, data: dict, merge: bool = False) -> None:
        async with self.transaction() as tx:
            tx.set(collection, doc_id, data, merge=merge)

    async def create(self, collection: str, doc_id: str, data: dict) -> None:
        async with self.transaction() as tx:
            tx.create(collection, doc_id, data)

    async def update(self, collection: str, doc_id: str, updates: dict) -> None:
        async with self.transaction() as tx:
            tx.update(collection, doc_id, updates)

    async def delete(self, collection: str, doc_id: str) -> None:
        async with self.transaction() as tx:
            tx.delete(collection, doc_id)

    async def add(self, collection: str, data: dict) -> str:
        """Create a document under a generated id and return the id."""
        doc_id = uuid4().hex
        await self.create(collection, doc_id, data)
        return doc_id

    async def subscribe(
        self,
        collection: str,
        callback: QueryCallback,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Subscription:
        """Live query; ``callback`` receives the full matching result set."""
        subscription = Subscription(
            collection=collection,
            callback=callback,
            filters=tuple(filters),
            order_by=order_by,
            descending=descending,
            _store=self,
        )
        self._subscriptions.append(subscription)
        await self._deliver(subscription)
        return subscription

    async def subscribe_document(
        self,
        collection: str,
        doc_id: str,
        callback: DocumentCallback,
    ) -> Subscription:
        """Live document; ``callback`` receives the body or None."""
        subscription = Subscription(
            collection=collection,
            callback=callback,
            doc_id=doc_id,
            _store=self,
        )
        self._subscriptions.append(subscription)
        await self._deliver(subscription)
        return subscription

    def _remove_subscription(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            pass

    async def _deliver(self, subscription: Subscription) -> None:
        if subscription.doc_id is not None:
            payload: Any = await self.get(subscription.collection, subscription.doc_id)
        else:
            payload = await self.query(
                subscription.collection,
                subscription.filters,
                order_by=subscription.order_by,
                descending=subscription.descending,
            )
        try:
            subscription.callback(payload)
        except Exception as e:
            logger.error(
                "Document subscriber failed",
                collection=subscription.collection,
                error=str(e),
                exc_info=True,
            )

    async def _publish(self, touched: Sequence[DocumentKey]) -> None:
        """Notify subscribers affected by a committed transaction."""
        collections = {collection for collection, _ in touched}
        for subscription in list(self._subscriptions):
            if subscription.collection not in collections:
                continue
            if subscription.doc_id is not None and (subscription.collection, subscription.doc_id) not in touched:
                continue
            await self._deliver(subscription)
