"""
In-Memory Document Store

Process-local implementation used in development and tests.
Transactions are serialised with an asyncio.Lock, so a
read-then-write inside one transaction is linearizable.
"""

import asyncio
import copy
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional, Sequence

from safecampus.domain.models.timestamps import utc_now
from safecampus.infrastructure.documents.field_ops import Filter, select_documents
from safecampus.infrastructure.documents.store import DocumentKey, DocumentStore, Transaction


class InMemoryDocumentStore(DocumentStore):
    """Dictionary-backed document store."""

    def __init__(self) -> None:
        super().__init__()
        self._collections: dict[str, dict[str, dict]] = {}
        self._lock = asyncio.Lock()

    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        document = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(document) if document is not None else None

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict]:
        documents = self._collections.get(collection, {}).values()
        return select_documents(documents, filters, order_by, descending, limit)

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[Transaction, None]:
        async with self._lock:
            tx = Transaction(self.get)
            yield tx
            staged = await tx.stage(utc_now())
            await self._commit(staged)
        await self._publish(list(staged))

    async def _commit(self, staged: dict[DocumentKey, Optional[dict]]) -> None:
        for (collection, doc_id), document in staged.items():
            bucket = self._collections.setdefault(collection, {})
            if document is None:
                bucket.pop(doc_id, None)
            else:
                bucket[doc_id] = document

    def count(self, collection: str) -> int:
        """Number of documents in a collection."""
        return len(self._collections.get(collection, {}))
