"""
SQL Document Store

PostgreSQL-backed implementation on the ``documents`` table.
Transactional reads take row locks (SELECT ... FOR UPDATE) and all
buffered writes are flushed in the same database transaction.

New rows are flushed one at a time, so a concurrent insert of the
same key surfaces as DocumentExistsError naming that key. That is what
makes the one-active-SOS pointer a store-level uniqueness guarantee.

Query filters, ordering and limits run in SQL. On PostgreSQL equality
filters become JSONB containment (``data @> ...``), which the GIN
index on ``data`` serves; elsewhere they compare JSON path values.

SECURITY: Document bodies include SOS session tokens. Never log them.
"""

import copy
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional, Sequence

from sqlalchemy import ColumnElement, Select, and_, false, literal, not_, or_, select
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from safecampus.config.logging_config import get_logger
from safecampus.domain.errors import StoreUnavailableError
from safecampus.domain.models.timestamps import utc_now
from safecampus.infrastructure.database.connection import DatabaseManager
from safecampus.infrastructure.database.models.document_model import DocumentModel
from safecampus.infrastructure.documents.field_ops import Filter, select_documents
from safecampus.infrastructure.documents.store import (
    DocumentExistsError,
    DocumentKey,
    DocumentStore,
    Transaction,
)

logger = get_logger(__name__)

_SCALARS = (str, bool, int, float)


def _json_path(field: str):
    parts = field.split(".")
    return DocumentModel.data[parts[0] if len(parts) == 1 else tuple(parts)]


def _typed(field: str, value: Any):
    path = _json_path(field)
    if isinstance(value, bool):
        return path.as_boolean()
    if isinstance(value, (int, float)):
        return path.as_float()
    return path.as_string()


def _fragment(field: str, value: Any) -> dict:
    """``{"a": {"b": value}}`` for the path ``a.b``."""
    document: Any = value
    for part in reversed(field.split(".")):
        document = {part: document}
    return document


def _contains(field: str, value: Any) -> ColumnElement[bool]:
    return DocumentModel.data.op("@>", is_comparison=True)(literal(_fragment(field, value), JSONB))


def filter_clause(flt: Filter, dialect: Optional[str]) -> Optional[ColumnElement[bool]]:
    """
    SQL equivalent of one filter, or None when it must run in process.

    Missing fields behave like JSON null, as they do in memory.
    """
    value = flt.value
    if value is None:
        if flt.op not in ("==", "!="):
            return None
        is_null = _json_path(flt.field).as_string().is_(None)
        return is_null if flt.op == "==" else not_(is_null)

    if flt.op == "in":
        values = list(value)
        if not values:
            return false()
        if not all(isinstance(v, _SCALARS) for v in values):
            return None
        if dialect == "postgresql":
            return or_(*(_contains(flt.field, v) for v in values))
        kinds = {type(v) for v in values}
        if len(kinds) > 1:
            return None
        return _typed(flt.field, values[0]).in_(values)

    if not isinstance(value, _SCALARS):
        return None
    if dialect == "postgresql":
        contained = _contains(flt.field, value)
        return contained if flt.op == "==" else not_(contained)
    typed = _typed(flt.field, value)
    if flt.op == "==":
        return typed == value
    return or_(typed.is_(None), typed != value)


def build_query(
    collection: str,
    filters: Sequence[Filter],
    order_by: Optional[str],
    descending: bool,
    limit: Optional[int],
    dialect: Optional[str],
) -> tuple[Select, bool]:
    """
    Build the SELECT for a query.

    Returns:
        (statement, whether every filter, the order and the limit are
        applied by the database)
    """
    clauses = [DocumentModel.collection == collection]
    complete = True
    for flt in filters:
        clause = filter_clause(flt, dialect)
        if clause is None:
            complete = False
        else:
            clauses.append(clause)

    statement = select(DocumentModel.data).where(and_(*clauses))
    if not complete:
        return statement, False

    if order_by:
        key = _json_path(order_by).as_string()
        ordering = key.desc().nulls_last() if descending else key.asc().nulls_first()
        statement = statement.order_by(ordering, DocumentModel.id)
    if limit is not None:
        statement = statement.limit(limit)
    return statement, True


class SqlDocumentStore(DocumentStore):
    """Document store over SQLAlchemy async sessions."""

    def __init__(self, db: DatabaseManager) -> None:
        super().__init__()
        self._db = db

    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        try:
            async with self._db.session() as session:
                row = await session.get(DocumentModel, (collection, doc_id))
                return copy.deepcopy(row.data) if row is not None else None
        except (SQLAlchemyError, OSError) as e:
            logger.error("Document read failed", collection=collection, error=str(e))
            raise StoreUnavailableError() from e

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict]:
        statement, complete = build_query(collection, filters, order_by, descending, limit, self._db.dialect)
        try:
            async with self._db.session() as session:
                result = await session.execute(statement)
                documents = list(result.scalars().all())
        except (SQLAlchemyError, OSError) as e:
            logger.error("Document query failed", collection=collection, error=str(e))
            raise StoreUnavailableError() from e

        if complete:
            return documents
        logger.debug("Query filtered in process", collection=collection, filters=len(filters))
        return select_documents(documents, filters, order_by, descending, limit)

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[Transaction, None]:
        staged: dict[DocumentKey, Optional[dict]] = {}
        # Latest locked read per key; None means the row did not exist
        rows: dict[DocumentKey, Optional[DocumentModel]] = {}
        try:
            async with self._db.session() as session:

                async def read_for_update(collection: str, doc_id: str) -> Optional[dict]:
                    result = await session.execute(
                        select(DocumentModel)
                        .where(
                            DocumentModel.collection == collection,
                            DocumentModel.id == doc_id,
                        )
                        .with_for_update()
                    )
                    row = result.scalar_one_or_none()
                    rows[(collection, doc_id)] = row
                    return copy.deepcopy(row.data) if row is not None else None

                tx = Transaction(read_for_update)
                yield tx
                staged = await tx.stage(utc_now())
                await self._flush(session, staged, rows)
        except (SQLAlchemyError, OSError) as e:
            logger.error("Document transaction failed", error=str(e))
            raise StoreUnavailableError() from e
        await self._publish(list(staged))

    async def _flush(
        self,
        session: AsyncSession,
        staged: dict[DocumentKey, Optional[dict]],
        rows: dict[DocumentKey, Optional[DocumentModel]],
    ) -> None:
        """
        Write staged documents.

        Keys last read as missing are always inserted, never updated,
        so a row a rival committed meanwhile fails the primary key.
        """
        for (collection, doc_id), document in staged.items():
            row = rows.get((collection, doc_id))
            if document is None:
                if row is not None:
                    await session.delete(row)
                continue
            if row is not None:
                row.data = document
                continue
            session.add(DocumentModel(collection=collection, id=doc_id, data=document))
            try:
                await session.flush()
            except IntegrityError as e:
                raise DocumentExistsError(collection, doc_id) from e
        await session.flush()

    async def health_check(self) -> bool:
        return await self._db.health_check()

    async def close(self) -> None:
        await super().close()
        await self._db.close()
