"""
Document Database Model

Every collection (SOS events, sessions, active pointers, safe walks,
user profiles) is stored in one table keyed by (collection, id) with
the document body in a JSONB column.
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Index, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from safecampus.infrastructure.database.connection import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
DocumentBody = JSON().with_variant(JSONB(), "postgresql")


class DocumentModel(Base):
    """
    Document table ORM model.

    Table: documents
    """

    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        doc="Collection name",
    )
    id: Mapped[str] = mapped_column(
        String(128),
        primary_key=True,
        doc="Document key within the collection",
    )
    data: Mapped[dict] = mapped_column(
        DocumentBody,
        nullable=False,
        default=dict,
        doc="Document body",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_documents_collection", "collection"),
        # Serves the @> filters the SQL store generates
        Index(
            "ix_documents_data_path_ops",
            "data",
            postgresql_using="gin",
            postgresql_ops={"data": "jsonb_path_ops"},
        ),
    )

    def __repr__(self) -> str:
        return f"<DocumentModel(collection={self.collection}, id={self.id})>"
