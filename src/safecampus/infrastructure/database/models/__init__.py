"""Database ORM models package."""

from safecampus.infrastructure.database.models.document_model import DocumentModel

__all__ = ["DocumentModel"]
