"""Database infrastructure package."""

from safecampus.infrastructure.database.connection import Base, DatabaseManager

__all__ = ["Base", "DatabaseManager"]
