"""
Database Connection Management

Owns the async SQLAlchemy engine behind the SQL document store.
PostgreSQL (asyncpg) in deployments; SQLite (aiosqlite) in tests.

SECURITY: Connection strings contain credentials. Only the
password-masked URL is ever logged.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from safecampus.config import Settings, get_settings
from safecampus.config.logging_config import get_logger

logger = get_logger(__name__)

HEALTH_CHECK_TIMEOUT_SECONDS = 2.0


class Base(DeclarativeBase):
    """Declarative base; the document table is the only model."""


def engine_options(url: str, settings: Settings) -> dict[str, Any]:
    """Driver-specific engine arguments."""
    options: dict[str, Any] = {"echo": settings.debug}
    backend = make_url(url).get_backend_name()
    if backend == "postgresql":
        options.update(
            pool_size=settings.database.pool_size,
            max_overflow=settings.database.max_overflow,
            pool_pre_ping=True,
            pool_recycle=1800,
            connect_args={"server_settings": {"application_name": "safecampus"}},
        )
    elif backend == "sqlite":
        # Writers wait for the file lock instead of failing immediately
        options["connect_args"] = {"timeout": 30}
    return options


class DatabaseManager:
    """
    Engine and session factory for one application instance.

    ``session()`` commits on success and rolls back on any exception,
    so a document transaction either lands whole or not at all.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings
        self._engine: Optional[AsyncEngine] = None
        self._sessions: Optional[async_sessionmaker[AsyncSession]] = None

    async def initialize(self, create_schema: bool = False) -> None:
        """
        Create the engine.

        Args:
            create_schema: Create the ``documents`` table directly.
                Deployments run the Alembic migration instead.
        """
        if self._engine is not None:
            return

        settings = self._settings or get_settings()
        url = settings.database.async_url
        self._engine = create_async_engine(url, **engine_options(url, settings))
        self._sessions = async_sessionmaker(self._engine, expire_on_commit=False, autoflush=False)

        if create_schema:
            from safecampus.infrastructure.database.models import DocumentModel  # noqa: F401

            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

        logger.info(
            "Document database ready",
            url=self._engine.url.render_as_string(hide_password=True),
            dialect=self.dialect,
            schema_created=create_schema,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        if self._sessions is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")

        async with self._sessions() as session:
            try:
                yield session
                await session.commit()
            except BaseException:
                await session.rollback()
                raise

    async def health_check(self) -> bool:
        """``SELECT 1`` within a short timeout."""
        if self._engine is None:
            return False

        async def ping() -> None:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))

        try:
            await asyncio.wait_for(ping(), timeout=HEALTH_CHECK_TIMEOUT_SECONDS)
            return True
        except Exception as e:
            logger.error("Database health check failed", dialect=self.dialect, error=str(e))
            return False

    async def close(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessions = None
        logger.info("Document database connections closed")

    @property
    def dialect(self) -> Optional[str]:
        return self._engine.dialect.name if self._engine is not None else None

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None
