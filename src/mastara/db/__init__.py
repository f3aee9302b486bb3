"""Mastara database module.

- Async SQLAlchemy engine over psycopg 3, shared by every request
- ORM table definitions (``mastara.db.models``) and Alembic migrations
- Querier abstraction and the transaction orchestrator
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

if TYPE_CHECKING:
    from mastara.core.config import DatabaseSettings

# Module-level engine (initialized on first use)
_engine: AsyncEngine | None = None


def to_async_url(url: str) -> str:
    """Rewrite a plain PostgreSQL URL so it selects the async psycopg driver."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    return url


def build_engine(database: DatabaseSettings) -> AsyncEngine:
    """Create a pooled async engine from database settings.

    A non-zero ``statement_timeout_ms`` is applied to every pooled
    connection as a server-side ``statement_timeout``.
    """
    connect_args: dict[str, str] = {}
    if database.statement_timeout_ms > 0:
        connect_args["options"] = f"-c statement_timeout={database.statement_timeout_ms}"

    return create_async_engine(
        to_async_url(str(database.url)),
        pool_size=database.pool_size,
        max_overflow=database.max_overflow,
        pool_timeout=database.pool_timeout,
        pool_recycle=database.pool_recycle,
        pool_pre_ping=True,
        echo=database.echo,
        connect_args=connect_args,
    )


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it from settings on first use."""
    global _engine

    if _engine is None:
        from mastara.core.settings import get_settings

        _engine = build_engine(get_settings().database)
    return _engine


async def close_engine() -> None:
    """Dispose of the engine.

    Call this during application shutdown to clean up connections.
    """
    global _engine

    if _engine is not None:
        await _engine.dispose()
        _engine = None
