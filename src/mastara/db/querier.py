"""Uniform statement-execution capability.

Data-access code is written once against ``Querier`` and runs unchanged
either on a pooled connection (autocommit per call) or inside an active
transaction. Statements are SQLAlchemy executables (Core constructs or
``text()``) with parameters bound by name.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from sqlalchemy.engine import Row
    from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
    from sqlalchemy.sql.base import Executable

Params = Mapping[str, Any] | None


@runtime_checkable
class Querier(Protocol):
    """Anything that can run a statement and hand back rows."""

    async def execute(self, statement: Executable, params: Params = None) -> int:
        """Run a statement that returns no rows; return the affected row count."""
        ...

    async def query(self, statement: Executable, params: Params = None) -> Sequence[Row[Any]]:
        """Run a statement and return every row."""
        ...

    async def query_row(self, statement: Executable, params: Params = None) -> Row[Any] | None:
        """Run a statement and return its first row, or None."""
        ...


class TxQuerier:
    """Querier bound to the connection that owns the active transaction.

    Never commits; the orchestrator that created it decides the outcome.
    """

    def __init__(self, connection: AsyncConnection) -> None:
        self._connection = connection

    @property
    def connection(self) -> AsyncConnection:
        return self._connection

    async def execute(self, statement: Executable, params: Params = None) -> int:
        result = await self._connection.execute(statement, _bind(params))
        return result.rowcount

    async def query(self, statement: Executable, params: Params = None) -> Sequence[Row[Any]]:
        result = await self._connection.execute(statement, _bind(params))
        return result.all()

    async def query_row(self, statement: Executable, params: Params = None) -> Row[Any] | None:
        result = await self._connection.execute(statement, _bind(params))
        return result.first()


class PoolQuerier:
    """Querier that checks out a pooled connection per call and commits it.

    Each call is its own implicit transaction; use it for reads and
    single-statement writes outside a unit of work.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def execute(self, statement: Executable, params: Params = None) -> int:
        async with self._engine.connect() as connection:
            result = await connection.execute(statement, _bind(params))
            await connection.commit()
            return result.rowcount

    async def query(self, statement: Executable, params: Params = None) -> Sequence[Row[Any]]:
        async with self._engine.connect() as connection:
            result = await connection.execute(statement, _bind(params))
            rows = result.all()
            await connection.commit()
            return rows

    async def query_row(self, statement: Executable, params: Params = None) -> Row[Any] | None:
        async with self._engine.connect() as connection:
            result = await connection.execute(statement, _bind(params))
            row = result.first()
            await connection.commit()
            return row


def _bind(params: Params) -> dict[str, Any] | None:
    return dict(params) if params else None
