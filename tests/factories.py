"""Test data factories and fakes for Mastara.

Build detached domain objects and database fakes here instead of
duplicating them across test modules.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

from mastara.db.models.base import EmployeeStatus, ProfileStatus
from mastara.db.models.iam import Employee
from mastara.db.models.profiles import Profile
from mastara.db.querier import Querier


def make_profile(**overrides: Any) -> Profile:
    """Build a detached Profile with sensible defaults."""
    now = datetime.now(UTC)
    values: dict[str, Any] = {
        "id": uuid4(),
        "clinic_id": uuid4(),
        "full_name": "Amina Hassan",
        "phone_number": "+201001234567",
        "email": None,
        "national_id": None,
        "date_of_birth": None,
        "profile_status": ProfileStatus.GUEST,
        "extended_data": {},
        "created_at": now,
        "updated_at": now,
        "deleted_at": None,
    }
    values.update(overrides)
    return Profile(**values)


def profile_row(profile: Profile) -> dict[str, Any]:
    """Render a Profile as the column mapping a result row carries."""
    return {column.key: getattr(profile, column.key) for column in Profile.__table__.columns}


def employee_row(**overrides: Any) -> dict[str, Any]:
    """Column mapping of an employees row."""
    now = datetime.now(UTC)
    values: dict[str, Any] = {
        "profile_id": uuid4(),
        "clinic_id": uuid4(),
        "job_title": "Dentist",
        "employment_start_date": None,
        "password_hash": "opaque",
        "status": EmployeeStatus.ACTIVE.value,
        "last_login_at": None,
        "invited_by": None,
        "created_at": now,
        "updated_at": now,
        "deleted_at": None,
    }
    values.update(overrides)
    assert set(values) == {column.key for column in Employee.__table__.columns}
    return values


def make_connection() -> MagicMock:
    """A fake AsyncConnection with awaitable transaction methods."""
    connection = MagicMock(name="AsyncConnection")
    connection.begin = AsyncMock()
    connection.execute = AsyncMock()
    connection.commit = AsyncMock()
    connection.rollback = AsyncMock()
    connection.close = AsyncMock()
    return connection


def make_engine(connection: MagicMock) -> MagicMock:
    """A fake AsyncEngine whose connect() always hands out ``connection``.

    Supports both ``await engine.connect()`` and ``async with engine.connect()``.
    """
    engine = MagicMock(name="AsyncEngine")
    engine.connect = MagicMock(side_effect=lambda: ConnectCall(connection))
    return engine


class ConnectCall:
    """Mimics the object returned by AsyncEngine.connect(): awaitable and a context manager."""

    def __init__(self, connection: MagicMock) -> None:
        self._connection = connection

    def __await__(self):
        return _resolved(self._connection).__await__()

    async def __aenter__(self) -> MagicMock:
        return self._connection

    async def __aexit__(self, *exc_info: Any) -> bool:
        await self._connection.close()
        return False


async def _resolved(value: Any) -> Any:
    return value


class FakeQuerier:
    """Querier returning canned results and recording the statements it ran."""

    def __init__(
        self,
        rows: list[Any] | None = None,
        *,
        row: Any = None,
        row_sequence: list[Any] | None = None,
        rowcount: int = 1,
        error: BaseException | None = None,
    ) -> None:
        self.rows = rows or []
        self.row = row
        self.row_sequence = list(row_sequence) if row_sequence is not None else None
        self.rowcount = rowcount
        self.error = error
        self.statements: list[Any] = []

    def _record(self, statement: Any) -> None:
        self.statements.append(statement)
        if self.error is not None:
            raise self.error

    async def execute(self, statement, params=None) -> int:
        self._record(statement)
        return self.rowcount

    async def query(self, statement, params=None):
        self._record(statement)
        return self.rows

    async def query_row(self, statement, params=None):
        self._record(statement)
        if self.row_sequence is not None:
            return self.row_sequence.pop(0)
        return self.row


class FakeTransactionManager:
    """Runs the unit of work directly against a fake transactional querier."""

    def __init__(self, tx: Querier | None = None) -> None:
        self.engine = MagicMock(name="AsyncEngine")
        self.tx = tx or FakeQuerier()
        self.calls: list[dict[str, Any]] = []

    async def run_in_transaction(
        self,
        fn: Callable[[Querier], Awaitable[Any]],
        *,
        audit: Any = None,
        timeout: float | None = None,
    ) -> Any:
        self.calls.append({"audit": audit, "timeout": timeout})
        return await fn(self.tx)
