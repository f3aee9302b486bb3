"""Unit-of-work orchestration with audit attribution.

``TransactionManager.run_in_transaction`` is the only way business code
obtains a transactional ``Querier``. One invocation owns one pooled
connection and one database transaction:

1. check out a connection and BEGIN
2. attach the acting user to the transaction (``app.audit_context``) so the
   ``log_change()`` trigger can attribute every row change
3. await the caller's function with a ``TxQuerier``
4. COMMIT on success

Every exit path without a successful commit (business error, cancellation,
deadline expiry) rolls back before the exception propagates, and the
connection always goes back to the pool. Nested scopes are rejected.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Awaitable, Callable
from contextvars import ContextVar, Token
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from sqlalchemy import text

from mastara.core.errors import (
    AuditContextError,
    NestedTransactionError,
    TransactionCommitError,
    TransientError,
)
from mastara.db.errors import translate_db_error
from mastara.db.querier import TxQuerier

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

    from mastara.db.querier import Querier

logger = logging.getLogger(__name__)

T = TypeVar("T")

SET_AUDIT_CONTEXT = text("SELECT set_config('app.audit_context', :ctx, true)")


@dataclass(frozen=True, slots=True)
class AuditContext:
    """Who is acting, and in which clinic, for the current unit of work."""

    user_id: uuid.UUID
    clinic_id: uuid.UUID

    def to_json(self) -> str:
        """Serialize to the JSON document read by the audit trigger."""
        return json.dumps({"user_id": str(self.user_id), "clinic_id": str(self.clinic_id)})


_audit_context: ContextVar[AuditContext | None] = ContextVar(
    "mastara_audit_context", default=None
)
_scope_active: ContextVar[bool] = ContextVar("mastara_transaction_active", default=False)


def get_audit_context() -> AuditContext | None:
    """Return the ambient acting user for the current task, if any."""
    return _audit_context.get()


def set_audit_context(context: AuditContext | None) -> Token[AuditContext | None]:
    """Set the ambient acting user; keep the token to reset it afterwards."""
    return _audit_context.set(context)


def reset_audit_context(token: Token[AuditContext | None]) -> None:
    _audit_context.reset(token)


def in_transaction() -> bool:
    """True while the current task is inside ``run_in_transaction``."""
    return _scope_active.get()


class TransactionManager:
    """Runs async callables inside a single audited database transaction.

    Args:
        engine: Pooled async engine connections are checked out from.
        audit_supplier: Returns the ambient AuditContext when no explicit one
            is passed. Defaults to the ContextVar populated by the HTTP layer.
        default_timeout: Deadline in seconds applied when the caller passes
            none. None means unbounded.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        audit_supplier: Callable[[], AuditContext | None] = get_audit_context,
        default_timeout: float | None = None,
    ) -> None:
        self._engine = engine
        self._audit_supplier = audit_supplier
        self._default_timeout = default_timeout

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def run_in_transaction(
        self,
        fn: Callable[[Querier], Awaitable[T]],
        *,
        audit: AuditContext | None = None,
        timeout: float | None = None,
    ) -> T:
        """Run ``fn`` in one transaction and return its result.

        Exceptions raised by ``fn`` propagate unchanged after the rollback.

        Raises:
            NestedTransactionError: A scope is already active in this task.
            AuditContextError: Attribution could not be applied.
            TransactionCommitError: COMMIT failed.
            TransientError: Connectivity failure or deadline expiry.
        """
        if _scope_active.get():
            raise NestedTransactionError(
                "run_in_transaction called while a transaction scope is already active"
            )

        token = _scope_active.set(True)
        try:
            deadline = timeout if timeout is not None else self._default_timeout
            return await self._run(fn, audit, deadline)
        finally:
            _scope_active.reset(token)

    async def _run(
        self,
        fn: Callable[[Querier], Awaitable[T]],
        audit: AuditContext | None,
        deadline: float | None,
    ) -> T:
        when = None if deadline is None else asyncio.get_running_loop().time() + deadline

        connect_scope = asyncio.timeout_at(when)
        try:
            async with connect_scope:
                connection = await self._engine.connect()
        except Exception as exc:
            if isinstance(exc, TimeoutError) and connect_scope.expired():
                raise _deadline_exceeded(deadline) from exc
            raise translate_db_error(exc, "begin transaction") from exc

        # Rollback and close run outside the deadline scope so an expiring
        # deadline cannot cancel them and leak the connection.
        work_scope = asyncio.timeout_at(when)
        try:
            async with work_scope:
                result = await self._execute(connection, fn, audit)
        except BaseException as exc:
            with contextlib.suppress(asyncio.CancelledError):
                await _release(connection, rollback=True)
            if isinstance(exc, TimeoutError) and work_scope.expired():
                raise _deadline_exceeded(deadline) from exc
            raise

        await _close_quietly(connection)
        return result

    async def _execute(
        self,
        connection: AsyncConnection,
        fn: Callable[[Querier], Awaitable[T]],
        audit: AuditContext | None,
    ) -> T:
        try:
            await connection.begin()
        except Exception as exc:
            raise translate_db_error(exc, "begin transaction") from exc

        await self._apply_audit_context(connection, audit)

        result = await fn(TxQuerier(connection))

        try:
            await connection.commit()
        except Exception as exc:
            logger.exception("Transaction commit failed")
            raise TransactionCommitError(f"commit failed: {exc}") from exc
        return result

    async def _apply_audit_context(
        self,
        connection: AsyncConnection,
        audit: AuditContext | None,
    ) -> None:
        context = audit if audit is not None else self._audit_supplier()
        if context is None:
            logger.debug("No audit context for transaction; row changes will be unattributed")
            return

        try:
            await connection.execute(SET_AUDIT_CONTEXT, {"ctx": context.to_json()})
        except Exception as exc:
            logger.error(
                "Failed to set audit context",
                extra={"user_id": str(context.user_id), "clinic_id": str(context.clinic_id)},
            )
            raise AuditContextError(f"failed to set audit context: {exc}") from exc


def _deadline_exceeded(deadline: float | None) -> TransientError:
    logger.warning("Transaction exceeded its deadline of %ss", deadline)
    return TransientError(f"transaction exceeded its deadline of {deadline}s")


async def _release(connection: AsyncConnection, *, rollback: bool) -> None:
    try:
        if rollback:
            await _rollback_quietly(connection)
    finally:
        await _close_quietly(connection)


async def _rollback_quietly(connection: AsyncConnection) -> None:
    try:
        await connection.rollback()
    except Exception:
        logger.debug("Rollback failed; discarding", exc_info=True)


async def _close_quietly(connection: AsyncConnection) -> None:
    try:
        await connection.close()
    except Exception:
        logger.debug("Connection close failed; discarding", exc_info=True)


class BaseService:
    """Mixin for services whose operations run as units of work."""

    def __init__(self, tx_manager: TransactionManager) -> None:
        self._tx_manager = tx_manager

    @property
    def tx_manager(self) -> TransactionManager:
        return self._tx_manager

    async def run_in_transaction(
        self,
        fn: Callable[[Querier], Awaitable[T]],
        *,
        audit: AuditContext | None = None,
        timeout: float | None = None,
    ) -> T:
        return await self._tx_manager.run_in_transaction(fn, audit=audit, timeout=timeout)
