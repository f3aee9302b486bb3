"""Translation of SQLAlchemy / psycopg failures into the Mastara taxonomy."""

from __future__ import annotations

import logging

from sqlalchemy import exc as sa_exc

from mastara.core.errors import ConflictError, DatabaseError, MastaraError, TransientError

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


def sqlstate_of(exc: BaseException) -> str | None:
    """Return the SQLSTATE carried by a driver error, if any."""
    orig = getattr(exc, "orig", None)
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def constraint_of(exc: BaseException) -> str | None:
    """Return the name of the violated constraint, if the driver reports it."""
    diag = getattr(getattr(exc, "orig", None), "diag", None)
    return getattr(diag, "constraint_name", None)


def translate_db_error(exc: BaseException, operation: str) -> MastaraError:
    """Map a driver exception raised during ``operation`` to a MastaraError.

    Already-typed errors are returned unchanged. The caller is expected to
    ``raise translate_db_error(e, op) from e`` so the driver error stays
    chained for the logs.
    """
    if isinstance(exc, MastaraError):
        return exc

    if isinstance(exc, sa_exc.TimeoutError | TimeoutError):
        return TransientError(f"{operation}: timed out ({exc})")

    if isinstance(exc, sa_exc.DBAPIError) and exc.connection_invalidated:
        return TransientError(f"{operation}: connection lost ({exc.orig})")

    if isinstance(exc, sa_exc.OperationalError | sa_exc.InterfaceError):
        return TransientError(f"{operation}: database unavailable ({exc.orig})")

    if isinstance(exc, sa_exc.IntegrityError):
        constraint = constraint_of(exc)
        if sqlstate_of(exc) == UNIQUE_VIOLATION:
            logger.info(
                "Unique violation during %s",
                operation,
                extra={"constraint": constraint},
            )
            return ConflictError(
                "A record with the same unique details already exists.",
                constraint=constraint,
            )
        return ConflictError(
            "The request violates a data integrity rule.",
            constraint=constraint,
        )

    return DatabaseError(f"{operation}: {exc}")
