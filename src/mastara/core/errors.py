"""Error taxonomy shared by the persistence, service, and API layers.

Every failure surfaced by the core is a MastaraError subclass carrying:
- message: internal, detailed description (logged, never returned to clients)
- public_message: safe description for API responses
- status_code: HTTP status the API layer maps the error to

Categories:
- InvalidRequestError: a caller-supplied value fails a precondition
- ConflictError: the request collides with existing state (not retried)
- NotFoundError: a tenant-scoped lookup matched zero rows
- IntegrityFault: an invariant the database should guarantee was broken,
  or the audit trail could not be attributed
- TransientError: connectivity, pool exhaustion, deadlines
- DatabaseError: any other driver failure
"""

from __future__ import annotations

from typing import Any

GENERIC_PUBLIC_MESSAGE = "An unexpected error occurred on the server."


class MastaraError(Exception):
    """Base exception for all typed failures raised by the core."""

    error_code: str = "internal_error"
    default_status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        public_message: str | None = None,
        status_code: int | None = None,
        detail: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.public_message = public_message or GENERIC_PUBLIC_MESSAGE
        self.status_code = status_code or self.default_status_code
        self.detail = detail
        super().__init__(message)


class InvalidRequestError(MastaraError):
    """Raised when a caller-supplied value fails a service precondition."""

    error_code = "bad_request"
    default_status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message, public_message=message)


class ConflictError(MastaraError):
    """Raised when a write collides with existing state."""

    error_code = "conflict"
    default_status_code = 409

    def __init__(
        self,
        message: str,
        *,
        public_message: str | None = None,
        constraint: str | None = None,
    ) -> None:
        self.constraint = constraint
        super().__init__(message, public_message=public_message or message)


class InvalidTransitionError(ConflictError):
    """Raised when a profile status change would move backwards or out of a terminal state."""

    def __init__(self, from_status: Any, to_status: Any) -> None:
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Cannot transition profile from {from_status.value} to {to_status.value}",
        )


class NotFoundError(MastaraError):
    """Raised when a tenant-scoped lookup or update matches zero rows."""

    error_code = "not_found"
    default_status_code = 404

    def __init__(self, resource: str, identifier: Any = None) -> None:
        self.resource = resource
        self.identifier = identifier
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} not found: {identifier}"
        super().__init__(
            message,
            public_message=f"The requested resource '{resource}' was not found.",
        )


class UnauthenticatedError(MastaraError):
    """Raised when a protected request carries no usable actor identity."""

    error_code = "unauthorized"
    default_status_code = 401

    def __init__(self, message: str) -> None:
        super().__init__(message, public_message="Authentication required.")


class PermissionDeniedError(MastaraError):
    """Raised when the acting employee lacks a permission or is not ACTIVE."""

    error_code = "forbidden"
    default_status_code = 403

    def __init__(self, message: str) -> None:
        super().__init__(
            message,
            public_message="You do not have permission to perform this action.",
        )


class IntegrityFault(MastaraError):
    """Raised when a guaranteed post-condition fails. Always surfaced as a generic 500."""

    error_code = "internal_error"


class AuditContextError(IntegrityFault):
    """Raised when audit attribution cannot be applied to a transaction."""


class TransactionCommitError(IntegrityFault):
    """Raised when the final COMMIT of a unit of work fails."""


class NestedTransactionError(IntegrityFault):
    """Raised when a unit of work tries to open a second transaction scope."""


class TransientError(MastaraError):
    """Raised for connectivity failures, pool exhaustion, and expired deadlines."""

    error_code = "service_unavailable"
    default_status_code = 503

    def __init__(self, message: str) -> None:
        super().__init__(
            message,
            public_message="The service is temporarily unavailable. Please retry later.",
        )


class DatabaseError(MastaraError):
    """Raised for database failures that fit no other category."""

    error_code = "internal_error"
