"""Actor resolution and permission dependencies.

Token issuance and verification happen upstream. The gateway in front of
this service forwards the authenticated identity as two trusted headers:

- X-Clinic-ID: tenant the request acts in
- X-User-ID: profile id of the acting employee

``require_actor`` turns those headers into an ``Actor`` (ACTIVE employee
plus effective permissions) and publishes it as the ambient audit context,
so every transaction opened while serving the request is attributed.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, Request

from mastara.core.errors import NotFoundError, PermissionDeniedError, UnauthenticatedError
from mastara.db.transaction import AuditContext, set_audit_context
from mastara.services.iam import Actor, IAMService

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

CLINIC_HEADER = "X-Clinic-ID"
USER_HEADER = "X-User-ID"

def get_iam_service(request: Request) -> IAMService:
    return request.app.state.iam_service


def _parse_header(request: Request, name: str) -> uuid.UUID:
    raw = request.headers.get(name)
    if not raw:
        raise UnauthenticatedError(f"missing {name} header")
    try:
        return uuid.UUID(raw)
    except ValueError as exc:
        raise UnauthenticatedError(f"malformed {name} header") from exc


async def require_actor(
    request: Request,
    iam: Annotated[IAMService, Depends(get_iam_service)],
) -> Actor:
    """Dependency resolving the trusted headers into an ACTIVE employee.

    Raises:
        UnauthenticatedError: Headers missing/malformed, or no such employee.
        PermissionDeniedError: The employee is not ACTIVE.
    """
    clinic_id = _parse_header(request, CLINIC_HEADER)
    user_id = _parse_header(request, USER_HEADER)

    try:
        actor = await iam.load_actor(clinic_id, user_id)
    except NotFoundError as exc:
        raise UnauthenticatedError(
            f"no employee {user_id} in clinic {clinic_id}"
        ) from exc

    set_audit_context(AuditContext(user_id=actor.profile_id, clinic_id=actor.clinic_id))
    return actor


def require_permission(permission: str) -> Callable[..., Awaitable[Actor]]:
    """Factory for permission-checking dependencies.

    Usage:
        @router.post("/patients")
        async def register_patient(
            actor: Annotated[Actor, Depends(require_permission("patients.create"))],
        ):
            ...
    """

    async def _check_permission(
        actor: Annotated[Actor, Depends(require_actor)],
    ) -> Actor:
        if not actor.has_permission(permission):
            logger.warning(
                "Permission denied",
                extra={
                    "profile_id": str(actor.profile_id),
                    "clinic_id": str(actor.clinic_id),
                    "permission": permission,
                },
            )
            raise PermissionDeniedError(f"Permission required: {permission}")
        return actor

    return _check_permission
