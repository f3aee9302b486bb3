"""Employee API router.

Staff management within the acting employee's clinic.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from mastara.api.middleware.auth import require_permission
from mastara.api.schemas.employees import EmployeeResponse, InviteEmployeeRequest
from mastara.services.employees import EmployeeService
from mastara.services.iam import Actor

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/employees",
    tags=["employees"],
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Insufficient permissions"},
    },
)


def get_employee_service(request: Request) -> EmployeeService:
    return request.app.state.employee_service


@router.post("", status_code=status.HTTP_201_CREATED, response_model=EmployeeResponse)
async def invite_employee(
    body: InviteEmployeeRequest,
    actor: Annotated[Actor, Depends(require_permission("employees.invite"))],
    service: Annotated[EmployeeService, Depends(get_employee_service)],
) -> EmployeeResponse:
    """Invite a staff member; the acting employee is recorded as the inviter."""
    invited = await service.invite_employee(actor, body.to_service_request())
    return EmployeeResponse.from_invited(invited)
