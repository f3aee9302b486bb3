"""Patient API router.

Staff operations on patient profiles of the acting employee's clinic.
Every endpoint requires a permission; the clinic always comes from the
resolved actor, never from the request body.
"""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status

from mastara.api.middleware.auth import require_permission
from mastara.api.schemas.patients import (
    CompleteRegistrationRequest,
    ProfileListResponse,
    ProfileResponse,
    RegisterPatientRequest,
)
from mastara.services.iam import Actor
from mastara.services.lifecycle import DEFAULT_PAGE_SIZE, ProfileLifecycleService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/patients",
    tags=["patients"],
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Insufficient permissions"},
    },
)


def get_lifecycle_service(request: Request) -> ProfileLifecycleService:
    return request.app.state.lifecycle_service


LifecycleService = Annotated[ProfileLifecycleService, Depends(get_lifecycle_service)]


@router.post("", status_code=status.HTTP_201_CREATED, response_model=ProfileResponse)
async def register_patient(
    body: RegisterPatientRequest,
    actor: Annotated[Actor, Depends(require_permission("patients.create"))],
    service: LifecycleService,
) -> ProfileResponse:
    """Register a patient, upgrading a guest with the same phone if one exists."""
    profile = await service.register_full_profile(actor.clinic_id, body.to_service_request())
    return ProfileResponse.from_profile(profile)


@router.put("/{profile_id}/complete-registration", response_model=ProfileResponse)
async def complete_registration(
    profile_id: UUID,
    body: CompleteRegistrationRequest,
    actor: Annotated[Actor, Depends(require_permission("patients.update"))],
    service: LifecycleService,
) -> ProfileResponse:
    """Promote a guest to a registered patient."""
    profile = await service.promote_guest_to_registered(
        actor.clinic_id, profile_id, body.to_service_request()
    )
    return ProfileResponse.from_profile(profile)


@router.delete("/{profile_id}", response_model=ProfileResponse)
async def archive_patient(
    profile_id: UUID,
    actor: Annotated[Actor, Depends(require_permission("patients.delete"))],
    service: LifecycleService,
) -> ProfileResponse:
    """Archive (soft delete) a patient profile."""
    profile = await service.archive_profile(actor.clinic_id, profile_id)
    return ProfileResponse.from_profile(profile)


@router.get("/{profile_id}", response_model=ProfileResponse)
async def get_patient(
    profile_id: UUID,
    actor: Annotated[Actor, Depends(require_permission("patients.read"))],
    service: LifecycleService,
) -> ProfileResponse:
    profile = await service.get_profile(actor.clinic_id, profile_id)
    return ProfileResponse.from_profile(profile)


@router.get("", response_model=ProfileListResponse)
async def list_patients(
    actor: Annotated[Actor, Depends(require_permission("patients.read"))],
    service: LifecycleService,
    page: Annotated[int, Query()] = 1,
    page_size: Annotated[int, Query()] = DEFAULT_PAGE_SIZE,
) -> ProfileListResponse:
    """List the clinic's active patients, newest first.

    Out-of-range paging values are clamped rather than rejected.
    """
    result = await service.list_profiles(actor.clinic_id, page, page_size)
    return ProfileListResponse(
        data=[ProfileResponse.from_profile(p) for p in result.items],
        page=result.page,
        page_size=result.page_size,
    )
