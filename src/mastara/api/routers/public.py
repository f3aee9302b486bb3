"""Public booking router.

Unauthenticated endpoints used by the fast booking flow. Changes made here
carry no audit attribution.
"""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends

from mastara.api.routers.patients import get_lifecycle_service
from mastara.api.schemas.patients import CreateGuestRequest, ProfileResponse
from mastara.services.lifecycle import ProfileLifecycleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/public", tags=["public"])


@router.post("/clinics/{clinic_id}/guests", response_model=ProfileResponse)
async def create_or_fetch_guest(
    clinic_id: UUID,
    body: CreateGuestRequest,
    service: Annotated[ProfileLifecycleService, Depends(get_lifecycle_service)],
) -> ProfileResponse:
    """Return the guest profile for this phone in the clinic, creating it if needed.

    Repeating the call, even concurrently or with a different name, returns
    the same profile unchanged.
    """
    profile = await service.create_or_fetch_guest(clinic_id, body.full_name, body.phone_number)
    return ProfileResponse.from_profile(profile)
