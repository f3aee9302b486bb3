"""Pydantic schemas for the patient endpoints.

Request models validate shape and format only (name length, E.164 phone,
email syntax); uniqueness and lifecycle rules are enforced below the API.
"""

from __future__ import annotations

# NOTE: date, datetime and UUID must remain at runtime for Pydantic validation
from datetime import date, datetime  # noqa: TC003
from typing import Annotated, Any
from uuid import UUID  # noqa: TC003

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from mastara.services.lifecycle import PromoteGuestRequest, RegisterProfileRequest

E164_PATTERN = r"^\+[1-9]\d{1,14}$"

FullName = Annotated[str, Field(min_length=2, max_length=255, description="Full name")]
PhoneNumber = Annotated[
    str,
    Field(pattern=E164_PATTERN, description="Phone number in E.164 format, e.g. +201001234567"),
]


class CreateGuestRequest(BaseModel):
    """Fast booking: the minimum needed to identify a guest."""

    full_name: FullName
    phone_number: PhoneNumber

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class RegisterPatientRequest(BaseModel):
    """In-clinic full registration by staff."""

    full_name: FullName
    phone_number: PhoneNumber
    email: EmailStr | None = None
    national_id: str | None = Field(None, max_length=100)
    date_of_birth: date | None = None

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    def to_service_request(self) -> RegisterProfileRequest:
        return RegisterProfileRequest(
            full_name=self.full_name,
            phone_number=self.phone_number,
            email=self.email,
            national_id=self.national_id,
            date_of_birth=self.date_of_birth,
        )


class CompleteRegistrationRequest(BaseModel):
    """Upgrade of a guest to a registered patient."""

    full_name: FullName
    email: EmailStr | None = None
    national_id: str | None = Field(None, max_length=100)
    date_of_birth: date | None = None

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    def to_service_request(self) -> PromoteGuestRequest:
        return PromoteGuestRequest(
            full_name=self.full_name,
            email=self.email,
            national_id=self.national_id,
            date_of_birth=self.date_of_birth,
        )


class ProfileResponse(BaseModel):
    """Publicly exposed fields of a profile."""

    id: UUID
    clinic_id: UUID
    full_name: str
    phone_number: str | None = None
    email: str | None = None
    national_id: str | None = None
    date_of_birth: date | None = None
    profile_status: str
    extended_data: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_profile(cls, profile: Any) -> ProfileResponse:
        return cls(
            id=profile.id,
            clinic_id=profile.clinic_id,
            full_name=profile.full_name,
            phone_number=profile.phone_number,
            email=profile.email,
            national_id=profile.national_id,
            date_of_birth=profile.date_of_birth,
            profile_status=profile.profile_status.value,
            extended_data=profile.extended_data or {},
            created_at=profile.created_at,
            updated_at=profile.updated_at,
        )


class ProfileListResponse(BaseModel):
    """One page of profiles."""

    data: list[ProfileResponse]
    page: int
    page_size: int
