"""Pydantic schemas for the employee endpoints."""

from __future__ import annotations

# NOTE: datetime and UUID must remain at runtime for Pydantic validation
from datetime import datetime  # noqa: TC003
from typing import Any
from uuid import UUID  # noqa: TC003

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from mastara.api.schemas.patients import E164_PATTERN, FullName
from mastara.services.employees import InviteEmployeeRequest as InviteEmployeeCommand


class InviteEmployeeRequest(BaseModel):
    """A new staff member for the actor's clinic.

    The password hash is produced by the identity provider and stored
    verbatim; omit it to leave the employee INVITED.
    """

    full_name: FullName
    email: EmailStr | None = None
    phone_number: str | None = Field(None, pattern=E164_PATTERN)
    job_title: str | None = Field(None, max_length=100)
    password_hash: str | None = Field(None, min_length=1, max_length=255)
    role_ids: list[UUID] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    @model_validator(mode="after")
    def require_contact(self) -> InviteEmployeeRequest:
        if self.email is None and self.phone_number is None:
            raise ValueError("email or phone_number is required")
        return self

    def to_service_request(self) -> InviteEmployeeCommand:
        return InviteEmployeeCommand(
            full_name=self.full_name,
            email=self.email,
            phone_number=self.phone_number,
            job_title=self.job_title,
            password_hash=self.password_hash,
            role_ids=tuple(self.role_ids),
        )


class EmployeeResponse(BaseModel):
    """Publicly exposed fields of an employee. Never includes the password hash."""

    profile_id: UUID
    clinic_id: UUID
    full_name: str
    email: str | None = None
    phone_number: str | None = None
    job_title: str | None = None
    status: str
    invited_by: UUID | None = None
    role_ids: list[UUID] = Field(default_factory=list)
    created_at: datetime | None = None

    @classmethod
    def from_invited(cls, invited: Any) -> EmployeeResponse:
        profile, employee = invited.profile, invited.employee
        return cls(
            profile_id=employee.profile_id,
            clinic_id=employee.clinic_id,
            full_name=profile.full_name,
            email=profile.email,
            phone_number=profile.phone_number,
            job_title=employee.job_title,
            status=employee.status.value,
            invited_by=employee.invited_by,
            role_ids=list(invited.role_ids),
            created_at=employee.created_at,
        )
