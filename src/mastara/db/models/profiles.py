"""Profile model: the canonical person record for patients and staff.

One row per person per clinic. Uniqueness of phone number and email is
enforced per clinic among non-deleted rows only, through partial unique
indexes (soft-deleted rows never block re-registration).
"""

from __future__ import annotations

# Required at runtime for SQLAlchemy type resolution
import uuid  # noqa: TC003
from datetime import date
from typing import Any

from sqlalchemy import CheckConstraint, Date, Enum, ForeignKey, Index, String, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.engine import Row, RowMapping
from sqlalchemy.orm import Mapped, mapped_column

from mastara.db.models.base import (
    Base,
    OptionalTimestampTZ,
    ProfileStatus,
    TimestampTZ,
    UUIDv7PrimaryKey,
)

PHONE_UNIQUE_INDEX = "uq_profiles_clinic_phone_active"
EMAIL_UNIQUE_INDEX = "uq_profiles_clinic_email_active"


class Profile(Base):
    """Person record scoped to exactly one clinic (tenant)."""

    __tablename__ = "profiles"

    id: Mapped[UUIDv7PrimaryKey]
    clinic_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("clinics.id", ondelete="RESTRICT"),
        nullable=False,
    )

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    national_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)

    profile_status: Mapped[ProfileStatus] = mapped_column(
        Enum(ProfileStatus, name="profile_status", create_constraint=True),
        nullable=False,
        server_default=ProfileStatus.GUEST.value,
    )

    # Schemaless extension payload for clinic-specific fields
    extended_data: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )

    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]
    deleted_at: Mapped[OptionalTimestampTZ]

    __table_args__ = (
        CheckConstraint(
            "email IS NOT NULL OR phone_number IS NOT NULL",
            name="profile_contact_method",
        ),
        Index(
            PHONE_UNIQUE_INDEX,
            "clinic_id",
            "phone_number",
            unique=True,
            postgresql_where=text("phone_number IS NOT NULL AND deleted_at IS NULL"),
        ),
        Index(
            EMAIL_UNIQUE_INDEX,
            "clinic_id",
            "email",
            unique=True,
            postgresql_where=text("email IS NOT NULL AND deleted_at IS NULL"),
        ),
        Index("ix_profiles_clinic_created", "clinic_id", "created_at"),
    )

    @classmethod
    def from_row(cls, row: Row | RowMapping) -> Profile:
        """Build a detached Profile from a result row carrying profile columns."""
        mapping = row._mapping if isinstance(row, Row) else row
        values = {column.key: mapping[column.key] for column in cls.__table__.columns}
        status = values["profile_status"]
        if not isinstance(status, ProfileStatus):
            values["profile_status"] = ProfileStatus(status)
        return cls(**values)

    @property
    def is_deleted(self) -> bool:
        """True once the profile has been archived."""
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return (
            f"<Profile id={self.id} clinic_id={self.clinic_id} "
            f"status={self.profile_status.value if self.profile_status else None}>"
        )
