"""Clinic model: the tenant root. Every identity row belongs to one clinic."""

from __future__ import annotations

from typing import Any

from sqlalchemy import CHAR, Index, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from mastara.db.models.base import Base, OptionalTimestampTZ, TimestampTZ, UUIDv7PrimaryKey


class Clinic(Base):
    """A single tenant of the platform."""

    __tablename__ = "clinics"

    id: Mapped[UUIDv7PrimaryKey]
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)

    address_line1: Mapped[str] = mapped_column(Text, nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    country_code: Mapped[str] = mapped_column(CHAR(2), nullable=False)

    # IANA timezone name, used when rendering local times
    timezone: Mapped[str] = mapped_column(
        String(100), nullable=False, server_default=text("'UTC'")
    )
    settings: Mapped[dict[str, Any]] = mapped_column(
        JSONB, nullable=False, server_default=text("'{}'::jsonb")
    )

    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]
    deleted_at: Mapped[OptionalTimestampTZ]

    __table_args__ = (
        Index(
            "uq_clinics_email_active",
            "email",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )
