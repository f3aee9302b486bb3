"""Staff and access-control models: employees, roles, permissions, audit log.

Covers the 1:1 Employee extension of a Profile, clinic-scoped (or global
system) roles bundling atomic permission keys, and the trigger-written
audit trail that consumes the transaction-local audit context.
"""

from __future__ import annotations

import uuid  # noqa: TC003 - required at runtime for SQLAlchemy type resolution
from datetime import date
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    Enum,
    ForeignKey,
    Index,
    SmallInteger,
    String,
    Table,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.engine import Row, RowMapping
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mastara.db.models.base import (
    Base,
    EmployeeStatus,
    OptionalTimestampTZ,
    TimestampTZ,
    UUIDv7PrimaryKey,
)

role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", UUID(as_uuid=True), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "permission_id",
        SmallInteger,
        ForeignKey("permissions.id", ondelete="RESTRICT"),
        primary_key=True,
    ),
)

employee_roles = Table(
    "employee_roles",
    Base.metadata,
    Column(
        "employee_profile_id",
        UUID(as_uuid=True),
        ForeignKey("employees.profile_id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("role_id", UUID(as_uuid=True), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class Permission(Base):
    """An atomic, system-wide capability key (e.g. ``patients.create``)."""

    __tablename__ = "permissions"

    id: Mapped[int] = mapped_column(SmallInteger, primary_key=True)
    permission_key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)


class Role(Base):
    """Named bundle of permissions, clinic scoped or global (system role)."""

    __tablename__ = "roles"

    id: Mapped[UUIDv7PrimaryKey]
    clinic_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("clinics.id", ondelete="CASCADE"),
        nullable=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_system_role: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )

    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]
    deleted_at: Mapped[OptionalTimestampTZ]

    # Loaded only on demand
    permissions: Mapped[list[Permission]] = relationship(
        secondary=role_permissions,
        lazy="noload",
    )

    __table_args__ = (
        CheckConstraint(
            "(is_system_role AND clinic_id IS NULL) OR (NOT is_system_role)",
            name="system_role_clinic_id",
        ),
        Index(
            "uq_roles_clinic_name_active",
            "clinic_id",
            "name",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )


class Employee(Base):
    """Employment extension of a Profile. Deleting the profile cascades."""

    __tablename__ = "employees"

    profile_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        primary_key=True,
    )
    clinic_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("clinics.id", ondelete="CASCADE"),
        nullable=False,
    )

    job_title: Mapped[str | None] = mapped_column(String(100), nullable=True)
    employment_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Opaque credential hash; null while the employee is INVITED
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[EmployeeStatus] = mapped_column(
        Enum(EmployeeStatus, name="employee_status", create_constraint=True),
        nullable=False,
        server_default=EmployeeStatus.INVITED.value,
    )
    last_login_at: Mapped[OptionalTimestampTZ]
    invited_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("employees.profile_id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]
    deleted_at: Mapped[OptionalTimestampTZ]

    roles: Mapped[list[Role]] = relationship(secondary=employee_roles, lazy="noload")

    __table_args__ = (
        CheckConstraint(
            "(status != 'INVITED' AND password_hash IS NOT NULL) OR (status = 'INVITED')",
            name="password_for_active_employee",
        ),
    )

    @classmethod
    def from_row(cls, row: Row | RowMapping) -> Employee:
        """Build a detached Employee from a result row carrying employee columns."""
        mapping = row._mapping if isinstance(row, Row) else row
        values = {column.key: mapping[column.key] for column in cls.__table__.columns}
        if not isinstance(values["status"], EmployeeStatus):
            values["status"] = EmployeeStatus(values["status"])
        return cls(**values)


class AuditLogEntry(Base):
    """Row-level change record written by the ``log_change()`` trigger.

    Never written by application code; attribution comes from the
    transaction-local ``app.audit_context`` setting.
    """

    __tablename__ = "audit_log"

    id: Mapped[UUIDv7PrimaryKey]
    clinic_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    user_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    table_name: Mapped[str] = mapped_column(Text, nullable=False)
    record_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    old_record: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    new_record: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    timestamp: Mapped[TimestampTZ]

    __table_args__ = (
        Index("ix_audit_log_clinic_id", "clinic_id"),
        Index("ix_audit_log_user_id", "user_id"),
        Index("ix_audit_log_table_record", "table_name", "record_id"),
    )
