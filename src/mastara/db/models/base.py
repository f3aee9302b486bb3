"""Base model definitions, common column types, and shared enums.

This module provides:
- SQLAlchemy declarative base with naming conventions
- Reusable annotated column types (time-ordered UUID keys, timestamps)
- Enum types used across multiple models
"""

import enum
import uuid
from datetime import datetime
from typing import Annotated

from sqlalchemy import DateTime, MetaData, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, mapped_column, registry

# Naming convention for constraints ensures consistent migration generation.
# See: https://alembic.sqlalchemy.org/en/latest/naming.html
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=NAMING_CONVENTION)

type_registry = registry()

# Time-ordered UUID primary key, generated by the database (pg_uuidv7)
UUIDv7PrimaryKey = Annotated[
    uuid.UUID,
    mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("uuid_generate_v7()"),
    ),
]

UUIDForeignKey = Annotated[uuid.UUID, mapped_column(UUID(as_uuid=True))]

TimestampTZ = Annotated[
    datetime,
    mapped_column(DateTime(timezone=True), server_default=text("now()"), nullable=False),
]

OptionalTimestampTZ = Annotated[
    datetime | None,
    mapped_column(DateTime(timezone=True), nullable=True),
]

ShortString = Annotated[str, mapped_column(String(100))]
MediumString = Annotated[str, mapped_column(String(255))]


class Base(DeclarativeBase):
    """Declarative base for all Mastara models."""

    metadata = metadata
    registry = type_registry


# =============================================================================
# Common Enums
# =============================================================================


class ProfileStatus(enum.Enum):
    """Profile lifecycle states. Forward only.

    States:
        GUEST: Created by fast booking; minimal fields, not a system user
        REGISTERED: Fully registered patient (by staff or guest promotion)
        ARCHIVED: Soft-deleted, terminal
    """

    GUEST = "GUEST"
    REGISTERED = "REGISTERED"
    ARCHIVED = "ARCHIVED"


class EmployeeStatus(enum.Enum):
    """Employment status of a staff member.

    Values:
        INVITED: Invitation sent, no credentials yet
        ACTIVE: Can sign in and act
        SUSPENDED: Temporarily blocked
        TERMINATED: Employment ended
    """

    INVITED = "INVITED"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    TERMINATED = "TERMINATED"
