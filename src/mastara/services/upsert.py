"""Race-safe find-or-create of guest profiles.

Fast booking must never produce two active profiles for the same phone
number in a clinic, even when many requests for the same person arrive at
once. Mutual exclusion is delegated entirely to the partial unique index
``uq_profiles_clinic_phone_active``: a single statement inserts the guest
if no active row exists and otherwise returns the existing one.

The statement (PostgreSQL)::

    WITH inserted AS (
        INSERT INTO profiles (clinic_id, full_name, phone_number, profile_status)
        VALUES (:clinic_id, :full_name, :phone_number, 'GUEST')
        ON CONFLICT (clinic_id, phone_number)
            WHERE phone_number IS NOT NULL AND deleted_at IS NULL
        DO NOTHING
        RETURNING *
    )
    SELECT * FROM inserted
    UNION ALL
    SELECT * FROM profiles
    WHERE clinic_id = :clinic_id AND phone_number = :phone_number
      AND deleted_at IS NULL AND NOT EXISTS (SELECT 1 FROM inserted)

Under READ COMMITTED the fallback branch reads the statement's snapshot,
which can predate the commit of a concurrent winner. In that case the
statement yields nothing and one plain re-read (fresh snapshot) picks the
winner up. An empty re-read means the invariant is broken.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import and_, exists, literal, select, union_all
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError

from mastara.core.errors import IntegrityFault, InvalidRequestError
from mastara.db.errors import translate_db_error
from mastara.db.models.base import ProfileStatus
from mastara.db.models.profiles import Profile

if TYPE_CHECKING:
    from sqlalchemy.sql import CompoundSelect, Select

    from mastara.db.querier import Querier

logger = logging.getLogger(__name__)

profiles = Profile.__table__

NIL_UUID = uuid.UUID(int=0)


def build_guest_upsert(clinic_id: uuid.UUID, full_name: str, phone_number: str) -> CompoundSelect:
    """Build the single insert-or-return statement for a guest profile."""
    inserted = (
        insert(profiles)
        .values(
            clinic_id=clinic_id,
            full_name=full_name,
            phone_number=phone_number,
            profile_status=ProfileStatus.GUEST,
        )
        .on_conflict_do_nothing(
            index_elements=[profiles.c.clinic_id, profiles.c.phone_number],
            index_where=and_(
                profiles.c.phone_number.is_not(None),
                profiles.c.deleted_at.is_(None),
            ),
        )
        .returning(*profiles.c)
        .cte("inserted")
    )

    existing = select(*profiles.c).where(
        profiles.c.clinic_id == clinic_id,
        profiles.c.phone_number == phone_number,
        profiles.c.deleted_at.is_(None),
        ~exists(select(literal(1)).select_from(inserted)),
    )

    return union_all(select(*inserted.c), existing)


def build_active_by_phone(clinic_id: uuid.UUID, phone_number: str) -> Select:
    """Plain read of the active profile holding a phone number in a clinic."""
    return select(*profiles.c).where(
        profiles.c.clinic_id == clinic_id,
        profiles.c.phone_number == phone_number,
        profiles.c.deleted_at.is_(None),
    )


class GuestUpsertEngine:
    """Finds or creates the guest profile for (clinic, phone)."""

    async def find_or_create_guest(
        self,
        tx: Querier,
        clinic_id: uuid.UUID,
        full_name: str,
        phone_number: str,
    ) -> Profile:
        """Return the active profile for the phone, creating a GUEST if none exists.

        An existing profile is returned unchanged, whatever name was passed.
        Concurrent calls for the same (clinic, phone) converge on one row.

        Args:
            tx: Querier, normally bound to the caller's transaction.
            clinic_id: Tenant owning the profile.
            full_name: Name recorded only when a new guest is inserted.
            phone_number: Phone in its canonical (E.164) form.

        Raises:
            InvalidRequestError: Empty clinic id, name or phone.
            IntegrityFault: Neither the statement nor the re-read found a row.
            ConflictError: Another unique constraint (e.g. email) was violated.
            TransientError: Connectivity failure or timeout.
        """
        if clinic_id is None or clinic_id == NIL_UUID:
            raise InvalidRequestError("clinic_id is required")
        if not full_name or not full_name.strip():
            raise InvalidRequestError("full_name is required")
        if not phone_number or not phone_number.strip():
            raise InvalidRequestError("phone_number is required")

        try:
            row = await tx.query_row(build_guest_upsert(clinic_id, full_name, phone_number))
            if row is None:
                logger.info(
                    "Guest upsert lost a race; re-reading the winning row",
                    extra={"clinic_id": str(clinic_id)},
                )
                row = await tx.query_row(build_active_by_phone(clinic_id, phone_number))
        except (SQLAlchemyError, TimeoutError) as exc:
            raise translate_db_error(exc, "find_or_create_guest") from exc

        if row is None:
            logger.error(
                "Guest upsert returned no row after re-read",
                extra={"clinic_id": str(clinic_id)},
            )
            raise IntegrityFault(
                f"find-or-create returned no profile for clinic {clinic_id}"
            )

        profile = Profile.from_row(row)
        logger.debug(
            "Guest profile resolved",
            extra={"clinic_id": str(clinic_id), "profile_id": str(profile.id)},
        )
        return profile
