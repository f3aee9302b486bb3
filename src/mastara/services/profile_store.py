"""Tenant-scoped reads and writes of profile rows.

Every statement is keyed by ``clinic_id`` and only ever touches
non-deleted rows. All operations take a ``Querier`` so they run the same
way inside a transaction or against the pool.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError

from mastara.core.errors import NotFoundError
from mastara.db.errors import translate_db_error
from mastara.db.models.base import ProfileStatus
from mastara.db.models.profiles import Profile

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.sql import Executable

    from mastara.db.querier import Querier

logger = logging.getLogger(__name__)

profiles = Profile.__table__

PROFILE_RESOURCE = "profile"


class ProfileStore:
    """Repository over the ``profiles`` table."""

    async def find_by_id(
        self,
        q: Querier,
        clinic_id: uuid.UUID,
        profile_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> Profile:
        """Fetch an active profile, optionally locking the row.

        Raises:
            NotFoundError: No active profile with that id in the clinic.
        """
        stmt = select(*profiles.c).where(
            profiles.c.id == profile_id,
            profiles.c.clinic_id == clinic_id,
            profiles.c.deleted_at.is_(None),
        )
        if for_update:
            stmt = stmt.with_for_update()

        row = await _query_row(q, stmt, "find_profile_by_id")
        if row is None:
            raise NotFoundError(PROFILE_RESOURCE, profile_id)
        return Profile.from_row(row)

    async def find_by_phone(
        self,
        q: Querier,
        clinic_id: uuid.UUID,
        phone_number: str,
    ) -> Profile | None:
        stmt = select(*profiles.c).where(
            profiles.c.clinic_id == clinic_id,
            profiles.c.phone_number == phone_number,
            profiles.c.deleted_at.is_(None),
        )
        row = await _query_row(q, stmt, "find_profile_by_phone")
        return Profile.from_row(row) if row is not None else None

    async def update(self, q: Querier, profile: Profile) -> Profile:
        """Persist the mutable fields of ``profile`` and return the stored row.

        Raises:
            NotFoundError: Zero rows matched (missing, other clinic, or deleted).
            ConflictError: The new phone or email belongs to another active profile.
        """
        stmt = (
            update(profiles)
            .where(
                profiles.c.id == profile.id,
                profiles.c.clinic_id == profile.clinic_id,
                profiles.c.deleted_at.is_(None),
            )
            .values(
                full_name=profile.full_name,
                phone_number=profile.phone_number,
                email=profile.email,
                national_id=profile.national_id,
                date_of_birth=profile.date_of_birth,
                profile_status=profile.profile_status,
                extended_data=profile.extended_data if profile.extended_data is not None else {},
                updated_at=func.now(),
            )
            .returning(*profiles.c)
        )
        row = await _query_row(q, stmt, "update_profile")
        if row is None:
            raise NotFoundError(PROFILE_RESOURCE, profile.id)
        return Profile.from_row(row)

    async def archive(
        self,
        q: Querier,
        clinic_id: uuid.UUID,
        profile_id: uuid.UUID,
    ) -> Profile:
        """Soft delete: mark ARCHIVED and stamp ``deleted_at``."""
        stmt = (
            update(profiles)
            .where(
                profiles.c.id == profile_id,
                profiles.c.clinic_id == clinic_id,
                profiles.c.deleted_at.is_(None),
            )
            .values(
                profile_status=ProfileStatus.ARCHIVED,
                deleted_at=func.now(),
                updated_at=func.now(),
            )
            .returning(*profiles.c)
        )
        row = await _query_row(q, stmt, "archive_profile")
        if row is None:
            raise NotFoundError(PROFILE_RESOURCE, profile_id)
        return Profile.from_row(row)

    async def list_page(
        self,
        q: Querier,
        clinic_id: uuid.UUID,
        offset: int,
        limit: int,
    ) -> list[Profile]:
        """Active profiles of a clinic, newest first."""
        stmt = (
            select(*profiles.c)
            .where(profiles.c.clinic_id == clinic_id, profiles.c.deleted_at.is_(None))
            .order_by(profiles.c.created_at.desc(), profiles.c.id.desc())
            .offset(offset)
            .limit(limit)
        )
        try:
            rows = await q.query(stmt)
        except (SQLAlchemyError, TimeoutError) as exc:
            raise translate_db_error(exc, "list_profiles") from exc
        return [Profile.from_row(row) for row in rows]


async def _query_row(q: Querier, stmt: Executable, operation: str):
    try:
        return await q.query_row(stmt)
    except (SQLAlchemyError, TimeoutError) as exc:
        raise translate_db_error(exc, operation) from exc
