"""Database-backed tests for guest onboarding and registration.

Tests cover:
- Concurrent find-or-create converging on one row
- Tenant isolation of phone uniqueness
- Guest promotion and re-booking
- Registration conflicts leaving no partial writes
- Concurrent registrations of one guest
- Audit trail attribution
"""

import asyncio
import uuid

import pytest
from sqlalchemy import func, select

from mastara.core.errors import ConflictError
from mastara.db.models import AuditLogEntry, Profile
from mastara.db.models.base import ProfileStatus
from mastara.db.transaction import AuditContext
from mastara.services.lifecycle import PromoteGuestRequest, RegisterProfileRequest
from mastara.services.upsert import GuestUpsertEngine

pytestmark = pytest.mark.integration

profiles = Profile.__table__
audit_log = AuditLogEntry.__table__

PHONE = "+201001234567"


async def count_active(pool, clinic_id, phone_number=PHONE) -> int:
    row = await pool.query_row(
        select(func.count())
        .select_from(profiles)
        .where(
            profiles.c.clinic_id == clinic_id,
            profiles.c.phone_number == phone_number,
            profiles.c.deleted_at.is_(None),
        )
    )
    return row[0]


class TestConcurrentGuestUpsert:
    """Tests for race safety of create_or_fetch_guest."""

    async def test_concurrent_calls_converge_on_one_profile(self, lifecycle, pool, clinic_id):
        results = await asyncio.gather(
            *(lifecycle.create_or_fetch_guest(clinic_id, f"Caller {i}", PHONE) for i in range(50))
        )

        assert len({profile.id for profile in results}) == 1
        assert await count_active(pool, clinic_id) == 1

    async def test_existing_profile_is_not_modified(self, lifecycle, clinic_id):
        first = await lifecycle.create_or_fetch_guest(clinic_id, "Amina", PHONE)
        second = await lifecycle.create_or_fetch_guest(clinic_id, "Someone Else", PHONE)

        assert second.id == first.id
        assert second.full_name == "Amina"
        assert second.updated_at == first.updated_at

    async def test_same_phone_in_two_clinics(self, lifecycle, clinic_id, other_clinic_id):
        a = await lifecycle.create_or_fetch_guest(clinic_id, "Amina", PHONE)
        b = await lifecycle.create_or_fetch_guest(other_clinic_id, "Amina", PHONE)

        assert a.id != b.id
        assert a.clinic_id == clinic_id
        assert b.clinic_id == other_clinic_id

    async def test_archived_profile_frees_the_phone(self, lifecycle, pool, clinic_id):
        old = await lifecycle.create_or_fetch_guest(clinic_id, "Amina", PHONE)
        await lifecycle.archive_profile(clinic_id, old.id)

        new = await lifecycle.create_or_fetch_guest(clinic_id, "Amina", PHONE)

        assert new.id != old.id
        assert new.profile_status == ProfileStatus.GUEST
        assert await count_active(pool, clinic_id) == 1


class TestRegistration:
    """Tests for promotion and full registration."""

    async def test_guest_promotion_and_rebooking(self, lifecycle, pool, clinic_id):
        guest = await lifecycle.create_or_fetch_guest(clinic_id, "Amina", PHONE)
        promoted = await lifecycle.promote_guest_to_registered(
            clinic_id, guest.id, PromoteGuestRequest(full_name="Amina Hassan")
        )
        again = await lifecycle.create_or_fetch_guest(clinic_id, "A. Hassan", PHONE)

        assert promoted.id == guest.id
        assert promoted.profile_status == ProfileStatus.REGISTERED
        assert again.id == guest.id
        assert again.full_name == "Amina Hassan"
        assert again.profile_status == ProfileStatus.REGISTERED
        assert await count_active(pool, clinic_id) == 1

    async def test_register_existing_registered_phone_conflicts(self, lifecycle, clinic_id):
        original = await lifecycle.register_full_profile(
            clinic_id, RegisterProfileRequest(full_name="Amina Hassan", phone_number=PHONE)
        )

        with pytest.raises(ConflictError):
            await lifecycle.register_full_profile(
                clinic_id, RegisterProfileRequest(full_name="Impostor", phone_number=PHONE)
            )

        stored = await lifecycle.get_profile(clinic_id, original.id)
        assert stored.full_name == "Amina Hassan"
        assert stored.updated_at == original.updated_at

    async def test_concurrent_registrations_of_one_guest(self, lifecycle, pool, clinic_id):
        guest = await lifecycle.create_or_fetch_guest(clinic_id, "Amina", PHONE)

        results = await asyncio.gather(
            lifecycle.register_full_profile(
                clinic_id, RegisterProfileRequest(full_name="Amina Hassan", phone_number=PHONE)
            ),
            lifecycle.register_full_profile(
                clinic_id, RegisterProfileRequest(full_name="Impostor", phone_number=PHONE)
            ),
            return_exceptions=True,
        )

        registered = [r for r in results if not isinstance(r, BaseException)]
        rejected = [r for r in results if isinstance(r, BaseException)]
        assert len(registered) == 1
        assert len(rejected) == 1
        assert isinstance(rejected[0], ConflictError)

        stored = await lifecycle.get_profile(clinic_id, guest.id)
        assert stored.profile_status == ProfileStatus.REGISTERED
        assert stored.full_name == registered[0].full_name
        assert await count_active(pool, clinic_id) == 1

    async def test_email_conflict_leaves_no_guest_behind(self, lifecycle, pool, clinic_id):
        await lifecycle.register_full_profile(
            clinic_id,
            RegisterProfileRequest(
                full_name="Amina Hassan", phone_number=PHONE, email="amina@example.com"
            ),
        )
        other_phone = "+201009999999"

        with pytest.raises(ConflictError) as exc_info:
            await lifecycle.register_full_profile(
                clinic_id,
                RegisterProfileRequest(
                    full_name="Omar Said", phone_number=other_phone, email="amina@example.com"
                ),
            )

        assert exc_info.value.constraint == "uq_profiles_clinic_email_active"
        assert await count_active(pool, clinic_id, other_phone) == 0

    async def test_failed_unit_of_work_rolls_back(self, tx_manager, pool, clinic_id):
        upsert = GuestUpsertEngine()

        async def work(tx):
            await upsert.find_or_create_guest(tx, clinic_id, "Amina", PHONE)
            raise RuntimeError("abort after insert")

        with pytest.raises(RuntimeError, match="abort after insert"):
            await tx_manager.run_in_transaction(work)

        assert await count_active(pool, clinic_id) == 0


class TestAuditTrail:
    """Tests for attribution of row changes by the log_change trigger."""

    async def _entries(self, pool, record_id):
        return await pool.query(
            select(audit_log)
            .where(audit_log.c.table_name == "profiles", audit_log.c.record_id == record_id)
            .order_by(audit_log.c.timestamp)
        )

    async def test_changes_are_attributed_to_actor(self, lifecycle, pool, clinic_id):
        audit = AuditContext(user_id=uuid.uuid4(), clinic_id=clinic_id)

        guest = await lifecycle.create_or_fetch_guest(clinic_id, "Amina", PHONE, audit=audit)
        await lifecycle.promote_guest_to_registered(
            clinic_id, guest.id, PromoteGuestRequest(full_name="Amina Hassan"), audit=audit
        )

        entries = await self._entries(pool, guest.id)
        assert [e.action for e in entries] == ["INSERT", "UPDATE"]
        assert all(e.user_id == audit.user_id for e in entries)
        assert all(e.clinic_id == clinic_id for e in entries)
        assert entries[1].old_record["profile_status"] == "GUEST"
        assert entries[1].new_record["profile_status"] == "REGISTERED"

    async def test_public_changes_are_unattributed(self, lifecycle, pool, clinic_id):
        guest = await lifecycle.create_or_fetch_guest(clinic_id, "Amina", PHONE)

        entries = await self._entries(pool, guest.id)
        assert len(entries) == 1
        assert entries[0].user_id is None

    async def test_attribution_does_not_leak_between_transactions(
        self, lifecycle, pool, clinic_id
    ):
        audit = AuditContext(user_id=uuid.uuid4(), clinic_id=clinic_id)
        await lifecycle.create_or_fetch_guest(clinic_id, "Amina", PHONE, audit=audit)

        other = await lifecycle.create_or_fetch_guest(clinic_id, "Omar", "+201007777777")

        entries = await self._entries(pool, other.id)
        assert entries[0].user_id is None
