"""Tests for the race-safe guest upsert engine.

Statement shape is checked by compiling against the PostgreSQL dialect;
the concurrency behaviour itself is covered by tests/integration.
"""

from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy import exc as sa_exc
from sqlalchemy.dialects import postgresql

from mastara.core.errors import (
    ConflictError,
    IntegrityFault,
    InvalidRequestError,
    TransientError,
)
from mastara.db.models.base import ProfileStatus
from mastara.services.upsert import (
    NIL_UUID,
    GuestUpsertEngine,
    build_active_by_phone,
    build_guest_upsert,
)
from tests.factories import FakeQuerier, make_profile, profile_row

PHONE = "+201001234567"


def _compile(stmt):
    return stmt.compile(dialect=postgresql.dialect())


class TestStatementShape:
    """Tests for the generated SQL."""

    def test_single_statement_insert_or_return(self):
        clinic_id = uuid4()
        compiled = _compile(build_guest_upsert(clinic_id, "Amina", PHONE))
        sql = " ".join(str(compiled).split())

        assert "WITH inserted AS" in sql
        assert "INSERT INTO profiles" in sql
        assert "ON CONFLICT (clinic_id, phone_number)" in sql
        assert "WHERE phone_number IS NOT NULL AND deleted_at IS NULL DO NOTHING" in sql
        assert "RETURNING" in sql
        assert "UNION ALL" in sql
        assert "EXISTS" in sql

    def test_values_are_bound_not_inlined(self):
        clinic_id = uuid4()
        compiled = _compile(build_guest_upsert(clinic_id, "Robert'); DROP TABLE profiles;--", PHONE))

        assert "DROP TABLE" not in str(compiled)
        values = list(compiled.params.values())
        assert clinic_id in values
        assert PHONE in values
        assert ProfileStatus.GUEST in values

    def test_active_lookup_excludes_deleted_rows(self):
        sql = str(_compile(build_active_by_phone(uuid4(), PHONE)))
        assert "profiles.deleted_at IS NULL" in sql
        assert "profiles.clinic_id" in sql


class TestFindOrCreateGuest:
    """Tests for GuestUpsertEngine.find_or_create_guest."""

    @pytest.mark.asyncio
    async def test_returns_row_from_single_statement(self, clinic_id):
        guest = make_profile(clinic_id=clinic_id)
        tx = FakeQuerier(row=profile_row(guest))

        result = await GuestUpsertEngine().find_or_create_guest(tx, clinic_id, "Amina", PHONE)

        assert result.id == guest.id
        assert result.profile_status == ProfileStatus.GUEST
        assert len(tx.statements) == 1

    @pytest.mark.asyncio
    async def test_existing_profile_returned_unchanged(self, clinic_id):
        registered = make_profile(
            clinic_id=clinic_id,
            full_name="Amina Hassan",
            profile_status=ProfileStatus.REGISTERED,
        )
        tx = FakeQuerier(row=profile_row(registered))

        result = await GuestUpsertEngine().find_or_create_guest(tx, clinic_id, "Someone Else", PHONE)

        assert result.full_name == "Amina Hassan"
        assert result.profile_status == ProfileStatus.REGISTERED

    @pytest.mark.asyncio
    async def test_invisible_winner_is_picked_up_by_reread(self, clinic_id, caplog):
        winner = make_profile(clinic_id=clinic_id)
        tx = FakeQuerier(row_sequence=[None, profile_row(winner)])

        with caplog.at_level("INFO", logger="mastara.services.upsert"):
            result = await GuestUpsertEngine().find_or_create_guest(tx, clinic_id, "Amina", PHONE)

        assert result.id == winner.id
        assert len(tx.statements) == 2
        assert any("re-reading" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_empty_reread_is_integrity_fault(self, clinic_id):
        tx = FakeQuerier(row_sequence=[None, None])

        with pytest.raises(IntegrityFault):
            await GuestUpsertEngine().find_or_create_guest(tx, clinic_id, "Amina", PHONE)

    @pytest.mark.asyncio
    async def test_accepts_row_objects_with_string_status(self, clinic_id):
        guest = make_profile(clinic_id=clinic_id)
        mapping = profile_row(guest) | {"profile_status": "GUEST"}
        tx = FakeQuerier(row=mapping)

        result = await GuestUpsertEngine().find_or_create_guest(tx, clinic_id, "Amina", PHONE)
        assert result.profile_status is ProfileStatus.GUEST

    @pytest.mark.parametrize(
        "clinic, name, phone",
        [
            (None, "Amina", PHONE),
            (NIL_UUID, "Amina", PHONE),
            ("clinic", "", PHONE),
            ("clinic", "   ", PHONE),
            ("clinic", "Amina", ""),
        ],
    )
    @pytest.mark.asyncio
    async def test_rejects_missing_inputs(self, clinic, name, phone):
        clinic_id = uuid4() if clinic == "clinic" else clinic
        tx = FakeQuerier()

        with pytest.raises(InvalidRequestError) as exc_info:
            await GuestUpsertEngine().find_or_create_guest(tx, clinic_id, name, phone)
        assert exc_info.value.status_code == 400
        assert tx.statements == []

    @pytest.mark.asyncio
    async def test_other_unique_violation_is_conflict(self, clinic_id):
        orig = Exception("duplicate key")
        orig.sqlstate = "23505"
        orig.diag = SimpleNamespace(constraint_name="uq_profiles_clinic_email_active")
        tx = FakeQuerier(error=sa_exc.IntegrityError("INSERT", {}, orig))

        with pytest.raises(ConflictError) as exc_info:
            await GuestUpsertEngine().find_or_create_guest(tx, clinic_id, "Amina", PHONE)
        assert exc_info.value.constraint == "uq_profiles_clinic_email_active"

    @pytest.mark.asyncio
    async def test_connectivity_failure_is_transient(self, clinic_id):
        tx = FakeQuerier(error=sa_exc.OperationalError("INSERT", {}, Exception("reset")))

        with pytest.raises(TransientError):
            await GuestUpsertEngine().find_or_create_guest(tx, clinic_id, "Amina", PHONE)
