"""Tests for actor and permission resolution."""

from types import SimpleNamespace
from uuid import uuid4

import pytest

from mastara.core.errors import NotFoundError, PermissionDeniedError
from mastara.db.models.base import EmployeeStatus
from mastara.services.iam import (
    Actor,
    IAMService,
    RoleGrant,
    effective_permissions,
    find_employee,
    find_roles_for_employee,
)
from tests.factories import FakeQuerier, employee_row


def role_row(role_id, name, permission_key, is_system_role=False):
    return SimpleNamespace(
        id=role_id, name=name, is_system_role=is_system_role, permission_key=permission_key
    )


class TestEffectivePermissions:
    """Tests for flattening role grants."""

    def test_union_is_deduplicated(self):
        grants = [
            RoleGrant(uuid4(), "Receptionist", False, frozenset({"patients.read", "patients.create"})),
            RoleGrant(uuid4(), "Dentist", False, frozenset({"patients.read", "patients.update"})),
        ]
        assert effective_permissions(grants) == {
            "patients.read",
            "patients.create",
            "patients.update",
        }

    def test_no_roles_no_permissions(self):
        assert effective_permissions([]) == frozenset()

    def test_actor_has_permission(self):
        actor = Actor(uuid4(), uuid4(), (), frozenset({"patients.read"}))
        assert actor.has_permission("patients.read")
        assert not actor.has_permission("patients.delete")


class TestFindEmployee:
    """Tests for find_employee."""

    @pytest.mark.asyncio
    async def test_returns_employee_with_enum_status(self):
        row = employee_row(status="SUSPENDED")
        employee = await find_employee(FakeQuerier(row=row), row["clinic_id"], row["profile_id"])

        assert employee.profile_id == row["profile_id"]
        assert employee.status is EmployeeStatus.SUSPENDED

    @pytest.mark.asyncio
    async def test_missing_employee_is_not_found(self):
        with pytest.raises(NotFoundError) as exc_info:
            await find_employee(FakeQuerier(), uuid4(), uuid4())
        assert exc_info.value.resource == "employee"


class TestFindRolesForEmployee:
    """Tests for the joined role/permission query."""

    @pytest.mark.asyncio
    async def test_groups_rows_per_role(self):
        admin, assistant = uuid4(), uuid4()
        rows = [
            role_row(admin, "Clinic Admin", "patients.read", is_system_role=True),
            role_row(admin, "Clinic Admin", "patients.delete", is_system_role=True),
            role_row(assistant, "Assistant", None),
        ]

        grants = await find_roles_for_employee(FakeQuerier(rows=rows), uuid4())

        by_id = {grant.role_id: grant for grant in grants}
        assert by_id[admin].permissions == {"patients.read", "patients.delete"}
        assert by_id[admin].is_system_role is True
        assert by_id[assistant].permissions == frozenset()

    @pytest.mark.asyncio
    async def test_single_query(self):
        q = FakeQuerier(rows=[])
        assert await find_roles_for_employee(q, uuid4()) == []
        assert len(q.statements) == 1


class TestLoadActor:
    """Tests for IAMService.load_actor."""

    def test_requires_engine_or_querier(self):
        with pytest.raises(ValueError):
            IAMService()

    @pytest.mark.asyncio
    async def test_active_employee_resolves_to_actor(self):
        row = employee_row()
        role_id = uuid4()
        q = FakeQuerier(
            row=row,
            rows=[
                role_row(role_id, "Receptionist", "patients.create"),
                role_row(role_id, "Receptionist", "patients.read"),
            ],
        )

        actor = await IAMService(querier=q).load_actor(row["clinic_id"], row["profile_id"])

        assert actor.profile_id == row["profile_id"]
        assert actor.clinic_id == row["clinic_id"]
        assert actor.role_ids == (role_id,)
        assert actor.permissions == {"patients.create", "patients.read"}

    @pytest.mark.parametrize("status", ["INVITED", "SUSPENDED", "TERMINATED"])
    @pytest.mark.asyncio
    async def test_inactive_employee_is_denied(self, status):
        row = employee_row(status=status)
        q = FakeQuerier(row=row)

        with pytest.raises(PermissionDeniedError):
            await IAMService(querier=q).load_actor(row["clinic_id"], row["profile_id"])
        assert len(q.statements) == 1

    @pytest.mark.asyncio
    async def test_unknown_employee_is_not_found(self):
        with pytest.raises(NotFoundError):
            await IAMService(querier=FakeQuerier()).load_actor(uuid4(), uuid4())
