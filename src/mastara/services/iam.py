"""Identity and access read model.

Resolves an acting employee into the set of permission keys it holds:
the deduplicated union of the permissions of every role granted to it.
Employee invitation lives in ``mastara.services.employees``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from mastara.core.errors import NotFoundError, PermissionDeniedError
from mastara.db.errors import translate_db_error
from mastara.db.models.base import EmployeeStatus
from mastara.db.models.iam import Employee, Permission, Role, employee_roles, role_permissions
from mastara.db.querier import PoolQuerier

if TYPE_CHECKING:
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncEngine

    from mastara.db.querier import Querier

logger = logging.getLogger(__name__)

employees = Employee.__table__
roles = Role.__table__
permissions = Permission.__table__


@dataclass(frozen=True, slots=True)
class RoleGrant:
    """A role held by an employee, with its permission keys."""

    role_id: UUID
    name: str
    is_system_role: bool
    permissions: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True, slots=True)
class Actor:
    """Authenticated ACTIVE employee acting within one clinic."""

    profile_id: UUID
    clinic_id: UUID
    role_ids: tuple[UUID, ...]
    permissions: frozenset[str]

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions


def effective_permissions(grants: Iterable[RoleGrant]) -> frozenset[str]:
    """Flatten role grants into one deduplicated permission set."""
    keys: set[str] = set()
    for grant in grants:
        keys.update(grant.permissions)
    return frozenset(keys)


async def find_employee(q: Querier, clinic_id: UUID, profile_id: UUID) -> Employee:
    """Fetch a non-deleted employee of a clinic.

    Raises:
        NotFoundError: No such employee in the clinic.
    """
    stmt = select(*employees.c).where(
        employees.c.profile_id == profile_id,
        employees.c.clinic_id == clinic_id,
        employees.c.deleted_at.is_(None),
    )
    try:
        row = await q.query_row(stmt)
    except (SQLAlchemyError, TimeoutError) as exc:
        raise translate_db_error(exc, "find_employee") from exc

    if row is None:
        raise NotFoundError("employee", profile_id)

    return Employee.from_row(row)


async def find_roles_for_employee(q: Querier, profile_id: UUID) -> list[RoleGrant]:
    """Load every active role granted to an employee, with permissions, in one query."""
    stmt = (
        select(
            roles.c.id,
            roles.c.name,
            roles.c.is_system_role,
            permissions.c.permission_key,
        )
        .select_from(
            roles.join(employee_roles, employee_roles.c.role_id == roles.c.id)
            .outerjoin(role_permissions, role_permissions.c.role_id == roles.c.id)
            .outerjoin(permissions, permissions.c.id == role_permissions.c.permission_id)
        )
        .where(
            employee_roles.c.employee_profile_id == profile_id,
            roles.c.deleted_at.is_(None),
        )
        .order_by(roles.c.id)
    )
    try:
        rows = await q.query(stmt)
    except (SQLAlchemyError, TimeoutError) as exc:
        raise translate_db_error(exc, "find_roles_for_employee") from exc

    # One row per (role, permission); roles without permissions yield a NULL key
    names: dict[UUID, tuple[str, bool]] = {}
    keys: dict[UUID, set[str]] = {}
    for row in rows:
        names.setdefault(row.id, (row.name, row.is_system_role))
        bucket = keys.setdefault(row.id, set())
        if row.permission_key is not None:
            bucket.add(row.permission_key)

    return [
        RoleGrant(
            role_id=role_id,
            name=name,
            is_system_role=is_system,
            permissions=frozenset(keys[role_id]),
        )
        for role_id, (name, is_system) in names.items()
    ]


class IAMService:
    """Builds the Actor for a trusted (clinic, user) pair."""

    def __init__(self, engine: AsyncEngine | None = None, *, querier: Querier | None = None) -> None:
        if querier is None:
            if engine is None:
                raise ValueError("IAMService needs an engine or a querier")
            querier = PoolQuerier(engine)
        self._querier = querier

    async def load_actor(self, clinic_id: UUID, profile_id: UUID) -> Actor:
        """Resolve an employee into an Actor.

        Raises:
            NotFoundError: The employee does not exist in the clinic.
            PermissionDeniedError: The employee is not ACTIVE.
        """
        employee = await find_employee(self._querier, clinic_id, profile_id)
        if employee.status != EmployeeStatus.ACTIVE:
            logger.warning(
                "Inactive employee attempted access",
                extra={
                    "clinic_id": str(clinic_id),
                    "profile_id": str(profile_id),
                    "status": employee.status.value,
                },
            )
            raise PermissionDeniedError(
                f"employee {profile_id} is {employee.status.value}, not ACTIVE"
            )

        grants = await find_roles_for_employee(self._querier, profile_id)
        return Actor(
            profile_id=profile_id,
            clinic_id=clinic_id,
            role_ids=tuple(grant.role_id for grant in grants),
            permissions=effective_permissions(grants),
        )
