"""Employee invitation.

An employee is a REGISTERED profile plus a 1:1 ``employees`` row and a set
of role grants, all written in one unit of work attributed to the inviting
employee. Credentials arrive already hashed and are stored as-is; an
employee without one stays INVITED until it is set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import insert, or_, select
from sqlalchemy.exc import SQLAlchemyError

from mastara.core.errors import ConflictError, InvalidRequestError, NotFoundError
from mastara.db.errors import translate_db_error
from mastara.db.models.base import EmployeeStatus, ProfileStatus
from mastara.db.models.iam import Employee, Role, employee_roles
from mastara.db.models.profiles import EMAIL_UNIQUE_INDEX, PHONE_UNIQUE_INDEX, Profile
from mastara.db.transaction import AuditContext, BaseService

if TYPE_CHECKING:
    from uuid import UUID

    from sqlalchemy.sql import Executable

    from mastara.db.querier import Querier
    from mastara.services.iam import Actor

logger = logging.getLogger(__name__)

profiles = Profile.__table__
employees = Employee.__table__
roles = Role.__table__

DUPLICATE_CONTACT_MESSAGE = "A user with this email or phone number already exists."


@dataclass(slots=True)
class InviteEmployeeRequest:
    """Details of a new staff member. At least one of email or phone is required."""

    full_name: str
    email: str | None = None
    phone_number: str | None = None
    job_title: str | None = None
    password_hash: str | None = None
    role_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True, slots=True)
class InvitedEmployee:
    """The rows written for an invitation."""

    profile: Profile
    employee: Employee
    role_ids: tuple[UUID, ...]


class EmployeeService(BaseService):
    """Creates employees inside the acting employee's clinic."""

    async def invite_employee(
        self,
        actor: Actor,
        request: InviteEmployeeRequest,
        *,
        timeout: float | None = None,
    ) -> InvitedEmployee:
        """Create a profile, its employee row and role grants in one transaction.

        The new employee belongs to the actor's clinic and records the actor
        as its inviter. It is ACTIVE when a password hash is supplied and
        INVITED otherwise.

        Raises:
            InvalidRequestError: Blank name, or neither email nor phone given.
            NotFoundError: A role is unknown, archived or owned by another clinic.
            ConflictError: The email or phone is already in use in the clinic.
        """
        if not request.full_name or not request.full_name.strip():
            raise InvalidRequestError("full_name is required")
        if not request.email and not request.phone_number:
            raise InvalidRequestError("an email or a phone number is required")

        clinic_id = actor.clinic_id
        role_ids = tuple(dict.fromkeys(request.role_ids))
        status = EmployeeStatus.ACTIVE if request.password_hash else EmployeeStatus.INVITED

        async def work(tx: Querier) -> InvitedEmployee:
            await _check_roles(tx, clinic_id, role_ids)

            profile_row = await _insert_row(
                tx,
                insert(profiles)
                .values(
                    clinic_id=clinic_id,
                    full_name=request.full_name,
                    email=request.email,
                    phone_number=request.phone_number,
                    profile_status=ProfileStatus.REGISTERED,
                )
                .returning(*profiles.c),
                "insert_employee_profile",
            )
            profile = Profile.from_row(profile_row)

            employee_row = await _insert_row(
                tx,
                insert(employees)
                .values(
                    profile_id=profile.id,
                    clinic_id=clinic_id,
                    job_title=request.job_title,
                    password_hash=request.password_hash,
                    status=status,
                    invited_by=actor.profile_id,
                )
                .returning(*employees.c),
                "insert_employee",
            )

            if role_ids:
                try:
                    await tx.execute(
                        insert(employee_roles).values(
                            [
                                {"employee_profile_id": profile.id, "role_id": role_id}
                                for role_id in role_ids
                            ]
                        )
                    )
                except (SQLAlchemyError, TimeoutError) as exc:
                    raise translate_db_error(exc, "grant_employee_roles") from exc

            return InvitedEmployee(
                profile=profile, employee=Employee.from_row(employee_row), role_ids=role_ids
            )

        audit = AuditContext(user_id=actor.profile_id, clinic_id=clinic_id)
        invited = await self.run_in_transaction(work, audit=audit, timeout=timeout)
        logger.info(
            "Employee invited",
            extra={
                "clinic_id": str(clinic_id),
                "profile_id": str(invited.profile.id),
                "invited_by": str(actor.profile_id),
                "status": status.value,
            },
        )
        return invited


async def _check_roles(tx: Querier, clinic_id: UUID, role_ids: tuple[UUID, ...]) -> None:
    """Ensure every role is active and either global or owned by the clinic."""
    if not role_ids:
        return

    stmt = select(roles.c.id).where(
        roles.c.id.in_(role_ids),
        roles.c.deleted_at.is_(None),
        or_(roles.c.clinic_id == clinic_id, roles.c.is_system_role),
    )
    try:
        rows = await tx.query(stmt)
    except (SQLAlchemyError, TimeoutError) as exc:
        raise translate_db_error(exc, "find_roles") from exc

    found = {row.id for row in rows}
    for role_id in role_ids:
        if role_id not in found:
            raise NotFoundError("role", role_id)


async def _insert_row(tx: Querier, stmt: Executable, operation: str):
    try:
        return await tx.query_row(stmt)
    except (SQLAlchemyError, TimeoutError) as exc:
        error = translate_db_error(exc, operation)
        if isinstance(error, ConflictError) and error.constraint in (
            PHONE_UNIQUE_INDEX,
            EMAIL_UNIQUE_INDEX,
        ):
            raise ConflictError(DUPLICATE_CONTACT_MESSAGE, constraint=error.constraint) from exc
        raise error from exc
