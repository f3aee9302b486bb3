"""Profile lifecycle service.

This module implements the profile state machine with:
- Forward-only status transitions (GUEST -> REGISTERED -> ARCHIVED)
- One transaction per write operation, so a failure leaves no partial write
- Race-safe guest onboarding through the upsert engine
- Tenant scoping on every lookup
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

from mastara.core.errors import ConflictError, InvalidTransitionError
from mastara.db.models.base import ProfileStatus
from mastara.db.querier import PoolQuerier
from mastara.db.transaction import BaseService
from mastara.services.profile_store import ProfileStore
from mastara.services.upsert import GuestUpsertEngine

if TYPE_CHECKING:
    from datetime import date
    from uuid import UUID

    from mastara.db.models.profiles import Profile
    from mastara.db.querier import Querier
    from mastara.db.transaction import AuditContext, TransactionManager

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100


@dataclass(frozen=True, slots=True)
class RegisterProfileRequest:
    """Fields captured when staff register a patient directly.

    Attributes:
        full_name: Patient name; replaces any name held by a guest row.
        phone_number: E.164 phone; identifies an existing guest to upgrade.
        email: Optional contact email.
        national_id: Optional national identifier.
        date_of_birth: Optional date of birth.
    """

    full_name: str
    phone_number: str
    email: str | None = None
    national_id: str | None = None
    date_of_birth: date | None = None


@dataclass(frozen=True, slots=True)
class PromoteGuestRequest:
    """Fields captured when a guest completes registration."""

    full_name: str
    email: str | None = None
    national_id: str | None = None
    date_of_birth: date | None = None


@dataclass(frozen=True, slots=True)
class ProfilePage:
    """One page of a clinic's active profiles."""

    items: list[Profile]
    page: int
    page_size: int


def normalize_pagination(page: int, page_size: int) -> tuple[int, int]:
    """Clamp paging input: page below 1 becomes 1, out-of-range sizes fall back to 25."""
    if page < 1:
        page = 1
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        page_size = DEFAULT_PAGE_SIZE
    return page, page_size


class ProfileLifecycleService(BaseService):
    """Orchestrates guest onboarding, registration, promotion, and archival.

    Every write runs inside ``run_in_transaction``; reads go through the
    pool querier outside any transaction.

    Example:
        service = ProfileLifecycleService(TransactionManager(engine))
        guest = await service.create_or_fetch_guest(clinic_id, "Amina", "+201001234567")
        patient = await service.promote_guest_to_registered(
            clinic_id, guest.id, PromoteGuestRequest(full_name="Amina Hassan")
        )
    """

    # Forward only; ARCHIVED is terminal
    VALID_TRANSITIONS: ClassVar[dict[ProfileStatus, set[ProfileStatus]]] = {
        ProfileStatus.GUEST: {ProfileStatus.REGISTERED, ProfileStatus.ARCHIVED},
        ProfileStatus.REGISTERED: {ProfileStatus.ARCHIVED},
        ProfileStatus.ARCHIVED: set(),
    }

    def __init__(
        self,
        tx_manager: TransactionManager,
        *,
        upsert_engine: GuestUpsertEngine | None = None,
        store: ProfileStore | None = None,
        pool_querier: Querier | None = None,
    ) -> None:
        """Initialize the lifecycle service.

        Args:
            tx_manager: Orchestrator every write operation runs through.
            upsert_engine: Guest find-or-create engine.
            store: Profile repository.
            pool_querier: Querier for reads outside a transaction. Defaults to
                a PoolQuerier over the transaction manager's engine.
        """
        super().__init__(tx_manager)
        self._upsert = upsert_engine or GuestUpsertEngine()
        self._store = store or ProfileStore()
        self._pool = pool_querier or PoolQuerier(tx_manager.engine)

    def is_valid_transition(self, from_status: ProfileStatus, to_status: ProfileStatus) -> bool:
        """Check if a status transition is allowed."""
        return to_status in self.VALID_TRANSITIONS.get(from_status, set())

    def is_terminal_state(self, status: ProfileStatus) -> bool:
        """Check if a status has no outgoing transitions."""
        return len(self.VALID_TRANSITIONS.get(status, set())) == 0

    def _ensure_transition(self, profile: Profile, to_status: ProfileStatus) -> None:
        if not self.is_valid_transition(profile.profile_status, to_status):
            logger.warning(
                "Invalid profile transition attempted",
                extra={
                    "profile_id": str(profile.id),
                    "from_status": profile.profile_status.value,
                    "to_status": to_status.value,
                },
            )
            raise InvalidTransitionError(profile.profile_status, to_status)

    async def create_or_fetch_guest(
        self,
        clinic_id: UUID,
        full_name: str,
        phone_number: str,
        *,
        audit: AuditContext | None = None,
        timeout: float | None = None,
    ) -> Profile:
        """Return the clinic's active profile for the phone, creating a GUEST if needed.

        An existing profile comes back unchanged, in whatever status it holds.
        """

        async def work(tx: Querier) -> Profile:
            return await self._upsert.find_or_create_guest(tx, clinic_id, full_name, phone_number)

        return await self.run_in_transaction(work, audit=audit, timeout=timeout)

    async def register_full_profile(
        self,
        clinic_id: UUID,
        request: RegisterProfileRequest,
        *,
        audit: AuditContext | None = None,
        timeout: float | None = None,
    ) -> Profile:
        """Register a patient by phone, upgrading an existing guest in place.

        Raises:
            ConflictError: A REGISTERED patient already holds the phone number.
            NotFoundError: The row disappeared between lookup and update.
        """

        async def work(tx: Querier) -> Profile:
            found = await self._upsert.find_or_create_guest(
                tx, clinic_id, request.full_name, request.phone_number
            )
            _reject_registered(clinic_id, found)

            # A concurrent registration may have upgraded the guest since the
            # upsert read it; decide on the locked row.
            profile = await self._store.find_by_id(tx, clinic_id, found.id, for_update=True)
            _reject_registered(clinic_id, profile)

            self._ensure_transition(profile, ProfileStatus.REGISTERED)
            _apply_fields(profile, request)
            profile.profile_status = ProfileStatus.REGISTERED
            return await self._store.update(tx, profile)

        profile = await self.run_in_transaction(work, audit=audit, timeout=timeout)
        logger.info(
            "Patient registered",
            extra={"clinic_id": str(clinic_id), "profile_id": str(profile.id)},
        )
        return profile

    async def promote_guest_to_registered(
        self,
        clinic_id: UUID,
        profile_id: UUID,
        request: PromoteGuestRequest,
        *,
        audit: AuditContext | None = None,
        timeout: float | None = None,
    ) -> Profile:
        """Complete a guest's registration. Already-registered profiles stay REGISTERED.

        The row is locked for the duration of the transaction so concurrent
        promotions serialize.
        """

        async def work(tx: Querier) -> Profile:
            profile = await self._store.find_by_id(tx, clinic_id, profile_id, for_update=True)
            if profile.profile_status != ProfileStatus.REGISTERED:
                self._ensure_transition(profile, ProfileStatus.REGISTERED)
                profile.profile_status = ProfileStatus.REGISTERED
            _apply_fields(profile, request)
            return await self._store.update(tx, profile)

        return await self.run_in_transaction(work, audit=audit, timeout=timeout)

    async def archive_profile(
        self,
        clinic_id: UUID,
        profile_id: UUID,
        *,
        audit: AuditContext | None = None,
        timeout: float | None = None,
    ) -> Profile:
        """Soft delete a profile (GUEST or REGISTERED -> ARCHIVED)."""

        async def work(tx: Querier) -> Profile:
            profile = await self._store.find_by_id(tx, clinic_id, profile_id, for_update=True)
            self._ensure_transition(profile, ProfileStatus.ARCHIVED)
            return await self._store.archive(tx, clinic_id, profile_id)

        profile = await self.run_in_transaction(work, audit=audit, timeout=timeout)
        logger.info(
            "Profile archived",
            extra={"clinic_id": str(clinic_id), "profile_id": str(profile_id)},
        )
        return profile

    async def get_profile(self, clinic_id: UUID, profile_id: UUID) -> Profile:
        return await self._store.find_by_id(self._pool, clinic_id, profile_id)

    async def list_profiles(self, clinic_id: UUID, page: int, page_size: int) -> ProfilePage:
        page, page_size = normalize_pagination(page, page_size)
        items = await self._store.list_page(
            self._pool, clinic_id, offset=(page - 1) * page_size, limit=page_size
        )
        return ProfilePage(items=items, page=page, page_size=page_size)


def _apply_fields(profile: Profile, request: RegisterProfileRequest | PromoteGuestRequest) -> None:
    profile.full_name = request.full_name
    profile.email = request.email
    profile.national_id = request.national_id
    profile.date_of_birth = request.date_of_birth


def _reject_registered(clinic_id: UUID, profile: Profile) -> None:
    if profile.profile_status == ProfileStatus.REGISTERED:
        logger.info(
            "Registration rejected: phone already registered",
            extra={"clinic_id": str(clinic_id), "profile_id": str(profile.id)},
        )
        raise ConflictError("A registered patient with this phone number already exists.")
