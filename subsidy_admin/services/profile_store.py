"""
Profile store client.

Typed create/read/update/delete access to beneficiary profiles keyed by
canonical address. Misses and duplicates surface as ProfileNotFoundError /
ProfileExistsError; anything else from the database becomes DatabaseError.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Iterable, List, Optional, Tuple

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from subsidy_admin.core.database import get_async_session
from subsidy_admin.core.exceptions import (
    DatabaseError,
    ProfileExistsError,
    ProfileNotFoundError,
)
from subsidy_admin.models.base import utcnow
from subsidy_admin.models.beneficiary import BeneficiaryProfile
from subsidy_admin.services.types import ProfileInput, ProfileRecord
from subsidy_admin.utils.validation import (
    ProfileValidator,
    normalize_address,
    require_canonical_address,
)


logger = structlog.get_logger(__name__)


class _Unset:
    """Marker for 'leave this field unchanged' in partial updates."""

    def __repr__(self) -> str:
        return "UNSET"


UNSET = _Unset()


class ProfileStore:
    """Profile persistence over one async session."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.logger = logger.bind(service="profile_store")

    async def _get_model(self, address: str) -> Optional[BeneficiaryProfile]:
        result = await self.session.execute(
            select(BeneficiaryProfile).where(BeneficiaryProfile.address == address)
        )
        return result.scalar_one_or_none()

    async def list_all(self) -> List[ProfileRecord]:
        """All profiles, newest first."""
        try:
            result = await self.session.execute(
                select(BeneficiaryProfile).order_by(BeneficiaryProfile.created_at.desc())
            )
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to fetch beneficiaries", {"error": str(e)}) from e
        return [ProfileRecord.from_model(m) for m in result.scalars().all()]

    async def get(self, address: str) -> Optional[ProfileRecord]:
        """Profile for ``address`` or None when absent."""
        require_canonical_address(address)
        try:
            model = await self._get_model(address)
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to fetch beneficiary", {"error": str(e)}) from e
        return ProfileRecord.from_model(model) if model else None

    async def get_many(self, addresses: Iterable[str]) -> List[ProfileRecord]:
        """Batch lookup; addresses without a profile are simply absent."""
        wanted = [require_canonical_address(a) for a in addresses]
        if not wanted:
            return []
        try:
            result = await self.session.execute(
                select(BeneficiaryProfile).where(BeneficiaryProfile.address.in_(wanted))
            )
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to fetch beneficiaries", {"error": str(e)}) from e
        return [ProfileRecord.from_model(m) for m in result.scalars().all()]

    async def create(self, payload: ProfileInput) -> ProfileRecord:
        """
        Insert a new profile.

        Raises:
            ProfileExistsError: a profile already exists for the address
            DatabaseError: any other persistence failure
        """
        require_canonical_address(payload.address)
        if await self._get_model(payload.address) is not None:
            raise ProfileExistsError(payload.address)

        now = utcnow()
        model = BeneficiaryProfile(
            address=payload.address,
            name=payload.name,
            phone_number=payload.phone_number,
            responsable=payload.responsable,
            created_at=now,
            updated_at=now,
        )
        self.session.add(model)
        try:
            await self.session.flush()
        except IntegrityError as e:
            # Lost a race against a concurrent create for the same address
            await self.session.rollback()
            raise ProfileExistsError(payload.address) from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise DatabaseError("Failed to create beneficiary", {"error": str(e)}) from e

        self.logger.info("Profile created", address=payload.address)
        return ProfileRecord.from_model(model)

    async def update(
        self,
        address: str,
        name: Optional[str] = None,
        phone_number=UNSET,
        responsable=UNSET,
    ) -> ProfileRecord:
        """
        Partially update a profile.

        An empty ``name`` keeps the stored one; ``phone_number`` and
        ``responsable`` are only touched when passed (None clears them).

        Raises:
            ProfileNotFoundError: no profile for the address
        """
        require_canonical_address(address)
        model = await self._get_model(address)
        if model is None:
            raise ProfileNotFoundError(address)

        if name:
            model.name = name
        if phone_number is not UNSET:
            model.phone_number = phone_number
        if responsable is not UNSET:
            model.responsable = responsable
        model.updated_at = utcnow()

        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise DatabaseError("Failed to update beneficiary", {"error": str(e)}) from e

        self.logger.info("Profile updated", address=address)
        return ProfileRecord.from_model(model)

    async def delete(self, address: str) -> None:
        """
        Remove a profile.

        Raises:
            ProfileNotFoundError: no profile for the address
        """
        require_canonical_address(address)
        model = await self._get_model(address)
        if model is None:
            raise ProfileNotFoundError(address)

        await self.session.delete(model)
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise DatabaseError("Failed to delete beneficiary", {"error": str(e)}) from e

        self.logger.info("Profile deleted", address=address)

    async def upsert(self, payload: ProfileInput) -> ProfileRecord:
        """Create or fully overwrite; used by seeding."""
        require_canonical_address(payload.address)
        if await self._get_model(payload.address) is None:
            return await self.create(payload)
        return await self.update(
            payload.address,
            name=payload.name,
            phone_number=payload.phone_number,
            responsable=payload.responsable,
        )


async def save_profile(
    store: ProfileStore,
    address: str,
    name: str,
    phone_number: Optional[str] = None,
    responsable: Optional[str] = None,
) -> Tuple[ProfileRecord, bool]:
    """
    Operator edit from the management panel: update the profile if one
    exists, otherwise create it. Blank optional fields clear the stored
    value, as they do in the edit form.

    Returns:
        (record, created)
    """
    payload = ProfileInput(
        address=normalize_address(address),
        name=ProfileValidator.validate_name(name),
        phone_number=ProfileValidator.clean_optional(phone_number),
        responsable=ProfileValidator.clean_optional(responsable),
    )
    if await store.get(payload.address) is None:
        return await store.create(payload), True
    record = await store.update(
        payload.address,
        name=payload.name,
        phone_number=payload.phone_number,
        responsable=payload.responsable,
    )
    return record, False


@asynccontextmanager
async def profile_store_scope() -> AsyncGenerator[ProfileStore, None]:
    """
    Profile store bound to its own session; committed on clean exit.

    A commit failure propagates out of the ``async with`` block, so callers
    see it as a failed write.
    """
    async with get_async_session() as session:
        yield ProfileStore(session)
