"""
User repository.

Data access layer for User model. This is the user store the deposit
monitor reads deposit addresses from.
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.derivation_counter import DERIVATION_COUNTER_ID, DerivationCounter
from app.models.user import User
from app.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """User repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize user repository."""
        super().__init__(User, session)

    async def get_by_owner_id(self, owner_id: str) -> User | None:
        """
        Get user by owner ID.

        Args:
            owner_id: Opaque owner identifier

        Returns:
            User or None
        """
        return await self.get_by(owner_id=owner_id)

    async def get_by_deposit_address(
        self, deposit_address: str
    ) -> User | None:
        """
        Get user by deposit address (case-insensitive).

        Deposit addresses are stored lowercase.

        Args:
            deposit_address: Deposit address (any case)

        Returns:
            User or None
        """
        if not deposit_address:
            return None
        return await self.get_by(deposit_address=deposit_address.lower())

    async def list_with_deposit_address(self) -> list[User]:
        """
        List all users that have a deposit address assigned.

        Returns:
            Users ordered by derivation index
        """
        stmt = (
            select(User)
            .where(User.deposit_address.is_not(None))
            .where(User.derivation_index.is_not(None))
            .order_by(User.derivation_index)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def allocate_derivation_index(self) -> int:
        """
        Reserve the next derivation index.

        Reads the counter row with FOR UPDATE so concurrent onboarding
        serializes on it, and bumps it in the caller's transaction. The
        counter never goes down: deleting the user that held the highest
        index does not free that index. Legacy rows assigned outside the
        counter are respected by never handing out anything at or below
        the highest stored index.

        Returns:
            Reserved derivation index (0 for an empty store)
        """
        stmt = (
            select(DerivationCounter)
            .where(DerivationCounter.id == DERIVATION_COUNTER_ID)
            .with_for_update()
        )
        result = await self.session.execute(stmt)
        counter = result.scalar_one_or_none()
        if counter is None:
            counter = DerivationCounter(id=DERIVATION_COUNTER_ID, next_index=0)
            self.session.add(counter)

        result = await self.session.execute(select(func.max(User.derivation_index)))
        highest = result.scalar()

        index = counter.next_index
        if highest is not None and highest >= index:
            index = highest + 1

        counter.next_index = index + 1
        await self.session.flush()
        return index
