"""
Ledger repository.

Data access layer for the internal accounting ledger.
"""

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.ledger import LedgerBalance, LedgerCredit
from app.repositories.base import BaseRepository


class LedgerRepository(BaseRepository[LedgerCredit]):
    """Repository for ledger credits and balances."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(LedgerCredit, session)

    async def get_credit(self, idempotency_key: str) -> LedgerCredit | None:
        """Get an applied credit by its idempotency key."""
        return await self.get_by(idempotency_key=idempotency_key)

    async def get_balance(
        self, owner_id: str, token: str, for_update: bool = False
    ) -> LedgerBalance | None:
        """
        Get balance row for owner/token.

        Args:
            owner_id: Owner identifier
            token: Token contract address
            for_update: Lock the row until the transaction ends

        Returns:
            LedgerBalance or None
        """
        stmt = select(LedgerBalance).where(
            LedgerBalance.owner_id == owner_id,
            LedgerBalance.token == token.lower(),
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def add_credit(
        self,
        owner_id: str,
        token: str,
        amount: Decimal,
        idempotency_key: str,
    ) -> LedgerBalance:
        """
        Insert the credit row and apply it to the balance.

        Both writes are flushed in the caller's transaction; committing
        is the caller's responsibility.

        Returns:
            Updated balance row
        """
        self.session.add(
            LedgerCredit(
                idempotency_key=idempotency_key,
                owner_id=owner_id,
                token=token.lower(),
                amount=amount,
            )
        )

        balance = await self.get_balance(owner_id, token, for_update=True)
        if balance is None:
            balance = LedgerBalance(
                owner_id=owner_id, token=token.lower(), amount=Decimal("0")
            )
            self.session.add(balance)

        balance.amount = balance.amount + amount
        await self.session.flush()
        return balance
