"""
Deposit record repository.

Data access layer for DepositRecord model.
"""

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.deposit_record import DepositRecord
from app.models.enums import DepositStatus
from app.repositories.base import BaseRepository


class DepositRecordRepository(BaseRepository[DepositRecord]):
    """Repository for per-deposit processing state."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(DepositRecord, session)

    async def get_by_key(
        self, tx_hash: str, log_index: int
    ) -> DepositRecord | None:
        """
        Get record by idempotency key parts.

        Args:
            tx_hash: Transaction hash (0x-prefixed)
            log_index: Log index within the block

        Returns:
            DepositRecord or None
        """
        return await self.get_by(tx_hash=tx_hash.lower(), log_index=log_index)

    async def create_detected(
        self,
        tx_hash: str,
        log_index: int,
        to_address: str,
        token_address: str,
        token_amount: int,
        block_number: int,
        owner_id: str,
        derivation_index: int,
    ) -> DepositRecord:
        """
        Create a record in the detected state.

        Returns:
            Created record
        """
        return await self.create(
            tx_hash=tx_hash.lower(),
            log_index=log_index,
            to_address=to_address.lower(),
            token_address=token_address.lower(),
            token_amount=Decimal(token_amount),
            block_number=block_number,
            owner_id=owner_id,
            derivation_index=derivation_index,
            status=DepositStatus.DETECTED,
            retry_count=0,
        )

    async def list_outstanding(
        self, owner_id: str | None = None, include_failed: bool = False
    ) -> list[DepositRecord]:
        """
        List records that have not reached a terminal state.

        Args:
            owner_id: Restrict to one owner
            include_failed: Also return records whose retries ran out

        Returns:
            Records ordered by block number
        """
        excluded = [DepositStatus.CREDITED.value]
        if not include_failed:
            excluded.append(DepositStatus.FAILED.value)

        stmt = select(DepositRecord).where(DepositRecord.status.not_in(excluded))
        if owner_id is not None:
            stmt = stmt.where(DepositRecord.owner_id == owner_id)
        stmt = stmt.order_by(DepositRecord.block_number, DepositRecord.log_index)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())
