"""
Scan watermark repository.

Data access layer for ScanWatermark model.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.scan_watermark import ScanWatermark
from app.repositories.base import BaseRepository


class ScanWatermarkRepository(BaseRepository[ScanWatermark]):
    """Repository for scanner progress."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(ScanWatermark, session)

    async def get_for_token(self, token_address: str) -> ScanWatermark | None:
        """Get watermark row for a token contract."""
        return await self.get_by(token_address=token_address.lower())

    async def advance(
        self,
        token_address: str,
        last_scanned_block: int,
        detected: int = 0,
    ) -> ScanWatermark:
        """
        Store a new watermark.

        Never moves the stored block backwards.

        Args:
            token_address: Token contract address
            last_scanned_block: Last fully scanned block
            detected: Number of deposits detected in the range

        Returns:
            Updated watermark row
        """
        row = await self.get_for_token(token_address)
        if row is None:
            return await self.create(
                token_address=token_address.lower(),
                last_scanned_block=last_scanned_block,
                total_detected=detected,
                error_count=0,
            )

        row.last_scanned_block = max(row.last_scanned_block, last_scanned_block)
        row.total_detected += detected
        await self.session.flush()
        return row

    async def record_error(self, token_address: str, error: str) -> None:
        """Store the last scan error for operators."""
        row = await self.get_for_token(token_address)
        if row is None:
            return
        row.last_error = error[:2000]
        row.error_count += 1
        await self.session.flush()
