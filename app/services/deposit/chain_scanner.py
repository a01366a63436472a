"""
Chain scanner.

Polls the chain for token Transfer events sent to registered deposit
addresses. Each tick covers (watermark, min(head, watermark + range)] and
the watermark only moves once every event in the range was handed on.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config.constants import MAX_SCAN_BACKOFF_TICKS
from app.repositories.scan_watermark_repository import ScanWatermarkRepository
from app.services.blockchain.chain_client import ChainClient, TransferLog
from app.utils.exceptions import ChainRpcError
from app.utils.security import mask_address, mask_tx_hash

from .address_registry import AddressRegistry


@dataclass(frozen=True)
class DetectedDeposit:
    """Transfer into a registered deposit address."""

    tx_hash: str
    log_index: int
    to_address: str
    token_address: str
    token_amount: int
    block_number: int

    @property
    def idempotency_key(self) -> str:
        return f"{self.tx_hash}:{self.log_index}"

    @classmethod
    def from_transfer(cls, transfer: TransferLog) -> "DetectedDeposit":
        return cls(
            tx_hash=transfer.tx_hash,
            log_index=transfer.log_index,
            to_address=transfer.to_address,
            token_address=transfer.token_address,
            token_amount=transfer.value,
            block_number=transfer.block_number,
        )


@dataclass(frozen=True)
class ScanResult:
    """Outcome of one completed scan tick."""

    from_block: int
    to_block: int
    detected: int


DepositHandler = Callable[[DetectedDeposit], Awaitable[object]]


class ChainScanner:
    """
    Incremental Transfer log scanner with a persisted watermark.

    Ticks never overlap; a tick that starts while another is running is
    skipped. After an RPC failure the scanner sits out an exponentially
    growing number of ticks.
    """

    def __init__(
        self,
        chain: ChainClient,
        registry: AddressRegistry,
        session_factory: async_sessionmaker[AsyncSession],
        token_address: str,
        max_block_range: int,
        start_block: int | None = None,
    ) -> None:
        """
        Initialize scanner.

        Args:
            chain: Chain client
            registry: Address registry
            session_factory: Session factory for watermark persistence
            token_address: Monitored token contract
            max_block_range: Maximum blocks per log query
            start_block: Initial watermark when none is stored
        """
        if max_block_range < 1:
            raise ValueError("max_block_range must be positive")

        self.chain = chain
        self.registry = registry
        self.session_factory = session_factory
        self.token_address = token_address.lower()
        self.max_block_range = max_block_range
        self.start_block = start_block

        self._last_scanned_block: int | None = None
        self._tick_lock = asyncio.Lock()
        self._consecutive_failures = 0
        self._ticks_to_skip = 0

    @property
    def last_scanned_block(self) -> int | None:
        return self._last_scanned_block

    @property
    def is_scanning(self) -> bool:
        return self._tick_lock.locked()

    async def initialize(self) -> int:
        """
        Load the watermark, or seed it on first run.

        A stored watermark wins. Otherwise SCAN_START_BLOCK is used when
        configured, else the current head.

        Returns:
            Watermark in effect
        """
        async with self.session_factory() as session:
            row = await ScanWatermarkRepository(session).get_for_token(
                self.token_address
            )
            stored = row.last_scanned_block if row else None

        if stored is not None:
            self._last_scanned_block = stored
            logger.info(f"[Deposit Scan] Resuming after block {stored}")
            return stored

        if self.start_block is not None:
            initial = self.start_block
        else:
            initial = await self.chain.get_block_number()

        await self._persist(initial, detected=0)
        self._last_scanned_block = initial
        logger.info(f"[Deposit Scan] Starting watermark at block {initial}")
        return initial

    async def tick(self, handler: DepositHandler) -> ScanResult | None:
        """
        Run one scan tick.

        Args:
            handler: Called once per detected deposit, in log order

        Returns:
            ScanResult, or None when the tick was skipped or failed
        """
        if self._tick_lock.locked():
            logger.debug("[Deposit Scan] Previous tick still running, skipping")
            return None

        async with self._tick_lock:
            if self._ticks_to_skip > 0:
                self._ticks_to_skip -= 1
                logger.debug(
                    f"[Deposit Scan] Backing off, {self._ticks_to_skip} tick(s) left"
                )
                return None

            try:
                return await self._scan_once(handler)
            except ChainRpcError as e:
                self._consecutive_failures += 1
                self._ticks_to_skip = min(
                    2**self._consecutive_failures - 1, MAX_SCAN_BACKOFF_TICKS
                )
                logger.warning(
                    f"[Deposit Scan] RPC failure #{self._consecutive_failures}, "
                    f"skipping next {self._ticks_to_skip} tick(s): {e}"
                )
                await self._record_error(str(e))
                return None

    async def scan_address(
        self, address: str, from_block: int, to_block: int
    ) -> list[DetectedDeposit]:
        """
        Query one address over an explicit range.

        Does not read or move the watermark.
        """
        if to_block < from_block:
            return []
        transfers = await self.chain.get_transfer_logs(
            self.token_address, from_block, to_block, [address.lower()]
        )
        return [DetectedDeposit.from_transfer(t) for t in transfers]

    async def _scan_once(self, handler: DepositHandler) -> ScanResult | None:
        if self._last_scanned_block is None:
            await self.initialize()
        last = self._last_scanned_block

        snapshot = self.registry.snapshot()
        head = await self.chain.get_block_number()

        if head <= last:
            self._consecutive_failures = 0
            return None

        from_block = last + 1
        to_block = min(head, last + self.max_block_range)

        if snapshot:
            transfers = await self.chain.get_transfer_logs(
                self.token_address, from_block, to_block, list(snapshot)
            )
        else:
            transfers = []
        # Only a completed range query ends a failure streak
        self._consecutive_failures = 0

        deposits = [
            DetectedDeposit.from_transfer(t)
            for t in transfers
            if t.to_address in snapshot
        ]
        deposits.sort(key=lambda d: (d.block_number, d.log_index))

        await self._emit(deposits, handler)

        # Advance even when the range held nothing for us
        self._last_scanned_block = to_block
        await self._persist(to_block, detected=len(deposits))

        if deposits:
            logger.info(
                f"[Deposit Scan] Blocks {from_block}-{to_block}: "
                f"{len(deposits)} deposit(s) detected"
            )
        else:
            logger.debug(f"[Deposit Scan] Blocks {from_block}-{to_block}: nothing")

        return ScanResult(
            from_block=from_block, to_block=to_block, detected=len(deposits)
        )

    async def _emit(
        self, deposits: Iterable[DetectedDeposit], handler: DepositHandler
    ) -> None:
        for deposit in deposits:
            logger.info(
                f"[Deposit Scan] Deposit {deposit.token_amount} raw units -> "
                f"{mask_address(deposit.to_address)} "
                f"(TX: {mask_tx_hash(deposit.tx_hash)}, block {deposit.block_number})"
            )
            try:
                await handler(deposit)
            except Exception as e:
                logger.exception(
                    f"[Deposit Scan] Handler failed for {deposit.idempotency_key}: {e}"
                )

    async def _persist(self, block: int, detected: int) -> None:
        try:
            async with self.session_factory() as session:
                await ScanWatermarkRepository(session).advance(
                    self.token_address, block, detected=detected
                )
                await session.commit()
        except Exception as e:
            # Ranges after a stale stored watermark are re-scanned on
            # restart and deduplicated by the deposit records.
            logger.error(f"[Deposit Scan] Failed to persist watermark {block}: {e}")

    async def _record_error(self, error: str) -> None:
        try:
            async with self.session_factory() as session:
                await ScanWatermarkRepository(session).record_error(
                    self.token_address, error
                )
                await session.commit()
        except Exception as e:
            logger.error(f"[Deposit Scan] Failed to record scan error: {e}")
