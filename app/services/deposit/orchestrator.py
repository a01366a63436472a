"""
Deposit orchestrator.

Drives each detected deposit through its lifecycle:

    detected -> sweeping -> swept -> crediting -> credited

Every transition is committed before the next step starts, so a restart
resumes from the last durable state. Failed steps fall back to the state
they started from until the retry budget runs out, then the record is
marked failed and waits for a manual check.
"""

import asyncio
from datetime import UTC, datetime
from typing import Any

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.deposit_record import DepositRecord
from app.models.enums import DepositStatus
from app.repositories.deposit_record_repository import DepositRecordRepository
from app.utils.exceptions import UnknownOwnerError, is_transient
from app.utils.security import mask_address
from app.utils.validation import to_token_units

from .address_registry import AddressRegistry
from .chain_scanner import DetectedDeposit
from .ledger_creditor import LedgerCreditor
from .sweep_engine import SweepEngine


class DepositOrchestrator:
    """
    Sequences sweep and credit for detected deposits.

    Processing is serialized by one lock: sweeps move whole balances, and
    two concurrent sweeps of one address would race for the same tokens.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        registry: AddressRegistry,
        sweep_engine: SweepEngine,
        creditor: LedgerCreditor,
        custody_address: str,
        token_address: str,
        token_decimals: int,
        max_retries: int,
    ) -> None:
        """
        Initialize orchestrator.

        Args:
            session_factory: Session factory for deposit records
            registry: Address registry for owner lookup
            sweep_engine: Sweep engine
            creditor: Ledger creditor
            custody_address: Sweep destination
            token_address: Monitored token contract
            token_decimals: Token decimals for ledger amounts
            max_retries: Failed attempts before a record is marked failed
        """
        self.session_factory = session_factory
        self.registry = registry
        self.sweep_engine = sweep_engine
        self.creditor = creditor
        self.custody_address = custody_address.lower()
        self.token_address = token_address.lower()
        self.token_decimals = token_decimals
        self.max_retries = max_retries
        self._lock = asyncio.Lock()

    async def handle(self, deposit: DetectedDeposit) -> str | None:
        """
        Process a newly detected deposit.

        Safe to call repeatedly for the same log: a credited deposit is
        left alone and an unfinished one is resumed.

        Args:
            deposit: Detected deposit

        Returns:
            Final status of the record, or None if the deposit was dropped
        """
        entry = self.registry.lookup(deposit.to_address)
        if entry is None:
            error = UnknownOwnerError(
                f"No owner registered for {mask_address(deposit.to_address)}"
            )
            logger.error(f"[Deposit] Dropping {deposit.idempotency_key}: {error}")
            return None

        async with self._lock:
            record = await self._get_or_create(deposit, entry.owner_id, entry.index)
            if record.status == DepositStatus.CREDITED:
                logger.debug(f"[Deposit] {deposit.idempotency_key} already credited")
                return record.status
            if record.status == DepositStatus.FAILED:
                logger.warning(
                    f"[Deposit] {deposit.idempotency_key} is failed, "
                    f"waiting for a manual check"
                )
                return record.status
            return await self._drive(record)

    async def retry_pending(
        self, owner_id: str | None = None, include_failed: bool = False
    ) -> dict[str, str]:
        """
        Resume unfinished deposits.

        Args:
            owner_id: Restrict to one owner
            include_failed: Also revive failed records with a fresh retry budget

        Returns:
            Final status per idempotency key
        """
        async with self._lock:
            async with self.session_factory() as session:
                records = await DepositRecordRepository(session).list_outstanding(
                    owner_id=owner_id, include_failed=include_failed
                )

            results: dict[str, str] = {}
            for record in records:
                key = record.idempotency_key
                try:
                    if record.status == DepositStatus.FAILED:
                        record = await self._revive(record)
                    results[key] = await self._drive(record)
                except Exception as e:
                    logger.exception(f"[Deposit] Retry of {key} aborted: {e}")
                    results[key] = record.status

            if results:
                logger.info(f"[Deposit] Retried {len(results)} outstanding deposit(s)")
            return results

    async def _get_or_create(
        self, deposit: DetectedDeposit, owner_id: str, derivation_index: int
    ) -> DepositRecord:
        async with self.session_factory() as session:
            repo = DepositRecordRepository(session)
            record = await repo.get_by_key(deposit.tx_hash, deposit.log_index)
            if record is not None:
                return record
            try:
                record = await repo.create_detected(
                    tx_hash=deposit.tx_hash,
                    log_index=deposit.log_index,
                    to_address=deposit.to_address,
                    token_address=deposit.token_address,
                    token_amount=deposit.token_amount,
                    block_number=deposit.block_number,
                    owner_id=owner_id,
                    derivation_index=derivation_index,
                )
                await session.commit()
            except IntegrityError:
                await session.rollback()
                record = await repo.get_by_key(deposit.tx_hash, deposit.log_index)
                if record is None:
                    raise
            return record

    async def _drive(self, record: DepositRecord) -> str:
        key = record.idempotency_key
        status = record.status

        if status in (DepositStatus.DETECTED, DepositStatus.SWEEPING):
            record = await self._transition(record, status=DepositStatus.SWEEPING)
            try:
                sweep_tx = await self.sweep_engine.sweep(
                    record.derivation_index, self.custody_address, record.token_address
                )
            except Exception as e:
                return await self._fail(record, DepositStatus.DETECTED, e)

            # None means an earlier attempt already moved the tokens
            record = await self._transition(
                record,
                status=DepositStatus.SWEPT,
                sweep_tx_hash=sweep_tx or record.sweep_tx_hash,
            )
            status = record.status

        if status in (DepositStatus.SWEPT, DepositStatus.CREDITING):
            record = await self._transition(record, status=DepositStatus.CREDITING)
            amount = to_token_units(int(record.token_amount), self.token_decimals)
            try:
                await self.creditor.credit(
                    record.owner_id, record.token_address, amount, key
                )
            except Exception as e:
                return await self._fail(record, DepositStatus.SWEPT, e)

            record = await self._transition(
                record,
                status=DepositStatus.CREDITED,
                last_error=None,
                credited_at=datetime.now(UTC),
            )
            logger.success(
                f"[Deposit] {key} credited: {amount} to owner {record.owner_id}"
            )

        return record.status

    async def _fail(
        self, record: DepositRecord, resume_status: DepositStatus, error: Exception
    ) -> str:
        retry_count = record.retry_count + 1
        message = f"{type(error).__name__}: {error}"
        exhausted = retry_count >= self.max_retries
        status = DepositStatus.FAILED if exhausted else resume_status

        record = await self._transition(
            record, status=status, retry_count=retry_count, last_error=message[:2000]
        )
        if exhausted:
            logger.error(
                f"[Deposit] {record.idempotency_key} failed after "
                f"{retry_count} attempt(s): {message}"
            )
        elif is_transient(error):
            logger.warning(
                f"[Deposit] {record.idempotency_key} attempt {retry_count}/"
                f"{self.max_retries} failed, will retry: {message}"
            )
        else:
            logger.error(
                f"[Deposit] {record.idempotency_key} attempt {retry_count}/"
                f"{self.max_retries} failed unexpectedly, will retry: {message}"
            )
        return record.status

    async def _revive(self, record: DepositRecord) -> DepositRecord:
        resume_status = (
            DepositStatus.SWEPT if record.sweep_tx_hash else DepositStatus.DETECTED
        )
        logger.info(f"[Deposit] Reviving failed deposit {record.idempotency_key}")
        return await self._transition(record, status=resume_status, retry_count=0)

    async def _transition(self, record: DepositRecord, **data: Any) -> DepositRecord:
        async with self.session_factory() as session:
            updated = await DepositRecordRepository(session).update(record.id, **data)
            await session.commit()
        if updated is None:
            raise LookupError(f"Deposit record {record.id} disappeared")
        return updated
