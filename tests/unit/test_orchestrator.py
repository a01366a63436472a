"""Unit tests for the deposit orchestrator lifecycle."""

from decimal import Decimal

import pytest

from app.models.enums import DepositStatus
from app.repositories.deposit_record_repository import DepositRecordRepository
from app.repositories.ledger_repository import LedgerRepository
from app.services.deposit.address_registry import DepositAddress
from app.services.deposit.chain_scanner import DetectedDeposit
from app.services.deposit.ledger_creditor import LedgerCreditor
from app.services.deposit.orchestrator import DepositOrchestrator
from app.services.deposit.sweep_engine import SweepEngine
from conftest import TOKEN_ADDRESS

TX_A = "0x" + "a1" * 32
TX_B = "0x" + "b2" * 32


class FlakyCreditor(LedgerCreditor):
    """Creditor whose first `failures` calls raise."""

    def __init__(self, session_factory, failures: int):
        super().__init__(session_factory)
        self.failures = failures
        self.calls = 0

    async def credit(self, *args, **kwargs):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("ledger unavailable")
        return await super().credit(*args, **kwargs)


def build_orchestrator(session_factory, registry, fake_chain, deriver, hot_wallet,
                       creditor=None, max_retries=3):
    return DepositOrchestrator(
        session_factory=session_factory,
        registry=registry,
        sweep_engine=SweepEngine(fake_chain, deriver, hot_wallet),
        creditor=creditor or LedgerCreditor(session_factory),
        custody_address=hot_wallet.address,
        token_address=TOKEN_ADDRESS,
        token_decimals=6,
        max_retries=max_retries,
    )


@pytest.fixture
def orchestrator(session_factory, registry, fake_chain, deriver, hot_wallet):
    return build_orchestrator(session_factory, registry, fake_chain, deriver, hot_wallet)


@pytest.fixture
def alice(registry, deriver):
    entry = DepositAddress(5, deriver.address_at(5), "alice")
    registry.register_immediately(entry)
    return entry


def deposit_to(entry, fake_chain, amount=100_000_000, tx_hash=TX_A, log_index=0):
    transfer = fake_chain.add_transfer(
        entry.address, amount, block_number=104, tx_hash=tx_hash, log_index=log_index
    )
    return DetectedDeposit.from_transfer(transfer)


async def get_record(session_factory, tx_hash=TX_A, log_index=0):
    async with session_factory() as session:
        return await DepositRecordRepository(session).get_by_key(tx_hash, log_index)


async def ledger_balance(session_factory, owner_id="alice"):
    async with session_factory() as session:
        row = await LedgerRepository(session).get_balance(owner_id, TOKEN_ADDRESS)
        return row.amount if row else Decimal("0")


class TestHandle:
    """Happy path and deduplication."""

    @pytest.mark.asyncio
    async def test_unknown_owner_dropped(self, orchestrator, fake_chain, session_factory):
        transfer = fake_chain.add_transfer("0x" + "12" * 20, 5, 104, TX_A)

        status = await orchestrator.handle(DetectedDeposit.from_transfer(transfer))

        assert status is None
        assert await get_record(session_factory) is None
        assert fake_chain.sent == []

    @pytest.mark.asyncio
    async def test_deposit_is_swept_and_credited(
        self, orchestrator, alice, fake_chain, session_factory, hot_wallet
    ):
        status = await orchestrator.handle(deposit_to(alice, fake_chain))

        assert status == DepositStatus.CREDITED
        record = await get_record(session_factory)
        assert record.status == DepositStatus.CREDITED
        assert record.owner_id == "alice"
        assert record.derivation_index == 5
        assert record.sweep_tx_hash == fake_chain.token_transfers[0].tx_hash
        assert record.credited_at is not None
        assert record.retry_count == 0
        assert await ledger_balance(session_factory) == Decimal("100")
        assert fake_chain.token_balances[hot_wallet.address] == 100_000_000

    @pytest.mark.asyncio
    async def test_repeat_detection_is_noop(self, orchestrator, alice, fake_chain, session_factory):
        deposit = deposit_to(alice, fake_chain)
        await orchestrator.handle(deposit)

        status = await orchestrator.handle(deposit)

        assert status == DepositStatus.CREDITED
        assert len(fake_chain.token_transfers) == 1
        assert await ledger_balance(session_factory) == Decimal("100")

    @pytest.mark.asyncio
    async def test_two_logs_one_sweep(self, orchestrator, alice, fake_chain, session_factory):
        first = deposit_to(alice, fake_chain, amount=30_000_000, log_index=0)
        second = deposit_to(alice, fake_chain, amount=20_000_000, tx_hash=TX_B, log_index=7)

        await orchestrator.handle(first)
        status = await orchestrator.handle(second)

        assert status == DepositStatus.CREDITED
        assert len(fake_chain.token_transfers) == 1
        assert fake_chain.token_transfers[0].value == 50_000_000
        assert await ledger_balance(session_factory) == Decimal("50")


class TestRetries:
    """Failure handling and resume."""

    @pytest.mark.asyncio
    async def test_sweep_failure_returns_to_detected(
        self, orchestrator, alice, fake_chain, session_factory
    ):
        fake_chain.fail("send_native_transfer")

        status = await orchestrator.handle(deposit_to(alice, fake_chain))

        assert status == DepositStatus.DETECTED
        record = await get_record(session_factory)
        assert record.retry_count == 1
        assert "GasFundingFailed" in record.last_error
        assert await ledger_balance(session_factory) == Decimal("0")

        results = await orchestrator.retry_pending()

        assert results == {record.idempotency_key: DepositStatus.CREDITED}
        record = await get_record(session_factory)
        assert record.last_error is None
        assert await ledger_balance(session_factory) == Decimal("100")

    @pytest.mark.asyncio
    async def test_credit_failure_resumes_without_resweep(
        self, session_factory, registry, fake_chain, deriver, hot_wallet, alice
    ):
        creditor = FlakyCreditor(session_factory, failures=1)
        orchestrator = build_orchestrator(
            session_factory, registry, fake_chain, deriver, hot_wallet, creditor=creditor
        )

        status = await orchestrator.handle(deposit_to(alice, fake_chain))

        assert status == DepositStatus.SWEPT
        record = await get_record(session_factory)
        assert record.sweep_tx_hash is not None
        assert "ConnectionError" in record.last_error

        await orchestrator.retry_pending()

        assert (await get_record(session_factory)).status == DepositStatus.CREDITED
        assert len(fake_chain.token_transfers) == 1
        assert await ledger_balance(session_factory) == Decimal("100")

    @pytest.mark.asyncio
    async def test_exhausted_retries_mark_failed(
        self, session_factory, registry, fake_chain, deriver, hot_wallet, alice
    ):
        orchestrator = build_orchestrator(
            session_factory, registry, fake_chain, deriver, hot_wallet, max_retries=2
        )
        fake_chain.fail("send_native_transfer", times=2)
        deposit = deposit_to(alice, fake_chain)

        await orchestrator.handle(deposit)
        await orchestrator.retry_pending()

        record = await get_record(session_factory)
        assert record.status == DepositStatus.FAILED
        assert record.retry_count == 2

        # Terminal until an operator replays it
        assert await orchestrator.handle(deposit) == DepositStatus.FAILED
        assert await orchestrator.retry_pending() == {}
        assert fake_chain.token_transfers == []

    @pytest.mark.asyncio
    async def test_replay_revives_failed(
        self, session_factory, registry, fake_chain, deriver, hot_wallet, alice
    ):
        orchestrator = build_orchestrator(
            session_factory, registry, fake_chain, deriver, hot_wallet, max_retries=1
        )
        fake_chain.fail("send_native_transfer")
        await orchestrator.handle(deposit_to(alice, fake_chain))
        assert (await get_record(session_factory)).status == DepositStatus.FAILED

        results = await orchestrator.retry_pending(owner_id="alice", include_failed=True)

        assert list(results.values()) == [DepositStatus.CREDITED]
        assert await ledger_balance(session_factory) == Decimal("100")

    @pytest.mark.asyncio
    async def test_retry_pending_filters_by_owner(
        self, orchestrator, alice, registry, deriver, fake_chain, session_factory
    ):
        bob = DepositAddress(6, deriver.address_at(6), "bob")
        registry.register_immediately(bob)
        fake_chain.fail("send_native_transfer", times=2)
        await orchestrator.handle(deposit_to(alice, fake_chain))
        await orchestrator.handle(deposit_to(bob, fake_chain, tx_hash=TX_B))

        results = await orchestrator.retry_pending(owner_id="bob")

        assert list(results) == [f"{TX_B}:0"]
        assert (await get_record(session_factory)).status == DepositStatus.DETECTED
