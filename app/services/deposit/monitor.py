"""
Deposit monitor.

Top-level service: owns the registry, scanner and orchestrator, schedules
their periodic jobs and exposes status, manual checks and onboarding.
"""

from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config.settings import Settings
from app.models.enums import DepositStatus
from app.repositories.deposit_record_repository import DepositRecordRepository
from app.repositories.user_repository import UserRepository
from app.services.blockchain.chain_client import ChainClient
from app.services.blockchain.hot_wallet import HotWallet
from app.utils.exceptions import ChainRpcError, UnknownOwnerError
from app.utils.security import mask_address
from app.utils.validation import to_token_units

from .address_deriver import AddressDeriver
from .address_registry import AddressRegistry, DepositAddress
from .chain_scanner import ChainScanner
from .ledger_creditor import LedgerCreditor
from .orchestrator import DepositOrchestrator
from .sweep_engine import SweepEngine

REFRESH_JOB_ID = "deposit_address_refresh"
SCAN_JOB_ID = "deposit_scan_tick"


class DepositMonitor:
    """
    Deposit detection and sweep service.

    Usage:
        monitor = DepositMonitor.from_settings(settings, session_maker)
        await monitor.start()
        ...
        await monitor.stop()
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        chain: ChainClient,
        deriver: AddressDeriver,
        hot_wallet: HotWallet,
        token_address: str,
        token_decimals: int,
        scan_interval: int,
        address_refresh_interval: int,
        max_block_range: int,
        max_retries: int,
        start_block: int | None = None,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.chain = chain
        self.deriver = deriver
        self.hot_wallet = hot_wallet
        self.token_address = token_address.lower()
        self.token_decimals = token_decimals
        self.scan_interval = scan_interval
        self.address_refresh_interval = address_refresh_interval
        self.max_block_range = max_block_range

        self.registry = AddressRegistry(session_factory)
        self.scanner = ChainScanner(
            chain=chain,
            registry=self.registry,
            session_factory=session_factory,
            token_address=token_address,
            max_block_range=max_block_range,
            start_block=start_block,
        )
        self.orchestrator = DepositOrchestrator(
            session_factory=session_factory,
            registry=self.registry,
            sweep_engine=SweepEngine(chain, deriver, hot_wallet),
            creditor=LedgerCreditor(session_factory),
            custody_address=hot_wallet.address,
            token_address=token_address,
            token_decimals=token_decimals,
            max_retries=max_retries,
        )

        self.scheduler = scheduler or AsyncIOScheduler()
        self._monitoring = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        chain: ChainClient | None = None,
    ) -> "DepositMonitor":
        """
        Build the monitor from application settings.

        Raises:
            ConfigurationError: If the mnemonic or hot wallet key is invalid
        """
        chain = chain or ChainClient.from_url(settings.rpc_url)
        mnemonic = settings.master_mnemonic
        private_key = settings.hot_wallet_private_key

        return cls(
            session_factory=session_factory,
            chain=chain,
            deriver=AddressDeriver(mnemonic.get_secret_value() if mnemonic else None),
            hot_wallet=HotWallet(
                chain,
                settings.hot_wallet_address,
                private_key.get_secret_value() if private_key else None,
            ),
            token_address=settings.token_contract_address,
            token_decimals=settings.token_decimals,
            scan_interval=settings.scan_interval,
            address_refresh_interval=settings.address_refresh_interval,
            max_block_range=settings.max_block_range,
            max_retries=settings.max_deposit_retries,
            start_block=settings.scan_start_block,
        )

    @property
    def is_monitoring(self) -> bool:
        return self._monitoring

    async def start(self) -> None:
        """Load addresses and watermark, then schedule the periodic jobs."""
        if self._monitoring:
            logger.warning("Deposit monitor already running")
            return

        await self.registry.refresh()
        await self.scanner.initialize()

        self.scheduler.add_job(
            self.refresh_addresses,
            "interval",
            seconds=self.address_refresh_interval,
            id=REFRESH_JOB_ID,
            name="Deposit address refresh",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.scan_tick,
            "interval",
            seconds=self.scan_interval,
            id=SCAN_JOB_ID,
            name="Deposit scan",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        if not self.scheduler.running:
            self.scheduler.start()

        self._monitoring = True
        logger.info(
            f"Deposit monitor started: {len(self.registry)} address(es), "
            f"scan every {self.scan_interval}s, "
            f"refresh every {self.address_refresh_interval}s"
        )

    async def stop(self) -> None:
        """Stop future job runs. In-flight work is allowed to finish."""
        if not self._monitoring:
            return

        for job_id in (REFRESH_JOB_ID, SCAN_JOB_ID):
            if self.scheduler.get_job(job_id) is not None:
                self.scheduler.remove_job(job_id)

        self._monitoring = False
        logger.info("Deposit monitor stopped")

    async def shutdown(self) -> None:
        """Stop jobs and the scheduler itself."""
        await self.stop()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    async def refresh_addresses(self) -> None:
        """Scheduled job: merge new deposit addresses into the registry."""
        try:
            await self.registry.refresh()
        except Exception as e:
            logger.error(f"Deposit address refresh failed: {e}")

    async def scan_tick(self) -> None:
        """Scheduled job: resume outstanding deposits, then scan new blocks."""
        try:
            await self.orchestrator.retry_pending()
            await self.scanner.tick(self.orchestrator.handle)
        except Exception as e:
            logger.exception(f"Deposit scan tick failed: {e}")

    async def status(self) -> dict[str, Any]:
        """
        Get monitor status.

        Returns:
            Dict with monitoring, address_count, last_scanned_block and
            current_block (None when the RPC call fails)
        """
        try:
            current_block = await self.chain.get_block_number()
        except ChainRpcError as e:
            logger.warning(f"Status: block height unavailable: {e}")
            current_block = None

        return {
            "monitoring": self._monitoring,
            "address_count": len(self.registry),
            "last_scanned_block": self.scanner.last_scanned_block,
            "current_block": current_block,
        }

    async def check_deposit(self, owner_id: str) -> dict[str, Any]:
        """
        Manually re-check one owner's deposit address.

        Re-scans the last max_block_range blocks for that address, processes
        anything found and replays the owner's unfinished deposits,
        including failed ones.

        Args:
            owner_id: Owner to check

        Returns:
            Dict with owner_id, deposit_address, token_balance, detected,
            credited and pending

        Raises:
            UnknownOwnerError: If the owner has no deposit address
            ChainRpcError: If the chain cannot be queried
        """
        async with self.session_factory() as session:
            user = await UserRepository(session).get_by_owner_id(owner_id)
        if (
            user is None
            or user.deposit_address is None
            or user.derivation_index is None
        ):
            raise UnknownOwnerError(f"Owner {owner_id} has no deposit address")

        address = user.deposit_address.lower()
        self.registry.register_immediately(
            DepositAddress(
                index=user.derivation_index, address=address, owner_id=owner_id
            )
        )

        head = await self.chain.get_block_number()
        from_block = max(0, head - self.max_block_range + 1)
        deposits = await self.scanner.scan_address(address, from_block, head)
        logger.info(
            f"[Manual Check] Owner {owner_id}: {len(deposits)} transfer(s) "
            f"to {mask_address(address)} in blocks {from_block}-{head}"
        )

        outcomes: dict[str, str | None] = {}
        for deposit in deposits:
            outcomes[deposit.idempotency_key] = await self.orchestrator.handle(deposit)
        outcomes.update(
            await self.orchestrator.retry_pending(owner_id=owner_id, include_failed=True)
        )

        async with self.session_factory() as session:
            pending = await DepositRecordRepository(session).list_outstanding(
                owner_id=owner_id, include_failed=True
            )

        raw_balance = await self.chain.get_token_balance(self.token_address, address)
        token_balance = to_token_units(raw_balance, self.token_decimals)
        if raw_balance > 0 and not pending:
            logger.warning(
                f"[Manual Check] {mask_address(address)} holds {token_balance} "
                f"with no unfinished deposit to attribute it to, left in place"
            )

        credited = sum(
            1 for status in outcomes.values() if status == DepositStatus.CREDITED
        )
        return {
            "owner_id": owner_id,
            "deposit_address": address,
            "token_balance": token_balance,
            "detected": len(deposits),
            "credited": credited,
            "pending": len(pending),
        }

    async def onboard(self, owner_id: str) -> DepositAddress:
        """
        Assign a deposit address to an owner.

        Existing assignments are returned unchanged.

        Args:
            owner_id: Owner identifier

        Returns:
            Registered deposit address
        """
        async with self.session_factory() as session:
            repo = UserRepository(session)
            user = await repo.get_by_owner_id(owner_id)
            if user is not None and user.deposit_address is not None:
                entry = DepositAddress(
                    index=user.derivation_index,
                    address=user.deposit_address,
                    owner_id=owner_id,
                )
            else:
                index = await repo.allocate_derivation_index()
                address = self.deriver.address_at(index)
                if user is None:
                    await repo.create(
                        owner_id=owner_id,
                        deposit_address=address,
                        derivation_index=index,
                    )
                else:
                    await repo.update(
                        user.id, deposit_address=address, derivation_index=index
                    )
                await session.commit()
                entry = DepositAddress(index=index, address=address, owner_id=owner_id)
                logger.info(
                    f"Onboarded owner {owner_id}: index {index}, "
                    f"address {mask_address(address)}"
                )

        self.registry.register_immediately(entry)
        return entry

