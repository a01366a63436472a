"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
from pathlib import Path

# Minimal environment for Settings; tests run against SQLite
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RPC_URL", "http://localhost:8545")
os.environ.setdefault("HOT_WALLET_ADDRESS", "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266")
os.environ.setdefault("TOKEN_CONTRACT_ADDRESS", "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dataclasses import dataclass, field  # noqa: E402

import pytest  # noqa: E402
from eth_account import Account  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.models import Base, User  # noqa: E402
from app.services.blockchain.chain_client import TransferLog  # noqa: E402
from app.services.blockchain.hot_wallet import HotWallet  # noqa: E402
from app.services.deposit.address_deriver import AddressDeriver  # noqa: E402
from app.services.deposit.address_registry import AddressRegistry  # noqa: E402
from app.utils.exceptions import ChainRpcError  # noqa: E402

# Well-known development mnemonic; its accounts are public test accounts
TEST_MNEMONIC = "test test test test test test test test test test test junk"
TOKEN_ADDRESS = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
HOT_WALLET_PATH = "m/44'/60'/0'/0/1000"


@dataclass
class SentTransaction:
    """Transaction submitted through the fake chain."""

    kind: str
    tx_hash: str
    from_address: str
    to_address: str
    value: int
    gas_price: int
    gas_limit: int | None = None


@dataclass
class FakeChainClient:
    """
    In-memory stand-in for ChainClient.

    Token transfers move balances between addresses, native transfers
    credit gas, and any method can be made to fail through `failures`.
    """

    head: int = 100
    logs: list[TransferLog] = field(default_factory=list)
    token_balances: dict[str, int] = field(default_factory=dict)
    native_balances: dict[str, int] = field(default_factory=dict)
    gas_estimate: int = 50_000
    gas_price: int = 10_000_000_000
    receipt_status: int = 1
    failures: dict[str, list[Exception]] = field(default_factory=dict)
    sent: list[SentTransaction] = field(default_factory=list)
    log_queries: list[tuple[int, int, tuple[str, ...]]] = field(default_factory=list)
    calls: dict[str, int] = field(default_factory=dict)
    closed: bool = False

    def fail(self, method: str, error: Exception | None = None, times: int = 1) -> None:
        """Make the next `times` calls of a method raise."""
        error = error or ChainRpcError(f"{method} unavailable")
        self.failures.setdefault(method, []).extend([error] * times)

    def _maybe_fail(self, method: str) -> None:
        self.calls[method] = self.calls.get(method, 0) + 1
        pending = self.failures.get(method)
        if pending:
            raise pending.pop(0)

    def add_transfer(
        self,
        to_address: str,
        value: int,
        block_number: int,
        tx_hash: str,
        log_index: int = 0,
        token_address: str = TOKEN_ADDRESS,
        credit_balance: bool = True,
    ) -> TransferLog:
        """Put a Transfer log on the fake chain and credit the recipient."""
        transfer = TransferLog(
            tx_hash=tx_hash.lower(),
            log_index=log_index,
            token_address=token_address.lower(),
            from_address="0x" + "ab" * 20,
            to_address=to_address.lower(),
            value=value,
            block_number=block_number,
        )
        self.logs.append(transfer)
        if credit_balance:
            key = to_address.lower()
            self.token_balances[key] = self.token_balances.get(key, 0) + value
        return transfer

    async def get_block_number(self) -> int:
        self._maybe_fail("get_block_number")
        return self.head

    async def get_transfer_logs(
        self, token_address: str, from_block: int, to_block: int, recipients: list[str]
    ) -> list[TransferLog]:
        self._maybe_fail("get_transfer_logs")
        wanted = {address.lower() for address in recipients}
        self.log_queries.append((from_block, to_block, tuple(sorted(wanted))))
        return [
            log
            for log in self.logs
            if log.token_address == token_address.lower()
            and from_block <= log.block_number <= to_block
            and log.to_address in wanted
        ]

    async def get_token_balance(self, token_address: str, address: str) -> int:
        self._maybe_fail("get_token_balance")
        return self.token_balances.get(address.lower(), 0)

    async def get_native_balance(self, address: str) -> int:
        self._maybe_fail("get_native_balance")
        return self.native_balances.get(address.lower(), 0)

    async def get_gas_price(self) -> int:
        self._maybe_fail("get_gas_price")
        return self.gas_price

    async def estimate_token_transfer_gas(
        self, token_address: str, from_address: str, to_address: str, amount: int
    ) -> int:
        self._maybe_fail("estimate_token_transfer_gas")
        return self.gas_estimate

    async def send_native_transfer(self, signer, to_address, value, gas_price) -> str:
        self._maybe_fail("send_native_transfer")
        tx_hash = f"0x{len(self.sent) + 1:064x}"
        self.sent.append(
            SentTransaction(
                "native", tx_hash, signer.address.lower(), to_address.lower(),
                value, gas_price,
            )
        )
        key = to_address.lower()
        self.native_balances[key] = self.native_balances.get(key, 0) + value
        return tx_hash

    async def send_token_transfer(
        self, token_address, signer, to_address, amount, gas_limit, gas_price
    ) -> str:
        self._maybe_fail("send_token_transfer")
        sender = signer.address.lower()
        if self.token_balances.get(sender, 0) < amount:
            raise ChainRpcError("transfer amount exceeds balance")
        tx_hash = f"0x{len(self.sent) + 1:064x}"
        self.sent.append(
            SentTransaction(
                "token", tx_hash, sender, to_address.lower(),
                amount, gas_price, gas_limit,
            )
        )
        if self.receipt_status == 1:
            self.token_balances[sender] -= amount
            key = to_address.lower()
            self.token_balances[key] = self.token_balances.get(key, 0) + amount
        return tx_hash

    async def wait_for_receipt(self, tx_hash: str, timeout: float = 120.0) -> dict:
        self._maybe_fail("wait_for_receipt")
        sent = next(tx for tx in self.sent if tx.tx_hash == tx_hash)
        status = 1 if sent.kind == "native" else self.receipt_status
        return {"transactionHash": tx_hash, "status": status}

    async def close(self) -> None:
        self.closed = True

    @property
    def token_transfers(self) -> list[SentTransaction]:
        return [tx for tx in self.sent if tx.kind == "token"]

    @property
    def gas_fundings(self) -> list[SentTransaction]:
        return [tx for tx in self.sent if tx.kind == "native"]


@pytest.fixture(scope="session")
def deriver() -> AddressDeriver:
    """Deriver over the public development mnemonic."""
    return AddressDeriver(TEST_MNEMONIC)


@pytest.fixture(scope="session")
def hot_account():
    """Hot wallet account (not one of the deposit indexes used in tests)."""
    Account.enable_unaudited_hdwallet_features()
    return Account.from_mnemonic(TEST_MNEMONIC, account_path=HOT_WALLET_PATH)


@pytest.fixture
def fake_chain() -> FakeChainClient:
    return FakeChainClient()


@pytest.fixture
def hot_wallet(fake_chain, hot_account) -> HotWallet:
    private_key = "0x" + hot_account.key.hex().removeprefix("0x")
    return HotWallet(fake_chain, hot_account.address, private_key)


@pytest.fixture
async def db_engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=db_engine, class_=AsyncSession, expire_on_commit=False
    )


@pytest.fixture
def registry(session_factory) -> AddressRegistry:
    return AddressRegistry(session_factory)


@pytest.fixture
def add_user(session_factory, deriver):
    """Insert a user with the deposit address derived at an index."""

    async def _add_user(owner_id: str, index: int) -> User:
        async with session_factory() as session:
            user = User(
                owner_id=owner_id,
                deposit_address=deriver.address_at(index),
                derivation_index=index,
            )
            session.add(user)
            await session.commit()
            return user

    return _add_user
