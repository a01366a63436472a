"""
Ledger creditor.

Applies deposit credits to internal balances exactly once per
idempotency key.
"""

from dataclasses import dataclass
from decimal import Decimal

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.repositories.ledger_repository import LedgerRepository


@dataclass(frozen=True)
class CreditResult:
    """Outcome of a credit call."""

    idempotency_key: str
    applied: bool
    balance: Decimal | None = None

    @property
    def already_credited(self) -> bool:
        return not self.applied


class LedgerCreditor:
    """
    Credits owners' ledger balances.

    The key check, credit insert and balance update share one database
    transaction; the unique key constraint settles concurrent callers.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def credit(
        self,
        owner_id: str,
        token: str,
        amount: Decimal,
        idempotency_key: str,
    ) -> CreditResult:
        """
        Credit an owner once per idempotency key.

        Args:
            owner_id: Owner to credit
            token: Token contract address
            amount: Amount in token units (positive)
            idempotency_key: "{tx_hash}:{log_index}" of the deposit

        Returns:
            CreditResult (applied=False when the key was seen before)

        Raises:
            ValueError: If amount is not positive
        """
        if amount <= 0:
            raise ValueError(f"Credit amount must be positive, got {amount}")

        async with self.session_factory() as session:
            repo = LedgerRepository(session)
            try:
                async with session.begin():
                    if await repo.get_credit(idempotency_key) is not None:
                        logger.info(f"[Ledger] {idempotency_key} already credited")
                        return CreditResult(idempotency_key=idempotency_key, applied=False)

                    balance = await repo.add_credit(
                        owner_id, token, amount, idempotency_key
                    )
                    new_balance = balance.amount
            except IntegrityError:
                # Lost a race against another writer of the same key
                async with session.begin():
                    if await repo.get_credit(idempotency_key) is None:
                        raise
                logger.info(f"[Ledger] {idempotency_key} credited concurrently")
                return CreditResult(idempotency_key=idempotency_key, applied=False)

        logger.success(
            f"[Ledger] Credited {amount} to owner {owner_id} "
            f"(key {idempotency_key}, balance {new_balance})"
        )
        return CreditResult(
            idempotency_key=idempotency_key, applied=True, balance=new_balance
        )
