"""
Ledger models.

Internal accounting ledger: per-owner token balances and the idempotency
keys of every credit applied to them.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.types import MoneyType


class LedgerCredit(Base):
    """One applied credit. The idempotency key is unique for all time."""

    __tablename__ = "ledger_credits"
    __table_args__ = (
        CheckConstraint("amount > 0", name="check_ledger_credit_amount_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    idempotency_key: Mapped[str] = mapped_column(
        String(128), nullable=False, unique=True, index=True
    )
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    token: Mapped[str] = mapped_column(String(42), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<LedgerCredit(key={self.idempotency_key}, "
            f"owner_id={self.owner_id!r}, amount={self.amount})>"
        )


class LedgerBalance(Base):
    """Credited balance of one owner in one token."""

    __tablename__ = "ledger_balances"
    __table_args__ = (
        UniqueConstraint("owner_id", "token", name="uq_ledger_balance_owner_token"),
        CheckConstraint("amount >= 0", name="check_ledger_balance_non_negative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    token: Mapped[str] = mapped_column(String(42), nullable=False)
    amount: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=Decimal("0")
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )
