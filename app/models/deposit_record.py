"""
Deposit record model.

Durable per-deposit state for every detected token transfer into a
deposit address. One row per (tx_hash, log_index).
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.enums import DepositStatus
from app.models.types import RawAmountType


class DepositRecord(Base):
    """
    Tracks a detected deposit through sweep and crediting.

    Used to:
    - Deduplicate repeated detections of the same log
    - Resume sweep/credit after a crash
    - Expose failed deposits to operators
    """

    __tablename__ = "deposit_records"
    __table_args__ = (
        UniqueConstraint(
            "tx_hash", "log_index", name="uq_deposit_record_tx_log"
        ),
        CheckConstraint(
            "retry_count >= 0", name="check_deposit_record_retry_non_negative"
        ),
        CheckConstraint(
            "token_amount > 0", name="check_deposit_record_amount_positive"
        ),
        Index("idx_deposit_record_status", "status"),
        Index("idx_deposit_record_owner", "owner_id"),
    )

    # Primary key
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Idempotency key parts
    tx_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    log_index: Mapped[int] = mapped_column(Integer, nullable=False)

    # Transfer data
    to_address: Mapped[str] = mapped_column(String(42), nullable=False)
    token_address: Mapped[str] = mapped_column(String(42), nullable=False)
    token_amount: Mapped[Decimal] = mapped_column(RawAmountType, nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Owner resolved from the registry at detection time
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    derivation_index: Mapped[int] = mapped_column(Integer, nullable=False)

    # Processing state
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DepositStatus.DETECTED
    )
    retry_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    sweep_tx_hash: Mapped[str | None] = mapped_column(
        String(66), nullable=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )
    credited_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    @property
    def idempotency_key(self) -> str:
        """Ledger idempotency key for this transfer."""
        return f"{self.tx_hash}:{self.log_index}"

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<DepositRecord(id={self.id}, key={self.idempotency_key}, "
            f"status={self.status}, retry_count={self.retry_count})>"
        )
