"""
Derivation counter model.

Single-row allocator for deposit address derivation indexes.
"""

from datetime import UTC, datetime

from sqlalchemy import CheckConstraint, DateTime, Integer
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base

DERIVATION_COUNTER_ID = 1


class DerivationCounter(Base):
    """
    Next derivation index to hand out.

    The value only ever grows, so an index stays burned even after the
    user row that held it is deleted.
    """

    __tablename__ = "derivation_counters"
    __table_args__ = (
        CheckConstraint(
            "next_index >= 0",
            name="check_derivation_counter_non_negative",
        ),
    )

    # Always DERIVATION_COUNTER_ID
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)

    next_index: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )
