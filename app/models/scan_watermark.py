"""
Scan watermark model.

Tracks the last fully scanned block of the deposit scanner.
"""

from datetime import UTC, datetime

from sqlalchemy import BigInteger, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class ScanWatermark(Base):
    """
    Tracks deposit scanning progress per token contract.

    Used to:
    - Resume scanning after restart
    - Report scanner progress in the status query
    """

    __tablename__ = "scan_watermarks"

    # Primary key
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Monitored token contract (lowercase)
    token_address: Mapped[str] = mapped_column(
        String(42), nullable=False, unique=True, index=True
    )

    # Last block whose logs were fully queried
    last_scanned_block: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )

    # Statistics
    total_detected: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )

    # Error tracking
    last_error: Mapped[str | None] = mapped_column(
        Text, nullable=True
    )
    error_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
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
