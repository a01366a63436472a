"""
User model.

Represents a custodial user and the deposit address derived for them.
"""

from datetime import UTC, datetime

from sqlalchemy import CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class User(Base):
    """User model - owners of deposit addresses."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "derivation_index >= 0",
            name="check_user_derivation_index_non_negative",
        ),
    )

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    # Opaque identifier of the owner in the wider product
    owner_id: Mapped[str] = mapped_column(
        String(64), unique=True, index=True, nullable=False
    )

    # HD deposit address (assigned once at onboarding, immutable)
    deposit_address: Mapped[str | None] = mapped_column(
        String(42), unique=True, index=True, nullable=True
    )
    derivation_index: Mapped[int | None] = mapped_column(
        Integer, unique=True, nullable=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<User(id={self.id}, owner_id={self.owner_id!r}, "
            f"derivation_index={self.derivation_index})>"
        )
