"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from app.models.base import Base
from app.models.deposit_record import DepositRecord
from app.models.derivation_counter import DerivationCounter
from app.models.enums import DepositStatus
from app.models.ledger import LedgerBalance, LedgerCredit
from app.models.scan_watermark import ScanWatermark
from app.models.user import User

__all__ = [
    "Base",
    "DepositRecord",
    "DepositStatus",
    "DerivationCounter",
    "LedgerBalance",
    "LedgerCredit",
    "ScanWatermark",
    "User",
]
