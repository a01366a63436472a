"""
Enum definitions for database models.
"""

from enum import StrEnum


class DepositStatus(StrEnum):
    """
    Lifecycle of a detected on-chain deposit.

    detected -> sweeping -> swept -> crediting -> credited
    failed is reachable from sweeping or crediting once retries run out.
    """

    DETECTED = "detected"
    SWEEPING = "sweeping"
    SWEPT = "swept"
    CREDITING = "crediting"
    CREDITED = "credited"
    FAILED = "failed"


TERMINAL_DEPOSIT_STATUSES = frozenset({DepositStatus.CREDITED})
