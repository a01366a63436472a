"""
Standard type definitions for database models.

Provides consistent types for monetary fields across all models.
"""

from sqlalchemy import DECIMAL, Numeric

# Ledger money type for credited balances
# Precision: 36 digits total, 18 after decimal point
# Suitable for: any ERC-20 token amount in token units
MoneyType = DECIMAL(36, 18)

# Raw on-chain amount (uint256 in smallest units), no fractional part
RawAmountType = Numeric(78, 0)
