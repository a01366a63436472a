"""Validation and conversion utilities for chain values."""

from decimal import ROUND_DOWN, Decimal

from eth_utils import is_address, is_checksum_address


# Zero address - never a valid deposit or custody address
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def validate_evm_address(address: str | None, checksum: bool = False) -> bool:
    """
    Validate EVM wallet address.

    Args:
        address: Wallet address
        checksum: Whether to validate checksum

    Returns:
        True if valid
    """
    if not address or not isinstance(address, str):
        return False

    if not is_address(address):
        return False

    if address.lower() == ZERO_ADDRESS:
        return False

    if checksum:
        return is_checksum_address(address)

    return True


def normalize_address(address: str) -> str:
    """
    Normalize address to lowercase form used as registry key.

    Raises:
        ValueError: If invalid address
    """
    if not validate_evm_address(address):
        raise ValueError(f"Invalid address: {address}")
    return address.lower()


def to_token_units(raw_amount: int, decimals: int) -> Decimal:
    """
    Convert raw integer token amount to a Decimal in token units.

    Args:
        raw_amount: Amount in smallest units (as emitted by the contract)
        decimals: Token decimals

    Returns:
        Decimal amount
    """
    return Decimal(raw_amount) / Decimal(10 ** decimals)


def to_raw_units(amount: Decimal, decimals: int) -> int:
    """
    Convert Decimal token amount to raw integer units (rounded down).

    Args:
        amount: Amount in token units
        decimals: Token decimals

    Returns:
        Integer amount in smallest units
    """
    scaled = Decimal(str(amount)) * Decimal(10 ** decimals)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))
