"""
Log masking for chain identifiers.

Deposit addresses and hashes are shortened before they reach a log sink so
that log files cannot be used to enumerate custody addresses. Secrets
(mnemonic, hot wallet key) never reach this module at all.
"""


def _shorten(value: str | None, head: int, tail: int) -> str:
    if not value or len(value) < head + tail:
        return "***"
    return f"{value[:head]}...{value[-tail:]}"


def mask_address(address: str | None) -> str:
    """
    Shorten an address to `0x1234...5678`.

    Examples:
        >>> mask_address("0x1234567890abcdef1234567890abcdef12345678")
        '0x1234...5678'
        >>> mask_address(None)
        '***'
    """
    return _shorten(address, 6, 4)


def mask_tx_hash(tx_hash: str | None) -> str:
    """Shorten a transaction hash to its first 10 and last 6 characters."""
    return _shorten(tx_hash, 10, 6)
