"""
Exception handling utilities.

Defines the deposit sweeper error taxonomy and the categories used to
decide how a failure is handled.
"""

from sqlalchemy.exc import OperationalError
from web3.exceptions import Web3Exception


class SweeperError(Exception):
    """Base exception for deposit sweeper errors."""
    pass


class ConfigurationError(SweeperError):
    """Raised when a required secret or address is missing or malformed."""
    pass


class ChainRpcError(SweeperError):
    """Raised when a chain RPC call fails (transient)."""
    pass


class BlockchainTimeoutError(ChainRpcError):
    """Raised when blockchain RPC call times out."""
    pass


class InvalidIndexError(SweeperError, ValueError):
    """Raised for a negative or non-integer derivation index."""
    pass


class SweepError(SweeperError):
    """Base exception for retryable sweep failures."""
    pass


class GasFundingFailed(SweepError):
    """Raised when the hot wallet could not fund gas on a deposit address."""
    pass


class SweepTransferFailed(SweepError):
    """Raised when the token transfer to the custody address failed."""
    pass


class UnknownOwnerError(SweeperError):
    """Raised when a deposit address has no registered owner."""
    pass


# Exception categories based on handling strategy

# Transient - absorbed at the component boundary, retried on the next tick
TRANSIENT = (
    ChainRpcError,
    SweepError,        # Gas funding or sweep transfer did not land
    Web3Exception,     # Blockchain RPC errors
    OperationalError,  # Database connectivity
    TimeoutError,
)


def is_transient(exc: Exception) -> bool:
    """
    Check if exception is transient and should be retried later.

    Args:
        exc: Exception to check

    Returns:
        True if exception is transient
    """
    return isinstance(exc, TRANSIENT)

