"""
Application constants.

Centralized constants for the application.
"""

# ========================================================================
# BLOCKCHAIN CONSTANTS
# ========================================================================

# Blockchain operation timeouts (in seconds)
BLOCKCHAIN_TIMEOUT = 30.0  # Standard RPC calls (block number, balances, logs)
RECEIPT_TIMEOUT = 120.0  # Waiting for a transaction to be included
BLOCKCHAIN_RPC_TIMEOUT = 30  # RPC provider HTTP timeout

# Blockchain retry settings (read-only calls only, writes are never replayed)
BLOCKCHAIN_MAX_RETRIES = 3  # Attempts per RPC read
BLOCKCHAIN_RETRY_DELAY_BASE = 2  # Base delay in seconds for exponential backoff

# ========================================================================
# DEPOSIT MONITOR CONSTANTS
# ========================================================================

# Default cadence (in seconds)
DEFAULT_SCAN_INTERVAL = 12  # Block scan tick
DEFAULT_ADDRESS_REFRESH_INTERVAL = 30  # Deposit address registry reload

# eth_getLogs range cap (most providers reject wider queries)
DEFAULT_MAX_BLOCK_RANGE = 1000

# Deposit processing
DEFAULT_MAX_DEPOSIT_RETRIES = 5  # Attempts before a deposit record is terminal
MAX_SCAN_BACKOFF_TICKS = 10  # Upper bound of ticks skipped after RPC failures

# Gas funding buffer for freshly derived addresses: 20% over the estimate
GAS_FUNDING_BUFFER_NUMERATOR = 12
GAS_FUNDING_BUFFER_DENOMINATOR = 10

# Native transfer gas limit (plain value transfer)
NATIVE_TRANSFER_GAS = 21000

# BIP-44 derivation path for EVM deposit addresses
DERIVATION_PATH_TEMPLATE = "m/44'/60'/0'/0/{index}"
