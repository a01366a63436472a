"""
Services.

Business logic layer.
"""

# Blockchain
from app.services.blockchain import ChainClient, HotWallet

# Deposits
from app.services.deposit import (
    AddressDeriver,
    AddressRegistry,
    ChainScanner,
    DepositMonitor,
    DepositOrchestrator,
    LedgerCreditor,
    SweepEngine,
)


__all__ = [
    "AddressDeriver",
    "AddressRegistry",
    "ChainClient",
    "ChainScanner",
    "DepositMonitor",
    "DepositOrchestrator",
    "HotWallet",
    "LedgerCreditor",
    "SweepEngine",
]
