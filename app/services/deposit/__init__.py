"""
Deposit Services Module.

Detection, sweeping and crediting of on-chain deposits.

Submodules:
- address_deriver: HD derivation of per-owner deposit addresses
- address_registry: In-memory set of monitored addresses
- chain_scanner: Incremental Transfer log scanning
- sweep_engine: Gas funding and balance sweeps
- ledger_creditor: Idempotent ledger credits
- orchestrator: Per-deposit lifecycle
- monitor: Scheduling facade (DepositMonitor)
"""

from .address_deriver import AddressDeriver, DerivedAccount
from .address_registry import AddressRegistry, DepositAddress
from .chain_scanner import ChainScanner, DetectedDeposit, ScanResult
from .ledger_creditor import CreditResult, LedgerCreditor
from .monitor import DepositMonitor
from .orchestrator import DepositOrchestrator
from .sweep_engine import SweepEngine


__all__ = [
    "AddressDeriver",
    "AddressRegistry",
    "ChainScanner",
    "CreditResult",
    "DepositAddress",
    "DepositMonitor",
    "DepositOrchestrator",
    "DerivedAccount",
    "DetectedDeposit",
    "LedgerCreditor",
    "ScanResult",
    "SweepEngine",
]
