"""
Blockchain services module.

Provides RPC access and hot wallet operations for the deposit engine.
"""

from .chain_client import ChainClient, TransferLog, decode_transfer_log
from .constants import ERC20_ABI, TRANSFER_EVENT_TOPIC
from .hot_wallet import HotWallet


__all__ = [
    "ChainClient",
    "HotWallet",
    "TransferLog",
    "decode_transfer_log",
    "ERC20_ABI",
    "TRANSFER_EVENT_TOPIC",
]
