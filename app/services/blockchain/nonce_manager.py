"""
Nonce Management.

Handles nonce acquisition with stuck transaction detection. Callers that
send from a shared key must hold that key's send lock while acquiring a
nonce and submitting.
"""

from loguru import logger
from web3 import AsyncWeb3
from web3.exceptions import Web3Exception

from app.utils.security import mask_address

# Pending transactions above the confirmed count that trigger a warning
STUCK_THRESHOLD = 5


class NonceManager:
    """
    Manages transaction nonces with safety features.

    Features:
    - Stuck transaction detection
    - Pending-aware nonce selection
    """

    def __init__(self, web3: AsyncWeb3):
        """
        Initialize nonce manager.

        Args:
            web3: AsyncWeb3 instance
        """
        self.web3 = web3

    async def get_safe_nonce(self, address: str) -> int:
        """
        Get nonce with stuck transaction detection.

        Args:
            address: Wallet address (checksummed)

        Returns:
            Safe nonce to use

        Raises:
            ValueError: If address is invalid
            Web3Exception: If Web3 provider call fails
        """
        try:
            # Pending nonce includes transactions still in the mempool
            pending_nonce = await self.web3.eth.get_transaction_count(address, "pending")
            confirmed_nonce = await self.web3.eth.get_transaction_count(address, "latest")
        except ValueError:
            logger.error(f"Invalid address format for nonce lookup: {mask_address(address)}")
            raise
        except Web3Exception as e:
            logger.error(f"Web3 error getting nonce for {mask_address(address)}: {e}")
            raise

        if pending_nonce > confirmed_nonce + STUCK_THRESHOLD:
            logger.warning(
                f"Possible stuck transactions detected: "
                f"pending={pending_nonce}, confirmed={confirmed_nonce}, "
                f"stuck={pending_nonce - confirmed_nonce}"
            )

        return pending_nonce
