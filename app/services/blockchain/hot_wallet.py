"""
Custody hot wallet.

Sends native-gas funding transfers from the custody hot address. All
transactions from the hot key go through one lock so nonces never collide.
"""

import asyncio

from eth_account import Account
from eth_account.signers.local import LocalAccount
from loguru import logger

from app.utils.exceptions import ChainRpcError, ConfigurationError, GasFundingFailed
from app.utils.security import mask_address, mask_tx_hash

from .chain_client import ChainClient


class HotWallet:
    """
    Custody hot wallet used to fund gas on deposit addresses.

    The private key is only held by the LocalAccount; it is never logged
    or returned.
    """

    def __init__(
        self,
        chain: ChainClient,
        address: str,
        private_key: str | None = None,
    ) -> None:
        """
        Initialize hot wallet.

        Args:
            chain: Chain client
            address: Custody hot address (sweep destination)
            private_key: Hot wallet key, required for gas funding

        Raises:
            ConfigurationError: If the key does not belong to the address
        """
        self.chain = chain
        self.address = address.lower()
        self._signer: LocalAccount | None = None
        self._lock = asyncio.Lock()

        if private_key:
            try:
                signer = Account.from_key(private_key)
            except Exception:
                raise ConfigurationError("HOT_WALLET_PRIVATE_KEY is malformed") from None
            if signer.address.lower() != self.address:
                raise ConfigurationError(
                    "HOT_WALLET_PRIVATE_KEY does not match HOT_WALLET_ADDRESS"
                )
            self._signer = signer
            logger.info(f"Hot wallet initialized: {mask_address(self.address)}")
        else:
            logger.warning(
                "Hot wallet initialized without private key - "
                "gas funding will not work"
            )

    @property
    def can_fund(self) -> bool:
        """True when the hot wallet key is configured."""
        return self._signer is not None

    async def fund_gas(self, to_address: str, value: int, gas_price: int) -> str:
        """
        Send native gas to a deposit address and wait for inclusion.

        Args:
            to_address: Deposit address to fund
            value: Amount in wei
            gas_price: Gas price for the funding transaction

        Returns:
            Funding transaction hash

        Raises:
            GasFundingFailed: On any failure (retryable)
        """
        if self._signer is None:
            raise GasFundingFailed("Hot wallet private key not configured")

        async with self._lock:
            try:
                tx_hash = await self.chain.send_native_transfer(
                    self._signer, to_address, value, gas_price
                )
                receipt = await self.chain.wait_for_receipt(tx_hash)
            except ChainRpcError as e:
                raise GasFundingFailed(f"Gas funding failed: {e}") from e

        if receipt["status"] != 1:
            raise GasFundingFailed(f"Gas funding transaction {tx_hash} reverted")

        logger.success(
            f"Gas funded: {value} wei -> {mask_address(to_address)} "
            f"(TX: {mask_tx_hash(tx_hash)})"
        )
        return tx_hash
