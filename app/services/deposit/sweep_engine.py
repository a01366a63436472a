"""
Sweep engine.

Moves the full token balance of a deposit address to the custody hot
address, funding gas from the hot wallet when the deposit address has
none.
"""

from loguru import logger

from app.config.constants import (
    GAS_FUNDING_BUFFER_DENOMINATOR,
    GAS_FUNDING_BUFFER_NUMERATOR,
)
from app.services.blockchain.chain_client import ChainClient
from app.services.blockchain.hot_wallet import HotWallet
from app.utils.exceptions import ChainRpcError, GasFundingFailed, SweepTransferFailed
from app.utils.security import mask_address, mask_tx_hash

from .address_deriver import AddressDeriver


class SweepEngine:
    """
    Sweeps deposit addresses into the custody hot address.

    A sweep always moves the whole balance, so sweeping an already
    emptied address is a no-op and retries are safe.
    """

    def __init__(
        self,
        chain: ChainClient,
        deriver: AddressDeriver,
        hot_wallet: HotWallet,
    ) -> None:
        self.chain = chain
        self.deriver = deriver
        self.hot_wallet = hot_wallet

    async def sweep(
        self, index: int, custody_address: str, token_address: str
    ) -> str | None:
        """
        Sweep the token balance of the deposit address at an index.

        Args:
            index: Derivation index of the deposit address
            custody_address: Sweep destination
            token_address: Token contract to sweep

        Returns:
            Sweep transaction hash, or None if the balance was zero

        Raises:
            GasFundingFailed: Gas could not be provided
            SweepTransferFailed: The transfer was not submitted or reverted
            ChainRpcError: Balance reads failed
        """
        account = self.deriver.derive(index)
        address = account.address

        balance = await self.chain.get_token_balance(token_address, address)
        if balance == 0:
            logger.info(f"[Sweep] {mask_address(address)} has no tokens, nothing to sweep")
            return None

        try:
            gas_limit = await self.chain.estimate_token_transfer_gas(
                token_address, address, custody_address, balance
            )
            gas_price = await self.chain.get_gas_price()
        except ChainRpcError as e:
            raise GasFundingFailed(f"Gas estimation failed: {e}") from e

        await self._ensure_gas(address, gas_limit, gas_price)

        try:
            tx_hash = await self.chain.send_token_transfer(
                token_address,
                account.signer,
                custody_address,
                balance,
                gas_limit=gas_limit,
                gas_price=gas_price,
            )
            receipt = await self.chain.wait_for_receipt(tx_hash)
        except ChainRpcError as e:
            raise SweepTransferFailed(f"Sweep of {mask_address(address)} failed: {e}") from e

        if receipt["status"] != 1:
            raise SweepTransferFailed(f"Sweep transaction {tx_hash} reverted")

        logger.success(
            f"[Sweep] Swept {balance} raw units {mask_address(address)} -> "
            f"{mask_address(custody_address)} (TX: {mask_tx_hash(tx_hash)})"
        )
        return tx_hash

    async def _ensure_gas(self, address: str, gas_limit: int, gas_price: int) -> None:
        try:
            native = await self.chain.get_native_balance(address)
        except ChainRpcError as e:
            raise GasFundingFailed(f"Native balance read failed: {e}") from e

        required = gas_limit * gas_price
        if native >= required and native > 0:
            return

        budget = (
            required * GAS_FUNDING_BUFFER_NUMERATOR // GAS_FUNDING_BUFFER_DENOMINATOR
        )
        if budget <= native:
            logger.debug(
                f"[Sweep] {mask_address(address)} needs no gas top-up "
                f"(gas {gas_limit} @ {gas_price})"
            )
            return

        # Top up a partially funded address to the same budget
        value = budget - native
        logger.info(
            f"[Sweep] Funding {mask_address(address)} with {value} wei "
            f"(gas {gas_limit} @ {gas_price})"
        )
        await self.hot_wallet.fund_gas(address, value, gas_price)
