"""
Chain client.

Thin AsyncWeb3 facade exposing the RPC calls the deposit engine needs:
block height, Transfer log queries, balances, gas data, transaction
submission and receipt waits. Reads are retried with a timeout; writes
are submitted once.
"""

from dataclasses import dataclass
from typing import Any

from eth_account.signers.local import LocalAccount
from eth_utils import to_checksum_address
from loguru import logger
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.contract import AsyncContract
from web3.exceptions import TimeExhausted, Web3Exception

from app.config.constants import (
    BLOCKCHAIN_RPC_TIMEOUT,
    BLOCKCHAIN_TIMEOUT,
    NATIVE_TRANSFER_GAS,
    RECEIPT_TIMEOUT,
)
from app.utils.exceptions import ChainRpcError
from app.utils.security import mask_address, mask_tx_hash

from .constants import ERC20_ABI, TRANSFER_EVENT_TOPIC
from .nonce_manager import NonceManager
from .rpc_wrapper import rpc_call_with_retry, with_timeout


@dataclass(frozen=True)
class TransferLog:
    """Decoded ERC-20 Transfer event."""

    tx_hash: str
    log_index: int
    token_address: str
    from_address: str
    to_address: str
    value: int
    block_number: int


def address_to_topic(address: str) -> str:
    """Left-pad an address to a 32-byte log topic."""
    return "0x" + "0" * 24 + address.lower().removeprefix("0x")


def _to_hex(value: Any) -> str:
    if isinstance(value, str):
        return value if value.startswith("0x") else f"0x{value}"
    return Web3.to_hex(value)


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, str):
        return bytes.fromhex(value.removeprefix("0x"))
    return bytes(value)


def decode_transfer_log(log: Any) -> TransferLog | None:
    """
    Decode a raw Transfer log.

    Returns None for logs that are not a standard three-topic Transfer.
    """
    topics = log["topics"]
    if len(topics) != 3 or _to_hex(topics[0]).lower() != TRANSFER_EVENT_TOPIC:
        return None

    from_topic = _to_hex(topics[1])
    to_topic = _to_hex(topics[2])
    data = _to_bytes(log["data"])

    return TransferLog(
        tx_hash=_to_hex(log["transactionHash"]).lower(),
        log_index=int(log["logIndex"]),
        token_address=str(log["address"]).lower(),
        from_address="0x" + from_topic[-40:].lower(),
        to_address="0x" + to_topic[-40:].lower(),
        value=int.from_bytes(data[:32], "big") if data else 0,
        block_number=int(log["blockNumber"]),
    )


class ChainClient:
    """
    RPC access for the deposit engine.

    Every method raises ChainRpcError on provider failure so callers
    deal with a single transient error type.
    """

    def __init__(self, web3: AsyncWeb3) -> None:
        """
        Initialize chain client.

        Args:
            web3: AsyncWeb3 instance
        """
        self.web3 = web3
        self._contracts: dict[str, AsyncContract] = {}
        self._nonce_manager = NonceManager(web3=web3)

    @classmethod
    def from_url(cls, rpc_url: str) -> "ChainClient":
        """Create a client backed by an HTTP provider."""
        web3 = AsyncWeb3(
            AsyncHTTPProvider(
                rpc_url, request_kwargs={"timeout": BLOCKCHAIN_RPC_TIMEOUT}
            )
        )
        return cls(web3=web3)

    async def close(self) -> None:
        """Close the provider session."""
        try:
            await self.web3.provider.disconnect()
        except Exception as e:
            logger.warning(f"Error closing RPC provider: {e}")

    def token_contract(self, token_address: str) -> AsyncContract:
        """Get (cached) ERC-20 contract instance."""
        key = token_address.lower()
        if key not in self._contracts:
            self._contracts[key] = self.web3.eth.contract(
                address=to_checksum_address(token_address), abi=ERC20_ABI
            )
        return self._contracts[key]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_block_number(self) -> int:
        """Get current chain height."""
        return await rpc_call_with_retry(
            lambda: self.web3.eth.block_number,
            operation_name="eth_blockNumber",
        )

    async def get_transfer_logs(
        self,
        token_address: str,
        from_block: int,
        to_block: int,
        recipients: list[str],
    ) -> list[TransferLog]:
        """
        Query token Transfer events to any of the recipients.

        Args:
            token_address: ERC-20 contract address
            from_block: First block (inclusive)
            to_block: Last block (inclusive)
            recipients: Recipient addresses

        Returns:
            Decoded transfers sent to one of the recipients
        """
        if not recipients:
            return []

        filter_params = {
            "address": to_checksum_address(token_address),
            "fromBlock": from_block,
            "toBlock": to_block,
            "topics": [
                TRANSFER_EVENT_TOPIC,
                None,
                [address_to_topic(address) for address in recipients],
            ],
        }
        raw_logs = await rpc_call_with_retry(
            lambda: self.web3.eth.get_logs(filter_params),
            operation_name=f"eth_getLogs {from_block}-{to_block}",
        )

        wanted = {address.lower() for address in recipients}
        token = token_address.lower()
        transfers = []
        for raw_log in raw_logs:
            transfer = decode_transfer_log(raw_log)
            if transfer is None:
                continue
            if transfer.token_address != token or transfer.to_address not in wanted:
                continue
            transfers.append(transfer)
        return transfers

    async def get_token_balance(self, token_address: str, address: str) -> int:
        """Get token balance in raw units."""
        checksum = to_checksum_address(address)
        contract = self.token_contract(token_address)
        return await rpc_call_with_retry(
            lambda: contract.functions.balanceOf(checksum).call(),
            operation_name=f"balanceOf {mask_address(address)}",
        )

    async def get_native_balance(self, address: str) -> int:
        """Get native gas-token balance in wei."""
        checksum = to_checksum_address(address)
        return await rpc_call_with_retry(
            lambda: self.web3.eth.get_balance(checksum),
            operation_name=f"eth_getBalance {mask_address(address)}",
        )

    async def get_gas_price(self) -> int:
        """Get current gas price in wei."""
        return await rpc_call_with_retry(
            lambda: self.web3.eth.gas_price,
            operation_name="eth_gasPrice",
        )

    async def estimate_token_transfer_gas(
        self, token_address: str, from_address: str, to_address: str, amount: int
    ) -> int:
        """Estimate gas of transfer(to_address, amount) sent from from_address."""
        transfer = self.token_contract(token_address).functions.transfer(
            to_checksum_address(to_address), amount
        )
        sender = to_checksum_address(from_address)
        return await rpc_call_with_retry(
            lambda: transfer.estimate_gas({"from": sender}),
            operation_name="estimate_gas transfer",
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def send_native_transfer(
        self,
        signer: LocalAccount,
        to_address: str,
        value: int,
        gas_price: int,
    ) -> str:
        """
        Sign and submit a plain value transfer.

        Returns:
            Transaction hash (0x-prefixed)
        """
        try:
            nonce = await with_timeout(
                self._nonce_manager.get_safe_nonce(signer.address),
                operation_name="nonce lookup",
            )
            chain_id = await with_timeout(
                self.web3.eth.chain_id, operation_name="eth_chainId"
            )
            transaction = {
                "to": to_checksum_address(to_address),
                "value": value,
                "gas": NATIVE_TRANSFER_GAS,
                "gasPrice": gas_price,
                "nonce": nonce,
                "chainId": chain_id,
            }
            return await self._sign_and_send(signer, transaction)
        except (Web3Exception, ValueError) as e:
            raise ChainRpcError(f"Native transfer failed: {e}") from e

    async def send_token_transfer(
        self,
        token_address: str,
        signer: LocalAccount,
        to_address: str,
        amount: int,
        gas_limit: int,
        gas_price: int,
    ) -> str:
        """
        Sign and submit transfer(to_address, amount) from the signer.

        Returns:
            Transaction hash (0x-prefixed)
        """
        try:
            nonce = await with_timeout(
                self._nonce_manager.get_safe_nonce(signer.address),
                operation_name="nonce lookup",
            )
            chain_id = await with_timeout(
                self.web3.eth.chain_id, operation_name="eth_chainId"
            )
            transfer = self.token_contract(token_address).functions.transfer(
                to_checksum_address(to_address), amount
            )
            transaction = await with_timeout(
                transfer.build_transaction(
                    {
                        "from": signer.address,
                        "gas": gas_limit,
                        "gasPrice": gas_price,
                        "nonce": nonce,
                        "chainId": chain_id,
                    }
                ),
                operation_name="build transfer",
            )
            return await self._sign_and_send(signer, transaction)
        except (Web3Exception, ValueError) as e:
            raise ChainRpcError(f"Token transfer failed: {e}") from e

    async def _sign_and_send(
        self, signer: LocalAccount, transaction: dict[str, Any]
    ) -> str:
        signed_tx = signer.sign_transaction(transaction)
        tx_hash = await with_timeout(
            self.web3.eth.send_raw_transaction(signed_tx.raw_transaction),
            operation_name="eth_sendRawTransaction",
        )
        tx_hash_hex = _to_hex(tx_hash)
        logger.info(
            f"Transaction sent from {mask_address(signer.address)}: "
            f"{mask_tx_hash(tx_hash_hex)}"
        )
        return tx_hash_hex

    async def wait_for_receipt(
        self, tx_hash: str, timeout: float = RECEIPT_TIMEOUT
    ) -> dict[str, Any]:
        """
        Wait until a transaction is included.

        Returns:
            Receipt (``status`` 1 means success)

        Raises:
            ChainRpcError: If the transaction is not included in time
        """
        try:
            return await with_timeout(
                self.web3.eth.wait_for_transaction_receipt(
                    tx_hash, timeout=timeout, poll_latency=2
                ),
                timeout=timeout + BLOCKCHAIN_TIMEOUT,
                operation_name=f"receipt {mask_tx_hash(tx_hash)}",
            )
        except TimeExhausted as e:
            raise ChainRpcError(
                f"Transaction {tx_hash} not included after {timeout}s"
            ) from e
        except Web3Exception as e:
            raise ChainRpcError(f"Receipt lookup failed: {e}") from e
