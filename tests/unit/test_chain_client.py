"""Unit tests for the chain client and RPC wrapper."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.services.blockchain.chain_client import (
    ChainClient,
    address_to_topic,
    decode_transfer_log,
)
from app.services.blockchain.constants import TRANSFER_EVENT_TOPIC
from app.services.blockchain.rpc_wrapper import rpc_call_with_retry, with_timeout
from app.utils.exceptions import BlockchainTimeoutError, ChainRpcError
from conftest import TOKEN_ADDRESS

SENDER = "0x" + "ab" * 20
RECIPIENT = "0x9965507d1a55bcc2695c58ba16fb37d819b0a4dc"
TX_HASH = "0x" + "5e" * 32


def raw_log(
    to_address=RECIPIENT,
    value=100_000_000,
    token=TOKEN_ADDRESS,
    topic0=TRANSFER_EVENT_TOPIC,
    log_index=2,
):
    """Raw eth_getLogs entry as returned by web3 (bytes fields)."""
    return {
        "address": token,
        "topics": [
            bytes.fromhex(topic0[2:]),
            bytes.fromhex(address_to_topic(SENDER)[2:]),
            bytes.fromhex(address_to_topic(to_address)[2:]),
        ],
        "data": value.to_bytes(32, "big"),
        "transactionHash": bytes.fromhex(TX_HASH[2:]),
        "logIndex": log_index,
        "blockNumber": 104,
    }


class TestDecodeTransferLog:
    """Decoding raw Transfer logs."""

    def test_transfer_topic(self):
        assert TRANSFER_EVENT_TOPIC == (
            "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
        )

    def test_address_to_topic(self):
        topic = address_to_topic(RECIPIENT.upper().replace("0X", "0x"))
        assert len(topic) == 66
        assert topic.endswith(RECIPIENT[2:])

    def test_decodes_bytes_log(self):
        transfer = decode_transfer_log(raw_log())

        assert transfer.tx_hash == TX_HASH
        assert transfer.log_index == 2
        assert transfer.token_address == TOKEN_ADDRESS
        assert transfer.from_address == SENDER
        assert transfer.to_address == RECIPIENT
        assert transfer.value == 100_000_000
        assert transfer.block_number == 104

    def test_decodes_hex_string_log(self):
        log = raw_log()
        log["topics"] = ["0x" + t.hex() for t in log["topics"]]
        log["data"] = "0x" + log["data"].hex()
        log["transactionHash"] = TX_HASH

        assert decode_transfer_log(log).value == 100_000_000

    def test_other_event_ignored(self):
        assert decode_transfer_log(raw_log(topic0="0x" + "00" * 32)) is None

    def test_wrong_topic_count_ignored(self):
        log = raw_log()
        log["topics"] = log["topics"][:2]
        assert decode_transfer_log(log) is None


class TestGetTransferLogs:
    """Log queries through a mocked AsyncWeb3."""

    @pytest.fixture
    def web3(self):
        web3 = MagicMock()
        web3.eth.get_logs = AsyncMock(return_value=[])
        return web3

    @pytest.mark.asyncio
    async def test_no_recipients_no_query(self, web3):
        client = ChainClient(web3)

        assert await client.get_transfer_logs(TOKEN_ADDRESS, 1, 10, []) == []
        web3.eth.get_logs.assert_not_called()

    @pytest.mark.asyncio
    async def test_filter_params(self, web3):
        client = ChainClient(web3)

        await client.get_transfer_logs(TOKEN_ADDRESS, 101, 1100, [RECIPIENT])

        params = web3.eth.get_logs.await_args.args[0]
        assert params["fromBlock"] == 101
        assert params["toBlock"] == 1100
        assert params["address"].lower() == TOKEN_ADDRESS
        assert params["topics"][0] == TRANSFER_EVENT_TOPIC
        assert params["topics"][1] is None
        assert params["topics"][2] == [address_to_topic(RECIPIENT)]

    @pytest.mark.asyncio
    async def test_filters_foreign_logs(self, web3):
        web3.eth.get_logs.return_value = [
            raw_log(),
            raw_log(token="0x" + "11" * 20, log_index=3),
            raw_log(to_address="0x" + "22" * 20, log_index=4),
        ]
        client = ChainClient(web3)

        transfers = await client.get_transfer_logs(TOKEN_ADDRESS, 1, 200, [RECIPIENT])

        assert [t.log_index for t in transfers] == [2]


class TestRpcWrapper:
    """Timeout and retry helpers."""

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise ConnectionError("node down")
            return 42

        result = await rpc_call_with_retry(lambda: flaky(), max_retries=3, retry_delay_base=0)

        assert result == 42
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_chain_error(self):
        async def broken():
            raise ConnectionError("node down")

        with pytest.raises(ChainRpcError):
            await rpc_call_with_retry(lambda: broken(), max_retries=2, retry_delay_base=0)

    @pytest.mark.asyncio
    async def test_timeout(self):
        with pytest.raises(BlockchainTimeoutError):
            await with_timeout(asyncio.sleep(1), timeout=0.01)

    @pytest.mark.asyncio
    async def test_timeout_is_chain_error(self):
        async def slow():
            await asyncio.sleep(1)

        with pytest.raises(ChainRpcError):
            await rpc_call_with_retry(
                lambda: slow(), max_retries=1, timeout=0.01, retry_delay_base=0
            )
