"""
Timeouts and bounded retries for chain reads.

Every call the chain client makes goes through `with_timeout`; idempotent
reads (block height, logs, balances, gas) additionally go through
`rpc_call_with_retry`. Transaction submission is never retried here: a
replayed send could move funds twice.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger
from web3.exceptions import ContractLogicError

from app.config.constants import (
    BLOCKCHAIN_MAX_RETRIES,
    BLOCKCHAIN_RETRY_DELAY_BASE,
    BLOCKCHAIN_TIMEOUT,
)
from app.utils.exceptions import BlockchainTimeoutError, ChainRpcError


async def with_timeout(
    coro: Awaitable[Any],
    timeout: float = BLOCKCHAIN_TIMEOUT,
    operation_name: str = "RPC call",
) -> Any:
    """
    Await a chain call, failing with BlockchainTimeoutError after `timeout`.

    Raises:
        BlockchainTimeoutError: If the call did not finish in time
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except TimeoutError as e:
        raise BlockchainTimeoutError(
            f"{operation_name} timed out after {timeout}s"
        ) from e


async def rpc_call_with_retry(
    coro_factory: Callable[[], Awaitable[Any]],
    max_retries: int = BLOCKCHAIN_MAX_RETRIES,
    timeout: float = BLOCKCHAIN_TIMEOUT,
    operation_name: str = "RPC call",
    retry_delay_base: float = BLOCKCHAIN_RETRY_DELAY_BASE,
) -> Any:
    """
    Run an idempotent chain read with per-attempt timeout and backoff.

    A contract revert is deterministic and is raised on the first attempt.
    Anything else (connection resets, provider errors, timeouts) is
    retried with a delay of retry_delay_base ** attempt seconds.

    Args:
        coro_factory: Builds a fresh coroutine for each attempt
        max_retries: Total number of attempts
        timeout: Seconds allowed per attempt
        operation_name: Used in log lines and error messages
        retry_delay_base: Backoff base; 0 retries immediately

    Returns:
        Result of the first successful attempt

    Raises:
        BlockchainTimeoutError: If the final attempt timed out
        ChainRpcError: If the call reverted or every attempt failed
    """
    for attempt in range(1, max_retries + 1):
        try:
            result = await with_timeout(
                coro_factory(), timeout=timeout, operation_name=operation_name
            )
        except ContractLogicError as e:
            raise ChainRpcError(f"{operation_name} reverted: {e}") from e
        except Exception as e:
            if attempt == max_retries:
                logger.error(f"{operation_name} gave up after {attempt} attempt(s): {e}")
                if isinstance(e, BlockchainTimeoutError):
                    raise
                raise ChainRpcError(
                    f"{operation_name} failed after {attempt} attempt(s): {e}"
                ) from e

            delay = retry_delay_base ** (attempt - 1) if retry_delay_base else 0
            logger.warning(
                f"{operation_name} attempt {attempt}/{max_retries} failed: {e}; "
                f"retrying in {delay}s"
            )
            if delay:
                await asyncio.sleep(delay)
            continue

        if attempt > 1:
            logger.info(f"{operation_name} recovered on attempt {attempt}")
        return result

    raise ChainRpcError(f"{operation_name}: no attempts made (max_retries={max_retries})")
