"""
EIP-1559 Fee Estimation

Reads the current gas price and suggested priority fee from a chain (both
queries run concurrently) and applies a fixed safety buffer:

    max_priority_fee_per_gas = priority_fee * 150 // 100
    max_fee_per_gas          = base_fee * 120 // 100 + max_priority_fee_per_gas

Only dynamic-fee (type 2) pricing is produced. Legacy gas-price transactions
can be deprioritized or dropped on OP-stack L2s.
"""

import asyncio

from web3 import AsyncWeb3

from .schemas import FeeQuote
from ...engine.exceptions import FeeEstimationError
from ...utils import logger

#: Used when a node does not implement ``eth_maxPriorityFeePerGas``.
DEFAULT_PRIORITY_FEE_WEI: int = 1_000_000

BASE_FEE_BUFFER_PERCENT: int = 120
PRIORITY_FEE_BUFFER_PERCENT: int = 150


def apply_fee_buffer(base_fee: int, priority_fee: int) -> tuple:
    """
    Apply the buffer policy with integer arithmetic.

    Returns:
        tuple: ``(max_fee_per_gas, max_priority_fee_per_gas)``.
    """
    max_priority_fee = priority_fee * PRIORITY_FEE_BUFFER_PERCENT // 100
    max_fee = base_fee * BASE_FEE_BUFFER_PERCENT // 100 + max_priority_fee
    return max_fee, max_priority_fee


class FeeEstimator:
    """
    Produces a buffered ``FeeQuote`` for one settlement run.

    Stateless; a single instance is shared by all runs.
    """

    def __init__(self, default_priority_fee: int = DEFAULT_PRIORITY_FEE_WEI):
        self._default_priority_fee = default_priority_fee

    async def estimate(self, web3: AsyncWeb3) -> FeeQuote:
        """
        Query base and priority fee concurrently and buffer them.

        Args:
            web3: AsyncWeb3 instance connected to the target chain.

        Returns:
            FeeQuote: Buffered fee bid.

        Raises:
            FeeEstimationError: If the base fee cannot be read.
        """
        base_fee, (priority_fee, fallback) = await asyncio.gather(
            self._query_base_fee(web3),
            self._query_priority_fee(web3),
        )
        max_fee, max_priority_fee = apply_fee_buffer(base_fee, priority_fee)

        logger.debug(
            "Gas prices: baseFee=%s, priorityFee=%s, maxPriorityFee=%s, maxFee=%s",
            base_fee, priority_fee, max_priority_fee, max_fee,
        )
        return FeeQuote(
            base_fee=base_fee,
            priority_fee=priority_fee,
            max_priority_fee_per_gas=max_priority_fee,
            max_fee_per_gas=max_fee,
            priority_fee_fallback=fallback,
        )

    async def _query_base_fee(self, web3: AsyncWeb3) -> int:
        try:
            return int(await web3.eth.gas_price)
        except Exception as e:
            raise FeeEstimationError(f"Failed to read gas price: {e}") from e

    async def _query_priority_fee(self, web3: AsyncWeb3) -> tuple:
        try:
            return int(await web3.eth.max_priority_fee), False
        except Exception as e:
            logger.warning(
                "Priority fee query failed (%s); using default %s wei",
                e, self._default_priority_fee,
            )
            return self._default_priority_fee, True
