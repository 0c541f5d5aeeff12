"""
Transaction Submission Layer

Signs, broadcasts and confirms facilitator transactions. All runs that share
a facilitator account on one chain go through the same
``TransactionSubmitter``, which serializes nonce allocation per
``(chain_id, address)``:

    async with lock:
        nonce = max(pending_count, last_used + 1)
        sign + eth_sendRawTransaction
    # lock released here; confirmation is awaited outside it

The receipt wait polls ``eth_getTransactionReceipt`` until the transaction is
mined (one confirmation) or the timeout elapses. RPC errors while polling are
logged and retried until the deadline. A timeout drops the cached nonce of
the sending account, so the next submission re-reads the node's pending
count instead of stacking nonces above a transaction the node has dropped.
"""

import asyncio
from collections import defaultdict
from typing import Any, Dict, Optional, Tuple

from web3 import AsyncWeb3
from web3.exceptions import TransactionNotFound

from .credentials import FacilitatorCredential
from .schemas import FeeQuote
from ...engine.exceptions import BroadcastError, ConfirmationTimeoutError
from ...utils import logger

#: EIP-1559 dynamic-fee transaction type.
DYNAMIC_FEE_TX_TYPE = 2

_AccountKey = Tuple[int, str]


class TransactionSubmitter:
    """
    Per-account nonce serialization plus broadcast and confirmation.

    One instance is shared by every settlement run of a process.
    """

    def __init__(self):
        self._locks: Dict[_AccountKey, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._last_nonce: Dict[_AccountKey, int] = {}
        self._in_flight: Dict[str, _AccountKey] = {}

    def lock_for(self, chain_id: int, address: str) -> asyncio.Lock:
        return self._locks[(chain_id, address.lower())]

    def build_transaction(
        self,
        *,
        chain_id: int,
        to: str,
        data: str,
        gas: int,
        fees: FeeQuote,
        nonce: int,
    ) -> Dict[str, Any]:
        """
        Build an unsigned EIP-1559 transaction dict.
        """
        return {
            "type": DYNAMIC_FEE_TX_TYPE,
            "chainId": chain_id,
            "to": AsyncWeb3.to_checksum_address(to),
            "data": data,
            "value": 0,
            "gas": gas,
            "maxFeePerGas": fees.max_fee_per_gas,
            "maxPriorityFeePerGas": fees.max_priority_fee_per_gas,
            "nonce": nonce,
        }

    async def _next_nonce(self, web3: AsyncWeb3, key: _AccountKey, address: str) -> int:
        pending = await web3.eth.get_transaction_count(
            AsyncWeb3.to_checksum_address(address), "pending"
        )
        last = self._last_nonce.get(key)
        if last is None:
            return int(pending)
        return max(int(pending), last + 1)

    async def submit(
        self,
        web3: AsyncWeb3,
        credential: FacilitatorCredential,
        *,
        chain_id: int,
        to: str,
        data: str,
        gas: int,
        fees: FeeQuote,
        phase: str,
    ) -> str:
        """
        Allocate a nonce, sign and broadcast one transaction.

        Args:
            web3: AsyncWeb3 instance for ``chain_id``.
            credential: Facilitator signing identity.
            chain_id: Target chain.
            to: Contract address called.
            data: ABI-encoded calldata.
            gas: Fixed gas limit.
            fees: Buffered EIP-1559 fee bid.
            phase: Phase label used in errors ("permit" or "transfer").

        Returns:
            str: 0x-prefixed transaction hash.

        Raises:
            BroadcastError: Nonce lookup, signing or broadcast failed.
        """
        key = (chain_id, credential.address.lower())
        async with self.lock_for(chain_id, credential.address):
            try:
                nonce = await self._next_nonce(web3, key, credential.address)
                tx = self.build_transaction(
                    chain_id=chain_id, to=to, data=data, gas=gas, fees=fees, nonce=nonce,
                )
                signed = credential.sign_transaction(tx)
                tx_hash = await web3.eth.send_raw_transaction(signed.raw_transaction)
            except Exception as e:
                # the node may not have seen this nonce; re-read it next time
                self._last_nonce.pop(key, None)
                raise BroadcastError(
                    f"Failed to broadcast {phase} transaction: {e}", phase=phase
                ) from e
            self._last_nonce[key] = nonce

        tx_hash_hex = AsyncWeb3.to_hex(tx_hash)
        self._in_flight[tx_hash_hex] = key
        logger.debug("Broadcast %s tx %s (chain=%s, nonce=%s)", phase, tx_hash_hex, chain_id, nonce)
        return tx_hash_hex

    async def wait_for_receipt(
        self,
        web3: AsyncWeb3,
        tx_hash: str,
        *,
        phase: str,
        timeout: float = 120.0,
        poll_interval: float = 2.0,
    ) -> Dict[str, Any]:
        """
        Poll for the receipt of ``tx_hash`` until it is mined.

        Args:
            web3: AsyncWeb3 instance for the chain.
            tx_hash: Transaction hash returned by :meth:`submit`.
            phase: Phase label used in errors.
            timeout: Maximum seconds to wait.
            poll_interval: Seconds between polls.

        Returns:
            Receipt mapping (``status``, ``gasUsed``, ``blockNumber``, ...).

        Raises:
            ConfirmationTimeoutError: Still pending after ``timeout`` seconds.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        last_error: Optional[Exception] = None
        while True:
            receipt: Optional[Any] = None
            try:
                receipt = await web3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                pass  # still pending
            except Exception as e:
                # the transaction is already broadcast; keep polling
                last_error = e
                logger.warning("Receipt poll for %s tx %s failed: %s", phase, tx_hash, e)
            if receipt:
                self._in_flight.pop(tx_hash, None)
                return receipt
            remaining = deadline - loop.time()
            if remaining <= 0:
                self._forget_nonce(tx_hash)
                message = f"{phase.capitalize()} transaction {tx_hash} not confirmed within {timeout}s"
                if last_error is not None:
                    message += f" (last receipt error: {last_error})"
                raise ConfirmationTimeoutError(message, phase=phase, tx_hash=tx_hash)
            await asyncio.sleep(min(poll_interval, remaining))

    def _forget_nonce(self, tx_hash: str) -> None:
        key = self._in_flight.pop(tx_hash, None)
        if key is not None and self._last_nonce.pop(key, None) is not None:
            logger.warning(
                "Dropped cached nonce for chain=%s account=%s after %s timed out", key[0], key[1], tx_hash
            )
