"""
Transaction submission layer tests: nonce serialization, broadcast failures
and the receipt wait.
"""

import asyncio
from unittest.mock import Mock

import pytest
from eth_account import Account

from test_mocks import (
    MOCK_CHAIN_ID,
    MOCK_FACILITATOR_ADDRESS,
    MOCK_TOKEN_ADDRESS,
    MockWeb3Provider,
    create_credential,
    tx_hash_for,
)

from x402_facilitator.adapters.evm.schemas import FeeQuote
from x402_facilitator.adapters.evm.submitter import TransactionSubmitter
from x402_facilitator.engine.exceptions import BroadcastError, ConfirmationTimeoutError

FEES = FeeQuote(
    base_fee=1_000,
    priority_fee=100,
    max_priority_fee_per_gas=150,
    max_fee_per_gas=1_350,
)


def _spy(submitter: TransactionSubmitter) -> Mock:
    spy = Mock(wraps=submitter.build_transaction)
    submitter.build_transaction = spy
    return spy


def _nonces(spy: Mock) -> list:
    return [c.kwargs["nonce"] for c in spy.call_args_list]


async def _submit(submitter, web3, credential, phase="transfer"):
    return await submitter.submit(
        web3, credential,
        chain_id=MOCK_CHAIN_ID, to=MOCK_TOKEN_ADDRESS, data="0x",
        gas=80_000, fees=FEES, phase=phase,
    )


class TestBuildTransaction:

    def test_dynamic_fee_fields(self):
        tx = TransactionSubmitter().build_transaction(
            chain_id=MOCK_CHAIN_ID, to=MOCK_TOKEN_ADDRESS.lower(), data="0x1234",
            gas=80_000, fees=FEES, nonce=7,
        )
        assert tx["type"] == 2
        assert tx["to"] == MOCK_TOKEN_ADDRESS
        assert tx["maxFeePerGas"] == 1_350
        assert tx["maxPriorityFeePerGas"] == 150
        assert tx["value"] == 0
        assert "gasPrice" not in tx


class TestSubmit:

    @pytest.mark.asyncio
    async def test_returns_hex_hash_and_signs_for_facilitator(self):
        web3 = MockWeb3Provider(pending_nonce=3)
        credential = create_credential()
        submitter = TransactionSubmitter()
        spy = _spy(submitter)
        tx_hash = await _submit(submitter, web3, credential)
        assert tx_hash == tx_hash_for(0)
        raw = web3.eth.sent_transactions[0]
        assert Account.recover_transaction(raw) == MOCK_FACILITATOR_ADDRESS
        assert _nonces(spy) == [3]

    @pytest.mark.asyncio
    async def test_concurrent_submissions_get_distinct_nonces(self):
        # the node keeps reporting the same pending count
        web3 = MockWeb3Provider(pending_nonce=5, receipt_statuses=[1] * 5)
        credential = create_credential()
        submitter = TransactionSubmitter()
        spy = _spy(submitter)

        hashes = await asyncio.gather(*[_submit(submitter, web3, credential) for _ in range(5)])

        assert sorted(_nonces(spy)) == [5, 6, 7, 8, 9]
        assert len(set(hashes)) == 5

    @pytest.mark.asyncio
    async def test_node_nonce_ahead_of_cache_wins(self):
        web3 = MockWeb3Provider(pending_nonce=0, receipt_statuses=[1, 1])
        credential = create_credential()
        submitter = TransactionSubmitter()
        spy = _spy(submitter)
        await _submit(submitter, web3, credential)
        web3.eth.pending_nonce = 10
        await _submit(submitter, web3, credential)
        assert _nonces(spy) == [0, 10]

    @pytest.mark.asyncio
    async def test_timeout_drops_cached_nonce(self):
        # the node lost the first transaction and still reports pending=5
        web3 = MockWeb3Provider(pending_nonce=5, receipt_statuses=[None, None])
        credential = create_credential()
        submitter = TransactionSubmitter()
        spy = _spy(submitter)

        tx_hash = await _submit(submitter, web3, credential)
        with pytest.raises(ConfirmationTimeoutError):
            await submitter.wait_for_receipt(
                web3, tx_hash, phase="transfer", timeout=0.02, poll_interval=0.01,
            )
        await _submit(submitter, web3, credential)

        assert _nonces(spy) == [5, 5]
        assert (MOCK_CHAIN_ID, credential.address.lower()) in submitter._last_nonce

    @pytest.mark.asyncio
    async def test_confirmed_transaction_keeps_cached_nonce(self):
        web3 = MockWeb3Provider(pending_nonce=5, receipt_statuses=[1, 1])
        credential = create_credential()
        submitter = TransactionSubmitter()
        spy = _spy(submitter)

        tx_hash = await _submit(submitter, web3, credential)
        await submitter.wait_for_receipt(web3, tx_hash, phase="transfer", timeout=1.0, poll_interval=0.01)
        await _submit(submitter, web3, credential)

        assert _nonces(spy) == [5, 6]

    @pytest.mark.asyncio
    async def test_broadcast_failure_raises_and_resets_nonce(self):
        web3 = MockWeb3Provider(pending_nonce=4, send_error=ValueError("nonce too low"))
        credential = create_credential()
        submitter = TransactionSubmitter()
        submitter._last_nonce[(MOCK_CHAIN_ID, credential.address.lower())] = 9

        with pytest.raises(BroadcastError) as exc_info:
            await _submit(submitter, web3, credential, phase="permit")
        assert exc_info.value.phase == "permit"
        assert exc_info.value.tx_hash is None
        assert (MOCK_CHAIN_ID, credential.address.lower()) not in submitter._last_nonce

    def test_lock_is_per_chain_and_account(self):
        submitter = TransactionSubmitter()
        lock = submitter.lock_for(1, MOCK_FACILITATOR_ADDRESS)
        assert submitter.lock_for(1, MOCK_FACILITATOR_ADDRESS.lower()) is lock
        assert submitter.lock_for(2, MOCK_FACILITATOR_ADDRESS) is not lock


class TestWaitForReceipt:

    @pytest.mark.asyncio
    async def test_returns_mined_receipt(self):
        web3 = MockWeb3Provider(receipt_statuses=[1])
        tx_hash = await _submit(TransactionSubmitter(), web3, create_credential())
        receipt = await TransactionSubmitter().wait_for_receipt(
            web3, tx_hash, phase="transfer", timeout=1.0, poll_interval=0.01,
        )
        assert receipt["status"] == 1

    @pytest.mark.asyncio
    async def test_timeout_keeps_hash(self):
        web3 = MockWeb3Provider(receipt_statuses=[None])
        tx_hash = await _submit(TransactionSubmitter(), web3, create_credential())
        with pytest.raises(ConfirmationTimeoutError) as exc_info:
            await TransactionSubmitter().wait_for_receipt(
                web3, tx_hash, phase="transfer", timeout=0.05, poll_interval=0.01,
            )
        assert exc_info.value.tx_hash == tx_hash
        assert web3.eth.calls.count("get_transaction_receipt") >= 2

    @pytest.mark.asyncio
    async def test_transient_rpc_error_keeps_polling(self):
        web3 = MockWeb3Provider(receipt_statuses=[1], receipt_errors=[ConnectionError("rpc hiccup")])
        tx_hash = await _submit(TransactionSubmitter(), web3, create_credential())
        receipt = await TransactionSubmitter().wait_for_receipt(
            web3, tx_hash, phase="transfer", timeout=1.0, poll_interval=0.01,
        )
        assert receipt["status"] == 1
        assert web3.eth.calls.count("get_transaction_receipt") == 2

    @pytest.mark.asyncio
    async def test_persistent_rpc_error_times_out(self):
        errors = [OSError("connection reset")] * 50
        web3 = MockWeb3Provider(receipt_statuses=[1], receipt_errors=errors)
        tx_hash = await _submit(TransactionSubmitter(), web3, create_credential())
        with pytest.raises(ConfirmationTimeoutError) as exc_info:
            await TransactionSubmitter().wait_for_receipt(
                web3, tx_hash, phase="transfer", timeout=0.05, poll_interval=0.01,
            )
        assert exc_info.value.tx_hash == tx_hash
        assert "connection reset" in str(exc_info.value)
