"""
Settlement Executor Test Suite

End-to-end settlement runs against the offline MockWeb3Provider:
- Permit (two-phase) and authorized-transfer (single-phase) success
- Preflight ordering: unsupported chain, spender mismatch, malformed
  signature and insufficient gas balance never submit a transaction
- Post-submission failures keep phase and hashes
- Verification runs the same preflight and submits nothing
"""

from unittest.mock import AsyncMock, patch

import pytest

from test_mocks import (
    MOCK_BALANCE,
    MOCK_CHAIN_ID,
    MOCK_OTHER_ADDRESS,
    MOCK_OWNER_ADDRESS,
    MOCK_RECIPIENT_ADDRESS,
    MOCK_SIGNATURE,
    MOCK_TOKEN_ADDRESS,
    MockWeb3Provider,
    create_credential,
    create_permit_authorization,
    create_raw_permit_authorization,
    create_registry,
    create_transfer_authorization,
    create_v2_payload,
    create_v2_requirements,
    tx_hash_for,
)

from x402_facilitator.adapters.evm.ERC20_ABI import (
    encode_function_call,
    get_permit_abi,
    get_transfer_from_abi,
    get_transfer_with_authorization_abi,
)
from x402_facilitator.adapters.evm.chains import ChainRegistry
from x402_facilitator.engine.exceptions import SettlementErrorKind
from x402_facilitator.engine.executors import SettlementExecutor
from x402_facilitator.engine.normalizer import normalize
from x402_facilitator.engine.states import SettlementState
from x402_facilitator.engine.strategies import (
    AuthorizedTransferStrategy,
    PermitStrategy,
)


def _executor(**kwargs) -> SettlementExecutor:
    kwargs.setdefault("credential", create_credential())
    kwargs.setdefault("confirmation_timeout", 0.05)
    kwargs.setdefault("poll_interval", 0.01)
    registry = kwargs.pop("registry", None) or create_registry()
    return SettlementExecutor(registry, **kwargs)


async def _settle(executor, web3, authorization, **overrides):
    params = dict(
        chain_id=MOCK_CHAIN_ID,
        token_address=MOCK_TOKEN_ADDRESS,
        authorization=authorization,
        signature=MOCK_SIGNATURE,
        recipient=MOCK_RECIPIENT_ADDRESS,
    )
    params.update(overrides)
    with patch.object(executor, "_get_web3_instance", return_value=web3) as get_web3:
        result = await executor.settle(**params)
    return result, get_web3


class TestPermitSettlement:
    """EIP-2612 permit + transferFrom."""

    @pytest.mark.asyncio
    async def test_success_reports_both_hashes_and_summed_gas(self):
        web3 = MockWeb3Provider(receipt_statuses=[1, 1], gas_used=[46_000, 52_000])
        result, _ = await _settle(_executor(), web3, create_permit_authorization())

        assert result.success is True
        assert result.strategy == "permit"
        assert result.permit_transaction_hash == tx_hash_for(0)
        assert result.transfer_transaction_hash == tx_hash_for(1)
        assert result.transaction_hashes == [tx_hash_for(0), tx_hash_for(1)]
        assert result.transaction_hash == tx_hash_for(1)
        assert result.gas_used == 98_000
        assert result.payer == MOCK_OWNER_ADDRESS
        assert result.error_kind is None
        assert web3.eth.submissions == 2

    @pytest.mark.asyncio
    async def test_success_response_shape(self):
        web3 = MockWeb3Provider(receipt_statuses=[1, 1], gas_used=[46_000, 52_000])
        result, _ = await _settle(_executor(), web3, create_permit_authorization())
        response = result.to_response()
        assert response["success"] is True
        assert response["gasUsed"] == "98000"
        assert response["transactionHash"] == tx_hash_for(1)
        assert response["network"] == f"eip155:{MOCK_CHAIN_ID}"
        assert "errorMessage" not in response

    @pytest.mark.asyncio
    async def test_calldata_matches_abi(self):
        web3 = MockWeb3Provider(receipt_statuses=[1, 1])
        executor = _executor()
        authorization = create_permit_authorization()
        builds = []
        original = executor.submitter.build_transaction

        def _record(**kwargs):
            builds.append(kwargs)
            return original(**kwargs)

        with patch.object(executor.submitter, "build_transaction", side_effect=_record):
            result, _ = await _settle(executor, web3, authorization)

        assert result.success
        permit_data = encode_function_call(get_permit_abi(), "permit", [
            authorization.owner, authorization.spender, 1_000_000, authorization.deadline,
            27, b"\x11" * 32, b"\x22" * 32,
        ])
        transfer_data = encode_function_call(get_transfer_from_abi(), "transferFrom", [
            authorization.owner, MOCK_RECIPIENT_ADDRESS, 1_000_000,
        ])
        assert [b["data"] for b in builds] == [permit_data, transfer_data]
        assert [b["gas"] for b in builds] == [80_000, 80_000]
        assert all(b["to"] == MOCK_TOKEN_ADDRESS for b in builds)

    @pytest.mark.asyncio
    async def test_spender_mismatch_makes_no_network_call(self):
        web3 = MockWeb3Provider()
        authorization = create_permit_authorization(spender=MOCK_OTHER_ADDRESS)
        result, get_web3 = await _settle(_executor(), web3, authorization)

        assert result.success is False
        assert result.error_kind is SettlementErrorKind.SPENDER_MISMATCH
        assert result.phase is SettlementState.IDLE
        assert result.transaction_hashes == []
        get_web3.assert_not_called()
        assert web3.eth.calls == []

    @pytest.mark.asyncio
    async def test_permit_revert_keeps_permit_hash_only(self):
        web3 = MockWeb3Provider(receipt_statuses=[0, 1], gas_used=[30_000, 0])
        result, _ = await _settle(_executor(), web3, create_permit_authorization())

        assert result.success is False
        assert result.error_kind is SettlementErrorKind.PERMIT_REVERTED
        assert "Permit" in result.error_message
        assert result.phase is SettlementState.PERMIT_SUBMITTED
        assert result.permit_transaction_hash == tx_hash_for(0)
        assert result.transfer_transaction_hash is None
        assert result.gas_used == 30_000
        assert web3.eth.submissions == 1

    @pytest.mark.asyncio
    async def test_transfer_revert_reports_residual_approval(self):
        web3 = MockWeb3Provider(receipt_statuses=[1, 0], gas_used=[46_000, 25_000])
        result, _ = await _settle(_executor(), web3, create_permit_authorization())

        assert result.success is False
        assert result.error_kind is SettlementErrorKind.TRANSFER_REVERTED
        assert result.phase is SettlementState.TRANSFER_SUBMITTED
        assert result.permit_transaction_hash == tx_hash_for(0)
        assert result.transfer_transaction_hash == tx_hash_for(1)
        assert result.gas_used == 71_000
        assert "allowance" in result.error_message

    @pytest.mark.asyncio
    async def test_transfer_confirmation_timeout_is_distinct_from_revert(self):
        web3 = MockWeb3Provider(receipt_statuses=[1, None])
        result, _ = await _settle(_executor(), web3, create_permit_authorization())

        assert result.success is False
        assert result.error_kind is SettlementErrorKind.CONFIRMATION_TIMEOUT
        assert result.phase is SettlementState.TRANSFER_SUBMITTED
        assert result.transfer_transaction_hash == tx_hash_for(1)

    @pytest.mark.asyncio
    async def test_broadcast_failure(self):
        web3 = MockWeb3Provider(send_error=ValueError("replacement transaction underpriced"))
        result, _ = await _settle(_executor(), web3, create_permit_authorization())

        assert result.success is False
        assert result.error_kind is SettlementErrorKind.BROADCAST_FAILED
        assert result.phase is SettlementState.PREFLIGHT_CHECKED
        assert result.transaction_hashes == []


class TestPreflight:
    """Checks that run before any transaction is built."""

    @pytest.mark.asyncio
    async def test_insufficient_balance_never_submits(self):
        web3 = MockWeb3Provider(balance=1)
        web3.eth.send_raw_transaction = AsyncMock(
            side_effect=AssertionError("no transaction may be submitted")
        )
        result, _ = await _settle(_executor(), web3, create_permit_authorization())

        assert result.success is False
        assert result.error_kind is SettlementErrorKind.INSUFFICIENT_GAS_BALANCE
        assert result.error_kind.is_preflight
        web3.eth.send_raw_transaction.assert_not_called()

    @pytest.mark.asyncio
    async def test_balance_budget_uses_strategy_gas_and_max_fee(self):
        # max_fee = 1e9 * 1.2 + 1e8 * 1.5 = 1.35e9 wei
        required = PermitStrategy().gas_budget * 1_350_000_000
        exact = MockWeb3Provider(balance=required, receipt_statuses=[1, 1])
        short = MockWeb3Provider(balance=required - 1)

        ok, _ = await _settle(_executor(), exact, create_permit_authorization())
        failed, _ = await _settle(_executor(), short, create_permit_authorization())

        assert ok.success
        assert failed.error_kind is SettlementErrorKind.INSUFFICIENT_GAS_BALANCE

    def test_gas_budgets(self):
        assert PermitStrategy().gas_budget == 160_000
        assert AuthorizedTransferStrategy().gas_budget == 100_000

    @pytest.mark.asyncio
    async def test_unsupported_chain_before_any_rpc(self):
        web3 = MockWeb3Provider()
        result, get_web3 = await _settle(_executor(), web3, create_permit_authorization(), chain_id=999999)

        assert result.success is False
        assert result.error_kind is SettlementErrorKind.UNSUPPORTED_CHAIN
        assert result.chain_id == 999999
        get_web3.assert_not_called()

    @pytest.mark.asyncio
    async def test_malformed_signature(self):
        web3 = MockWeb3Provider()
        result, get_web3 = await _settle(
            _executor(), web3, create_permit_authorization(), signature=MOCK_SIGNATURE[:-2],
        )
        assert result.error_kind is SettlementErrorKind.MALFORMED_SIGNATURE
        get_web3.assert_not_called()

    @pytest.mark.asyncio
    async def test_fee_estimation_failure(self):
        web3 = MockWeb3Provider(gas_price=ConnectionError("rpc down"))
        result, _ = await _settle(_executor(), web3, create_permit_authorization())
        assert result.error_kind is SettlementErrorKind.ESTIMATION_ERROR
        assert web3.eth.submissions == 0

    @pytest.mark.asyncio
    async def test_missing_credential(self):
        executor = _executor(credential=None)
        result, _ = await _settle(executor, MockWeb3Provider(), create_permit_authorization())
        assert result.success is False
        assert result.error_kind is SettlementErrorKind.UNKNOWN_ERROR

    @pytest.mark.asyncio
    async def test_per_call_credential(self):
        executor = _executor(credential=None)
        web3 = MockWeb3Provider(receipt_statuses=[1, 1])
        result, _ = await _settle(executor, web3, create_permit_authorization(), credential=create_credential())
        assert result.success

    @pytest.mark.asyncio
    async def test_dict_authorization_is_validated(self):
        web3 = MockWeb3Provider(receipt_statuses=[1, 1])
        raw = {"strategy": "permit", **create_raw_permit_authorization()}
        raw["deadline"] = int(raw["deadline"])
        result, _ = await _settle(_executor(), web3, raw)
        assert result.success

    @pytest.mark.asyncio
    async def test_unknown_strategy(self):
        result, get_web3 = await _settle(_executor(), MockWeb3Provider(), {"strategy": "bridge"})
        assert result.error_kind is SettlementErrorKind.VALIDATION_ERROR
        get_web3.assert_not_called()


class TestAuthorizedTransferSettlement:
    """EIP-3009 transferWithAuthorization."""

    @pytest.mark.asyncio
    async def test_success_single_hash(self):
        web3 = MockWeb3Provider(receipt_statuses=[1], gas_used=[61_000])
        result, _ = await _settle(_executor(), web3, create_transfer_authorization())

        assert result.success is True
        assert result.strategy == "authorized_transfer"
        assert result.permit_transaction_hash is None
        assert result.transaction_hashes == [tx_hash_for(0)]
        assert result.gas_used == 61_000
        assert web3.eth.submissions == 1

    @pytest.mark.asyncio
    async def test_calldata_and_gas_limit(self):
        web3 = MockWeb3Provider(receipt_statuses=[1])
        executor = _executor()
        authorization = create_transfer_authorization()
        with patch.object(
            executor.submitter, "build_transaction", wraps=executor.submitter.build_transaction
        ) as build:
            await _settle(executor, web3, authorization)

        expected = encode_function_call(
            get_transfer_with_authorization_abi(), "transferWithAuthorization", [
                authorization.owner, authorization.to, 1_000_000,
                authorization.valid_after, authorization.valid_before, authorization.nonce_bytes,
                27, b"\x11" * 32, b"\x22" * 32,
            ],
        )
        assert build.call_args.kwargs["data"] == expected
        assert build.call_args.kwargs["gas"] == 100_000

    @pytest.mark.asyncio
    async def test_recipient_mismatch(self):
        web3 = MockWeb3Provider()
        result, get_web3 = await _settle(
            _executor(), web3, create_transfer_authorization(to=MOCK_OTHER_ADDRESS),
        )
        assert result.error_kind is SettlementErrorKind.SPENDER_MISMATCH
        get_web3.assert_not_called()

    @pytest.mark.asyncio
    async def test_revert_has_no_partial_state(self):
        web3 = MockWeb3Provider(receipt_statuses=[0])
        result, _ = await _settle(_executor(), web3, create_transfer_authorization())
        assert result.error_kind is SettlementErrorKind.TRANSFER_REVERTED
        assert result.permit_transaction_hash is None
        assert result.transaction_hashes == [tx_hash_for(0)]

    @pytest.mark.asyncio
    async def test_receipt_poll_error_does_not_fail_mined_transfer(self):
        web3 = MockWeb3Provider(receipt_statuses=[1], receipt_errors=[ConnectionError("rpc hiccup")])
        result, _ = await _settle(_executor(), web3, create_transfer_authorization())
        assert result.success is True
        assert result.transaction_hashes == [tx_hash_for(0)]


class TestSettlePayment:

    @pytest.mark.asyncio
    async def test_settles_normalized_v2_payment(self):
        payment = normalize(
            create_v2_payload(network=f"eip155:{MOCK_CHAIN_ID}"),
            create_v2_requirements(network=f"eip155:{MOCK_CHAIN_ID}"),
        )
        executor = _executor()
        web3 = MockWeb3Provider(receipt_statuses=[1])
        with patch.object(executor, "_get_web3_instance", return_value=web3):
            result = await executor.settle_payment(payment)
        assert result.success
        assert result.chain_id == MOCK_CHAIN_ID

    def test_web3_instance_uses_registry_rpc(self):
        executor = SettlementExecutor(ChainRegistry.from_env(environ={"BASE_RPC_URL": "http://node:8545"}))
        web3 = executor._get_web3_instance(executor.registry.lookup(8453))
        assert web3.provider.endpoint_uri == "http://node:8545"

    @pytest.mark.asyncio
    async def test_balance_is_read_for_facilitator(self):
        web3 = MockWeb3Provider(balance=MOCK_BALANCE, receipt_statuses=[1])
        web3.eth.get_balance = AsyncMock(return_value=MOCK_BALANCE)
        credential = create_credential()
        await _settle(_executor(credential=credential), web3, create_transfer_authorization())
        web3.eth.get_balance.assert_awaited_once_with(credential.address)


class TestVerify:
    """Preflight without submission."""

    async def _verify(self, executor, web3, authorization, **overrides):
        params = dict(
            chain_id=MOCK_CHAIN_ID,
            token_address=MOCK_TOKEN_ADDRESS,
            authorization=authorization,
            signature=MOCK_SIGNATURE,
            recipient=MOCK_RECIPIENT_ADDRESS,
        )
        params.update(overrides)
        with patch.object(executor, "_get_web3_instance", return_value=web3) as get_web3:
            result = await executor.verify(**params)
        return result, get_web3

    @pytest.mark.asyncio
    async def test_valid_authorization_submits_nothing(self):
        web3 = MockWeb3Provider()
        result, _ = await self._verify(_executor(), web3, create_transfer_authorization())

        assert result.is_valid is True
        assert result.strategy == "authorized_transfer"
        assert result.chain_id == MOCK_CHAIN_ID
        assert result.payer == MOCK_OWNER_ADDRESS
        assert result.to_response() == {"isValid": True, "payer": MOCK_OWNER_ADDRESS}
        assert "get_balance" in web3.eth.calls
        assert web3.eth.submissions == 0
        assert "get_transaction_count" not in web3.eth.calls

    @pytest.mark.asyncio
    async def test_insufficient_balance_is_invalid(self):
        web3 = MockWeb3Provider(balance=1)
        result, _ = await self._verify(_executor(), web3, create_permit_authorization())

        assert result.is_valid is False
        assert result.invalid_reason is SettlementErrorKind.INSUFFICIENT_GAS_BALANCE
        assert result.to_response()["invalidReason"] == "insufficient_gas_balance"
        assert web3.eth.submissions == 0

    @pytest.mark.asyncio
    async def test_spender_mismatch_makes_no_network_call(self):
        result, get_web3 = await self._verify(
            _executor(), MockWeb3Provider(), create_permit_authorization(spender=MOCK_OTHER_ADDRESS),
        )
        assert result.invalid_reason is SettlementErrorKind.SPENDER_MISMATCH
        assert result.payer == MOCK_OWNER_ADDRESS
        get_web3.assert_not_called()

    @pytest.mark.asyncio
    async def test_malformed_signature(self):
        result, _ = await self._verify(
            _executor(), MockWeb3Provider(), create_transfer_authorization(), signature="0x1234",
        )
        assert result.invalid_reason is SettlementErrorKind.MALFORMED_SIGNATURE

    @pytest.mark.asyncio
    async def test_unexpected_error_is_unknown(self):
        web3 = MockWeb3Provider()
        web3.eth.get_balance = AsyncMock(side_effect=RuntimeError("node down"))
        result, _ = await self._verify(_executor(), web3, create_transfer_authorization())
        assert result.is_valid is False
        assert result.invalid_reason is SettlementErrorKind.UNKNOWN_ERROR
        assert "RuntimeError: node down" in result.invalid_message

    @pytest.mark.asyncio
    async def test_verify_payment(self):
        payment = normalize(
            create_v2_payload(network=f"eip155:{MOCK_CHAIN_ID}"),
            create_v2_requirements(network=f"eip155:{MOCK_CHAIN_ID}"),
        )
        executor = _executor()
        web3 = MockWeb3Provider()
        with patch.object(executor, "_get_web3_instance", return_value=web3):
            result = await executor.verify_payment(payment)
        assert result.is_valid is True
        assert web3.eth.submissions == 0
