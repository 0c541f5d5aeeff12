"""
Settlement strategies.

A strategy knows which on-chain calls redeem one kind of authorization:

    PermitStrategy               permit(...) then transferFrom(...)   two phases
    AuthorizedTransferStrategy   transferWithAuthorization(...)       one phase

Strategies are stateless. Per-run data travels in a ``SettlementContext``;
progress is recorded on its ``SettlementRun`` through the reporter so the
executor can describe partial failures.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Tuple

from web3 import AsyncWeb3

from .exceptions import (
    PermitRevertedError,
    RecipientMismatchError,
    SpenderMismatchError,
    TransferRevertedError,
)
from .reporter import ResultReporter
from .states import SettlementRun, SettlementState
from ..adapters.evm.ERC20_ABI import (
    encode_function_call,
    get_permit_abi,
    get_transfer_from_abi,
    get_transfer_with_authorization_abi,
)
from ..adapters.evm.chains import ChainConfig
from ..adapters.evm.credentials import FacilitatorCredential
from ..adapters.evm.schemas import (
    EVMECDSASignature,
    FeeQuote,
    PermitAuthorization,
    TransferAuthorization,
)
from ..adapters.evm.submitter import TransactionSubmitter

PERMIT_GAS_LIMIT = 80_000
TRANSFER_FROM_GAS_LIMIT = 80_000
TRANSFER_WITH_AUTHORIZATION_GAS_LIMIT = 100_000


def _same_address(a: str, b: str) -> bool:
    return a.lower() == b.lower()


@dataclass
class SettlementContext:
    """Everything one run needs once preflight has passed."""

    web3: AsyncWeb3
    chain: ChainConfig
    token: str
    recipient: str
    signature: EVMECDSASignature
    fees: FeeQuote
    credential: FacilitatorCredential
    submitter: TransactionSubmitter
    reporter: ResultReporter
    run: SettlementRun
    confirmation_timeout: float = 120.0
    poll_interval: float = 2.0

    async def send(self, data: str, gas: int, phase: str) -> str:
        return await self.submitter.submit(
            self.web3,
            self.credential,
            chain_id=self.chain.chain_id,
            to=self.token,
            data=data,
            gas=gas,
            fees=self.fees,
            phase=phase,
        )

    async def confirm(self, tx_hash: str, phase: str) -> Mapping[str, Any]:
        return await self.submitter.wait_for_receipt(
            self.web3,
            tx_hash,
            phase=phase,
            timeout=self.confirmation_timeout,
            poll_interval=self.poll_interval,
        )


def _receipt_succeeded(receipt: Mapping[str, Any]) -> bool:
    return receipt.get("status") == 1


def _receipt_gas(receipt: Mapping[str, Any]) -> int:
    return int(receipt.get("gasUsed") or 0)


class SettlementStrategy(ABC):
    """Base class for the on-chain redemption of one authorization kind."""

    #: Authorization ``strategy`` tag handled by this class.
    name: str = ""
    #: Fixed gas limit of every transaction, in submission order.
    gas_limits: Tuple[int, ...] = ()

    @property
    def gas_budget(self) -> int:
        """Total gas the run may consume; used for the balance preflight."""
        return sum(self.gas_limits)

    @abstractmethod
    def check_authorization(self, authorization: Any, credential: FacilitatorCredential, recipient: str) -> None:
        """
        Local identity check run during preflight, before any RPC call.

        Raises:
            SpenderMismatchError: The authorization cannot be redeemed by this
                facilitator for this recipient.
        """

    @abstractmethod
    async def execute(self, authorization: Any, context: SettlementContext) -> None:
        """
        Submit and confirm every transaction of the strategy.

        Leaves ``context.run`` in TRANSFER_CONFIRMED on success.

        Raises:
            SettlementPhaseError: A phase was rejected, reverted or timed out.
        """


class PermitStrategy(SettlementStrategy):
    """
    EIP-2612 ``permit`` followed by ``transferFrom``.

    If the transfer phase reverts after the permit was mined, the owner keeps
    an on-chain allowance to the facilitator with no matching transfer. No
    revoke is attempted; the result reports both hashes.
    """

    name = "permit"
    gas_limits = (PERMIT_GAS_LIMIT, TRANSFER_FROM_GAS_LIMIT)

    def check_authorization(
        self, authorization: PermitAuthorization, credential: FacilitatorCredential, recipient: str
    ) -> None:
        if not _same_address(authorization.spender, credential.address):
            raise SpenderMismatchError(
                f"Spender mismatch: permit authorizes {authorization.spender}, "
                f"facilitator is {credential.address}",
                expected=credential.address,
                provided=authorization.spender,
            )

    async def execute(self, authorization: PermitAuthorization, context: SettlementContext) -> None:
        run = context.run
        owner = AsyncWeb3.to_checksum_address(authorization.owner)
        value = authorization.value_int

        permit_data = encode_function_call(
            get_permit_abi(),
            "permit",
            [
                owner,
                AsyncWeb3.to_checksum_address(authorization.spender),
                value,
                authorization.deadline,
                context.signature.v,
                context.signature.r_bytes,
                context.signature.s_bytes,
            ],
        )
        permit_hash = await context.send(permit_data, PERMIT_GAS_LIMIT, phase="permit")
        run.permit_transaction_hash = permit_hash
        context.reporter.transition(run, SettlementState.PERMIT_SUBMITTED, tx_hash=permit_hash)

        receipt = await context.confirm(permit_hash, phase="permit")
        if not _receipt_succeeded(receipt):
            raise PermitRevertedError(
                f"Permit transaction reverted: {permit_hash}",
                phase="permit",
                tx_hash=permit_hash,
                gas_used=_receipt_gas(receipt),
            )
        run.gas_used += _receipt_gas(receipt)
        context.reporter.transition(run, SettlementState.PERMIT_CONFIRMED, tx_hash=permit_hash)

        transfer_data = encode_function_call(
            get_transfer_from_abi(),
            "transferFrom",
            [owner, AsyncWeb3.to_checksum_address(context.recipient), value],
        )
        transfer_hash = await context.send(transfer_data, TRANSFER_FROM_GAS_LIMIT, phase="transfer")
        run.transfer_transaction_hash = transfer_hash
        context.reporter.transition(run, SettlementState.TRANSFER_SUBMITTED, tx_hash=transfer_hash)

        receipt = await context.confirm(transfer_hash, phase="transfer")
        if not _receipt_succeeded(receipt):
            raise TransferRevertedError(
                f"transferFrom reverted after permit {permit_hash} was mined; "
                f"owner retains an allowance to the facilitator: {transfer_hash}",
                phase="transfer",
                tx_hash=transfer_hash,
                gas_used=_receipt_gas(receipt),
            )
        run.gas_used += _receipt_gas(receipt)
        context.reporter.transition(run, SettlementState.TRANSFER_CONFIRMED, tx_hash=transfer_hash)


class AuthorizedTransferStrategy(SettlementStrategy):
    """
    EIP-3009 ``transferWithAuthorization``: validation and transfer happen in
    one transaction, so there is exactly one hash and no partial state.
    """

    name = "authorized_transfer"
    gas_limits = (TRANSFER_WITH_AUTHORIZATION_GAS_LIMIT,)

    def check_authorization(
        self, authorization: TransferAuthorization, credential: FacilitatorCredential, recipient: str
    ) -> None:
        if not _same_address(authorization.to, recipient):
            raise RecipientMismatchError(
                f"Recipient mismatch: authorization pays {authorization.to}, "
                f"settlement requested for {recipient}",
                expected=recipient,
                provided=authorization.to,
            )

    async def execute(self, authorization: TransferAuthorization, context: SettlementContext) -> None:
        run = context.run
        data = encode_function_call(
            get_transfer_with_authorization_abi(),
            "transferWithAuthorization",
            [
                AsyncWeb3.to_checksum_address(authorization.owner),
                AsyncWeb3.to_checksum_address(authorization.to),
                authorization.value_int,
                authorization.valid_after,
                authorization.valid_before,
                authorization.nonce_bytes,
                context.signature.v,
                context.signature.r_bytes,
                context.signature.s_bytes,
            ],
        )
        tx_hash = await context.send(data, TRANSFER_WITH_AUTHORIZATION_GAS_LIMIT, phase="transfer")
        run.transfer_transaction_hash = tx_hash
        context.reporter.transition(run, SettlementState.TRANSFER_SUBMITTED, tx_hash=tx_hash)

        receipt = await context.confirm(tx_hash, phase="transfer")
        if not _receipt_succeeded(receipt):
            raise TransferRevertedError(
                f"transferWithAuthorization reverted: {tx_hash}",
                phase="transfer",
                tx_hash=tx_hash,
                gas_used=_receipt_gas(receipt),
            )
        run.gas_used += _receipt_gas(receipt)
        context.reporter.transition(run, SettlementState.TRANSFER_CONFIRMED, tx_hash=tx_hash)


DEFAULT_STRATEGIES: Dict[str, SettlementStrategy] = {
    PermitStrategy.name: PermitStrategy(),
    AuthorizedTransferStrategy.name: AuthorizedTransferStrategy(),
}
