"""
Canonical Payment and Settlement Result Models

    NormalizedPayment: version-independent record produced by the payload
        normalizer and consumed by the settlement executor.
    SettlementResult: immutable outcome of one settlement run.
    VerificationResult: outcome of the no-submit preflight (``/verify``).
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from .bases import FrozenModel
from ..adapters.evm.schemas import Authorization, EVMAddress
from ..engine.exceptions import SettlementErrorKind
from ..engine.states import SettlementState


class NormalizedPayment(FrozenModel):
    """
    Canonical payment record.

    Both wire versions normalize to the same record: ``chain_id`` is always
    the integer EIP-155 chain ID and ``network`` its CAIP-2 form.

    Attributes:
        x402_version: Wire version the payment arrived in.
        scheme: Payment scheme (``"exact"``).
        chain_id: EIP-155 chain ID.
        network: CAIP-2 identifier (``eip155:<chain_id>``).
        token: ERC-20 token contract (``asset``).
        recipient: Address that receives the funds (``payTo``).
        amount_required: Amount the resource costs, decimal string.
        authorization: Canonical signed authorization.
        signature: Packed 65-byte signature, 0x-prefixed hex.
    """

    x402_version: Literal[1, 2]
    scheme: str = Field(default="exact")
    chain_id: int = Field(..., ge=1)
    network: str
    token: EVMAddress
    recipient: EVMAddress
    amount_required: str = Field(..., pattern=r"^[0-9]+$")
    authorization: Authorization
    signature: str

    @property
    def strategy(self) -> str:
        return self.authorization.strategy

    @property
    def payer(self) -> str:
        return self.authorization.owner


class SettlementResult(FrozenModel):
    """
    Outcome of one settlement run.

    On failure after submission, ``phase`` and the transaction hash(es) that
    were broadcast are kept so the caller can reconcile on-chain state.

    Attributes:
        success: True only when every phase was mined successfully.
        strategy: ``"permit"`` or ``"authorized_transfer"``.
        chain_id: Chain the run targeted.
        permit_transaction_hash: Permit phase hash (permit strategy only).
        transfer_transaction_hash: Token-moving transaction hash.
        gas_used: Sum of ``gasUsed`` over every mined receipt.
        error_kind: Failure classification.
        error_message: Human-readable failure description.
        phase: State the run was in when it failed.
        payer: Token owner.
    """

    success: bool
    strategy: Optional[str] = None
    chain_id: Optional[int] = None
    permit_transaction_hash: Optional[str] = None
    transfer_transaction_hash: Optional[str] = None
    gas_used: int = Field(default=0, ge=0)
    error_kind: Optional[SettlementErrorKind] = None
    error_message: Optional[str] = None
    phase: Optional[SettlementState] = None
    payer: Optional[str] = None

    @property
    def transaction_hash(self) -> Optional[str]:
        """Hash of the last transaction broadcast by the run."""
        return self.transfer_transaction_hash or self.permit_transaction_hash

    @property
    def transaction_hashes(self) -> List[str]:
        return [h for h in (self.permit_transaction_hash, self.transfer_transaction_hash) if h]

    def to_response(self) -> Dict[str, Any]:
        """
        Caller-facing camelCase form. ``gasUsed`` is a decimal string.
        """
        response: Dict[str, Any] = {
            "success": self.success,
            "transactionHash": self.transaction_hash,
            "transactionHashes": self.transaction_hashes,
            "gasUsed": str(self.gas_used),
        }
        if self.strategy is not None:
            response["strategy"] = self.strategy
        if self.chain_id is not None:
            response["chainId"] = self.chain_id
            response["network"] = f"eip155:{self.chain_id}"
        if self.payer is not None:
            response["payer"] = self.payer
        if self.permit_transaction_hash is not None:
            response["permitTransactionHash"] = self.permit_transaction_hash
        if self.transfer_transaction_hash is not None:
            response["transferTransactionHash"] = self.transfer_transaction_hash
        if not self.success:
            response["errorKind"] = self.error_kind.value if self.error_kind else None
            response["errorMessage"] = self.error_message
            response["phase"] = self.phase.value if self.phase else None
        return response


class VerificationResult(FrozenModel):
    """
    Outcome of verifying a payment without settling it.

    A valid result means every preflight check passed at the time of the
    call: chain configured, spender/recipient consistent, signature well
    formed and enough facilitator gas balance for the strategy's budget.

    Attributes:
        is_valid: True when settlement would be attempted.
        strategy: ``"permit"`` or ``"authorized_transfer"``.
        chain_id: Chain the payment targets.
        payer: Token owner.
        invalid_reason: Failure classification when invalid.
        invalid_message: Human-readable failure description.
    """

    is_valid: bool
    strategy: Optional[str] = None
    chain_id: Optional[int] = None
    payer: Optional[str] = None
    invalid_reason: Optional[SettlementErrorKind] = None
    invalid_message: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        response: Dict[str, Any] = {"isValid": self.is_valid}
        if self.payer:
            response["payer"] = self.payer
        if not self.is_valid:
            response["invalidReason"] = self.invalid_reason.value if self.invalid_reason else None
            response["invalidMessage"] = self.invalid_message
        return response
