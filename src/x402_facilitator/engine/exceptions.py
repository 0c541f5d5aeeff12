"""
Exception and Error Definitions Module

Defines the exception hierarchy for payload normalization, preflight checks
and on-chain settlement. Every settlement-related exception carries a
``SettlementErrorKind`` so the executor can turn it into a structured
``SettlementResult`` without inspecting class names.

Exception Hierarchy:
    FacilitatorError (root)
    ├── ConfigurationError
    ├── ValidationError
    ├── UnsupportedNetworkError
    ├── UnsupportedChainError
    ├── MalformedSignatureError
    ├── SpenderMismatchError
    │   └── RecipientMismatchError
    ├── InsufficientGasBalanceError
    ├── FeeEstimationError
    ├── SettlementPhaseError
    │   ├── PermitRevertedError
    │   ├── TransferRevertedError
    │   ├── ConfirmationTimeoutError
    │   └── BroadcastError
    ├── UnknownSettlementError
    └── FacilitatorNetworkError
    InvalidTransition
"""

from enum import Enum
from typing import Any, Dict, Optional


class SettlementErrorKind(str, Enum):
    """
    Machine-readable failure classification reported to callers.

    Preflight kinds (UNSUPPORTED_CHAIN, SPENDER_MISMATCH,
    INSUFFICIENT_GAS_BALANCE, ...) are raised before any transaction is sent
    and are always safe to retry once the condition is fixed. Post-submission
    kinds (PERMIT_REVERTED, TRANSFER_REVERTED, CONFIRMATION_TIMEOUT) may leave
    on-chain state behind and need manual reconciliation.
    """
    UNSUPPORTED_CHAIN = "unsupported_chain"
    VALIDATION_ERROR = "validation_error"
    UNSUPPORTED_NETWORK = "unsupported_network"
    MALFORMED_SIGNATURE = "malformed_signature"
    SPENDER_MISMATCH = "spender_mismatch"
    INSUFFICIENT_GAS_BALANCE = "insufficient_gas_balance"
    ESTIMATION_ERROR = "estimation_error"
    PERMIT_REVERTED = "permit_reverted"
    TRANSFER_REVERTED = "transfer_reverted"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"
    BROADCAST_FAILED = "broadcast_failed"
    UNKNOWN_ERROR = "unknown_error"

    @property
    def is_preflight(self) -> bool:
        return self in _PREFLIGHT_KINDS


_PREFLIGHT_KINDS = frozenset({
    SettlementErrorKind.UNSUPPORTED_CHAIN,
    SettlementErrorKind.VALIDATION_ERROR,
    SettlementErrorKind.UNSUPPORTED_NETWORK,
    SettlementErrorKind.MALFORMED_SIGNATURE,
    SettlementErrorKind.SPENDER_MISMATCH,
    SettlementErrorKind.INSUFFICIENT_GAS_BALANCE,
    SettlementErrorKind.ESTIMATION_ERROR,
})


class FacilitatorError(Exception):
    """
    Root exception class for all project-specific exceptions.

    Attributes:
        kind: Failure classification used when the error becomes a result.
        details: Extra structured context for diagnostics.
    """
    kind: SettlementErrorKind = SettlementErrorKind.UNKNOWN_ERROR

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(FacilitatorError):
    """
    Raised when configuration is missing or invalid.

    This includes scenarios such as:
    - Missing facilitator private key
    - Malformed private key
    - Non-numeric timeout settings
    """
    pass


class ValidationError(FacilitatorError):
    """
    Raised when a wire payload or requirements object has the wrong shape.

    Attributes:
        field: Dotted path of the offending field (e.g. ``payload.signature``).
    """
    kind = SettlementErrorKind.VALIDATION_ERROR

    def __init__(self, message: str, *, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)
        self.field = field

    def __str__(self) -> str:
        if self.field:
            return f"{self.message} (field: {self.field})"
        return self.message


class UnsupportedNetworkError(FacilitatorError):
    """
    Raised when a wire network identifier (CAIP-2 string, chain ID or legacy
    network name) has no entry in the network table.
    """
    kind = SettlementErrorKind.UNSUPPORTED_NETWORK


class UnsupportedChainError(FacilitatorError):
    """
    Raised when the chain registry has no configuration for a chain ID.

    Always raised before any RPC call is made.
    """
    kind = SettlementErrorKind.UNSUPPORTED_CHAIN

    def __init__(self, chain_id: Any):
        super().__init__(f"Unsupported chain ID: {chain_id}", details={"chain_id": chain_id})
        self.chain_id = chain_id


class MalformedSignatureError(FacilitatorError):
    """
    Raised when a signature is not a 0x-prefixed 65-byte hex string.
    """
    kind = SettlementErrorKind.MALFORMED_SIGNATURE


class SpenderMismatchError(FacilitatorError):
    """
    Raised when the authorization's declared spender is not the facilitator.

    Attributes:
        expected: Facilitator address derived from the private key.
        provided: Address declared by the authorization.
    """
    kind = SettlementErrorKind.SPENDER_MISMATCH

    def __init__(self, message: str, *, expected: str, provided: str):
        super().__init__(message, details={"expected": expected, "provided": provided})
        self.expected = expected
        self.provided = provided


class RecipientMismatchError(SpenderMismatchError):
    """
    Raised when an EIP-3009 authorization's signed ``to`` differs from the
    recipient the caller asked to pay.
    """
    pass


class InsufficientGasBalanceError(FacilitatorError):
    """
    Raised when the facilitator cannot cover the worst-case gas budget.

    Attributes:
        required: Native-currency amount (wei) needed for the gas budget.
        available: Facilitator balance (wei).
    """
    kind = SettlementErrorKind.INSUFFICIENT_GAS_BALANCE

    def __init__(self, *, required: int, available: int):
        super().__init__(
            f"Facilitator has insufficient native balance for gas: "
            f"required {required} wei, available {available} wei",
            details={"required": str(required), "available": str(available)},
        )
        self.required = required
        self.available = available


class FeeEstimationError(FacilitatorError):
    """
    Raised when the current base fee cannot be read from the chain.

    A failed priority-fee query never raises; it falls back to a default.
    """
    kind = SettlementErrorKind.ESTIMATION_ERROR


class SettlementPhaseError(FacilitatorError):
    """
    Base class for failures after a transaction has been submitted.

    Attributes:
        phase: Settlement phase that failed ("permit" or "transfer").
        tx_hash: Hash of the transaction that failed, if one was broadcast.
        gas_used: Gas consumed by the failed transaction, if mined.
    """

    def __init__(
        self,
        message: str,
        *,
        phase: str,
        tx_hash: Optional[str] = None,
        gas_used: Optional[int] = None,
    ):
        super().__init__(message, details={"phase": phase, "tx_hash": tx_hash})
        self.phase = phase
        self.tx_hash = tx_hash
        self.gas_used = gas_used


class PermitRevertedError(SettlementPhaseError):
    """
    Raised when the ``permit`` transaction is mined with a failed status.

    No funds moved; the permit hash is reported for diagnosis.
    """
    kind = SettlementErrorKind.PERMIT_REVERTED


class TransferRevertedError(SettlementPhaseError):
    """
    Raised when the token-moving transaction is mined with a failed status.

    For the permit strategy the owner may now hold an on-chain approval to the
    facilitator without a matching transfer.
    """
    kind = SettlementErrorKind.TRANSFER_REVERTED


class ConfirmationTimeoutError(SettlementPhaseError):
    """
    Raised when a broadcast transaction is still pending after the wait
    timeout. The outcome is unknown; callers must re-query the hash.
    """
    kind = SettlementErrorKind.CONFIRMATION_TIMEOUT


class BroadcastError(SettlementPhaseError):
    """
    Raised when ``eth_sendRawTransaction`` is rejected by the node.
    """
    kind = SettlementErrorKind.BROADCAST_FAILED


class UnknownSettlementError(FacilitatorError):
    """
    Wraps an exception that is not part of this hierarchy so it can be
    reported as ``UNKNOWN_ERROR``.

    Attributes:
        original: The wrapped exception.
    """
    kind = SettlementErrorKind.UNKNOWN_ERROR

    def __init__(self, message: str, *, original: Optional[BaseException] = None):
        super().__init__(
            message,
            details={"error_type": type(original).__name__} if original is not None else None,
        )
        self.original = original

    @classmethod
    def wrap(cls, error: BaseException) -> "UnknownSettlementError":
        wrapped = cls(f"Unexpected settlement error: {type(error).__name__}: {error}", original=error)
        wrapped.__cause__ = error
        return wrapped


class FacilitatorNetworkError(FacilitatorError):
    """
    Raised by the HTTP client when the facilitator service is unreachable or
    answers with an error status.

    Attributes:
        status_code: HTTP status code, if a response was received.
    """

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message, details={"status_code": status_code})
        self.status_code = status_code


class InvalidTransition(Exception):
    """
    Raised when the settlement state machine is asked to move along an edge
    that does not exist.

    Attributes:
        current_state: State the run is in.
        target_state: State that was requested.
    """

    def __init__(self, current_state: Any, target_state: Any):
        super().__init__(f"Invalid settlement transition: {current_state} -> {target_state}")
        self.current_state = current_state
        self.target_state = target_state
