"""
Settlement result reporting.

Advances settlement runs through the state machine, logs each phase
transition and turns terminal runs into immutable ``SettlementResult``
objects. Verification outcomes become ``VerificationResult`` objects. Logs
carry chain, addresses, value and transaction hashes only.
"""

from typing import Any, Optional

from .exceptions import (
    FacilitatorError,
    SettlementErrorKind,
    SettlementPhaseError,
    UnknownSettlementError,
)
from .states import SettlementRun, SettlementState
from ..schemas.results import SettlementResult, VerificationResult
from ..utils import error_context, logger


def _result_chain_id(chain_id: Any) -> Optional[int]:
    # rejected inputs (e.g. a string chain id) are reported without a chain
    if isinstance(chain_id, int) and not isinstance(chain_id, bool) and chain_id > 0:
        return chain_id
    return None


class ResultReporter:
    """Phase-transition logger and result builder."""

    def transition(self, run: SettlementRun, state: SettlementState, **context: Any) -> None:
        """
        Advance ``run`` to ``state`` and log the transition.

        Raises:
            InvalidTransition: If the edge does not exist.
        """
        previous = run.state
        run.advance(state)
        extra = "".join(f", {key}={value}" for key, value in context.items() if value is not None)
        logger.info(
            "[Settlement] %s -> %s (chain=%s, strategy=%s, owner=%s, recipient=%s, value=%s%s)",
            previous.value, state.value, run.chain_id, run.strategy,
            run.owner, run.recipient, run.value, extra,
        )

    def succeeded(self, run: SettlementRun) -> SettlementResult:
        self.transition(run, SettlementState.SUCCEEDED, gas_used=run.gas_used)
        return SettlementResult(
            success=True,
            strategy=run.strategy,
            chain_id=run.chain_id,
            permit_transaction_hash=run.permit_transaction_hash,
            transfer_transaction_hash=run.transfer_transaction_hash,
            gas_used=run.gas_used,
            payer=run.owner,
        )

    def failed(self, run: SettlementRun, error: BaseException) -> SettlementResult:
        """
        Move ``run`` to FAILED and describe ``error`` as a result.

        Project exceptions keep their kind; anything else becomes
        ``UNKNOWN_ERROR``.
        """
        if not isinstance(error, FacilitatorError):
            error = UnknownSettlementError.wrap(error)
        kind = error.kind
        message = error.message

        if isinstance(error, SettlementPhaseError) and error.gas_used:
            run.gas_used += error.gas_used

        if not run.state.is_terminal:
            run.advance(SettlementState.FAILED)
        phase = run.last_active_state

        log = logger.warning if kind.is_preflight else logger.error
        log(
            "[Settlement] failed in %s (chain=%s, strategy=%s, kind=%s): %s",
            phase.value, run.chain_id, run.strategy, kind.value, message,
        )
        if kind is SettlementErrorKind.UNKNOWN_ERROR:
            logger.debug("Unexpected error raised at %s", error_context())

        return SettlementResult(
            success=False,
            strategy=run.strategy,
            chain_id=_result_chain_id(run.chain_id),
            permit_transaction_hash=run.permit_transaction_hash,
            transfer_transaction_hash=run.transfer_transaction_hash,
            gas_used=run.gas_used,
            error_kind=kind,
            error_message=message,
            phase=phase,
            payer=run.owner,
        )

    def verified(self, chain_id: int, strategy: str, payer: str) -> VerificationResult:
        logger.info("[Verify] valid (chain=%s, strategy=%s, payer=%s)", chain_id, strategy, payer)
        return VerificationResult(is_valid=True, strategy=strategy, chain_id=chain_id, payer=payer)

    def rejected(
        self,
        chain_id: Any,
        strategy: Optional[str],
        payer: Optional[str],
        error: BaseException,
    ) -> VerificationResult:
        """Describe a failed verification. Nothing was submitted."""
        if not isinstance(error, FacilitatorError):
            error = UnknownSettlementError.wrap(error)
        logger.warning(
            "[Verify] invalid (chain=%s, strategy=%s, kind=%s): %s",
            chain_id, strategy, error.kind.value, error.message,
        )
        if error.kind is SettlementErrorKind.UNKNOWN_ERROR:
            logger.debug("Unexpected error raised at %s", error_context())
        return VerificationResult(
            is_valid=False,
            strategy=strategy,
            chain_id=_result_chain_id(chain_id),
            payer=payer,
            invalid_reason=error.kind,
            invalid_message=error.message,
        )
