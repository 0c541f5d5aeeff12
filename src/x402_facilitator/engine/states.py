"""
Settlement state machine.

Every run starts in IDLE and ends in SUCCEEDED or FAILED:

    IDLE -> PREFLIGHT_CHECKED
    PREFLIGHT_CHECKED -> PERMIT_SUBMITTED -> PERMIT_CONFIRMED -> TRANSFER_SUBMITTED
    PREFLIGHT_CHECKED -> TRANSFER_SUBMITTED
    TRANSFER_SUBMITTED -> TRANSFER_CONFIRMED -> SUCCEEDED

Any non-terminal state may move to FAILED. A run is single-shot: terminal
states have no outgoing edges.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from .exceptions import InvalidTransition


class SettlementState(str, Enum):
    IDLE = "idle"
    PREFLIGHT_CHECKED = "preflight_checked"
    PERMIT_SUBMITTED = "permit_submitted"
    PERMIT_CONFIRMED = "permit_confirmed"
    TRANSFER_SUBMITTED = "transfer_submitted"
    TRANSFER_CONFIRMED = "transfer_confirmed"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SettlementState.SUCCEEDED, SettlementState.FAILED)


_TRANSITIONS: Dict[SettlementState, FrozenSet[SettlementState]] = {
    SettlementState.IDLE: frozenset({SettlementState.PREFLIGHT_CHECKED}),
    SettlementState.PREFLIGHT_CHECKED: frozenset({
        SettlementState.PERMIT_SUBMITTED,
        SettlementState.TRANSFER_SUBMITTED,
    }),
    SettlementState.PERMIT_SUBMITTED: frozenset({SettlementState.PERMIT_CONFIRMED}),
    SettlementState.PERMIT_CONFIRMED: frozenset({SettlementState.TRANSFER_SUBMITTED}),
    SettlementState.TRANSFER_SUBMITTED: frozenset({SettlementState.TRANSFER_CONFIRMED}),
    SettlementState.TRANSFER_CONFIRMED: frozenset({SettlementState.SUCCEEDED}),
    SettlementState.SUCCEEDED: frozenset(),
    SettlementState.FAILED: frozenset(),
}


def can_transition(current: SettlementState, target: SettlementState) -> bool:
    if target is SettlementState.FAILED:
        return not current.is_terminal
    return target in _TRANSITIONS[current]


@dataclass
class SettlementRun:
    """
    Mutable progress record of one settlement attempt.

    Owned by a single coroutine; never shared between runs.
    """

    chain_id: int
    strategy: str
    owner: str
    recipient: str
    value: str
    state: SettlementState = SettlementState.IDLE
    permit_transaction_hash: Optional[str] = None
    transfer_transaction_hash: Optional[str] = None
    gas_used: int = 0
    history: List[SettlementState] = field(default_factory=lambda: [SettlementState.IDLE])

    def advance(self, target: SettlementState) -> None:
        """
        Move to ``target``.

        Raises:
            InvalidTransition: If the edge does not exist.
        """
        if not can_transition(self.state, target):
            raise InvalidTransition(self.state, target)
        self.state = target
        self.history.append(target)

    @property
    def last_active_state(self) -> SettlementState:
        """State the run was in before it failed (or the current state)."""
        for state in reversed(self.history):
            if state is not SettlementState.FAILED:
                return state
        return SettlementState.IDLE
