"""
Cycle State Machine

Validates and records state changes for a single cycle.
"""

import logging
from typing import Dict, FrozenSet, List, Optional

from .models import (
    TERMINAL_STATES,
    CycleState,
    InvalidTransitionError,
    StateTransition,
)


class CycleStateMachine:
    """
    Tracks the current state of one cycle.

    Every non-terminal state may move to FAILED; the rest of the map follows
    the claim -> approve -> stake order.
    """

    TRANSITIONS: Dict[CycleState, FrozenSet[CycleState]] = {
        CycleState.IDLE: frozenset({
            CycleState.CHECKING_REWARDS,
        }),
        CycleState.CHECKING_REWARDS: frozenset({
            CycleState.NO_REWARDS,
            CycleState.BELOW_THRESHOLD,
            CycleState.CLAIMING,
            CycleState.SKIPPED,
        }),
        CycleState.NO_REWARDS: frozenset({
            CycleState.COMPLETED,
        }),
        CycleState.BELOW_THRESHOLD: frozenset({
            CycleState.COMPLETED,
        }),
        CycleState.CLAIMING: frozenset({
            CycleState.CLAIMED,
        }),
        CycleState.CLAIMED: frozenset({
            CycleState.APPROVING,
            CycleState.COMPLETED,  # Nothing was actually claimed
        }),
        CycleState.APPROVING: frozenset({
            CycleState.STAKING,
            CycleState.SKIPPED,
        }),
        CycleState.STAKING: frozenset({
            CycleState.COMPLETED,
            CycleState.SKIPPED,
        }),
        CycleState.COMPLETED: frozenset(),
        CycleState.FAILED: frozenset(),
        CycleState.SKIPPED: frozenset(),
    }

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._state = CycleState.IDLE
        self._history: List[StateTransition] = []

    @property
    def current_state(self) -> CycleState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    @property
    def history(self) -> List[StateTransition]:
        return list(self._history)

    def can_transition_to(self, to_state: CycleState) -> bool:
        if to_state == CycleState.FAILED:
            return not self.is_terminal
        return to_state in self.TRANSITIONS.get(self._state, frozenset())

    def transition_to(self, to_state: CycleState, reason: Optional[str] = None) -> StateTransition:
        """Move to ``to_state`` or raise InvalidTransitionError."""

        if not self.can_transition_to(to_state):
            allowed = sorted(s.value for s in self.TRANSITIONS.get(self._state, frozenset()))
            raise InvalidTransitionError(
                from_state=self._state,
                to_state=to_state,
                message=f"Invalid transition from {self._state.value} to {to_state.value}. Allowed: {allowed}",
            )

        transition = StateTransition(from_state=self._state, to_state=to_state, reason=reason)
        self._history.append(transition)
        self.logger.debug(
            "Cycle state %s -> %s%s",
            transition.from_state.value,
            transition.to_state.value,
            f" ({reason})" if reason else "",
        )
        self._state = to_state
        return transition
