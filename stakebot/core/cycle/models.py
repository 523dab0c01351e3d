"""
Cycle Models

States, transitions and results for one claim -> approve -> stake cycle.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from ..recovery.errors import BotError


class CycleState(str, Enum):
    """States a cycle moves through."""

    IDLE = "idle"                          # Not started
    CHECKING_REWARDS = "checking_rewards"  # Reading pending rewards, gating
    NO_REWARDS = "no_rewards"              # Nothing accrued
    BELOW_THRESHOLD = "below_threshold"    # Accrued amount not worth claiming
    CLAIMING = "claiming"                  # Claim submitted, awaiting receipt
    CLAIMED = "claimed"                    # Claim confirmed
    APPROVING = "approving"                # Checking or raising allowance
    STAKING = "staking"                    # Stake submitted, awaiting receipt
    COMPLETED = "completed"                # Finished successfully
    FAILED = "failed"                      # Finished with an error
    SKIPPED = "skipped"                    # Stopped by the fee gate


TERMINAL_STATES = frozenset({CycleState.COMPLETED, CycleState.FAILED, CycleState.SKIPPED})


class CycleOutcome(str, Enum):
    """How a cycle ended, from the operator's point of view."""

    COMPLETED = "completed"
    NO_REWARDS = "no_rewards"
    BELOW_THRESHOLD = "below_threshold"
    FEE_SKIPPED = "fee_skipped"
    FAILED = "failed"


class InvalidTransitionError(Exception):
    """Raised when a cycle attempts an illegal state change."""

    def __init__(self, from_state: CycleState, to_state: CycleState, message: str = ""):
        super().__init__(message or f"Invalid transition from {from_state.value} to {to_state.value}")
        self.from_state = from_state
        self.to_state = to_state


@dataclass
class StateTransition:
    """Record of a state transition."""

    from_state: CycleState
    to_state: CycleState
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fromState": self.from_state.value,
            "toState": self.to_state.value,
            "timestamp": self.timestamp.isoformat(),
            "reason": self.reason,
        }


@dataclass
class CycleResult:
    """Result of one orchestrated cycle."""

    cycle_id: str = field(default_factory=lambda: uuid4().hex[:12])
    outcome: CycleOutcome = CycleOutcome.COMPLETED
    final_state: CycleState = CycleState.IDLE

    # Amounts in token base units
    pending_rewards: int = 0
    claimed: int = 0
    staked: int = 0
    approved: bool = False

    tx_hashes: List[str] = field(default_factory=list)
    transitions: List[StateTransition] = field(default_factory=list)

    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    error: Optional[BotError] = None

    @property
    def duration_seconds(self) -> float:
        if not self.completed_at:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def succeeded(self) -> bool:
        return self.final_state == CycleState.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycleId": self.cycle_id,
            "outcome": self.outcome.value,
            "finalState": self.final_state.value,
            "pendingRewards": str(self.pending_rewards),
            "claimed": str(self.claimed),
            "staked": str(self.staked),
            "approved": self.approved,
            "txHashes": list(self.tx_hashes),
            "transitions": [t.to_dict() for t in self.transitions],
            "startedAt": self.started_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "durationSeconds": self.duration_seconds,
            "error": self.error.to_dict() if self.error else None,
        }
