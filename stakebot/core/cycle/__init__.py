"""
Cycle Module

The claim -> approve -> stake state machine and its orchestrator.
"""

from .models import (
    TERMINAL_STATES,
    CycleOutcome,
    CycleResult,
    CycleState,
    InvalidTransitionError,
    StateTransition,
)
from .orchestrator import CycleOrchestrator, SettingsProvider
from .state_machine import CycleStateMachine

__all__ = [
    "CycleOrchestrator",
    "CycleOutcome",
    "CycleResult",
    "CycleState",
    "CycleStateMachine",
    "InvalidTransitionError",
    "SettingsProvider",
    "StateTransition",
    "TERMINAL_STATES",
]
