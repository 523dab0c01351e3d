"""
Core orchestration: error recovery, fee policy, the cycle state machine,
metrics and health probing.
"""

from .cycle import CycleOrchestrator, CycleOutcome, CycleResult, CycleState
from .health import MIN_NATIVE_BALANCE_WEI, HealthMonitor, HealthReport
from .metrics import CycleMetrics, MetricsAggregator
from .policy import FeeGate
from .recovery import BotError, ErrorKind, FeeCeilingExceededError, RetryExecutor, classify_error

__all__ = [
    "BotError",
    "CycleMetrics",
    "CycleOrchestrator",
    "CycleOutcome",
    "CycleResult",
    "CycleState",
    "ErrorKind",
    "FeeCeilingExceededError",
    "FeeGate",
    "HealthMonitor",
    "HealthReport",
    "MIN_NATIVE_BALANCE_WEI",
    "MetricsAggregator",
    "RetryExecutor",
    "classify_error",
]
