"""
Bot Event Models

Structured events published to the observability layer.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events the bot publishes."""

    # Lifecycle
    BOT_STARTED = "bot_started"
    BOT_STOPPED = "bot_stopped"
    CONFIG_UPDATED = "config_updated"
    CRITICAL_ERROR = "critical_error"

    # Cycle
    CYCLE_START = "cycle_start"
    CYCLE_COMPLETE = "cycle_complete"
    CYCLE_SKIPPED = "cycle_skipped"
    CYCLE_FAILED = "cycle_failed"

    # Steps
    STEP_RETRY = "step_retry"
    STEP_FAILED = "step_failed"
    TX_CONFIRMED = "tx_confirmed"

    # Health and metrics
    HEALTH_PASSED = "health_passed"
    HEALTH_FAILED = "health_failed"
    LOW_BALANCE = "low_balance"
    METRICS_SNAPSHOT = "metrics_snapshot"


class Severity(str, Enum):
    """Event severity, ordered from least to most urgent."""

    DEBUG = "debug"
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    def at_least(self, other: "Severity") -> bool:
        return self.rank >= other.rank


_SEVERITY_ORDER = [
    Severity.DEBUG,
    Severity.INFO,
    Severity.SUCCESS,
    Severity.WARNING,
    Severity.ERROR,
    Severity.CRITICAL,
]


class BotEvent(BaseModel):
    """A single observability event."""

    type: EventType
    severity: Severity = Severity.INFO
    message: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
