"""
Cycle Metrics

Running counters and averages accumulated from completed cycles. Amounts
are integers in base units, gas figures in gas units and wei, so nothing
large is ever accumulated in floating point.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from ..config import GWEI_DECIMALS
from ..providers.base import TokenInfo


@dataclass(slots=True)
class CycleMetrics:
    total_claimed: int = 0
    total_staked: int = 0
    successful_cycles: int = 0
    failed_cycles: int = 0
    skipped_cycles: int = 0
    last_successful_cycle: Optional[datetime] = None
    last_failed_cycle: Optional[datetime] = None
    last_skipped_cycle: Optional[datetime] = None
    average_gas_used: int = 0
    total_gas_cost: int = 0

    def to_dict(self, token: Optional[TokenInfo] = None) -> Dict[str, Any]:
        token = token or TokenInfo()
        return {
            "totalClaimed": token.format_amount(self.total_claimed),
            "totalStaked": token.format_amount(self.total_staked),
            "symbol": token.symbol,
            "successfulCycles": self.successful_cycles,
            "failedCycles": self.failed_cycles,
            "skippedCycles": self.skipped_cycles,
            "lastSuccessfulCycle": _iso(self.last_successful_cycle),
            "lastFailedCycle": _iso(self.last_failed_cycle),
            "lastSkippedCycle": _iso(self.last_skipped_cycle),
            "averageGasUsed": str(self.average_gas_used),
            # Cost is wei; rendered in native units (18 decimals).
            "totalGasCost": f"{Decimal(self.total_gas_cost).scaleb(-2 * GWEI_DECIMALS).normalize():f}",
        }


class MetricsAggregator:
    """Owns the bot's CycleMetrics; callers only ever see snapshots."""

    def __init__(self) -> None:
        self._metrics = CycleMetrics()

    def record_gas(self, gas_used: int, gas_price: int) -> None:
        """Fold one confirmed transaction into the gas figures.

        The running average weights by the number of successful cycles
        recorded so far, before the current cycle is counted.
        """
        n = self._metrics.successful_cycles
        avg = self._metrics.average_gas_used
        self._metrics.average_gas_used = (avg * n + gas_used) // (n + 1) if n > 0 else gas_used
        self._metrics.total_gas_cost += gas_used * gas_price

    def record_claimed(self, amount: int) -> None:
        self._metrics.total_claimed += amount

    def record_staked(self, amount: int) -> None:
        self._metrics.total_staked += amount

    def record_success(self, at: Optional[datetime] = None) -> None:
        self._metrics.successful_cycles += 1
        self._metrics.last_successful_cycle = at or _now()

    def record_failure(self, at: Optional[datetime] = None) -> None:
        self._metrics.failed_cycles += 1
        self._metrics.last_failed_cycle = at or _now()

    def record_skip(self, at: Optional[datetime] = None) -> None:
        self._metrics.skipped_cycles += 1
        self._metrics.last_skipped_cycle = at or _now()

    def snapshot(self) -> CycleMetrics:
        return dataclasses.replace(self._metrics)

    def reset(self) -> None:
        self._metrics = CycleMetrics()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.astimezone(timezone.utc).isoformat() if value else None
