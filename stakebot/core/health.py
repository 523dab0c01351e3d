"""
Health Monitor

Best-effort probe of connectivity and balances. A probe never raises and
never gates a cycle; it only reports.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from ..providers.base import LedgerClient, TokenInfo
from ..services.events import EventBus, EventType, Severity

# 0.0005 native currency, the floor below which fees may not be payable.
MIN_NATIVE_BALANCE_WEI = 500_000_000_000_000
NATIVE_DECIMALS = 18


@dataclass
class HealthReport:
    healthy: bool
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    block_number: Optional[int] = None
    native_balance: Optional[int] = None
    token_balance: Optional[int] = None
    low_balance: bool = False
    error: Optional[str] = None

    def to_dict(self, token: Optional[TokenInfo] = None) -> Dict[str, Any]:
        token = token or TokenInfo()
        return {
            "healthy": self.healthy,
            "checkedAt": self.checked_at.isoformat(),
            "blockNumber": self.block_number,
            "nativeBalance": _format_native(self.native_balance),
            "tokenBalance": token.format_amount(self.token_balance) if self.token_balance is not None else None,
            "symbol": token.symbol,
            "lowBalance": self.low_balance,
            "error": self.error,
        }


class HealthMonitor:
    """Reads block height, the fee-paying balance and the token balance."""

    def __init__(
        self,
        ledger: LedgerClient,
        account: str,
        token_address: str,
        events: EventBus,
        token: Optional[TokenInfo] = None,
        min_native_balance: int = MIN_NATIVE_BALANCE_WEI,
        logger: Optional[logging.Logger] = None,
    ):
        self.ledger = ledger
        self.account = account
        self.token_address = token_address
        self.events = events
        self.token = token or TokenInfo()
        self.min_native_balance = min_native_balance
        self.logger = logger or logging.getLogger(__name__)
        self.last_report: Optional[HealthReport] = None

    async def probe(self) -> HealthReport:
        report = HealthReport(healthy=False)
        try:
            report.block_number = int(await self.ledger.read_block_number())
            report.native_balance = int(await self.ledger.read_native_balance(self.account))

            if report.native_balance < self.min_native_balance:
                report.low_balance = True
                await self.events.emit(
                    EventType.LOW_BALANCE,
                    "Low native balance for gas fees",
                    Severity.WARNING,
                    balance=_format_native(report.native_balance),
                    minimum=_format_native(self.min_native_balance),
                )

            report.token_balance = int(await self.ledger.read_balance(self.token_address, self.account))
            report.healthy = True
        except Exception as exc:  # noqa: BLE001
            report.error = str(exc)
            self.logger.error(f"Health check failed: {exc}")
            await self.events.emit(
                EventType.HEALTH_FAILED,
                "Health check failed",
                Severity.ERROR,
                error=str(exc),
            )
        else:
            await self.events.emit(
                EventType.HEALTH_PASSED,
                "Health check passed",
                block_number=report.block_number,
                native_balance=_format_native(report.native_balance),
                token_balance=self.token.format_amount(report.token_balance),
                symbol=self.token.symbol,
            )

        self.last_report = report
        return report


def _format_native(wei: Optional[int]) -> Optional[str]:
    if wei is None:
        return None
    return f"{Decimal(wei).scaleb(-NATIVE_DECIMALS).normalize():f}"
