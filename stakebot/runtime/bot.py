from __future__ import annotations

import asyncio
import inspect
import logging
import signal
from typing import Any, Dict, Optional

from ..config import Settings
from ..core.cycle import CycleOrchestrator, CycleResult
from ..core.health import HealthMonitor
from ..core.metrics import CycleMetrics, MetricsAggregator
from ..core.recovery.errors import BotError, ErrorKind
from ..core.recovery.executor import SleepFunc
from ..logging_config import bind_account
from ..providers.base import LedgerClient, TokenInfo
from ..providers.loader import LedgerFactory
from ..services.events import EventBus, EventType, Severity
from .scheduler import RunState, Scheduler


class StakingBot:
    """Process-facing facade: wires the ledger client into the core and runs it.

    The ledger client is built lazily from ``ledger_factory`` when the bot
    starts, since it needs the signing key.
    """

    def __init__(
        self,
        settings: Settings,
        ledger_factory: LedgerFactory,
        events: Optional[EventBus] = None,
        sleep: SleepFunc = asyncio.sleep,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.events = events or EventBus()
        self.metrics = MetricsAggregator()
        self.token = TokenInfo()
        self._settings = settings
        self._ledger_factory = ledger_factory
        self._sleep = sleep

        self.ledger: Optional[LedgerClient] = None
        self.orchestrator: Optional[CycleOrchestrator] = None
        self.health: Optional[HealthMonitor] = None
        self.scheduler: Optional[Scheduler] = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def run_state(self) -> RunState:
        return self.scheduler.state if self.scheduler else RunState.IDLE

    @property
    def is_running(self) -> bool:
        return self.run_state is RunState.RUNNING

    # ---------------------------
    # Wiring
    # ---------------------------
    async def _connect(self, signing_key: str) -> None:
        if self.ledger is not None:
            return

        try:
            ledger = self._ledger_factory(signing_key, self._settings)
            if inspect.isawaitable(ledger):
                ledger = await ledger
        except BotError:
            raise
        except Exception as exc:
            raise BotError(ErrorKind.UNKNOWN_ERROR, f"Failed to set up ledger client: {exc}", cause=exc) from exc

        self.ledger = ledger
        bind_account(ledger.account)
        self.token = await self._load_token_info(ledger)
        self.logger.info("Connected as %s (token %s, %d decimals)", ledger.account, self.token.symbol, self.token.decimals)

        self.orchestrator = CycleOrchestrator(
            ledger=ledger,
            metrics=self.metrics,
            events=self.events,
            settings_provider=lambda: self._settings,
            token=self.token,
            sleep=self._sleep,
        )
        self.health = HealthMonitor(
            ledger=ledger,
            account=ledger.account,
            token_address=self._settings.token_contract_address,
            events=self.events,
            token=self.token,
        )
        self.scheduler = Scheduler(
            run_cycle=self.orchestrator.run_cycle,
            probe_health=self.health.probe,
            main_interval_seconds=self._settings.interval_seconds,
            health_interval_seconds=self._settings.health_check_interval_seconds,
            on_health_tick=self.log_metrics,
            on_stop=self._on_scheduler_stop,
            events=self.events,
            sleep=self._sleep,
        )

    async def _load_token_info(self, ledger: LedgerClient) -> TokenInfo:
        try:
            return await ledger.read_token_info(self._settings.token_contract_address)
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("Could not read token info, using defaults: %s", exc)
            return TokenInfo()

    # ---------------------------
    # Lifecycle
    # ---------------------------
    async def start(self, signing_key: str) -> None:
        """Connect, run the first cycle and arm the timers.

        Raises:
            BotError: When the ledger cannot be set up or the first cycle fails
        """
        if self.is_running:
            self.logger.warning("Bot is already running")
            return

        try:
            await self._connect(signing_key)
            assert self.scheduler is not None
            await self.events.emit(
                EventType.BOT_STARTED,
                "Staking bot starting",
                account=self.ledger.account if self.ledger else None,
                interval_hours=self._settings.interval_hours,
                health_check_interval_minutes=self._settings.health_check_interval_minutes,
                min_stake_amount=_optional_str(self._settings.min_stake_amount),
                max_gas_price_gwei=_optional_str(self._settings.max_gas_price_gwei),
            )
            await self.scheduler.start()
        except BotError as exc:
            self.logger.error("Failed to start bot (%s): %s", exc.kind.value, exc.message)
            raise
        except Exception as exc:
            self.logger.error("Failed to start bot: %s", exc, exc_info=True)
            raise BotError(ErrorKind.UNKNOWN_ERROR, f"Failed to start bot: {exc}", cause=exc) from exc

    def stop(self) -> None:
        """Stop scheduling; safe to call any number of times."""
        if self.scheduler is not None:
            self.scheduler.stop()

    def _on_scheduler_stop(self) -> None:
        self.events.emit_nowait(EventType.BOT_STOPPED, "Staking bot stopped")

    async def run_once(self, signing_key: str) -> CycleResult:
        """Run a single cycle without arming any timers."""
        await self._connect(signing_key)
        assert self.health is not None and self.orchestrator is not None
        await self.health.probe()
        return await self.orchestrator.run_cycle()

    async def wait_closed(self) -> None:
        """Wait until the scheduler stops, then let in-flight work finish."""
        if self.scheduler is not None:
            await self.scheduler.wait_stopped()
            await self.scheduler.drain()
        await self.events.drain()

    async def close(self) -> None:
        self.stop()
        await self.wait_closed()
        if self.ledger is not None:
            await self.ledger.close()

    def install_signal_handlers(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        loop = loop or asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._handle_signal, sig)
            except (NotImplementedError, RuntimeError) as exc:
                self.logger.debug("Cannot install handler for %s: %s", sig.name, exc)

    def _handle_signal(self, sig: signal.Signals) -> None:
        self.logger.info("Received %s, shutting down", sig.name)
        self.stop()
        self.log_metrics()

    # ---------------------------
    # Metrics and configuration
    # ---------------------------
    def get_metrics(self) -> CycleMetrics:
        return self.metrics.snapshot()

    def log_metrics(self) -> None:
        if not self._settings.enable_metrics:
            return
        self.events.emit_nowait(
            EventType.METRICS_SNAPSHOT,
            "Bot metrics",
            **self.get_metrics().to_dict(self.token),
        )

    def update_config(self, **changes: Any) -> Settings:
        """Apply a validated partial update.

        Cycles already running keep the settings they started with; timers
        pick up new intervals on their next sleep.
        """
        updated = self._settings.with_updates(**changes)
        self._settings = updated

        if self.scheduler is not None:
            self.scheduler.main_interval_seconds = updated.interval_seconds
            self.scheduler.health_interval_seconds = updated.health_check_interval_seconds
        if self.health is not None:
            self.health.token_address = updated.token_contract_address

        applied = updated.model_dump(mode="json", include=set(changes))
        self.logger.info("Configuration updated: %s", applied)
        self.events.emit_nowait(
            EventType.CONFIG_UPDATED,
            "Configuration updated",
            Severity.INFO,
            changes=applied,
        )
        return updated

    def status(self) -> Dict[str, Any]:
        last_result = self.orchestrator.last_result if self.orchestrator else None
        return {
            "state": self.run_state.value,
            "account": self.ledger.account if self.ledger else None,
            "cycleInFlight": self.scheduler.cycle_in_flight if self.scheduler else False,
            "skippedTicks": self.scheduler.skipped_ticks if self.scheduler else 0,
            "config": self._settings.summary(),
            "lastCycle": last_result.to_dict() if last_result else None,
        }


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)
