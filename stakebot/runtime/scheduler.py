from __future__ import annotations

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from ..core.recovery.errors import BotError
from ..core.recovery.executor import SleepFunc
from ..services.events import EventBus, EventType, Severity


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class Scheduler:
    """Drives the main cycle timer and the independent health timer.

    Timers run at a fixed cadence and fire each tick as its own task, so a
    slow cycle never delays the next tick. A main tick that fires while a
    cycle is still in flight is skipped. ``stop()`` cancels both timers but
    leaves an in-flight cycle to finish.
    """

    def __init__(
        self,
        run_cycle: Callable[[], Awaitable[Any]],
        probe_health: Callable[[], Awaitable[Any]],
        main_interval_seconds: float,
        health_interval_seconds: Optional[float] = None,
        *,
        on_health_tick: Optional[Callable[[], Any]] = None,
        on_stop: Optional[Callable[[], Any]] = None,
        events: Optional[EventBus] = None,
        sleep: SleepFunc = asyncio.sleep,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.main_interval_seconds = main_interval_seconds
        self.health_interval_seconds = health_interval_seconds
        self._run_cycle = run_cycle
        self._probe_health = probe_health
        self._on_health_tick = on_health_tick
        self._on_stop = on_stop
        self._events = events
        self._sleep = sleep

        self.state = RunState.IDLE
        self._main_task: asyncio.Task | None = None
        self._health_task: asyncio.Task | None = None
        self._ticks: set[asyncio.Task] = set()
        self._cycle_in_flight = False
        self._stopped = asyncio.Event()
        self._stopped.set()
        self.skipped_ticks = 0

    @property
    def is_running(self) -> bool:
        return self.state is RunState.RUNNING

    @property
    def cycle_in_flight(self) -> bool:
        return self._cycle_in_flight

    # ---------------------------
    # Lifecycle
    # ---------------------------
    async def start(self) -> None:
        """Probe health, run one cycle, then arm the timers.

        A failure of the first cycle is re-raised and leaves the scheduler
        idle so startup problems surface immediately. When a cycle from before
        a stop is still in flight, the immediate cycle is skipped instead.
        """
        if self.is_running:
            self.logger.warning("Scheduler is already running")
            return

        self.state = RunState.RUNNING
        self._stopped.clear()

        await self._safe_probe()

        if self._cycle_in_flight:
            self.skipped_ticks += 1
            self.logger.warning("Previous cycle is still running, skipping the startup cycle")
        else:
            self._cycle_in_flight = True
            try:
                await self._run_cycle()
            except Exception:
                self.state = RunState.IDLE
                self._stopped.set()
                raise
            finally:
                self._cycle_in_flight = False

        # stop() may have been called while the first cycle was running.
        if not self.is_running:
            return

        self._main_task = asyncio.create_task(self._main_timer(), name="stakebot-main-timer")
        if self.health_interval_seconds:
            self._health_task = asyncio.create_task(self._health_timer(), name="stakebot-health-timer")
        self.logger.info("Next cycle in %.0f seconds", self.main_interval_seconds)

    def stop(self) -> bool:
        """Cancel both timers and go idle. Returns False if already stopped."""

        was_running = self.is_running
        self.state = RunState.IDLE

        for task in (self._main_task, self._health_task):
            if task is not None and not task.done():
                task.cancel()
        self._main_task = None
        self._health_task = None
        self._stopped.set()

        if not was_running:
            return False

        self.logger.info("Scheduler stopped")
        if self._on_stop is not None:
            try:
                self._on_stop()
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("on_stop callback failed: %s", exc, exc_info=True)
        return True

    async def wait_stopped(self) -> None:
        await self._stopped.wait()

    async def drain(self) -> None:
        """Wait for ticks that are still in flight."""
        if self._ticks:
            await asyncio.gather(*list(self._ticks), return_exceptions=True)

    # ---------------------------
    # Ticks
    # ---------------------------
    async def run_main_tick(self) -> bool:
        """Run one scheduled cycle. Returns False when the tick was skipped."""

        if not self.is_running:
            return False
        if self._cycle_in_flight:
            self.skipped_ticks += 1
            self.logger.warning("Previous cycle is still running, skipping this tick")
            return False

        self._cycle_in_flight = True
        try:
            await self._run_cycle()
        except BotError as exc:
            if exc.kind.is_fatal:
                self.logger.critical("Critical error, stopping bot: %s", exc.message)
                if self._events is not None:
                    await self._events.emit(
                        EventType.CRITICAL_ERROR,
                        f"Critical error, stopping bot: {exc.message}",
                        Severity.CRITICAL,
                        kind=exc.kind.value,
                        error=exc.message,
                    )
                self.stop()
            else:
                self.logger.error("Cycle failed (%s), continuing schedule: %s", exc.kind.value, exc.message)
        except Exception as exc:  # noqa: BLE001
            self.logger.error("Cycle crashed, continuing schedule: %s", exc, exc_info=True)
        finally:
            self._cycle_in_flight = False
        return True

    async def run_health_tick(self) -> bool:
        if not self.is_running:
            return False

        await self._safe_probe()
        if self._on_health_tick is not None:
            try:
                result = self._on_health_tick()
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("Health tick callback failed: %s", exc, exc_info=True)
        return True

    async def _safe_probe(self) -> None:
        try:
            await self._probe_health()
        except Exception as exc:  # noqa: BLE001
            self.logger.error("Health probe raised: %s", exc, exc_info=True)

    # ---------------------------
    # Timers
    # ---------------------------
    async def _main_timer(self) -> None:
        while self.is_running:
            await self._sleep(self.main_interval_seconds)
            if not self.is_running:
                return
            self._spawn(self.run_main_tick(), "stakebot-main-tick")

    async def _health_timer(self) -> None:
        # The interval is checked on both sides of the sleep so disabling
        # health checks mid-sleep suppresses the pending tick.
        while self.is_running and self.health_interval_seconds:
            await self._sleep(self.health_interval_seconds)
            if not (self.is_running and self.health_interval_seconds):
                break
            self._spawn(self.run_health_tick(), "stakebot-health-tick")
        if self.is_running:
            self.logger.info("Health checks disabled, health timer exiting")

    def _spawn(self, coro: Awaitable[Any], name: str) -> None:
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._ticks.add(task)
        task.add_done_callback(self._ticks.discard)
