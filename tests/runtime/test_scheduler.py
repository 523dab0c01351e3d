"""
Tests for the Scheduler

Timer loops are parked with a sleep that blocks until cancelled, so ticks
are driven explicitly through run_main_tick / run_health_tick.
"""

import asyncio

import pytest

from stakebot.core.recovery import BotError, ErrorKind
from stakebot.runtime import RunState, Scheduler
from stakebot.services.events import EventType


class ScriptedCycle:
    """Cycle stand-in: raises scripted errors and can be held mid-flight."""

    def __init__(self):
        self.calls = 0
        self.completed = 0
        self.errors = []
        self.gate = None
        self.order = None

    async def __call__(self):
        self.calls += 1
        if self.order is not None:
            self.order.append("cycle")
        if self.gate is not None:
            await self.gate.wait()
        if self.errors:
            raise self.errors.pop(0)
        self.completed += 1


class ReleasableSleep:
    """Each call blocks until released by its delay value."""

    def __init__(self):
        self.pending = []

    async def __call__(self, seconds):
        future = asyncio.get_running_loop().create_future()
        self.pending.append((seconds, future))
        await future

    def delays(self):
        return [seconds for seconds, _ in self.pending]

    def release(self, seconds):
        for delay, future in self.pending:
            if delay == seconds and not future.done():
                future.set_result(None)


class ScriptedProbe:
    def __init__(self):
        self.calls = 0
        self.order = None

    async def __call__(self):
        self.calls += 1
        if self.order is not None:
            self.order.append("probe")


@pytest.fixture
def cycle():
    return ScriptedCycle()


@pytest.fixture
def probe():
    return ScriptedProbe()


@pytest.fixture
def make_scheduler(cycle, probe, events, make_controlled_sleep):
    created = []

    def _make(**kwargs):
        kwargs.setdefault("main_interval_seconds", 3600)
        kwargs.setdefault("health_interval_seconds", 600)
        kwargs.setdefault("sleep", make_controlled_sleep())
        scheduler = Scheduler(cycle, probe, events=events, **kwargs)
        created.append(scheduler)
        return scheduler

    yield _make
    for scheduler in created:
        scheduler.stop()


# =============================================================================
# Start / stop
# =============================================================================

class TestLifecycle:

    @pytest.mark.asyncio
    async def test_start_probes_then_runs_one_cycle(self, make_scheduler, cycle, probe):
        order = []
        cycle.order = order
        probe.order = order
        scheduler = make_scheduler()

        await scheduler.start()

        assert order == ["probe", "cycle"]
        assert scheduler.state is RunState.RUNNING

    @pytest.mark.asyncio
    async def test_start_twice_is_a_no_op(self, make_scheduler, cycle):
        scheduler = make_scheduler()

        await scheduler.start()
        await scheduler.start()

        assert cycle.calls == 1

    @pytest.mark.asyncio
    async def test_first_cycle_failure_is_raised_and_resets_state(self, make_scheduler, cycle):
        cycle.errors = [BotError(ErrorKind.NETWORK_ERROR, "rpc down")]
        scheduler = make_scheduler()

        with pytest.raises(BotError):
            await scheduler.start()

        assert scheduler.state is RunState.IDLE
        await asyncio.wait_for(scheduler.wait_stopped(), timeout=1)

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, make_scheduler):
        stops = []
        scheduler = make_scheduler(on_stop=lambda: stops.append(1))
        await scheduler.start()

        assert scheduler.stop() is True
        assert scheduler.stop() is False
        assert scheduler.state is RunState.IDLE
        assert stops == [1]

    @pytest.mark.asyncio
    async def test_stop_cancels_both_timers(self, make_scheduler):
        scheduler = make_scheduler()
        await scheduler.start()
        main_task, health_task = scheduler._main_task, scheduler._health_task
        assert main_task is not None and health_task is not None

        scheduler.stop()
        await asyncio.gather(main_task, health_task, return_exceptions=True)

        assert main_task.cancelled()
        assert health_task.cancelled()

    @pytest.mark.asyncio
    async def test_health_timer_is_optional(self, make_scheduler):
        scheduler = make_scheduler(health_interval_seconds=None)
        await scheduler.start()

        assert scheduler._main_task is not None
        assert scheduler._health_task is None


# =============================================================================
# Ticks
# =============================================================================

class TestTicks:

    @pytest.mark.asyncio
    async def test_ticks_are_no_ops_when_idle(self, make_scheduler, cycle, probe):
        scheduler = make_scheduler()

        assert await scheduler.run_main_tick() is False
        assert await scheduler.run_health_tick() is False
        assert cycle.calls == 0
        assert probe.calls == 0

    @pytest.mark.asyncio
    async def test_no_ticks_after_stop(self, make_scheduler, cycle):
        scheduler = make_scheduler()
        await scheduler.start()
        scheduler.stop()

        assert await scheduler.run_main_tick() is False
        assert cycle.calls == 1

    @pytest.mark.asyncio
    async def test_overlapping_tick_is_skipped(self, make_scheduler, cycle):
        """A tick firing while a cycle is in flight never starts a second run."""
        scheduler = make_scheduler()
        await scheduler.start()
        cycle.gate = asyncio.Event()

        first = asyncio.create_task(scheduler.run_main_tick())
        await asyncio.sleep(0)
        assert scheduler.cycle_in_flight is True

        assert await scheduler.run_main_tick() is False
        assert cycle.calls == 2
        assert scheduler.skipped_ticks == 1

        cycle.gate.set()
        assert await first is True
        assert cycle.completed == 2
        assert scheduler.cycle_in_flight is False

    @pytest.mark.asyncio
    async def test_insufficient_balance_stops_scheduler(self, make_scheduler, cycle, collector):
        scheduler = make_scheduler()
        await scheduler.start()
        cycle.errors = [BotError(ErrorKind.INSUFFICIENT_BALANCE, "insufficient funds for gas")]

        await scheduler.run_main_tick()

        assert scheduler.state is RunState.IDLE
        assert EventType.CRITICAL_ERROR in collector.types()
        await asyncio.wait_for(scheduler.wait_stopped(), timeout=1)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            BotError(ErrorKind.NETWORK_ERROR, "Claim rewards failed after 3 attempts: timeout"),
            BotError(ErrorKind.CONTRACT_ERROR, "reverted"),
            RuntimeError("unexpected"),
        ],
    )
    async def test_other_errors_keep_scheduling(self, make_scheduler, cycle, error):
        scheduler = make_scheduler()
        await scheduler.start()
        cycle.errors = [error]

        assert await scheduler.run_main_tick() is True

        assert scheduler.state is RunState.RUNNING
        assert await scheduler.run_main_tick() is True
        assert cycle.completed == 2

    @pytest.mark.asyncio
    async def test_stop_does_not_abort_in_flight_cycle(self, make_scheduler, cycle):
        scheduler = make_scheduler()
        await scheduler.start()
        cycle.gate = asyncio.Event()

        tick = asyncio.create_task(scheduler.run_main_tick())
        await asyncio.sleep(0)
        scheduler.stop()
        cycle.gate.set()

        assert await tick is True
        assert cycle.completed == 2

    @pytest.mark.asyncio
    async def test_restart_during_in_flight_cycle_skips_startup_cycle(self, make_scheduler, cycle):
        """A stop then start while a tick is running never overlaps cycles."""
        scheduler = make_scheduler()
        await scheduler.start()
        cycle.gate = asyncio.Event()

        tick = asyncio.create_task(scheduler.run_main_tick())
        await asyncio.sleep(0)
        scheduler.stop()

        await asyncio.wait_for(scheduler.start(), timeout=1)

        assert scheduler.state is RunState.RUNNING
        assert cycle.calls == 2
        assert scheduler.skipped_ticks == 1
        assert scheduler.cycle_in_flight is True

        cycle.gate.set()
        assert await tick is True
        assert cycle.completed == 2
        assert scheduler.cycle_in_flight is False

    @pytest.mark.asyncio
    async def test_health_tick_runs_probe_and_callback(self, make_scheduler, probe):
        snapshots = []
        scheduler = make_scheduler(on_health_tick=lambda: snapshots.append(1))
        await scheduler.start()

        assert await scheduler.run_health_tick() is True

        assert probe.calls == 2
        assert snapshots == [1]

    @pytest.mark.asyncio
    async def test_health_tick_runs_during_cycle(self, make_scheduler, cycle, probe):
        scheduler = make_scheduler()
        await scheduler.start()
        cycle.gate = asyncio.Event()

        tick = asyncio.create_task(scheduler.run_main_tick())
        await asyncio.sleep(0)
        assert await scheduler.run_health_tick() is True
        assert probe.calls == 2

        cycle.gate.set()
        await tick


# =============================================================================
# Timers
# =============================================================================

class TestTimers:

    @pytest.mark.asyncio
    async def test_main_timer_fires_a_tick(self, make_scheduler, make_controlled_sleep, cycle):
        sleep = make_controlled_sleep(immediate=1)
        scheduler = make_scheduler(health_interval_seconds=None, sleep=sleep)

        await scheduler.start()
        for _ in range(5):
            await asyncio.sleep(0)
        await scheduler.drain()

        assert cycle.calls == 2
        assert sleep.calls == [3600, 3600]

    @pytest.mark.asyncio
    async def test_interval_change_applies_to_next_sleep(self, make_scheduler, make_controlled_sleep):
        sleep = make_controlled_sleep()
        scheduler = make_scheduler(health_interval_seconds=None, sleep=sleep)

        await scheduler.start()
        scheduler.main_interval_seconds = 7200
        for _ in range(3):
            await asyncio.sleep(0)

        assert sleep.calls == [7200]

    @pytest.mark.asyncio
    async def test_health_timer_fires_a_tick(self, make_scheduler, probe):
        sleep = ReleasableSleep()
        scheduler = make_scheduler(sleep=sleep)

        await scheduler.start()
        await asyncio.sleep(0)
        sleep.release(600)
        for _ in range(5):
            await asyncio.sleep(0)
        await scheduler.drain()

        assert probe.calls == 2
        assert sleep.delays().count(600) == 2

    @pytest.mark.asyncio
    async def test_disabling_health_checks_mid_sleep_drops_pending_tick(self, make_scheduler, probe):
        sleep = ReleasableSleep()
        scheduler = make_scheduler(sleep=sleep)

        await scheduler.start()
        await asyncio.sleep(0)
        assert sleep.delays().count(600) == 1

        scheduler.health_interval_seconds = None
        sleep.release(600)
        for _ in range(5):
            await asyncio.sleep(0)
        await scheduler.drain()

        assert probe.calls == 1
        assert sleep.delays().count(600) == 1
        assert scheduler.is_running
