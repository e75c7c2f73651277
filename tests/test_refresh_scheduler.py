import asyncio

import pytest
from pydantic import ValidationError

from routing_metrics.errors import RecordSourceError
from routing_metrics.models.base import SchedulerState
from routing_metrics.schemas.view_state import RefreshConfig
from routing_metrics.services.view_state_service import RefreshPreferenceStore
from routing_metrics.tasks.refresh_scheduler import AsyncioTimers, RefreshScheduler
from tests.conftest import FakeClock, FakeTimers

pytestmark = pytest.mark.asyncio


class CountingRefresh:
    def __init__(self, error: Exception | None = None, gate: asyncio.Event | None = None):
        self.calls = 0
        self.error = error
        self.gate = gate

    async def __call__(self) -> None:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error


def _scheduler(refresh, preferences, timers, clock, labels=None) -> RefreshScheduler:
    return RefreshScheduler(
        refresh,
        preferences,
        timers=timers,
        clock=clock,
        on_countdown=labels.append if labels is not None else None,
        tick_seconds=1.0,
    )


async def _settle() -> None:
    """Let freshly created tasks run up to their first suspension."""
    for _ in range(5):
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


async def test_start_arms_fire_timer_and_ticker(preferences, timers: FakeTimers, clock: FakeClock):
    """start() arms the fire timer and the countdown ticker."""
    scheduler = _scheduler(CountingRefresh(), preferences, timers, clock)
    scheduler.start()

    assert scheduler.state is SchedulerState.scheduled
    assert [h.delay for h in timers.active_fire_timers()] == [60.0]
    assert [h.delay for h in timers.active_tickers()] == [1.0]
    assert scheduler.seconds_until_next() == 60


async def test_start_disabled_stays_idle(preferences, timers: FakeTimers, clock: FakeClock):
    """With auto-refresh off, start() arms nothing."""
    preferences.save(RefreshConfig(enabled=False))
    labels: list[str] = []
    scheduler = _scheduler(CountingRefresh(), preferences, timers, clock, labels)
    scheduler.start()

    assert scheduler.state is SchedulerState.idle
    assert timers.handles == []
    assert scheduler.seconds_until_next() is None
    assert labels == ["Auto-refresh is off"]


async def test_timer_fires_one_cycle_and_rearms(preferences, timers: FakeTimers, clock: FakeClock):
    """The fire timer runs one cycle, then a fresh timer is armed."""
    refresh = CountingRefresh()
    scheduler = _scheduler(refresh, preferences, timers, clock)
    scheduler.start()
    first = timers.active_fire_timers()[0]

    clock.now = 60.0
    first.fire()
    await scheduler.join()

    assert refresh.calls == 1
    assert scheduler.last_result.ok
    assert scheduler.last_result.manual is False
    assert scheduler.state is SchedulerState.scheduled
    assert scheduler.next_fire_at == 120.0

    rearmed = timers.active_fire_timers()
    assert len(rearmed) == 1
    assert rearmed[0] is not first
    assert len(timers.active_tickers()) == 1


async def test_overlapping_request_is_dropped(preferences, timers: FakeTimers, clock: FakeClock):
    """Requests made while a cycle runs are dropped."""
    gate = asyncio.Event()
    refresh = CountingRefresh(gate=gate)
    scheduler = _scheduler(refresh, preferences, timers, clock)
    scheduler.start()

    in_flight = asyncio.create_task(scheduler.trigger_refresh(manual=True))
    await asyncio.sleep(0)
    assert scheduler.state is SchedulerState.running
    assert timers.active_fire_timers() == []

    assert await scheduler.trigger_refresh(manual=True) is None
    assert await scheduler.trigger_refresh(manual=False) is None

    gate.set()
    result = await in_flight

    assert result.ok
    assert refresh.calls == 1
    assert len(timers.active_fire_timers()) == 1


async def test_failed_cycle_is_recorded_and_rescheduled(preferences, timers: FakeTimers, clock: FakeClock):
    """A failed cycle is recorded and the next one is still armed."""
    refresh = CountingRefresh(error=RecordSourceError("ticket service unavailable", status_code=503))
    scheduler = _scheduler(refresh, preferences, timers, clock)
    scheduler.start()

    result = await scheduler.trigger_refresh(manual=True)

    assert result.ok is False
    assert result.error == "ticket service unavailable"
    assert scheduler.state is SchedulerState.scheduled
    assert len(timers.active_fire_timers()) == 1


# ---------------------------------------------------------------------------
# Preference changes
# ---------------------------------------------------------------------------


async def test_disable_cancels_timer_and_manual_still_runs_once(
    preferences, timers: FakeTimers, clock: FakeClock
):
    """Disabling cancels both timers; a manual refresh runs once and arms nothing."""
    refresh = CountingRefresh()
    scheduler = _scheduler(refresh, preferences, timers, clock)
    scheduler.start()
    pending = timers.active_fire_timers()[0]

    scheduler.configure(enabled=False)

    assert pending.cancelled
    assert timers.active_fire_timers() == []
    assert timers.active_tickers() == []
    assert scheduler.countdown_text() == "Auto-refresh is off"

    result = await scheduler.trigger_refresh(manual=True)

    assert result.ok
    assert refresh.calls == 1
    assert timers.active_fire_timers() == []
    assert scheduler.state is SchedulerState.idle


async def test_stale_automatic_fire_after_disable_is_ignored(
    preferences, timers: FakeTimers, clock: FakeClock
):
    """An automatic request after disabling does nothing."""
    refresh = CountingRefresh()
    scheduler = _scheduler(refresh, preferences, timers, clock)
    scheduler.configure(enabled=False)

    assert await scheduler.trigger_refresh(manual=False) is None
    assert refresh.calls == 0


async def test_manual_refresh_resets_countdown(preferences, timers: FakeTimers, clock: FakeClock):
    """A manual refresh restarts the countdown from its own completion."""
    scheduler = _scheduler(CountingRefresh(), preferences, timers, clock)
    scheduler.start()
    original = timers.active_fire_timers()[0]

    clock.now = 45.0
    await scheduler.trigger_refresh(manual=True)

    assert original.cancelled
    assert scheduler.next_fire_at == 105.0
    assert scheduler.seconds_until_next() == 60


async def test_configure_persists_and_reschedules(
    preferences: RefreshPreferenceStore, timers: FakeTimers, clock: FakeClock
):
    """configure() saves the preference and re-arms with the new interval."""
    scheduler = _scheduler(CountingRefresh(), preferences, timers, clock)
    scheduler.start()

    config = scheduler.configure(interval_ms=30_000)

    assert config == RefreshConfig(enabled=True, interval_ms=30_000)
    assert preferences.load() == config
    assert [h.delay for h in timers.active_fire_timers()] == [30.0]


async def test_invalid_interval_is_rejected(preferences, timers: FakeTimers, clock: FakeClock):
    """A non-positive interval is rejected and the old timer stays."""
    scheduler = _scheduler(CountingRefresh(), preferences, timers, clock)
    scheduler.start()

    with pytest.raises(ValidationError):
        scheduler.configure(interval_ms=0)
    assert scheduler.config.interval_ms == 60_000
    assert len(timers.active_fire_timers()) == 1


async def test_countdown_labels(preferences, timers: FakeTimers, clock: FakeClock):
    """The countdown callback receives the remaining seconds."""
    labels: list[str] = []
    scheduler = _scheduler(CountingRefresh(), preferences, timers, clock, labels)
    scheduler.start()
    assert labels[-1] == "Next refresh in 60s (at 00:01:00)"

    clock.now = 12.5
    timers.active_tickers()[0].fire()
    assert labels[-1] == "Next refresh in 48s (at 00:01:00)"


# ---------------------------------------------------------------------------
# Teardown
# ---------------------------------------------------------------------------


async def test_close_cancels_cycle_in_flight(preferences, timers: FakeTimers, clock: FakeClock):
    """close() cancels a timer-started cycle and clears the timers."""
    gate = asyncio.Event()
    refresh = CountingRefresh(gate=gate)
    scheduler = _scheduler(refresh, preferences, timers, clock)
    scheduler.start()

    timers.active_fire_timers()[0].fire()
    await _settle()
    assert scheduler.state is SchedulerState.running

    scheduler.close()
    await scheduler.join()

    assert refresh.calls == 1
    assert scheduler.last_result.ok is False
    assert scheduler.last_result.error == "cancelled"
    assert scheduler.state is SchedulerState.idle
    assert timers.active_fire_timers() == []
    assert timers.active_tickers() == []


async def test_reconfigure_during_cycle_then_close(preferences, timers: FakeTimers, clock: FakeClock):
    """Reconfiguring mid-cycle arms nothing, and close() still stops that cycle."""
    gate = asyncio.Event()
    events: list[str] = []

    async def refresh() -> None:
        events.append("start")
        await gate.wait()
        events.append("finished")

    scheduler = _scheduler(refresh, preferences, timers, clock)
    scheduler.start()
    timers.active_fire_timers()[0].fire()
    await _settle()

    scheduler.configure(interval_ms=1000)
    assert scheduler.state is SchedulerState.running
    assert timers.active_fire_timers() == []
    assert timers.active_tickers() == []

    scheduler.close()
    await scheduler.join()
    gate.set()
    await _settle()

    assert events == ["start"]
    assert scheduler.last_result.error == "cancelled"
    assert scheduler.state is SchedulerState.idle
    assert timers.active_fire_timers() == []


async def test_reconfigure_during_cycle_applies_on_completion(
    preferences, timers: FakeTimers, clock: FakeClock
):
    """A preference changed mid-cycle takes effect when the cycle ends."""
    gate = asyncio.Event()
    scheduler = _scheduler(CountingRefresh(gate=gate), preferences, timers, clock)
    scheduler.start()

    in_flight = asyncio.create_task(scheduler.trigger_refresh(manual=True))
    await _settle()
    scheduler.configure(interval_ms=5_000)
    assert timers.active_fire_timers() == []

    gate.set()
    await in_flight

    assert [h.delay for h in timers.active_fire_timers()] == [5.0]
    assert scheduler.state is SchedulerState.scheduled


async def test_close_cancels_manual_cycle(preferences, timers: FakeTimers, clock: FakeClock):
    """close() cancels a manual cycle and reports it as cancelled."""
    gate = asyncio.Event()
    refresh = CountingRefresh(gate=gate)
    scheduler = _scheduler(refresh, preferences, timers, clock)
    scheduler.start()

    in_flight = asyncio.create_task(scheduler.trigger_refresh(manual=True))
    await _settle()
    scheduler.close()
    result = await in_flight

    assert refresh.calls == 1
    assert result.manual is True
    assert result.ok is False
    assert result.error == "cancelled"
    assert timers.active_fire_timers() == []


async def test_closed_scheduler_ignores_requests(preferences, timers: FakeTimers, clock: FakeClock):
    """After the context exits, refresh requests are dropped."""
    refresh = CountingRefresh()
    async with _scheduler(refresh, preferences, timers, clock) as scheduler:
        assert scheduler.state is SchedulerState.scheduled

    assert await scheduler.trigger_refresh(manual=True) is None
    scheduler.close()
    assert refresh.calls == 0
    assert timers.active_fire_timers() == []


async def test_runs_on_event_loop_timers(store):
    """The scheduler fires on real event-loop timers."""
    preferences = RefreshPreferenceStore(store)
    preferences.save(RefreshConfig(enabled=True, interval_ms=20))
    done = asyncio.Event()

    async def refresh() -> None:
        done.set()

    labels: list[str] = []
    scheduler = RefreshScheduler(
        refresh,
        preferences,
        timers=AsyncioTimers(),
        on_countdown=labels.append,
        tick_seconds=0.005,
    )
    async with scheduler:
        await asyncio.wait_for(done.wait(), timeout=2)

    assert scheduler.last_result is not None
    assert scheduler.last_result.manual is False
    assert labels
