import asyncio
import logging
import math
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, Protocol

from routing_metrics.config import settings
from routing_metrics.models.base import SchedulerState
from routing_metrics.schemas.view_state import RefreshConfig, RefreshResult
from routing_metrics.services.time_labels import countdown_label
from routing_metrics.services.view_state_service import RefreshPreferenceStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Timers
# ---------------------------------------------------------------------------

class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Timers(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...

    def call_every(self, period: float, callback: Callable[[], None]) -> TimerHandle: ...


class _RepeatingHandle:
    def __init__(self, loop: asyncio.AbstractEventLoop, period: float, callback: Callable[[], None]):
        self._loop = loop
        self._period = period
        self._callback = callback
        self._cancelled = False
        self._handle = loop.call_later(period, self._tick)

    def _tick(self) -> None:
        if self._cancelled:
            return
        self._handle = self._loop.call_later(self._period, self._tick)
        self._callback()

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()


class AsyncioTimers:
    """Timers on the running event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return self._get_loop().call_later(delay, callback)

    def call_every(self, period: float, callback: Callable[[], None]) -> TimerHandle:
        return _RepeatingHandle(self._get_loop(), period, callback)


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

class RefreshScheduler:
    """Keeps a dashboard fresh by re-running ``refresh`` on an interval.

    States: idle (auto-refresh off or closed), scheduled (fire timer armed),
    running (one cycle in flight). Each cycle re-arms a single-shot timer when
    it completes, so a slow cycle delays the next one instead of stacking up.
    At most one cycle runs at a time; overlapping requests are dropped.
    """

    def __init__(
        self,
        refresh: Callable[[], Awaitable[Any]],
        preferences: RefreshPreferenceStore,
        timers: Timers | None = None,
        clock: Callable[[], float] | None = None,
        on_countdown: Callable[[str], None] | None = None,
        tick_seconds: float | None = None,
    ) -> None:
        self._refresh = refresh
        self._preferences = preferences
        self._timers = timers or AsyncioTimers()
        self._clock = clock or time.time
        self._on_countdown = on_countdown
        self._tick_seconds = tick_seconds if tick_seconds is not None else settings.countdown_tick_seconds

        self.config: RefreshConfig = preferences.load()
        self.state = SchedulerState.idle
        self.next_fire_at: float | None = None
        self.last_result: RefreshResult | None = None

        self._fire_handle: TimerHandle | None = None
        self._ticker_handle: TimerHandle | None = None
        self._pending: asyncio.Task | None = None
        self._cycle: asyncio.Future | None = None
        self._closed = False

    async def __aenter__(self) -> "RefreshScheduler":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()
        await self.join()

    # -- Configuration --

    def start(self) -> None:
        self.config = self._preferences.load()
        self.schedule_next()

    def configure(self, enabled: bool | None = None, interval_ms: int | None = None) -> RefreshConfig:
        """Change the auto-refresh preference, persist it, and reschedule."""
        config = RefreshConfig(
            enabled=self.config.enabled if enabled is None else enabled,
            interval_ms=self.config.interval_ms if interval_ms is None else interval_ms,
        )
        self.config = config
        self._preferences.save(config)
        self.schedule_next()
        return config

    # -- Timers --

    def _cancel_timers(self) -> None:
        if self._fire_handle is not None:
            self._fire_handle.cancel()
            self._fire_handle = None
        if self._ticker_handle is not None:
            self._ticker_handle.cancel()
            self._ticker_handle = None

    def countdown_text(self) -> str:
        return countdown_label(self.next_fire_at, self._clock(), self.config.enabled)

    def seconds_until_next(self) -> int | None:
        if self.next_fire_at is None:
            return None
        return math.ceil(max(0.0, self.next_fire_at - self._clock()))

    def _emit_countdown(self) -> None:
        if self._on_countdown is not None:
            self._on_countdown(self.countdown_text())

    def schedule_next(self) -> None:
        """Re-derive timers from the current preference.

        While a cycle is running nothing is armed; the cycle reschedules from
        the latest preference when it completes.
        """
        self._cancel_timers()

        if self._closed or not self.config.enabled or self.state is SchedulerState.running:
            self.next_fire_at = None
            if self.state is not SchedulerState.running:
                self.state = SchedulerState.idle
            self._emit_countdown()
            return

        interval = self.config.interval_ms / 1000
        self.next_fire_at = self._clock() + interval
        self.state = SchedulerState.scheduled
        self._emit_countdown()
        self._ticker_handle = self._timers.call_every(self._tick_seconds, self._emit_countdown)
        self._fire_handle = self._timers.call_later(interval, self._on_fire)

    def _on_fire(self) -> None:
        self._fire_handle = None
        if self._closed or self.state is SchedulerState.running:
            return
        self._pending = asyncio.create_task(self.trigger_refresh(manual=False))

    # -- Cycles --

    async def trigger_refresh(self, manual: bool = False) -> RefreshResult | None:
        """Run one refresh cycle.

        Returns None when the request was dropped: a cycle is already running,
        the scheduler is closed, or an automatic cycle fired after auto-refresh
        was switched off.
        """
        if self.state is SchedulerState.running:
            logger.debug("Refresh already running; dropping %s request", "manual" if manual else "automatic")
            return None
        if self._closed or (not manual and not self.config.enabled):
            return None

        self.state = SchedulerState.running
        self._cancel_timers()
        self.next_fire_at = None
        started_at = self._now()
        ok = False
        error: str | None = "cancelled"
        try:
            self._cycle = asyncio.ensure_future(self._refresh())
            await self._cycle
            ok, error = True, None
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            logger.info("Refresh cycle cancelled by close()")
        except Exception as exc:
            logger.exception("Refresh cycle failed")
            error = str(exc) or exc.__class__.__name__
        finally:
            self._cycle = None
            self.last_result = RefreshResult(
                manual=manual,
                ok=ok,
                error=error,
                started_at=started_at,
                finished_at=self._now(),
            )
            self.state = SchedulerState.idle
            self.schedule_next()
        return self.last_result

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    # -- Teardown --

    def close(self) -> None:
        """Stop all timers and the cycle in flight, if any. Safe to call twice."""
        self._closed = True
        self._cancel_timers()
        self.next_fire_at = None
        if self._cycle is not None and not self._cycle.done():
            self._cycle.cancel()
        elif self.state is not SchedulerState.running:
            if self._pending is not None and not self._pending.done():
                self._pending.cancel()
            self.state = SchedulerState.idle

    async def join(self) -> None:
        """Wait until the timer-started task and the cycle in flight have finished."""
        tasks = [t for t in (self._pending, self._cycle) if t is not None and not t.done()]
        if tasks:
            await asyncio.wait(tasks)
