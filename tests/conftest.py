from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import pytest

from routing_metrics.errors import StorageUnavailable
from routing_metrics.services.view_state_service import RefreshPreferenceStore, ViewStateStore
from routing_metrics.storage import MemoryStore

# Fixed "today" so day buckets are stable across machines.
BASE_TIME = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def days_ago(n: int) -> str:
    """ISO timestamp ``n`` days before BASE_TIME, as the ticket service sends it."""
    return (BASE_TIME - timedelta(days=n)).isoformat().replace("+00:00", "Z")


def raw_ticket(ticket_id: int, status: str = "SUCCESS", **overrides) -> dict:
    """Build a raw ticket payload in the metrics endpoint's field naming."""
    base = {
        "metricsDepartmentID": ticket_id,
        "subject": f"Ticket {ticket_id}",
        "createdAt": days_ago(ticket_id % 7),
        "status": status,
        "departmentName": "Support",
    }
    base.update(overrides)
    return base


def routing_mix_tickets() -> list[dict]:
    """30 tickets: 23 SUCCESS, 5 FAILURE, 2 DEFAULTED."""
    statuses = ["SUCCESS"] * 23 + ["FAILURE"] * 5 + ["DEFAULTED"] * 2
    return [raw_ticket(i + 1, status) for i, status in enumerate(statuses)]


class BrokenStore:
    """Key/value store whose backend is gone."""

    def get(self, key: str) -> str | None:
        raise StorageUnavailable("storage disabled")

    def set(self, key: str, value: str) -> None:
        raise StorageUnavailable("quota exceeded")

    def delete(self, key: str) -> None:
        raise StorageUnavailable("storage disabled")


class FakeHandle:
    def __init__(self, delay: float, callback: Callable[[], None], repeating: bool):
        self.delay = delay
        self.callback = callback
        self.repeating = repeating
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def active(self) -> bool:
        return not self.cancelled and not (self.fired and not self.repeating)

    def fire(self) -> None:
        assert self.active, "fired a cancelled or spent timer"
        self.fired = True
        self.callback()


class FakeTimers:
    """Records armed timers; tests fire them by hand."""

    def __init__(self) -> None:
        self.handles: list[FakeHandle] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeHandle:
        handle = FakeHandle(delay, callback, repeating=False)
        self.handles.append(handle)
        return handle

    def call_every(self, period: float, callback: Callable[[], None]) -> FakeHandle:
        handle = FakeHandle(period, callback, repeating=True)
        self.handles.append(handle)
        return handle

    def active_fire_timers(self) -> list[FakeHandle]:
        return [h for h in self.handles if h.active and not h.repeating]

    def active_tickers(self) -> list[FakeHandle]:
        return [h for h in self.handles if h.active and h.repeating]


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def view_states(store: MemoryStore) -> ViewStateStore:
    return ViewStateStore(store, namespace="departmentTicketFilters")


@pytest.fixture
def preferences(store: MemoryStore) -> RefreshPreferenceStore:
    return RefreshPreferenceStore(store)


@pytest.fixture
def timers() -> FakeTimers:
    return FakeTimers()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
