import contextlib
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass

from routing_metrics.clients.ticket_service import TicketServiceClient
from routing_metrics.config import settings
from routing_metrics.services.dashboard_session import DashboardSession, RecordSource
from routing_metrics.services.view_state_service import RefreshPreferenceStore, ViewStateStore
from routing_metrics.storage import JsonFileStore, KeyValueStore
from routing_metrics.tasks.refresh_scheduler import RefreshScheduler, Timers


@dataclass
class Dashboard:
    session: DashboardSession
    scheduler: RefreshScheduler
    source: RecordSource


def create_dashboard(
    scope_id: str | int | None = None,
    store: KeyValueStore | None = None,
    source: RecordSource | None = None,
    timers: Timers | None = None,
    on_countdown: Callable[[str], None] | None = None,
) -> Dashboard:
    """Wire a session, its record source and its refresh scheduler together."""
    store = store if store is not None else JsonFileStore(settings.state_file)
    source = source if source is not None else TicketServiceClient()

    session = DashboardSession(scope_id, ViewStateStore(store))
    session.enter()

    async def refresh() -> None:
        await session.refresh(source)

    scheduler = RefreshScheduler(
        refresh,
        RefreshPreferenceStore(store),
        timers=timers,
        on_countdown=on_countdown,
    )
    return Dashboard(session=session, scheduler=scheduler, source=source)


@contextlib.asynccontextmanager
async def run_dashboard(dashboard: Dashboard) -> AsyncIterator[Dashboard]:
    """Load once, keep refreshing while the block runs, then tear down."""
    async with contextlib.AsyncExitStack() as stack:
        if isinstance(dashboard.source, TicketServiceClient):
            stack.push_async_callback(dashboard.source.aclose)
        await dashboard.scheduler.trigger_refresh(manual=True)
        await stack.enter_async_context(dashboard.scheduler)
        yield dashboard
