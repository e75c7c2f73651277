import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any, Protocol

from routing_metrics.config import settings
from routing_metrics.models.base import FacetDimension, ViewMode
from routing_metrics.schemas.dashboard import DashboardSnapshot, ReportSnapshot
from routing_metrics.schemas.ticket import TicketPage, TicketRecord
from routing_metrics.schemas.view_state import FilterState, PersistedViewState, ViewState
from routing_metrics.services import (
    filter_service,
    forecast_service,
    record_service,
    stats_service,
    timeseries_service,
)
from routing_metrics.services.view_state_service import StoreResult, ViewStateStore

logger = logging.getLogger(__name__)


class RecordSource(Protocol):
    async def fetch_records(self, scope_id: str | int | None) -> list[Any]: ...

    async def fetch_accuracy_ratio(self, scope_id: str | int | None) -> float | None: ...


class DashboardSession:
    """State for one view session over one scope (a department, or all).

    Holds the latest computed snapshot plus the scope's filter and view state.
    Filter/view mutations are persisted immediately; the snapshot is replaced
    as a whole on every refresh.
    """

    def __init__(
        self,
        scope_id: str | int | None,
        view_states: ViewStateStore,
        page_size: int | None = None,
        horizon_days: int | None = None,
        window_days: int | None = None,
    ) -> None:
        self.scope_id = scope_id
        self._view_states = view_states
        self._horizon_days = horizon_days if horizon_days is not None else settings.forecast_horizon_days
        self._window_days = window_days if window_days is not None else settings.smoothing_window_days
        self.filters = FilterState()
        self.view = ViewState(page_size=page_size or settings.page_size)
        self.snapshot = DashboardSnapshot()

    # ------------------------------------------------------------------
    # Scope entry and persistence
    # ------------------------------------------------------------------

    def enter(self) -> PersistedViewState | None:
        """Restore the scope's saved filters, view mode and page, if any."""
        saved = self._view_states.load(self.scope_id)
        if saved is not None:
            self.filters = saved.filters
            self.view.view_mode = saved.current_view
            self.view.current_page = saved.current_page
        return saved

    def persisted_state(self) -> PersistedViewState:
        return PersistedViewState(
            filters=self.filters,
            current_view=self.view.view_mode,
            current_page=self.view.current_page,
        )

    def _persist(self) -> StoreResult:
        result = self._view_states.save(self.scope_id, self.persisted_state())
        if not result.ok:
            # Best effort: the session keeps working from memory.
            logger.debug("View state for scope %s kept in memory only", self.scope_id)
        return result

    # ------------------------------------------------------------------
    # Recompute
    # ------------------------------------------------------------------

    def apply_records(
        self,
        raw_records: Iterable[Any] | None,
        accuracy_ratio: float | None = None,
    ) -> DashboardSnapshot:
        """Normalize raw tickets and rebuild every derived view of them."""
        records = record_service.normalize_all(raw_records)
        stats = stats_service.compute_stats(records, accuracy_ratio)
        series = timeseries_service.build_daily_series(records)
        previous = self._view_states.load_last_accuracy()

        snapshot = DashboardSnapshot(
            records=records,
            stats=stats,
            daily_series=series,
            forecast=forecast_service.linear_trend_forecast(series, self._horizon_days),
            smoothed=forecast_service.moving_average_smoothing(series, self._window_days),
            trend=stats_service.accuracy_trend(stats.accuracy_percent, previous),
            badge=stats_service.accuracy_badge(stats.accuracy_percent),
            refreshed_at=datetime.now(timezone.utc),
        )
        self.snapshot = snapshot
        self._view_states.save_last_accuracy(stats.accuracy_percent)
        return snapshot

    async def refresh(self, source: RecordSource) -> DashboardSnapshot:
        """Fetch the scope's tickets and the service's accuracy ratio, then recompute.

        If the source raises, the previous snapshot stays in place.
        """
        raw_records, accuracy_ratio = await asyncio.gather(
            source.fetch_records(self.scope_id),
            source.fetch_accuracy_ratio(self.scope_id),
        )
        snapshot = self.apply_records(raw_records, accuracy_ratio)
        logger.info(
            "Refreshed scope %s: %d tickets, accuracy %.1f%%",
            self.scope_id if self.scope_id is not None else "all",
            snapshot.stats.total_tickets,
            snapshot.stats.accuracy_percent,
        )
        return snapshot

    # ------------------------------------------------------------------
    # User interaction
    # ------------------------------------------------------------------

    def update_filters(self, **changes: Any) -> FilterState:
        """Change one or more filters; always returns to the first page."""
        if "routing_outcome" in changes:
            changes["routing"] = changes.pop("routing_outcome")
        self.filters = FilterState.model_validate({**self.filters.model_dump(by_alias=True), **changes})
        self.view.current_page = 1
        self._persist()
        return self.filters

    def clear_filters(self) -> FilterState:
        self.filters = FilterState()
        self.view.current_page = 1
        self._persist()
        return self.filters

    def go_to_page(self, page: int) -> TicketPage:
        self.view.current_page = max(1, page)
        result = self.page()
        self._persist()
        return result

    def next_page(self) -> TicketPage:
        return self.go_to_page(self.view.current_page + 1)

    def previous_page(self) -> TicketPage:
        return self.go_to_page(self.view.current_page - 1)

    def set_view_mode(self, mode: ViewMode | str) -> None:
        self.view.view_mode = ViewMode(mode)
        self._persist()

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def filtered(self) -> list[TicketRecord]:
        return filter_service.apply_filters(self.snapshot.records, self.filters)

    def page(self) -> TicketPage:
        result = filter_service.paginate(
            self.filtered(), self.view.current_page, self.view.page_size
        )
        self.view.current_page = result.current_page
        return result

    def facets(self) -> dict[str, dict[str, int]]:
        records = self.snapshot.records
        return {
            FacetDimension.status.value: filter_service.compute_facet_counts(
                records, self.filters, FacetDimension.status
            ),
            FacetDimension.priority.value: filter_service.compute_facet_counts(
                records, self.filters, FacetDimension.priority
            ),
        }

    def report(self, scope_label: str) -> ReportSnapshot:
        return stats_service.build_report_snapshot(
            scope_label, self.snapshot.stats, self.snapshot.records
        )
