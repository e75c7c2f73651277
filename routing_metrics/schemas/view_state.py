from datetime import datetime

from pydantic import BaseModel, Field, PositiveInt

from routing_metrics.models.base import RoutingOutcome, ViewMode


class FilterState(BaseModel):
    search: str = ""
    status: str = ""
    routing_outcome: RoutingOutcome = Field(RoutingOutcome.all, alias="routing")
    priority: str = ""

    model_config = {"populate_by_name": True, "frozen": True}


class ViewState(BaseModel):
    current_page: int = Field(1, ge=1)
    page_size: PositiveInt = 10
    view_mode: ViewMode = ViewMode.table


class PersistedViewState(BaseModel):
    """Per-scope record written to the key/value store."""

    filters: FilterState = FilterState()
    current_view: ViewMode = Field(ViewMode.table, alias="currentView")
    current_page: int = Field(1, ge=1, alias="currentPage")

    model_config = {"populate_by_name": True}


class RefreshConfig(BaseModel):
    enabled: bool = True
    interval_ms: PositiveInt = Field(60_000, alias="intervalMs")

    model_config = {"populate_by_name": True}


class RefreshResult(BaseModel):
    manual: bool
    ok: bool
    error: str | None = None
    started_at: datetime
    finished_at: datetime
