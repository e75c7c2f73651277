from datetime import datetime

from pydantic import BaseModel

from routing_metrics.schemas.stats import (
    AccuracyTrend,
    DailyBucket,
    ForecastPoint,
    SmoothedBucket,
    StatsSummary,
)
from routing_metrics.schemas.ticket import TicketRecord


class DashboardSnapshot(BaseModel):
    """Everything derived from one refresh cycle, swapped in as a unit."""

    records: list[TicketRecord] = []
    stats: StatsSummary = StatsSummary()
    daily_series: list[DailyBucket] = []
    forecast: list[ForecastPoint] = []
    smoothed: list[SmoothedBucket] = []
    trend: AccuracyTrend | None = None
    badge: str = "bad"
    refreshed_at: datetime | None = None

    model_config = {"frozen": True}


class ReportSnapshot(BaseModel):
    generated_at: datetime
    scope: str
    stats: StatsSummary
    tickets: list[TicketRecord]
