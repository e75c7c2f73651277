from pydantic import BaseModel, computed_field

from routing_metrics.models.base import TrendDirection


class StatsSummary(BaseModel):
    total_tickets: int = 0
    success_count: int = 0
    failure_count: int = 0
    defaulted_count: int = 0
    accuracy_percent: float = 0.0

    @computed_field
    @property
    def incorrect_count(self) -> int:
        return self.failure_count + self.defaulted_count


class AccuracyTrend(BaseModel):
    direction: TrendDirection
    delta: float | None = None


class DailyBucket(BaseModel):
    date: str
    total: int
    success_count: int
    accuracy: float

    model_config = {"frozen": True}


class SmoothedBucket(DailyBucket):
    smoothed_accuracy: float


class ForecastPoint(BaseModel):
    date: str
    accuracy: float
    projected: bool = True

    model_config = {"frozen": True}
