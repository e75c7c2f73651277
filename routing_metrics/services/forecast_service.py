"""Projections and smoothing over a daily accuracy series.

Both functions are pure: they never mutate the series they are given and
return the same output for the same input.
"""

from collections.abc import Sequence
from datetime import date, timedelta

from routing_metrics.schemas.stats import DailyBucket, ForecastPoint, SmoothedBucket
from routing_metrics.services.stats_service import clamp_percent


def _following_days(last_date: str, horizon_days: int) -> list[str]:
    base = date.fromisoformat(last_date)
    return [(base + timedelta(days=i)).isoformat() for i in range(1, horizon_days + 1)]


def linear_trend_forecast(
    series: Sequence[DailyBucket],
    horizon_days: int = 7,
) -> list[ForecastPoint]:
    """Extrapolate accuracy ``horizon_days`` past the last observed day.

    The slope runs from the first to the last point only:
    (last - first) / (n - 1). A single point projects flat. Projected values
    are clamped to [0, 100].
    """
    if not series or horizon_days <= 0:
        return []

    first = series[0]
    last = series[-1]
    days = _following_days(last.date, horizon_days)

    if len(series) == 1:
        return [ForecastPoint(date=day, accuracy=last.accuracy) for day in days]

    slope = (last.accuracy - first.accuracy) / (len(series) - 1)
    return [
        ForecastPoint(date=day, accuracy=clamp_percent(last.accuracy + slope * i))
        for i, day in enumerate(days, start=1)
    ]


def moving_average_smoothing(
    series: Sequence[DailyBucket],
    window_size: int = 7,
) -> list[SmoothedBucket]:
    """Trailing moving average of accuracy, one output per input bucket.

    Index i averages buckets max(0, i - window_size + 1) .. i; there is no
    look-ahead, so early points average over a shorter window.
    """
    if window_size < 1:
        raise ValueError("window_size must be at least 1")

    smoothed: list[SmoothedBucket] = []
    for i, bucket in enumerate(series):
        window = series[max(0, i - window_size + 1) : i + 1]
        smoothed.append(
            SmoothedBucket(
                date=bucket.date,
                total=bucket.total,
                success_count=bucket.success_count,
                accuracy=bucket.accuracy,
                smoothed_accuracy=sum(b.accuracy for b in window) / len(window),
            )
        )
    return smoothed
