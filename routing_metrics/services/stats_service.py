import math
from collections.abc import Sequence
from datetime import datetime, timezone

from routing_metrics.models.base import RoutingStatus, TrendDirection
from routing_metrics.schemas.dashboard import ReportSnapshot
from routing_metrics.schemas.stats import AccuracyTrend, StatsSummary
from routing_metrics.schemas.ticket import TicketRecord

# Accuracy changes smaller than this (percentage points) count as "no change".
TREND_THRESHOLD = 0.1


def clamp_percent(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return min(100.0, max(0.0, value))


def compute_stats(
    records: Sequence[TicketRecord] | None,
    accuracy_ratio: float | None = None,
) -> StatsSummary:
    """Count routing outcomes and derive accuracy.

    accuracy = accuracy_ratio * 100 when the ticket service supplied a ratio,
    else success / total * 100, else 0. Always clamped to [0, 100].
    """
    if not records:
        records = []

    success = failure = defaulted = 0
    for record in records:
        if record.status is RoutingStatus.SUCCESS:
            success += 1
        elif record.status is RoutingStatus.FAILURE:
            failure += 1
        elif record.status is RoutingStatus.DEFAULTED:
            defaulted += 1

    total = len(records)
    if accuracy_ratio is not None and math.isfinite(accuracy_ratio):
        accuracy = accuracy_ratio * 100
    elif total > 0:
        accuracy = success / total * 100
    else:
        accuracy = 0.0

    return StatsSummary(
        total_tickets=total,
        success_count=success,
        failure_count=failure,
        defaulted_count=defaulted,
        accuracy_percent=clamp_percent(accuracy),
    )


def accuracy_badge(accuracy_percent: float) -> str:
    if accuracy_percent >= 90:
        return "good"
    if accuracy_percent >= 70:
        return "ok"
    return "bad"


def accuracy_trend(current: float, previous: float | None) -> AccuracyTrend:
    """Compare accuracy with the value shown on the previous visit."""
    if previous is None or not math.isfinite(previous):
        return AccuracyTrend(direction=TrendDirection.first)
    delta = current - previous
    if abs(delta) < TREND_THRESHOLD:
        return AccuracyTrend(direction=TrendDirection.flat, delta=delta)
    direction = TrendDirection.up if delta > 0 else TrendDirection.down
    return AccuracyTrend(direction=direction, delta=delta)


def build_report_snapshot(
    scope_label: str,
    stats: StatsSummary,
    records: Sequence[TicketRecord],
    generated_at: datetime | None = None,
) -> ReportSnapshot:
    return ReportSnapshot(
        generated_at=generated_at or datetime.now(timezone.utc),
        scope=scope_label,
        stats=stats,
        tickets=list(records),
    )
