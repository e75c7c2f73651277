from collections.abc import Iterable
from datetime import timezone

from routing_metrics.models.base import RoutingStatus
from routing_metrics.schemas.stats import DailyBucket
from routing_metrics.schemas.ticket import TicketRecord


def day_key(record: TicketRecord) -> str | None:
    """UTC calendar day of the record as ``YYYY-MM-DD``, or None when unknown."""
    if record.created_at is None:
        return None
    created = record.created_at
    if created.tzinfo is not None:
        created = created.astimezone(timezone.utc)
    return created.date().isoformat()


def build_daily_series(records: Iterable[TicketRecord] | None) -> list[DailyBucket]:
    """Bucket records per UTC day into an ascending accuracy series.

    Records without a usable creation time are left out of every bucket.
    """
    totals: dict[str, list[int]] = {}
    for record in records or ():
        key = day_key(record)
        if key is None:
            continue
        counts = totals.setdefault(key, [0, 0])
        counts[0] += 1
        if record.status is RoutingStatus.SUCCESS:
            counts[1] += 1

    # Zero-padded ISO dates sort chronologically as strings.
    return [
        DailyBucket(
            date=key,
            total=total,
            success_count=success,
            accuracy=success / total * 100 if total > 0 else 0.0,
        )
        for key, (total, success) in sorted(totals.items())
    ]
