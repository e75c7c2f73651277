import math
from collections.abc import Callable, Sequence

from routing_metrics.models.base import (
    FacetDimension,
    RoutingOutcome,
    RoutingStatus,
    TicketPriority,
)
from routing_metrics.schemas.ticket import TicketPage, TicketRecord
from routing_metrics.schemas.view_state import FilterState

# FilterState attribute backing each facet dimension.
_DIMENSION_FIELDS = {
    FacetDimension.status: "status",
    FacetDimension.priority: "priority",
    FacetDimension.routing: "routing_outcome",
}

_DIMENSION_VALUES = {
    FacetDimension.status: [s.value for s in RoutingStatus],
    FacetDimension.priority: [p.value for p in TicketPriority],
    FacetDimension.routing: [RoutingOutcome.correct.value, RoutingOutcome.incorrect.value],
}


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

def matches_search(record: TicketRecord, term: str) -> bool:
    if not term:
        return True
    needle = term.lower()
    record_id = "" if record.id is None else str(record.id)
    return needle in record_id.lower() or needle in record.subject.lower()


def matches_status(record: TicketRecord, status: str) -> bool:
    return not status or record.status.value == status


def matches_routing(record: TicketRecord, outcome: RoutingOutcome | str) -> bool:
    """Routing chip predicate: only FAILURE counts as misrouted here."""
    outcome = RoutingOutcome(outcome)
    is_failure = record.status is RoutingStatus.FAILURE
    if outcome is RoutingOutcome.correct:
        return not is_failure
    if outcome is RoutingOutcome.incorrect:
        return is_failure
    return True


def matches_priority(record: TicketRecord, priority: str) -> bool:
    return not priority or record.priority.value.lower() == priority.lower()


def _predicates(filters: FilterState) -> list[Callable[[TicketRecord], bool]]:
    active: list[Callable[[TicketRecord], bool]] = []
    if filters.search:
        active.append(lambda r: matches_search(r, filters.search))
    if filters.status:
        active.append(lambda r: matches_status(r, filters.status))
    if filters.routing_outcome is not RoutingOutcome.all:
        active.append(lambda r: matches_routing(r, filters.routing_outcome))
    if filters.priority:
        active.append(lambda r: matches_priority(r, filters.priority))
    return active


def _dimension_predicate(dimension: FacetDimension, value: str) -> Callable[[TicketRecord], bool]:
    if dimension is FacetDimension.status:
        return lambda r: matches_status(r, value)
    if dimension is FacetDimension.priority:
        return lambda r: matches_priority(r, value)
    return lambda r: matches_routing(r, value)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def apply_filters(records: Sequence[TicketRecord], filters: FilterState) -> list[TicketRecord]:
    """Keep the records that pass every active filter, in their original order."""
    predicates = _predicates(filters)
    if not predicates:
        return list(records)
    return [r for r in records if all(p(r) for p in predicates)]


def compute_facet_counts(
    records: Sequence[TicketRecord],
    filters: FilterState,
    dimension: FacetDimension | str,
) -> dict[str, int]:
    """Count what each chip of ``dimension`` would show if it were selected.

    Every other active filter is applied; the dimension's own current value is
    ignored. The ``""`` entry is the count for the "all" chip.
    """
    dimension = FacetDimension(dimension)
    relaxed = filters.model_copy(update={_DIMENSION_FIELDS[dimension]: _empty_value(dimension)})
    pool = apply_filters(records, relaxed)

    counts = {"": len(pool)}
    for value in _DIMENSION_VALUES[dimension]:
        predicate = _dimension_predicate(dimension, value)
        counts[value] = sum(1 for r in pool if predicate(r))
    return counts


def _empty_value(dimension: FacetDimension) -> str | RoutingOutcome:
    if dimension is FacetDimension.routing:
        return RoutingOutcome.all
    return ""


def paginate(records: Sequence[TicketRecord], page: int, page_size: int) -> TicketPage:
    """Slice one page out of ``records``; ``page`` is clamped into range."""
    if page_size < 1:
        raise ValueError("page_size must be at least 1")
    total_pages = max(1, math.ceil(len(records) / page_size))
    current_page = min(max(1, page), total_pages)
    start = (current_page - 1) * page_size
    return TicketPage(
        total_pages=total_pages,
        current_page=current_page,
        total_items=len(records),
        items=list(records[start : start + page_size]),
    )
