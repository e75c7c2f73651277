from routing_metrics.models.base import (
    KNOWN_OUTCOMES,
    FacetDimension,
    RoutingOutcome,
    RoutingStatus,
    SchedulerState,
    TicketPriority,
    TrendDirection,
    ViewMode,
)

__all__ = [
    "KNOWN_OUTCOMES",
    "FacetDimension",
    "RoutingOutcome",
    "RoutingStatus",
    "SchedulerState",
    "TicketPriority",
    "TrendDirection",
    "ViewMode",
]
