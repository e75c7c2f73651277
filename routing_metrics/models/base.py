import enum


class RoutingStatus(str, enum.Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    DEFAULTED = "DEFAULTED"
    UNKNOWN = "UNKNOWN"


KNOWN_OUTCOMES = (RoutingStatus.SUCCESS, RoutingStatus.FAILURE, RoutingStatus.DEFAULTED)


class TicketPriority(str, enum.Enum):
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"
    SIMA = "SIMA"


class RoutingOutcome(str, enum.Enum):
    all = ""
    correct = "correct"
    incorrect = "incorrect"


class ViewMode(str, enum.Enum):
    table = "table"
    card = "card"


class FacetDimension(str, enum.Enum):
    status = "status"
    priority = "priority"
    routing = "routing"


class SchedulerState(str, enum.Enum):
    idle = "idle"
    scheduled = "scheduled"
    running = "running"


class TrendDirection(str, enum.Enum):
    first = "first"
    up = "up"
    down = "down"
    flat = "flat"
