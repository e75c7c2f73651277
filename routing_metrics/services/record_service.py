from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from routing_metrics.models.base import KNOWN_OUTCOMES, RoutingStatus, TicketPriority
from routing_metrics.schemas.ticket import TicketRecord


# ---------------------------------------------------------------------------
# Field aliases seen across ticket service versions
# ---------------------------------------------------------------------------

ID_KEYS = ("metricsDepartmentID", "id", "ticketId", "ticketNumber")
STATUS_KEYS = ("status", "routingStatus")
CREATED_KEYS = ("createdAt", "created_at", "timestamp", "date")
SUBJECT_KEYS = ("subject", "title")
PRIORITY_KEYS = ("priority", "priorityLevel", "severity", "priority_name")
PRIORITY_SUBFIELDS = ("code", "level", "name", "value", "label", "priority")
DEPARTMENT_ID_KEYS = ("departmentId", "departmentID")
DEPARTMENT_NAME_KEYS = ("departmentName",)

_PRIORITY_SYNONYMS: dict[str, TicketPriority] = {
    # P1
    "p1": TicketPriority.P1,
    "1": TicketPriority.P1,
    "critical": TicketPriority.P1,
    "urgent": TicketPriority.P1,
    "high": TicketPriority.P1,
    "høj": TicketPriority.P1,
    "hoej": TicketPriority.P1,
    "kritisk": TicketPriority.P1,
    "akut": TicketPriority.P1,
    # P2
    "p2": TicketPriority.P2,
    "2": TicketPriority.P2,
    "medium": TicketPriority.P2,
    "normal": TicketPriority.P2,
    "middel": TicketPriority.P2,
    # P3
    "p3": TicketPriority.P3,
    "3": TicketPriority.P3,
    "low": TicketPriority.P3,
    "lav": TicketPriority.P3,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _first_present(raw: Mapping[str, Any], keys: Iterable[str]) -> Any:
    """Return the first value under ``keys`` that is not None."""
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _resolve_status(value: Any) -> RoutingStatus:
    if not isinstance(value, str):
        return RoutingStatus.UNKNOWN
    upper = value.strip().upper()
    for status in KNOWN_OUTCOMES:
        if upper == status.value:
            return status
    return RoutingStatus.UNKNOWN


def resolve_priority(value: Any) -> TicketPriority:
    """Map a raw priority (text, number, or nested object) to a priority code.

    Unmatched values fall back to P3.
    """
    if isinstance(value, Mapping):
        return resolve_priority(_first_present(value, PRIORITY_SUBFIELDS))
    if isinstance(value, bool) or value is None:
        return TicketPriority.P3
    if isinstance(value, float):
        if not value.is_integer():
            return TicketPriority.P3
        value = int(value)
    text = str(value).strip().lower()
    compact = text.replace(" ", "").replace("-", "").replace("_", "")
    if compact.startswith("sima"):
        return TicketPriority.SIMA
    return _PRIORITY_SYNONYMS.get(text, _PRIORITY_SYNONYMS.get(compact, TicketPriority.P3))


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a raw creation time into an aware UTC datetime.

    Accepts datetimes, ISO 8601 strings (``Z`` suffix allowed) and epoch
    milliseconds. Naive values are read as UTC. Anything else yields None.
    """
    if isinstance(value, bool) or value is None:
        return None
    try:
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, (int, float)):
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        elif isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            if text.endswith(("Z", "z")):
                text = text[:-1] + "+00:00"
            parsed = datetime.fromisoformat(text)
        else:
            return None
    except (ValueError, OverflowError, OSError):
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _department(raw: Mapping[str, Any]) -> tuple[Any, str | None]:
    nested = raw.get("department")
    nested = nested if isinstance(nested, Mapping) else {}
    dept_id = _first_present(raw, DEPARTMENT_ID_KEYS)
    if dept_id is None:
        dept_id = _first_present(nested, ("departmentID", "departmentId", "id"))
    name = _first_present(nested, DEPARTMENT_NAME_KEYS)
    if name is None:
        name = _first_present(raw, DEPARTMENT_NAME_KEYS)
    return dept_id, str(name) if name is not None else None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def normalize(raw: Any) -> TicketRecord:
    """Map one raw ticket object onto the canonical TicketRecord. Never raises."""
    if not isinstance(raw, Mapping):
        return TicketRecord()

    ticket_id = _first_present(raw, ID_KEYS)
    if not isinstance(ticket_id, (str, int)) or isinstance(ticket_id, bool):
        ticket_id = str(ticket_id) if ticket_id is not None else None

    subject = _first_present(raw, SUBJECT_KEYS)
    dept_id, dept_name = _department(raw)
    if not isinstance(dept_id, (str, int)) or isinstance(dept_id, bool):
        dept_id = str(dept_id) if dept_id is not None else None

    return TicketRecord(
        id=ticket_id,
        status=_resolve_status(_first_present(raw, STATUS_KEYS)),
        subject=str(subject) if subject is not None else "",
        created_at=parse_timestamp(_first_present(raw, CREATED_KEYS)),
        priority=resolve_priority(_first_present(raw, PRIORITY_KEYS)),
        department_id=dept_id,
        department_name=dept_name,
    )


def normalize_all(raw_records: Iterable[Any] | None) -> list[TicketRecord]:
    if not raw_records:
        return []
    return [normalize(raw) for raw in raw_records]
