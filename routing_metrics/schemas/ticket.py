from datetime import datetime

from pydantic import BaseModel

from routing_metrics.models.base import RoutingStatus, TicketPriority


class TicketRecord(BaseModel):
    """Canonical ticket shape produced by the record normalizer."""

    id: str | int | None = None
    status: RoutingStatus = RoutingStatus.UNKNOWN
    subject: str = ""
    created_at: datetime | None = None
    priority: TicketPriority = TicketPriority.P3
    department_id: str | int | None = None
    department_name: str | None = None

    model_config = {"frozen": True}


class TicketPage(BaseModel):
    total_pages: int
    current_page: int
    total_items: int
    items: list[TicketRecord]
