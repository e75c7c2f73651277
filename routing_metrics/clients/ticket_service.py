import asyncio
import logging
from typing import Any

import httpx

from routing_metrics.config import settings
from routing_metrics.errors import RecordSourceError
from routing_metrics.services.view_state_service import ALL_SCOPE

logger = logging.getLogger(__name__)


class TicketServiceClient:
    """Read-only client for the ticket service's metrics endpoints.

    Serves as the record source for refresh cycles via ``fetch_records``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.api_base_url).rstrip("/"),
            timeout=timeout if timeout is not None else settings.http_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "TicketServiceClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, what: str) -> Any:
        try:
            response = await self._client.get(path)
        except httpx.HTTPError as exc:
            raise RecordSourceError(f"Could not fetch {what}: {exc}") from exc
        if response.status_code >= 400:
            raise RecordSourceError(
                f"Could not fetch {what} (status {response.status_code})",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise RecordSourceError(f"Invalid JSON for {what}") from exc

    # -- Endpoints --

    async def get_departments(self) -> Any:
        return await self._get("/departments", "departments")

    async def get_routing_stats(self, department_id: str | int | None = None) -> Any:
        if department_id is None:
            return await self._get("/stats", "stats")
        return await self._get(f"/stats/{department_id}", f"stats for department {department_id}")

    async def get_department_metrics(self, department_id: str | int) -> Any:
        return await self._get(
            f"/metrics/departments/{department_id}",
            f"metrics for department {department_id}",
        )

    async def get_department_ticket_list(self, department_id: str | int) -> Any:
        return await self._get(
            f"/departments/tickets/{department_id}",
            f"tickets for department {department_id}",
        )

    async def get_metrics_history(self) -> Any:
        return await self._get("/metrics/history", "metrics history")

    # -- Record source --

    async def _department_metrics_or_none(self, department_id: str | int) -> dict | None:
        try:
            data = await self.get_department_metrics(department_id)
        except RecordSourceError as exc:
            logger.warning("Could not fetch tickets for department %s: %s", department_id, exc)
            return None
        if isinstance(data, dict):
            return {"departmentId": department_id, **data}
        if isinstance(data, list):
            return {"departmentId": department_id, "tickets": data}
        logger.warning("Empty metrics response for department %s", department_id)
        return None

    async def load_all_tickets(self) -> list[Any]:
        """Tickets across every department.

        Prefers the metrics history endpoint; falls back to fetching each
        department concurrently and skipping the ones that fail.
        """
        try:
            history = await self.get_metrics_history()
        except RecordSourceError as exc:
            logger.info("Metrics history unavailable, fetching per department: %s", exc)
            history = None
        if isinstance(history, list):
            return history

        departments = await self.get_departments()
        if not isinstance(departments, list) or not departments:
            logger.warning("No departments found")
            return []

        ids = []
        for department in departments:
            if not isinstance(department, dict):
                continue
            dept_id = department.get("departmentID")
            if dept_id is None:
                dept_id = department.get("id")
            if dept_id is not None:
                ids.append(dept_id)
        results = await asyncio.gather(*(self._department_metrics_or_none(i) for i in ids))

        flattened: list[Any] = []
        for entry in results:
            if entry is None:
                continue
            tickets = entry.get("tickets")
            if isinstance(tickets, list):
                flattened.extend(tickets)
            else:
                flattened.append(entry)
        return flattened

    async def fetch_accuracy_ratio(self, scope_id: str | int | None) -> float | None:
        """The service's own accuracy (0..1) for the scope, or None if unavailable."""
        all_scope = scope_id is None or scope_id == "" or scope_id == ALL_SCOPE
        try:
            stats = await self.get_routing_stats(None if all_scope else scope_id)
        except RecordSourceError as exc:
            logger.warning("Routing stats unavailable for scope %s: %s", scope_id, exc)
            return None
        if not isinstance(stats, dict):
            return None
        accuracy = stats.get("accuracy")
        if isinstance(accuracy, bool) or not isinstance(accuracy, (int, float)):
            return None
        return float(accuracy)

    async def fetch_records(self, scope_id: str | int | None) -> list[Any]:
        if scope_id is None or scope_id == "" or scope_id == ALL_SCOPE:
            return await self.load_all_tickets()
        data = await self.get_department_ticket_list(scope_id)
        if isinstance(data, list):
            return data
        if isinstance(data, dict) and isinstance(data.get("tickets"), list):
            return data["tickets"]
        return []
