from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from workflow_agent.services.config import get_settings
from workflow_agent.services.models import Order, StageStatus, StageType, UserProfile

logger = logging.getLogger(__name__)


class WorkflowApiError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _read_error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    text = response.text.strip()
    if text and payload is None:
        return text[:300]
    return response.reason_phrase or f"Request failed (HTTP {response.status_code})"


class WorkflowClient:
    """Calls to the workflow backend on behalf of one credential.

    Every call is made exactly once; failures raise ``WorkflowApiError`` and
    are never retried here.
    """

    def __init__(
        self,
        token: str,
        *,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = get_settings()
        self.token = token
        self.base_url = (base_url or settings.resolved_workflow_api_base_url).rstrip("/")
        self.timeout = httpx.Timeout(timeout_seconds or settings.workflow_timeout_seconds)
        self._transport = transport

    async def _request(self, method: str, path: str, payload: Optional[dict[str, Any]] = None) -> Any:
        headers = {
            "Authorization": f"Basic {self.token}",
            "Accept": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, self.base_url + path, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            raise WorkflowApiError(f"Workflow service unreachable: {exc}") from exc

        if response.status_code >= 400:
            message = _read_error_message(response)
            logger.info("%s %s failed with %s: %s", method, path, response.status_code, message)
            raise WorkflowApiError(message, status_code=response.status_code)

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise WorkflowApiError(f"Workflow service returned invalid JSON for {path}") from exc

    async def me(self) -> UserProfile:
        return UserProfile.model_validate(await self._request("GET", "/auth/me"))

    async def list_orders(self) -> list[Order]:
        data = await self._request("GET", "/api/orders")
        return [Order.model_validate(row) for row in data or []]

    async def get_order(self, order_id: int) -> Order:
        return Order.model_validate(await self._request("GET", f"/api/orders/{order_id}"))

    async def create_order(self, order_number: str, priority: Optional[int], notes: Optional[str]) -> Order:
        data = await self._request(
            "POST",
            "/api/orders",
            {"orderNumber": order_number, "priority": priority, "notes": notes},
        )
        return Order.model_validate(data)

    async def update_priority(self, order_id: int, priority: int) -> Order:
        data = await self._request("PATCH", f"/api/orders/{order_id}/priority", {"priority": priority})
        return Order.model_validate(data)

    async def claim_stage(self, order_id: int, stage: StageType, assignee: str) -> StageStatus:
        data = await self._request(
            "POST",
            f"/api/operator/orders/{order_id}/stages/{stage.value}/claim",
            {"assignee": assignee},
        )
        return StageStatus.model_validate(data)

    async def update_checklist_item(
        self, order_id: int, stage: StageType, task_id: str, completed: bool
    ) -> StageStatus:
        data = await self._request(
            "PATCH",
            f"/api/operator/orders/{order_id}/stages/{stage.value}/checklist",
            {"taskId": task_id, "completed": completed},
        )
        return StageStatus.model_validate(data)

    async def complete_stage(
        self,
        order_id: int,
        stage: StageType,
        *,
        assignee: str,
        service_time_minutes: Optional[int],
        notes: Optional[str],
    ) -> StageStatus:
        data = await self._request(
            "POST",
            f"/api/operator/orders/{order_id}/stages/{stage.value}/complete",
            {"assignee": assignee, "serviceTimeMinutes": service_time_minutes, "notes": notes},
        )
        return StageStatus.model_validate(data)

    async def flag_exception(
        self,
        order_id: int,
        stage: StageType,
        *,
        assignee: str,
        exception_reason: str,
        notes: Optional[str],
    ) -> StageStatus:
        data = await self._request(
            "POST",
            f"/api/operator/orders/{order_id}/stages/{stage.value}/flag-exception",
            {"assignee": assignee, "exceptionReason": exception_reason, "notes": notes},
        )
        return StageStatus.model_validate(data)

    async def approve_skip(self, order_id: int, stage: StageType, *, approver: str, notes: Optional[str]) -> StageStatus:
        data = await self._request(
            "POST",
            f"/api/supervisor/orders/{order_id}/stages/{stage.value}/approve-skip",
            {"approver": approver, "notes": notes},
        )
        return StageStatus.model_validate(data)
