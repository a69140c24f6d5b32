from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from workflow_agent.services.models import StageState, StageType
from workflow_agent.services.workflow_client import WorkflowApiError, WorkflowClient

ORDER_PAYLOAD = {
    "id": 9,
    "orderNumber": "PO-9",
    "priority": 5,
    "currentStage": "ASSEMBLY",
    "overallState": "IN_PROGRESS",
    "createdAt": "2024-05-01T08:00:00Z",
    "updatedAt": "2024-05-02T08:00:00Z",
    "notes": None,
    "stages": [
        {
            "id": 91,
            "stage": "ASSEMBLY",
            "state": "IN_PROGRESS",
            "assignee": "olivia",
            "checklist": [{"id": "torque", "label": "Torque bolts", "required": True, "completed": False}],
        }
    ],
}


def client_for(handler) -> WorkflowClient:
    return WorkflowClient("b2xpdmlh", base_url="http://workflow.test/", transport=httpx.MockTransport(handler))


def test_requests_carry_basic_credential() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=ORDER_PAYLOAD)

    order = asyncio.run(client_for(handler).get_order(9))

    assert str(seen[0].url) == "http://workflow.test/api/orders/9"
    assert seen[0].headers["Authorization"] == "Basic b2xpdmlh"
    assert order.order_number == "PO-9"
    assert order.stages[0].pending_required_tasks()[0].id == "torque"


def test_write_calls_send_camel_case_bodies() -> None:
    seen: list[tuple[str, str, dict]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path, json.loads(request.content)))
        return httpx.Response(200, json={"stage": "ASSEMBLY", "state": "COMPLETED", "serviceTimeMinutes": 30})

    status = asyncio.run(
        client_for(handler).complete_stage(
            9, StageType.ASSEMBLY, assignee="olivia", service_time_minutes=30, notes="ok"
        )
    )

    assert seen == [
        (
            "POST",
            "/api/operator/orders/9/stages/ASSEMBLY/complete",
            {"assignee": "olivia", "serviceTimeMinutes": 30, "notes": "ok"},
        )
    ]
    assert status.state is StageState.COMPLETED
    assert status.service_time_minutes == 30


def test_error_message_comes_from_the_backend_payload() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # noqa: ARG001
        return httpx.Response(409, json={"message": "Stage ASSEMBLY is already claimed by bob"})

    with pytest.raises(WorkflowApiError) as excinfo:
        asyncio.run(client_for(handler).claim_stage(9, StageType.ASSEMBLY, "olivia"))

    assert str(excinfo.value) == "Stage ASSEMBLY is already claimed by bob"
    assert excinfo.value.status_code == 409


def test_error_without_payload_uses_the_reason_phrase() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # noqa: ARG001
        return httpx.Response(403, json={})

    with pytest.raises(WorkflowApiError, match="Forbidden"):
        asyncio.run(client_for(handler).list_orders())


def test_transport_failures_become_workflow_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(WorkflowApiError, match="unreachable"):
        asyncio.run(client_for(handler).me())


def test_me_returns_raw_roles() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/auth/me"
        return httpx.Response(200, json={"username": "olivia", "roles": ["ROLE_OPERATOR", "ROLE_ADMIN"]})

    profile = asyncio.run(client_for(handler).me())

    assert profile.username == "olivia"
    assert profile.roles == ["ROLE_OPERATOR", "ROLE_ADMIN"]


@pytest.mark.parametrize("status", [429, 502, 503])
def test_failed_workflow_calls_are_sent_once(status: int) -> None:
    attempts: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request.url.path)
        return httpx.Response(status, json={"message": "try later"})

    with pytest.raises(WorkflowApiError, match="try later"):
        asyncio.run(
            client_for(handler).complete_stage(
                9, StageType.ASSEMBLY, assignee="olivia", service_time_minutes=30, notes=None
            )
        )

    assert attempts == ["/api/operator/orders/9/stages/ASSEMBLY/complete"]


def test_unreachable_backend_is_tried_once() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(WorkflowApiError):
        asyncio.run(client_for(handler).claim_stage(9, StageType.ASSEMBLY, "olivia"))

    assert attempts == 1
