from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from workflow_agent.services.config import get_settings
from workflow_agent.services.models import STAGE_RANK, Order, StageStatus
from workflow_agent.services.workflow_client import WorkflowClient

logger = logging.getLogger(__name__)

NO_ORDERS_SUMMARY = "No orders are currently available to the signed-in user."


@dataclass(frozen=True)
class WorkflowContext:
    summary: str
    error: Optional[str] = None


def _order_sort_key(order: Order) -> tuple[int, float, int]:
    created = order.created_at.timestamp() if order.created_at else 0.0
    # id breaks ties so the digest is stable for an unchanged order set
    return (-(order.priority or 0), -created, order.id)


def sort_orders(orders: list[Order]) -> list[Order]:
    return sorted(orders, key=_order_sort_key)


def format_stage(stage: StageStatus) -> str:
    parts = [f"{stage.stage.value.lower()}: {stage.state.value.lower()}"]
    if stage.assignee:
        parts.append(f"assignee {stage.assignee}")
    if stage.exception_reason:
        parts.append(f"exception {stage.exception_reason}")
    if stage.notes:
        parts.append(f"notes {stage.notes}")
    return " | ".join(parts)


def format_order(order: Order) -> str:
    priority = order.priority if order.priority is not None else "n/a"
    header = (
        f"Order {order.order_number or 'unknown'} (id={order.id}) priority {priority} - "
        f"current stage {order.current_stage.value.lower()} / overall {order.overall_state.value.lower()}"
    )
    stages = sorted(order.stages, key=lambda status: STAGE_RANK.get(status.stage, len(STAGE_RANK)))
    if not stages:
        return f"{header}. No recorded stages."
    return "\n".join([header] + [f"  - {format_stage(stage)}" for stage in stages])


def summarize_orders(orders: list[Order], limit: int) -> str:
    if not orders:
        return NO_ORDERS_SUMMARY
    limited = sort_orders(orders)[:limit]
    lines = [
        f"Total orders available: {len(orders)}. Showing top {len(limited)} by priority and creation."
    ]
    lines.extend(format_order(order) for order in limited)
    return "\n".join(lines)


async def build_workflow_context(client: WorkflowClient) -> WorkflowContext:
    """Digest of the caller's visible orders. Upstream failures become a warning, never an exception."""
    settings = get_settings()
    try:
        orders = await client.list_orders()
    except Exception as exc:  # noqa: BLE001
        message = str(exc) or "Unable to read workflow context from the backend."
        logger.warning("workflow context unavailable: %s", message)
        return WorkflowContext(summary="", error=message)
    return WorkflowContext(summary=summarize_orders(orders, settings.max_context_orders))
