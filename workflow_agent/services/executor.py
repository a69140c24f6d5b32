from __future__ import annotations

import logging
from dataclasses import dataclass, field

from workflow_agent.services.actions import (
    BY_NAME,
    ActionArgumentsError,
    ActionName,
    CompleteStageArgs,
    UpdateChecklistArgs,
    is_authorized,
    lookup,
    validate_arguments,
)
from workflow_agent.services.models import ActionResult, ExecutionContext, PlannedAction, Role

logger = logging.getLogger(__name__)


@dataclass
class ChecklistGate:
    """Outcome of the pre-completion checklist check for one ``complete_stage``."""
    entries: list[ActionResult] = field(default_factory=list)
    ready: bool = False


async def ensure_checklist_before_completion(args: CompleteStageArgs, ctx: ExecutionContext) -> ChecklistGate:
    """Mark required checklist tasks complete before a stage is completed.

    Operators get the pending required tasks ticked through an implicit
    ``update_stage_checklist`` whose result is logged. Anyone else is stopped
    with an error entry. Failures are reported as entries, never raised.
    """
    gate = ChecklistGate()
    complete_name = ActionName.COMPLETE_STAGE.value
    update_name = ActionName.UPDATE_STAGE_CHECKLIST.value
    try:
        order = await ctx.workflow.get_order(args.order_id)
        stage_status = order.find_stage(args.stage)
        if stage_status is None:
            gate.entries.append(
                ActionResult(
                    name=complete_name,
                    status="error",
                    summary=f"Stage {args.stage.value} was not found on order {order.order_number}.",
                )
            )
            return gate

        pending = stage_status.pending_required_tasks()
        if not pending:
            gate.ready = True
            return gate

        labels = ", ".join(task.label or task.id for task in pending)
        if Role.OPERATOR not in ctx.roles:
            gate.entries.append(
                ActionResult(
                    name=complete_name,
                    status="error",
                    summary=(
                        f"Stage {args.stage.value} was not completed: {len(pending)} required checklist "
                        "task(s) are pending and the current user is not an operator, so they cannot be "
                        "completed automatically."
                    ),
                    error=f"Pending required tasks: {labels}",
                )
            )
            return gate

        update_definition = BY_NAME[ActionName.UPDATE_STAGE_CHECKLIST]
        update_args = UpdateChecklistArgs.model_validate(
            {
                "orderId": args.order_id,
                "stage": args.stage,
                "tasks": [{"taskId": task.id, "completed": True} for task in pending],
            }
        )
        logger.info(
            "auto-completing %d checklist task(s) on order %s stage %s before completion",
            len(pending),
            args.order_id,
            args.stage.value,
        )
        update_result = await update_definition.handler(update_args, ctx)
        gate.entries.append(update_result)
        if update_result.status != "success":
            gate.entries.append(
                ActionResult(
                    name=complete_name,
                    status="error",
                    summary=(
                        f"Stage {args.stage.value} was not completed because its required checklist tasks "
                        "could not be updated."
                    ),
                    error=update_result.error or update_result.summary,
                )
            )
            return gate

        gate.ready = True
        return gate
    except Exception as exc:  # noqa: BLE001
        logger.warning("checklist gate failed for order %s: %s", args.order_id, exc)
        gate.entries.append(
            ActionResult(
                name=update_name,
                status="error",
                summary="Failed to evaluate or update checklist tasks before completion.",
                error=str(exc),
            )
        )
        return gate


async def execute_action(action: PlannedAction, ctx: ExecutionContext) -> list[ActionResult]:
    definition = lookup(action.name)
    if definition is None:
        return [
            ActionResult(
                name=action.name,
                status="error",
                summary=f"Action {action.name} is not supported by this environment.",
            )
        ]

    if not is_authorized(definition, ctx.roles):
        allowed = ", ".join(sorted(role.value for role in definition.allowed_roles))
        logger.warning("%s refused for %s: requires %s", action.name, ctx.username, allowed)
        return [
            ActionResult(
                name=action.name,
                status="error",
                summary=f"Action {action.name} requires one of the roles {allowed}; it was not executed.",
            )
        ]

    try:
        args = validate_arguments(definition, action.arguments)
    except ActionArgumentsError as exc:
        return [
            ActionResult(
                name=action.name,
                status="error",
                summary=f"Invalid arguments supplied for {action.name}.",
                error=str(exc),
            )
        ]

    results: list[ActionResult] = []
    if definition.name is ActionName.COMPLETE_STAGE:
        gate = await ensure_checklist_before_completion(args, ctx)
        results.extend(gate.entries)
        if not gate.ready:
            return results

    try:
        results.append(await definition.handler(args, ctx))
    except Exception as exc:  # noqa: BLE001
        logger.exception("%s failed", action.name)
        results.append(
            ActionResult(
                name=action.name,
                status="error",
                summary=f"Failed to execute {action.name}.",
                error=str(exc),
            )
        )
    return results


async def execute_plan(actions: list[PlannedAction], ctx: ExecutionContext) -> list[ActionResult]:
    """Run planned actions one at a time, in order, logging every attempt.

    A failing action never stops the plan. Each planned action contributes at
    least one entry; checklist entries injected for ``complete_stage`` come
    right before the completion attempt they gate.
    """
    log: list[ActionResult] = []
    for action in actions:
        entries = await execute_action(action, ctx)
        for entry in entries:
            logger.info("%s -> %s: %s", entry.name, entry.status, entry.summary)
        log.extend(entries)
    return log
