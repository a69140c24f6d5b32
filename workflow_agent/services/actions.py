from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Annotated, Any, Awaitable, Callable, Iterable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from workflow_agent.services.models import (
    ActionResult,
    ExecutionContext,
    Order,
    Role,
    StageState,
    StageStatus,
    StageType,
)


class ActionName(str, Enum):
    LIST_ORDERS = "list_orders"
    GET_ORDER_DETAILS = "get_order_details"
    LIST_STAGE_CHECKLIST = "list_stage_checklist"
    CREATE_ORDER = "create_order"
    UPDATE_ORDER_PRIORITY = "update_order_priority"
    CLAIM_STAGE = "claim_stage"
    UPDATE_STAGE_CHECKLIST = "update_stage_checklist"
    COMPLETE_STAGE = "complete_stage"
    FLAG_STAGE_EXCEPTION = "flag_stage_exception"
    APPROVE_STAGE_SKIP = "approve_stage_skip"


DEFAULT_LIST_LIMIT = 10
DEFAULT_SERVICE_TIME_MINUTES = 30

OrderId = Annotated[int, Field(strict=True, gt=0)]
Priority = Annotated[int, Field(strict=True, ge=0, le=999)]
Notes = Annotated[str, Field(max_length=2000)]


class ActionArgumentsError(ValueError):
    pass


class ActionArguments(BaseModel):
    """Arguments the planner supplies for one action, keyed in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, extra="forbid", frozen=True)


class ListOrdersArgs(ActionArguments):
    limit: Optional[Annotated[int, Field(strict=True, ge=1, le=25)]] = None
    stage: Optional[StageType] = None
    states: Optional[list[StageState]] = None


class GetOrderDetailsArgs(ActionArguments):
    order_id: OrderId


class ListChecklistArgs(ActionArguments):
    order_id: OrderId
    stage: StageType


class CreateOrderArgs(ActionArguments):
    order_number: Annotated[str, Field(min_length=3, max_length=64)]
    priority: Optional[Priority] = None
    notes: Optional[Notes] = None


class UpdatePriorityArgs(ActionArguments):
    order_id: OrderId
    priority: Priority


class ClaimStageArgs(ActionArguments):
    order_id: OrderId
    stage: StageType
    assignee: Optional[Annotated[str, Field(min_length=2, max_length=64)]] = None


class ChecklistTaskUpdate(ActionArguments):
    task_id: Annotated[str, Field(min_length=1)]
    completed: Annotated[bool, Field(strict=True)]


class UpdateChecklistArgs(ActionArguments):
    order_id: OrderId
    stage: StageType
    tasks: Annotated[list[ChecklistTaskUpdate], Field(min_length=1)]


class CompleteStageArgs(ActionArguments):
    order_id: OrderId
    stage: StageType
    service_time_minutes: Optional[Annotated[int, Field(strict=True, ge=1, le=600)]] = None
    notes: Optional[Notes] = None


class FlagExceptionArgs(ActionArguments):
    order_id: OrderId
    stage: StageType
    exception_reason: Annotated[str, Field(min_length=3, max_length=500)]
    notes: Optional[Notes] = None


class ApproveSkipArgs(ActionArguments):
    order_id: OrderId
    stage: StageType
    notes: Optional[Notes] = None


Handler = Callable[[Any, ExecutionContext], Awaitable[ActionResult]]


@dataclass(frozen=True)
class ActionDefinition:
    name: ActionName
    description: str
    parameter_summary: str
    allowed_roles: frozenset[Role]
    arguments_model: type[ActionArguments]
    handler: Handler


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


async def list_orders(args: ListOrdersArgs, ctx: ExecutionContext) -> ActionResult:
    orders = await ctx.workflow.list_orders()
    filtered: list[Order] = orders
    if args.stage is not None:
        filtered = [order for order in filtered if order.current_stage == args.stage]
    if args.states:
        wanted = set(args.states)
        filtered = [order for order in filtered if order.overall_state in wanted]
    limit = args.limit if args.limit is not None else min(len(filtered), DEFAULT_LIST_LIMIT)
    returned = filtered[:limit]
    return ActionResult(
        name=ActionName.LIST_ORDERS.value,
        status="success",
        summary=f"Retrieved {len(filtered)} orders, returning {len(returned)}.",
        data=[_dump(order) for order in returned],
    )


async def get_order_details(args: GetOrderDetailsArgs, ctx: ExecutionContext) -> ActionResult:
    order = await ctx.workflow.get_order(args.order_id)
    return ActionResult(
        name=ActionName.GET_ORDER_DETAILS.value,
        status="success",
        summary=f"Pulled current data for order {order.order_number}.",
        data=_dump(order),
    )


async def list_stage_checklist(args: ListChecklistArgs, ctx: ExecutionContext) -> ActionResult:
    order = await ctx.workflow.get_order(args.order_id)
    stage_status = order.find_stage(args.stage)
    if stage_status is None:
        return ActionResult(
            name=ActionName.LIST_STAGE_CHECKLIST.value,
            status="error",
            summary=f"Stage {args.stage.value} was not found on order {order.order_number}.",
        )
    return ActionResult(
        name=ActionName.LIST_STAGE_CHECKLIST.value,
        status="success",
        summary=f"Retrieved {len(stage_status.checklist)} tasks for stage {args.stage.value}.",
        data=[_dump(task) for task in stage_status.checklist],
    )


async def create_order(args: CreateOrderArgs, ctx: ExecutionContext) -> ActionResult:
    order = await ctx.workflow.create_order(args.order_number, args.priority, args.notes)
    return ActionResult(
        name=ActionName.CREATE_ORDER.value,
        status="success",
        summary=f"Created order {order.order_number} (id {order.id}).",
        data=_dump(order),
    )


async def update_order_priority(args: UpdatePriorityArgs, ctx: ExecutionContext) -> ActionResult:
    order = await ctx.workflow.update_priority(args.order_id, args.priority)
    return ActionResult(
        name=ActionName.UPDATE_ORDER_PRIORITY.value,
        status="success",
        summary=f"Updated order {order.order_number} priority to {order.priority}.",
        data=_dump(order),
    )


async def claim_stage(args: ClaimStageArgs, ctx: ExecutionContext) -> ActionResult:
    assignee = args.assignee or ctx.username
    status = await ctx.workflow.claim_stage(args.order_id, args.stage, assignee)
    return ActionResult(
        name=ActionName.CLAIM_STAGE.value,
        status="success",
        summary=f"Stage {status.stage.value} claimed by {status.assignee or assignee} (state {status.state.value}).",
        data=_dump(status),
    )


async def update_stage_checklist(args: UpdateChecklistArgs, ctx: ExecutionContext) -> ActionResult:
    last_status: Optional[StageStatus] = None
    for task in args.tasks:
        last_status = await ctx.workflow.update_checklist_item(
            args.order_id, args.stage, task.task_id, task.completed
        )
    count = len(args.tasks)
    return ActionResult(
        name=ActionName.UPDATE_STAGE_CHECKLIST.value,
        status="success",
        summary=f"Updated {count} checklist task{'' if count == 1 else 's'} for stage {args.stage.value}.",
        data=_dump(last_status) if last_status is not None else None,
    )


async def complete_stage(args: CompleteStageArgs, ctx: ExecutionContext) -> ActionResult:
    status = await ctx.workflow.complete_stage(
        args.order_id,
        args.stage,
        assignee=ctx.username,
        service_time_minutes=args.service_time_minutes or DEFAULT_SERVICE_TIME_MINUTES,
        notes=args.notes,
    )
    return ActionResult(
        name=ActionName.COMPLETE_STAGE.value,
        status="success",
        summary=f"Stage {status.stage.value} completed (state {status.state.value}).",
        data=_dump(status),
    )


async def flag_stage_exception(args: FlagExceptionArgs, ctx: ExecutionContext) -> ActionResult:
    status = await ctx.workflow.flag_exception(
        args.order_id,
        args.stage,
        assignee=ctx.username,
        exception_reason=args.exception_reason,
        notes=args.notes,
    )
    return ActionResult(
        name=ActionName.FLAG_STAGE_EXCEPTION.value,
        status="success",
        summary=f'Flagged stage {status.stage.value} with exception "{status.exception_reason or args.exception_reason}".',
        data=_dump(status),
    )


async def approve_stage_skip(args: ApproveSkipArgs, ctx: ExecutionContext) -> ActionResult:
    status = await ctx.workflow.approve_skip(args.order_id, args.stage, approver=ctx.username, notes=args.notes)
    return ActionResult(
        name=ActionName.APPROVE_STAGE_SKIP.value,
        status="success",
        summary=f"Approved skip for stage {status.stage.value} (state {status.state.value}).",
        data=_dump(status),
    )


_STAGES = "PREPARATION/ASSEMBLY/DELIVERY"
_BOTH = frozenset({Role.OPERATOR, Role.SUPERVISOR})
_OPERATOR = frozenset({Role.OPERATOR})
_SUPERVISOR = frozenset({Role.SUPERVISOR})

ACTIONS: tuple[ActionDefinition, ...] = (
    ActionDefinition(
        ActionName.LIST_ORDERS,
        "Retrieve up to 25 live orders for situational awareness.",
        f"limit (optional number 1-25), stage ({_STAGES}), states (array of workflow states).",
        _BOTH,
        ListOrdersArgs,
        list_orders,
    ),
    ActionDefinition(
        ActionName.GET_ORDER_DETAILS,
        "Pull a single order with all stage details before taking action.",
        "orderId (number).",
        _BOTH,
        GetOrderDetailsArgs,
        get_order_details,
    ),
    ActionDefinition(
        ActionName.LIST_STAGE_CHECKLIST,
        "Read the checklist items for any stage of an order.",
        f"orderId (number), stage ({_STAGES}).",
        _BOTH,
        ListChecklistArgs,
        list_stage_checklist,
    ),
    ActionDefinition(
        ActionName.CREATE_ORDER,
        "Create a brand-new work order when supervisors request new work.",
        "orderNumber (string), priority (optional integer 0-999), notes (optional string).",
        _SUPERVISOR,
        CreateOrderArgs,
        create_order,
    ),
    ActionDefinition(
        ActionName.UPDATE_ORDER_PRIORITY,
        "Supervisors can adjust queue priority on any order.",
        "orderId (number), priority (integer 0-999).",
        _SUPERVISOR,
        UpdatePriorityArgs,
        update_order_priority,
    ),
    ActionDefinition(
        ActionName.CLAIM_STAGE,
        "Operators claim a stage before doing work.",
        f"orderId (number), stage ({_STAGES}), assignee (optional string, defaults to current user).",
        _OPERATOR,
        ClaimStageArgs,
        claim_stage,
    ),
    ActionDefinition(
        ActionName.UPDATE_STAGE_CHECKLIST,
        "Operators can toggle checklist tasks before finishing a stage.",
        "orderId (number), stage, tasks (array of { taskId, completed }).",
        _OPERATOR,
        UpdateChecklistArgs,
        update_stage_checklist,
    ),
    ActionDefinition(
        ActionName.COMPLETE_STAGE,
        "Operators mark a stage complete once the work and notes are captured.",
        "orderId (number), stage, serviceTimeMinutes (optional int 1-600, defaults to 30), notes (optional string).",
        _OPERATOR,
        CompleteStageArgs,
        complete_stage,
    ),
    ActionDefinition(
        ActionName.FLAG_STAGE_EXCEPTION,
        "Operators document blocking issues so supervisors can follow up.",
        "orderId (number), stage, exceptionReason (string), notes (optional string).",
        _OPERATOR,
        FlagExceptionArgs,
        flag_stage_exception,
    ),
    ActionDefinition(
        ActionName.APPROVE_STAGE_SKIP,
        "Supervisors can approve stage skips or resequencing when justified.",
        "orderId (number), stage, notes (optional string).",
        _SUPERVISOR,
        ApproveSkipArgs,
        approve_stage_skip,
    ),
)

BY_NAME: Mapping[ActionName, ActionDefinition] = MappingProxyType({action.name: action for action in ACTIONS})


def lookup(name: str) -> Optional[ActionDefinition]:
    """Resolve an untrusted action name; anything outside ``ActionName`` is None."""
    try:
        key = ActionName(name)
    except ValueError:
        return None
    return BY_NAME.get(key)


def list_actions() -> tuple[ActionDefinition, ...]:
    return ACTIONS


def is_authorized(definition: ActionDefinition, roles: Iterable[Role]) -> bool:
    return not definition.allowed_roles.isdisjoint(roles)


def actions_for_roles(roles: Iterable[Role]) -> list[ActionDefinition]:
    role_set = frozenset(roles)
    return [action for action in ACTIONS if is_authorized(action, role_set)]


def _format_validation_error(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "arguments"
        problems.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(problems)


def validate_arguments(definition: ActionDefinition, arguments: Any) -> ActionArguments:
    if not isinstance(arguments, dict):
        raise ActionArgumentsError(
            f"arguments for {definition.name.value} must be an object, got {type(arguments).__name__}"
        )
    try:
        return definition.arguments_model.model_validate(arguments)
    except ValidationError as exc:
        raise ActionArgumentsError(_format_validation_error(exc)) from exc
