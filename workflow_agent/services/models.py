from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from workflow_agent.services.workflow_client import WorkflowClient


class Role(str, Enum):
    OPERATOR = "OPERATOR"
    SUPERVISOR = "SUPERVISOR"


class StageType(str, Enum):
    PREPARATION = "PREPARATION"
    ASSEMBLY = "ASSEMBLY"
    DELIVERY = "DELIVERY"


class StageState(str, Enum):
    BLOCKED = "BLOCKED"
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    EXCEPTION = "EXCEPTION"
    SKIPPED = "SKIPPED"
    REWORK = "REWORK"


# Fixed stage sequence; digests and checklists are always rendered in this order.
STAGE_ORDER: tuple[StageType, ...] = (StageType.PREPARATION, StageType.ASSEMBLY, StageType.DELIVERY)
STAGE_RANK: dict[StageType, int] = {stage: index for index, stage in enumerate(STAGE_ORDER)}


class WorkflowModel(BaseModel):
    """Base for payloads owned by the workflow service (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ChecklistTask(WorkflowModel):
    id: str
    label: str = ""
    required: bool = False
    completed: bool = False


class StageStatus(WorkflowModel):
    id: Optional[int] = None
    stage: StageType
    state: StageState
    assignee: Optional[str] = None
    claimed_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    service_time_minutes: Optional[int] = None
    notes: Optional[str] = None
    exception_reason: Optional[str] = None
    supervisor_notes: Optional[str] = None
    approved_by: Optional[str] = None
    updated_at: Optional[datetime] = None
    checklist: list[ChecklistTask] = Field(default_factory=list)

    def pending_required_tasks(self) -> list[ChecklistTask]:
        return [task for task in self.checklist if task.required and not task.completed]


class Order(WorkflowModel):
    id: int
    order_number: str
    priority: Optional[int] = None
    current_stage: StageType
    overall_state: StageState
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    notes: Optional[str] = None
    stages: list[StageStatus] = Field(default_factory=list)

    def find_stage(self, stage: StageType) -> Optional[StageStatus]:
        for status in self.stages:
            if status.stage == stage:
                return status
        return None


class UserProfile(BaseModel):
    username: str
    roles: list[str] = Field(default_factory=list)


def normalize_roles(roles: list[str]) -> frozenset[Role]:
    """Strip the ``ROLE_`` prefix, upper-case, and drop anything that is not a known role."""
    known = {role.value for role in Role}
    resolved: set[Role] = set()
    for raw in roles:
        if not isinstance(raw, str):
            continue
        value = raw.strip().upper()
        if value.startswith("ROLE_"):
            value = value[len("ROLE_"):]
        if value in known:
            resolved.add(Role(value))
    return frozenset(resolved)


@dataclass(frozen=True)
class ExecutionContext:
    token: str
    username: str
    roles: frozenset[Role]
    workflow: "WorkflowClient"


ResultStatus = Literal["success", "error", "skipped"]


@dataclass(frozen=True)
class ActionResult:
    name: str
    status: ResultStatus
    summary: str
    data: Any = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name, "status": self.status, "summary": self.summary}
        if self.data is not None:
            payload["data"] = self.data
        if self.error is not None:
            payload["error"] = self.error
        return payload


class PlannedAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Neither the name nor the arguments are checked here; the executor reports both per action.
    name: str
    rationale: Optional[str] = None
    arguments: Any = Field(default_factory=dict)


class AgentPlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    intent: str = ""
    reasoning: Optional[str] = None
    notes: Optional[str] = None
    actions: list[PlannedAction] = Field(default_factory=list)
