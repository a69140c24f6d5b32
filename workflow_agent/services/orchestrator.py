from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from workflow_agent.services.actions import actions_for_roles
from workflow_agent.services.answer import build_final_answer
from workflow_agent.services.config import get_settings
from workflow_agent.services.context import build_workflow_context
from workflow_agent.services.executor import execute_plan
from workflow_agent.services.models import ActionResult, AgentPlan, ExecutionContext, normalize_roles
from workflow_agent.services.planner import generate_plan
from workflow_agent.services.workflow_client import WorkflowClient

logger = logging.getLogger(__name__)


@dataclass
class AssistantResult:
    answer: str
    model: str
    context_warning: Optional[str] = None
    plan: Optional[AgentPlan] = None
    results: list[ActionResult] = field(default_factory=list)


async def run_assistant(
    objective: str,
    credential: str,
    *,
    client_factory: Callable[[str], WorkflowClient] = WorkflowClient,
) -> AssistantResult:
    """Plan, execute and narrate one objective on behalf of ``credential``.

    Context failures only produce a warning. Identity, planning and answer
    failures propagate; per-action failures end up in ``results``.
    """
    settings = get_settings()
    trimmed = objective.strip()[: settings.max_objective_chars]
    client = client_factory(credential)

    context = await build_workflow_context(client)
    profile = await client.me()
    roles = normalize_roles(profile.roles)
    allowed_actions = actions_for_roles(roles)
    logger.info(
        "objective from %s (roles: %s), %d action(s) available",
        profile.username,
        ", ".join(sorted(role.value for role in roles)) or "none",
        len(allowed_actions),
    )

    plan: Optional[AgentPlan] = None
    results: list[ActionResult] = []
    if allowed_actions:
        plan = await generate_plan(trimmed, context.summary, allowed_actions, profile)
        if plan.actions:
            ctx = ExecutionContext(token=credential, username=profile.username, roles=roles, workflow=client)
            results = await execute_plan(plan.actions, ctx)

    final = await build_final_answer(trimmed, context.summary, plan, results)
    return AssistantResult(
        answer=final.answer,
        model=final.model,
        context_warning=context.error,
        plan=plan,
        results=results,
    )
