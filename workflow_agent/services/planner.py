from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from workflow_agent.services.actions import ActionDefinition
from workflow_agent.services.config import get_settings
from workflow_agent.services.llm import json_candidates, llm_chat_with_usage
from workflow_agent.services.models import AgentPlan, UserProfile

logger = logging.getLogger(__name__)

PLANNER_SYSTEM_PROMPT = (
    "You are the autonomous workflow orchestrator for a staged production line "
    "(preparation, assembly, delivery). Plan ONLY with the actions explicitly listed. "
    "Return STRICT JSON (no prose, no markdown) matching schema "
    '{ "intent": string, "reasoning": string, "notes": string?, '
    '"actions": [ { "name": string, "rationale": string, "arguments": object } ] }. '
    "Use the exact parameter names given for each action. "
    "If no action is needed, return an empty actions array."
)


class PlanError(RuntimeError):
    pass


class PlanParseError(PlanError):
    pass


class PlanSchemaError(PlanError):
    pass


def render_action_catalogue(actions: list[ActionDefinition]) -> str:
    return "\n".join(
        f"- {action.name.value}: {action.description} Params: {action.parameter_summary}" for action in actions
    )


def build_plan_messages(
    objective: str,
    context_summary: str,
    allowed_actions: list[ActionDefinition],
    profile: UserProfile,
) -> list[dict[str, str]]:
    user_content = "\n\n".join(
        [
            f"User: {profile.username}",
            f"Roles: {', '.join(profile.roles) or 'unknown'}",
            f"Available actions:\n{render_action_catalogue(allowed_actions)}",
            f"Context:\n{context_summary or 'No workflow context available.'}",
            f"Objective:\n{objective}",
        ]
    )
    return [
        {"role": "system", "content": PLANNER_SYSTEM_PROMPT},
        {"role": "user", "content": user_content},
    ]


def parse_plan(text: str) -> AgentPlan:
    candidates = json_candidates(text)
    if not candidates:
        preview = text[:180].replace("\n", " ")
        raise PlanParseError(f"Agent plan was not valid JSON (preview: {preview})")

    decode_error: json.JSONDecodeError | None = None
    for snippet in candidates:
        try:
            payload: Any = json.loads(snippet)
        except json.JSONDecodeError as exc:
            decode_error = decode_error or exc
            continue
        break
    else:
        raise PlanParseError(f"Agent plan was not valid JSON: {decode_error.msg}") from decode_error

    if not isinstance(payload, dict):
        raise PlanSchemaError("Agent plan schema validation failed: plan must be a JSON object")
    try:
        return AgentPlan.model_validate(payload)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'plan'}: {error['msg']}" for error in exc.errors()[:5]
        )
        raise PlanSchemaError(f"Agent plan schema validation failed: {problems}") from exc


async def generate_plan(
    objective: str,
    context_summary: str,
    allowed_actions: list[ActionDefinition],
    profile: UserProfile,
) -> AgentPlan:
    settings = get_settings()
    messages = build_plan_messages(objective, context_summary, allowed_actions, profile)
    response = await llm_chat_with_usage(messages, max_tokens=settings.llm_plan_max_tokens)
    plan = parse_plan(response.text)
    logger.info(
        "plan from %s: intent=%r with %d action(s)",
        response.model,
        plan.intent[:80],
        len(plan.actions),
    )
    return plan
