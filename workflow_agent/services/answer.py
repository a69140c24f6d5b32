from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Optional

from workflow_agent.services.config import get_settings
from workflow_agent.services.llm import llm_chat_with_usage
from workflow_agent.services.models import ActionResult, AgentPlan

NO_ACTIONS_LOG = "No autonomous actions were executed."
NO_PLAN_SUMMARY = "No plan generated (information-only response)."

ANSWER_SYSTEM_PROMPT = (
    "You are the workflow assistant for a staged production line. "
    "You MUST reflect the real execution results that were already performed, exactly as the execution log "
    "states them. Only report an action as done if the log marks it SUCCESS. Never invent actions outside "
    "the execution log and never describe state changes the log does not show. If something failed, "
    "explain why and recommend next steps."
)


@dataclass(frozen=True)
class FinalAnswer:
    answer: str
    model: str


def render_execution_log(results: list[ActionResult]) -> str:
    if not results:
        return NO_ACTIONS_LOG
    lines = []
    for result in results:
        line = f"- {result.name}: {result.status.upper()} - {result.summary}"
        if result.error:
            line += f" (error: {result.error})"
        lines.append(line)
    return "\n".join(lines)


def build_answer_messages(
    objective: str,
    context_summary: str,
    plan: Optional[AgentPlan],
    results: list[ActionResult],
) -> list[dict[str, str]]:
    plan_summary = json.dumps(plan.model_dump(), indent=2) if plan is not None else NO_PLAN_SUMMARY
    return [
        {"role": "system", "content": ANSWER_SYSTEM_PROMPT},
        {"role": "system", "content": f"Operational context:\n{context_summary or 'No workflow context available.'}"},
        {"role": "system", "content": f"Agent plan:\n{plan_summary}"},
        {"role": "system", "content": f"Execution log:\n{render_execution_log(results)}"},
        {"role": "user", "content": objective},
    ]


async def build_final_answer(
    objective: str,
    context_summary: str,
    plan: Optional[AgentPlan],
    results: list[ActionResult],
) -> FinalAnswer:
    settings = get_settings()
    messages = build_answer_messages(objective, context_summary, plan, results)
    response = await llm_chat_with_usage(messages, max_tokens=settings.llm_answer_max_tokens)
    return FinalAnswer(answer=response.text, model=response.model)
