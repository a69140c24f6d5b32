from __future__ import annotations

import asyncio

import workflow_agent.services.answer as answer
from fakes import llm_reply
from workflow_agent.services.models import ActionResult, AgentPlan, PlannedAction


def test_execution_log_lists_every_result() -> None:
    log = answer.render_execution_log(
        [
            ActionResult(name="update_stage_checklist", status="success", summary="Updated 2 checklist tasks for stage ASSEMBLY."),
            ActionResult(
                name="complete_stage",
                status="error",
                summary="Failed to execute complete_stage.",
                error="Stage is not claimed",
            ),
        ]
    )

    assert log.splitlines() == [
        "- update_stage_checklist: SUCCESS - Updated 2 checklist tasks for stage ASSEMBLY.",
        "- complete_stage: ERROR - Failed to execute complete_stage. (error: Stage is not claimed)",
    ]


def test_empty_execution_log_says_nothing_ran() -> None:
    assert answer.render_execution_log([]) == "No autonomous actions were executed."


def test_answer_prompt_carries_context_plan_and_log() -> None:
    plan = AgentPlan(intent="claim", actions=[PlannedAction(name="claim_stage", arguments={"orderId": 9})])
    results = [ActionResult(name="claim_stage", status="success", summary="Stage ASSEMBLY claimed by olivia.")]

    messages = answer.build_answer_messages("claim PO-9 assembly", "Order PO-9 (id=9)", plan, results)

    assert [message["role"] for message in messages] == ["system", "system", "system", "system", "user"]
    assert "Never invent actions" in messages[0]["content"]
    assert messages[1]["content"] == "Operational context:\nOrder PO-9 (id=9)"
    assert '"claim_stage"' in messages[2]["content"]
    assert messages[3]["content"] == "Execution log:\n- claim_stage: SUCCESS - Stage ASSEMBLY claimed by olivia."
    assert messages[4] == {"role": "user", "content": "claim PO-9 assembly"}


def test_answer_prompt_without_plan() -> None:
    messages = answer.build_answer_messages("what is late?", "", None, [])

    assert messages[2]["content"] == "Agent plan:\nNo plan generated (information-only response)."
    assert messages[3]["content"] == "Execution log:\nNo autonomous actions were executed."


def test_final_answer_reports_the_model_that_answered(monkeypatch) -> None:
    async def fake_llm(messages, temperature=None, max_tokens=800, model=None):  # noqa: ARG001
        return llm_reply("PO-9 assembly is now claimed by you.", model="qwen3:32b")

    monkeypatch.setattr(answer, "llm_chat_with_usage", fake_llm)

    final = asyncio.run(answer.build_final_answer("claim it", "", None, []))

    assert final.answer == "PO-9 assembly is now claimed by you."
    assert final.model == "qwen3:32b"
