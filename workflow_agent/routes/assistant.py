from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from pydantic import AliasChoices, BaseModel, Field

from workflow_agent.services.actions import list_actions
from workflow_agent.services.config import get_settings
from workflow_agent.services.llm import llm_enabled
from workflow_agent.services.orchestrator import run_assistant

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/assistant", tags=["assistant"])


class AssistantRequest(BaseModel):
    objective: Optional[str] = Field(default=None, validation_alias=AliasChoices("objective", "question"))
    credential: Optional[str] = Field(default=None, validation_alias=AliasChoices("credential", "token"))


class AssistantResponse(BaseModel):
    answer: str
    model: str
    context_warning: Optional[str] = Field(default=None, serialization_alias="contextWarning")


@router.post("", response_model=AssistantResponse, response_model_exclude_none=True)
async def ask_assistant(body: AssistantRequest) -> AssistantResponse:
    objective = (body.objective or "").strip()
    if not objective:
        raise HTTPException(status_code=400, detail="objective is required.")
    credential = (body.credential or "").strip()
    if not credential:
        raise HTTPException(status_code=401, detail="Authentication credential is required for autonomous actions.")
    if not llm_enabled():
        raise HTTPException(status_code=503, detail="Model endpoint is not configured (LLM_BASE_URL / LLM_MODEL).")

    settings = get_settings()
    try:
        result = await asyncio.wait_for(
            run_assistant(objective, credential),
            timeout=settings.assistant_timeout_seconds,
        )
    except asyncio.TimeoutError:
        logger.warning("assistant run exceeded %ss", settings.assistant_timeout_seconds)
        raise HTTPException(status_code=504, detail="The assistant did not finish in time.")
    except Exception as exc:  # noqa: BLE001
        logger.exception("assistant run failed")
        raise HTTPException(status_code=502, detail=str(exc) or "Failed to run the workflow assistant.")

    return AssistantResponse(answer=result.answer, model=result.model, context_warning=result.context_warning)


@router.get("/actions")
async def get_actions() -> list[dict[str, Any]]:
    return [
        {
            "name": action.name.value,
            "description": action.description,
            "parameterSummary": action.parameter_summary,
            "allowedRoles": sorted(role.value for role in action.allowed_roles),
        }
        for action in list_actions()
    ]
