from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from workflow_agent.services.config import get_settings

logger = logging.getLogger(__name__)

_JSON_FENCE = re.compile(r"```json([\s\S]*?)```", re.IGNORECASE)


class LLMError(RuntimeError):
    pass


class LLMTemporaryError(LLMError):
    pass


@dataclass
class LLMResponse:
    """Model reply plus the model name and token usage reported by the endpoint."""
    text: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


def llm_enabled() -> bool:
    settings = get_settings()
    return bool(settings.llm_base_url and settings.llm_model)


def _extract_text_from_message(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict) and isinstance(item.get("text"), str):
                parts.append(item["text"])
        return "\n".join(part for part in parts if part).strip()
    return ""


@retry(
    retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError, LLMTemporaryError)),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    stop=stop_after_attempt(3),
    reraise=True,
)
async def _chat_completion_request(payload: dict[str, Any]) -> dict[str, Any]:
    settings = get_settings()
    url = settings.resolved_llm_base_url + "/chat/completions"
    headers = {"Content-Type": "application/json"}
    if settings.llm_api_key:
        headers["Authorization"] = f"Bearer {settings.llm_api_key}"

    timeout = httpx.Timeout(settings.llm_timeout_seconds)
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.post(url, headers=headers, json=payload)

    if response.status_code >= 500 or response.status_code in {408, 409, 425, 429}:
        raise LLMTemporaryError(f"Model endpoint temporary error: {response.status_code}")

    if response.status_code >= 400:
        detail = response.text[:300]
        raise LLMError(f"Model request failed ({response.status_code}): {detail}")

    return response.json()


async def llm_chat_with_usage(
    messages: list[dict[str, str]],
    temperature: Optional[float] = None,
    max_tokens: int = 800,
    model: Optional[str] = None,
) -> LLMResponse:
    """Call the chat completions endpoint and return text, model name and usage."""
    settings = get_settings()
    if not llm_enabled():
        raise LLMError("Model endpoint is not configured (LLM_BASE_URL / LLM_MODEL).")

    requested_model = model or settings.llm_model
    payload = {
        "model": requested_model,
        "messages": messages,
        "temperature": settings.llm_temperature if temperature is None else temperature,
        "max_tokens": max_tokens,
    }

    try:
        data = await _chat_completion_request(payload)
    except (httpx.TimeoutException, httpx.TransportError) as exc:
        raise LLMError(f"Model endpoint unreachable: {exc}") from exc

    choices = data.get("choices", [])
    if not choices:
        raise LLMError("Model response did not contain choices")

    message = choices[0].get("message", {})
    text = _extract_text_from_message(message.get("content", "")).strip()
    if not text:
        raise LLMError("Model response did not contain text content")

    usage = data.get("usage") or {}
    logger.debug(
        "model %s replied with %s completion tokens",
        data.get("model") or requested_model,
        usage.get("completion_tokens", 0),
    )
    return LLMResponse(
        text=text,
        model=str(data.get("model") or requested_model),
        prompt_tokens=usage.get("prompt_tokens", 0),
        completion_tokens=usage.get("completion_tokens", 0),
        total_tokens=usage.get("total_tokens", 0),
    )


def _brace_span(text: str) -> Optional[str]:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return text[start : end + 1]


def json_candidates(text: str) -> list[str]:
    """Return the JSON candidates inside a model reply, most specific first.

    A fenced ```json block comes first, then the span from the first ``{`` to
    the last ``}`` of the reply with the fence cut out, then the same span of
    the whole reply. Empty when the reply holds no braces at all.
    """
    trimmed = text.strip()
    candidates: list[str] = []
    fenced = _JSON_FENCE.search(trimmed)
    if fenced:
        candidates.append(fenced.group(1).strip())
        outside = trimmed[: fenced.start()] + trimmed[fenced.end() :]
        candidates.append(_brace_span(outside) or "")
    candidates.append(_brace_span(trimmed) or "")
    return list(dict.fromkeys(candidate for candidate in candidates if candidate))
