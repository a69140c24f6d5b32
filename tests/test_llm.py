from __future__ import annotations

import asyncio

import httpx
import pytest
from tenacity import wait_none

import workflow_agent.services.llm as llm


def test_json_candidates_put_the_fence_first() -> None:
    text = 'Plan below {"ignored": true}\n```JSON\n{"actions": []}\n```'

    assert llm.json_candidates(text) == [
        '{"actions": []}',
        '{"ignored": true}',
        '{"ignored": true}\n```JSON\n{"actions": []}',
    ]


def test_json_candidates_without_braces() -> None:
    assert llm.json_candidates("nothing structured here") == []
    assert llm.json_candidates("} backwards {") == []


def test_chat_returns_text_and_reported_model(monkeypatch) -> None:
    payloads: list[dict] = []

    async def fake_request(payload):
        payloads.append(payload)
        return {
            "model": "gpt-oss:20b",
            "choices": [{"message": {"content": [{"type": "text", "text": "first"}, {"type": "text", "text": "second"}]}}],
            "usage": {"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15},
        }

    monkeypatch.setattr(llm, "_chat_completion_request", fake_request)

    response = asyncio.run(llm.llm_chat_with_usage([{"role": "user", "content": "hi"}], max_tokens=50))

    assert response.text == "first\nsecond"
    assert response.model == "gpt-oss:20b"
    assert response.total_tokens == 15
    assert payloads[0]["max_tokens"] == 50
    assert payloads[0]["model"] == llm.get_settings().llm_model


def test_chat_falls_back_to_configured_model_name(monkeypatch) -> None:
    async def fake_request(payload):  # noqa: ARG001
        return {"choices": [{"message": {"content": "plain"}}]}

    monkeypatch.setattr(llm, "_chat_completion_request", fake_request)

    response = asyncio.run(llm.llm_chat_with_usage([{"role": "user", "content": "hi"}], model="qwen3:8b"))

    assert response.model == "qwen3:8b"
    assert response.prompt_tokens == 0


def test_chat_rejects_empty_replies(monkeypatch) -> None:
    async def fake_request(payload):  # noqa: ARG001
        return {"choices": [{"message": {"content": "   "}}]}

    monkeypatch.setattr(llm, "_chat_completion_request", fake_request)

    with pytest.raises(llm.LLMError, match="text content"):
        asyncio.run(llm.llm_chat_with_usage([{"role": "user", "content": "hi"}]))


class CountingEndpoint:
    """Chat endpoint that answers with a fixed sequence of status codes."""

    def __init__(self, *statuses: int) -> None:
        self.statuses = list(statuses)
        self.attempts = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:  # noqa: ARG002
        status = self.statuses[min(self.attempts, len(self.statuses) - 1)]
        self.attempts += 1
        if status == 200:
            return httpx.Response(200, json={"model": "gpt-oss:20b", "choices": [{"message": {"content": "ok"}}]})
        return httpx.Response(status, text="busy")


@pytest.fixture
def endpoint(monkeypatch):
    """Route model calls through a MockTransport and skip the retry backoff."""

    def install(*statuses: int) -> CountingEndpoint:
        handler = CountingEndpoint(*statuses)
        real_client = httpx.AsyncClient

        def mock_client(*args, **kwargs):
            kwargs["transport"] = httpx.MockTransport(handler)
            return real_client(*args, **kwargs)

        monkeypatch.setattr(llm.httpx, "AsyncClient", mock_client)
        monkeypatch.setattr(llm._chat_completion_request.retry, "wait", wait_none())
        return handler

    return install


def _chat() -> llm.LLMResponse:
    return asyncio.run(llm.llm_chat_with_usage([{"role": "user", "content": "hi"}]))


@pytest.mark.parametrize("status", [500, 503, 429])
def test_temporary_failures_are_retried(endpoint, status: int) -> None:
    handler = endpoint(status, 200)

    response = _chat()

    assert response.text == "ok"
    assert handler.attempts == 2


def test_retries_stop_after_three_attempts(endpoint) -> None:
    handler = endpoint(502)

    with pytest.raises(llm.LLMTemporaryError):
        _chat()

    assert handler.attempts == 3


@pytest.mark.parametrize("status", [400, 401, 404])
def test_client_errors_are_not_retried(endpoint, status: int) -> None:
    handler = endpoint(status)

    with pytest.raises(llm.LLMError, match=f"Model request failed \\({status}\\)"):
        _chat()

    assert handler.attempts == 1
