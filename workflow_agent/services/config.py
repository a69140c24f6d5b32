from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    workflow_api_base_url: str = "http://localhost:8080"
    workflow_timeout_seconds: float = 20.0

    # Any OpenAI-compatible chat completions endpoint (Ollama, OpenRouter, ...)
    llm_base_url: str = "https://ollama.com/v1"
    llm_api_key: Optional[str] = None
    llm_model: str = "gpt-oss:20b-cloud"
    llm_temperature: float = 0.2
    llm_plan_max_tokens: int = 1200
    llm_answer_max_tokens: int = 800
    llm_timeout_seconds: float = 45.0

    assistant_timeout_seconds: float = 120.0
    max_objective_chars: int = 4000
    max_context_orders: int = 10

    api_port: int = 8000
    frontend_url: str = "http://localhost:3000"
    log_level: str = "INFO"

    @property
    def resolved_llm_base_url(self) -> str:
        return self.llm_base_url.rstrip("/")

    @property
    def resolved_workflow_api_base_url(self) -> str:
        return self.workflow_api_base_url.rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
