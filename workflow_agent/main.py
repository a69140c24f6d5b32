from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from workflow_agent.routes.assistant import router as assistant_router
from workflow_agent.services.config import get_settings
from workflow_agent.services.llm import llm_enabled

settings = get_settings()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Workflow Agent API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url, "http://127.0.0.1:3000", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(assistant_router)


@app.get("/api/health")
async def health() -> dict[str, str]:
    return {
        "status": "ok",
        "llm_enabled": "true" if llm_enabled() else "false",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("workflow_agent.main:app", host="0.0.0.0", port=settings.api_port)
