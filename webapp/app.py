"""FastAPI control surface for the research controller."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, field_validator

from orchestrator import ResearchController
from utils.exceptions import ConfigurationError, WorkflowStateError
from webapp.runtime import get_controller


app = FastAPI(title="Research Report Agent API")


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    # the controller is built on first use; a missing API key surfaces here
    return JSONResponse(status_code=503, content={"detail": exc.message})


class StartResearchPayload(BaseModel):
    topic: str

    @field_validator("topic")
    @classmethod
    def _strip_required(cls, value: str) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("value is required")
        return text


class FollowUpPayload(BaseModel):
    question: str

    @field_validator("question")
    @classmethod
    def _strip_required(cls, value: str) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("value is required")
        return text


def _snapshot(controller: ResearchController) -> Dict[str, Any]:
    return controller.snapshot().model_dump(mode="json")


@app.get("/api/health")
async def health() -> Dict[str, Any]:
    return {"ok": True, "ts": datetime.now(timezone.utc).isoformat(timespec="seconds")}


@app.get("/api/research")
async def get_research(controller: ResearchController = Depends(get_controller)) -> Dict[str, Any]:
    return _snapshot(controller)


@app.post("/api/research")
async def start_research(
    payload: StartResearchPayload,
    controller: ResearchController = Depends(get_controller),
) -> Dict[str, Any]:
    controller.start(payload.topic)
    return _snapshot(controller)


@app.post("/api/research/stop")
async def stop_research(controller: ResearchController = Depends(get_controller)) -> Dict[str, Any]:
    controller.stop()
    return _snapshot(controller)


@app.post("/api/research/follow-up")
async def follow_up(
    payload: FollowUpPayload,
    controller: ResearchController = Depends(get_controller),
) -> Dict[str, Any]:
    try:
        controller.follow_up(payload.question)
    except WorkflowStateError as exc:
        raise HTTPException(status_code=409, detail=exc.message) from exc
    return _snapshot(controller)
