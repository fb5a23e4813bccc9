# collective_node/api/health.py
from __future__ import annotations

"""
Health endpoints.

Routes
------
- GET /health
    Liveness plus the pool's lifecycle state (when an executor is attached).

- GET /health/ping
    Simple heartbeat endpoint.
"""

import time
from typing import Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

router = APIRouter(prefix="/health", tags=["health"])


class PingResponse(BaseModel):
    ok: bool = True
    ts: float = Field(..., description="Server timestamp.")
    msg: str = "pong"


class HealthResponse(BaseModel):
    ok: bool = True
    ready: bool
    state: Optional[str] = None
    paused: Optional[bool] = None


@router.get("", response_model=HealthResponse)
def health(request: Request) -> HealthResponse:
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        return HealthResponse(ready=False)
    return HealthResponse(ready=True, state=ex.state.value, paused=ex.paused)


@router.get("/ping", response_model=PingResponse)
def ping() -> PingResponse:
    """
    Simple heartbeat endpoint. Useful for external uptime checks.
    """
    return PingResponse(ts=time.time())
