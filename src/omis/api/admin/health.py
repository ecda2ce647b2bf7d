"""Health check endpoints for liveness/readiness probes."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import ORJSONResponse

from omis import __version__
from omis.schemas.health import LivenessResponse, ReadinessResponse

router = APIRouter()


@router.get("/live", response_model=LivenessResponse, summary="Liveness probe")
async def liveness() -> LivenessResponse:
    return LivenessResponse(version=__version__)


@router.get("/ready", response_model=ReadinessResponse, summary="Readiness probe")
async def readiness(request: Request) -> ORJSONResponse:
    connected = await request.app.state.database.ping()
    body = ReadinessResponse(
        status="ok" if connected else "degraded",
        database="connected" if connected else "disconnected",
    )
    return ORJSONResponse(status_code=200 if connected else 503, content=body.model_dump())
