"""Cache management endpoints."""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from omis.api.deps import CacheMonitorDep
from omis.schemas.cache import CacheStatsResponse

router = APIRouter()


@router.get("/stats", response_model=CacheStatsResponse, summary="Cache statistics")
async def cache_stats(monitor: CacheMonitorDep) -> CacheStatsResponse:
    return CacheStatsResponse.from_statistics(monitor.get_statistics())


@router.post("/clear", response_class=PlainTextResponse, summary="Clear cache")
async def clear_cache(monitor: CacheMonitorDep) -> str:
    monitor.clear_all()
    return "Cache cleared"
