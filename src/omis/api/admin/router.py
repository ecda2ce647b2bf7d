"""Administrative routers: cache control and health probes."""

from fastapi import APIRouter

from omis.api.admin.cache import router as cache_router
from omis.api.admin.health import router as health_router

admin_router = APIRouter(tags=["Admin"])

admin_router.include_router(cache_router, prefix="/cache", tags=["Cache"])
admin_router.include_router(health_router, prefix="/health", tags=["Health"])
