"""Domain resource routers."""

from fastapi import APIRouter

from omis.api.resources.sensors import router as sensors_router

api_router = APIRouter(prefix="/api")

api_router.include_router(sensors_router, prefix="/sensors", tags=["Sensors"])
