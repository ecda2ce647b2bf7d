"""FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from omis import __version__
from omis.api.admin.router import admin_router
from omis.api.middleware.logging import RequestLoggingMiddleware
from omis.api.middleware.request_id import RequestIDMiddleware
from omis.api.resources.router import api_router
from omis.common.errors import register_error_handlers
from omis.common.logging import configure_logging
from omis.config import Settings, get_settings
from omis.core.cache.second_level import SecondLevelCache
from omis.db.session import Database


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings
    database: Database = app.state.database
    cache: SecondLevelCache = app.state.cache

    configure_logging(settings.logging.level, settings.logging.format)

    log = structlog.stdlib.get_logger()
    await log.ainfo(
        "omis.startup",
        version=__version__,
        env=settings.env,
        database=settings.database.url.split("@")[-1],
        statistics_enabled=cache.statistics_enabled,
        query_cache_enabled=cache.query_cache_enabled,
    )

    if settings.database.create_schema:
        await database.create_schema()
        await log.ainfo("omis.schema.ready")

    yield

    cache.close()
    await database.dispose()
    await log.ainfo("omis.shutdown")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Application factory, called by Uvicorn."""
    settings = settings or get_settings()

    app = FastAPI(
        title="OMIS API",
        description="Sensor resources with a second-level cache administration surface.",
        version=__version__,
        docs_url="/docs" if settings.env == "development" else None,
        redoc_url="/redoc" if settings.env == "development" else None,
        lifespan=lifespan,
    )

    # One engine and one cache per application instance
    database = Database(settings.database)
    cache = SecondLevelCache(settings.cache)
    cache.instrument(database.sync_maker)

    app.state.settings = settings
    app.state.database = database
    app.state.cache = cache

    # Middleware (order matters; last added is outermost)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.env == "development" else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    app.include_router(admin_router)
    app.include_router(api_router)

    return app
