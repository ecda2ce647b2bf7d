"""Shared FastAPI dependencies."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from omis.common.errors import ProviderUnavailableError
from omis.core.cache.monitor import CacheMonitor, CacheProvider
from omis.core.cache.second_level import SecondLevelCache
from omis.db.session import get_db_session

DBSession = Annotated[AsyncSession, Depends(get_db_session)]


def get_second_level_cache(request: Request) -> SecondLevelCache:
    cache: SecondLevelCache | None = getattr(request.app.state, "cache", None)
    if cache is None:
        raise ProviderUnavailableError("Cache provider has not been initialized")
    return cache


def get_cache_provider(request: Request) -> CacheProvider | None:
    """The provider observed by the cache monitor; ``None`` until startup wiring ran."""
    return getattr(request.app.state, "cache", None)


def get_cache_monitor(
    provider: CacheProvider | None = Depends(get_cache_provider),
) -> CacheMonitor:
    return CacheMonitor(provider)


SecondLevelCacheDep = Annotated[SecondLevelCache, Depends(get_second_level_cache)]
CacheMonitorDep = Annotated[CacheMonitor, Depends(get_cache_monitor)]
