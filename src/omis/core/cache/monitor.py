"""
Read/clear surface over the persistence cache.

The monitor owns nothing: counters and cached data belong to the provider.
Provider failures are not caught here; they propagate to the error handlers.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import structlog

from omis.common.errors import ProviderUnavailableError
from omis.core.cache.statistics import CacheStatistics

logger = structlog.stdlib.get_logger()


@runtime_checkable
class CacheProvider(Protocol):
    def read_statistics(self) -> CacheStatistics: ...

    def evict_all(self) -> None: ...


class CacheMonitor:
    """
    Usage:
        monitor = CacheMonitor(provider)
        stats = monitor.get_statistics()
        monitor.clear_all()
    """

    def __init__(self, provider: CacheProvider | None) -> None:
        self._provider = provider

    def _require_provider(self) -> CacheProvider:
        if self._provider is None:
            raise ProviderUnavailableError("Cache provider has not been initialized")
        return self._provider

    def get_statistics(self) -> CacheStatistics:
        stats = self._require_provider().read_statistics()
        if not stats.statistics_enabled:
            return CacheStatistics.disabled()
        return stats

    def clear_all(self) -> None:
        self._require_provider().evict_all()
        logger.info("cache.cleared")
