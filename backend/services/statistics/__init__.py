"""
Statistics engine - scoped aggregates over cases, properties and applicants.

    access_scope   caller -> visibility scope
    periods        period token -> date window, chart buckets
    classifier     derived property / applicant states
    growth         period-over-period comparison
    calculator     aggregate groups
    charts         chart series
    aggregator     group / series runner with per-group failure isolation
    cache          tiered cache, single-flight, fail-open
    service        facade used by the app and the CLI
    invalidation   hooks for the back office mutations
"""
from services.statistics.access_scope import Caller, Scope, resolve_scope
from services.statistics.cache import (
    CacheIdentity, CacheStore, MemoryCacheStore, RedisCacheStore,
    StatisticsCache, create_cache_store,
)
from services.statistics.errors import (
    StatisticsError, InvalidPeriodError, ComputeError, CacheBackendError,
)
from services.statistics.periods import PeriodWindow, resolve_period
from services.statistics.service import StatisticsService, start_background_warm_up

__all__ = [
    'Caller',
    'Scope',
    'resolve_scope',
    'CacheIdentity',
    'CacheStore',
    'MemoryCacheStore',
    'RedisCacheStore',
    'StatisticsCache',
    'create_cache_store',
    'StatisticsError',
    'InvalidPeriodError',
    'ComputeError',
    'CacheBackendError',
    'PeriodWindow',
    'resolve_period',
    'StatisticsService',
    'start_background_warm_up',
]
