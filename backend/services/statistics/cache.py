"""
Statistics cache - tiered TTLs, scoped invalidation, single-flight, fail-open.

Keys:
    stats:district_<id|all>:user_<id>:<type>:<md5(normalized params)[:16]>

TTL by substring of the type (first match wins):
    overview, kpi                        300s
    cases, properties, applicants        900s
    charts, demographics, financials    1800s
    anything else                        900s
    warm-up entries                     3600s

Stores:
    MemoryCacheStore - per-process, thread-safe, TTL + max size
    RedisCacheStore  - shared, JSON values, SCAN by prefix

A store that cannot be reached raises CacheBackendError. remember() treats
that as a miss and computes directly; it never raises for store failures.
Errors raised by the compute callable propagate unchanged.

Usage:
    from services.statistics.cache import StatisticsCache, create_cache_store

    cache = StatisticsCache(create_cache_store(Config.STATS_CACHE_URL))
    result = cache.remember('all_stats', identity, params, lambda: compute(...))
"""
import copy
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from constants import CACHE_PREFIX, CACHE_MAX_ENTRIES, DEFAULT_TTL, TTL_TIERS
from services.statistics.errors import CacheBackendError
from utils.cache_key import build_statistics_cache_key, scope_prefix

logger = logging.getLogger('statistics.cache')


def ttl_for_type(cache_type: str) -> int:
    for fragment, ttl in TTL_TIERS:
        if fragment in cache_type:
            return ttl
    return DEFAULT_TTL


@dataclass(frozen=True)
class CacheIdentity:
    """Who a cached value belongs to: the scope label and the caller."""
    district_label: str
    user_id: Any

    @classmethod
    def for_caller(cls, scope, caller) -> "CacheIdentity":
        return cls(district_label=scope.cache_label, user_id=caller.user_id)


# ============================================================================
# STORES
# ============================================================================

class CacheStore:
    """Minimal key/value interface the statistics cache needs."""

    def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def set(self, key: str, value: Any, ttl: int) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def keys_by_prefix(self, prefix: str) -> List[str]:
        raise NotImplementedError

    def delete_prefix(self, prefix: str) -> int:
        deleted = 0
        for key in self.keys_by_prefix(prefix):
            if self.delete(key):
                deleted += 1
        return deleted

    def stats(self) -> Dict[str, Any]:
        return {}


class MemoryCacheStore(CacheStore):
    """TTL cache with max size limit, per-entry TTL."""

    def __init__(self, maxsize: int = CACHE_MAX_ENTRIES, clock: Callable[[], float] = time.time):
        self._cache = {}
        self._maxsize = maxsize
        self._clock = clock
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            if key in self._cache:
                value, expires_at = self._cache[key]
                if self._clock() < expires_at:
                    return copy.deepcopy(value)
                del self._cache[key]
            return None

    def set(self, key: str, value: Any, ttl: int) -> None:
        with self._lock:
            # Evict the entry closest to expiry if at capacity
            if key not in self._cache and len(self._cache) >= self._maxsize:
                oldest_key = min(self._cache.keys(), key=lambda k: self._cache[k][1])
                del self._cache[oldest_key]
            self._cache[key] = (copy.deepcopy(value), self._clock() + ttl)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._cache.pop(key, None) is not None

    def keys_by_prefix(self, prefix: str) -> List[str]:
        with self._lock:
            return [key for key in self._cache if key.startswith(prefix)]

    def stats(self) -> Dict[str, Any]:
        return {
            'backend': 'memory',
            'size': len(self._cache),
            'maxsize': self._maxsize,
        }


class RedisCacheStore(CacheStore):
    """Redis-backed store. Values are JSON, prefix deletes use SCAN."""

    def __init__(self, url: str, client=None, scan_count: int = 500):
        self._url = url
        self._client = client
        self._scan_count = scan_count

    @property
    def client(self):
        """Get Redis client (lazy init)."""
        if self._client is None:
            import redis
            self._client = redis.from_url(self._url)
        return self._client

    def _call(self, operation: str, fn):
        from redis.exceptions import RedisError
        try:
            return fn()
        except RedisError as e:
            raise CacheBackendError(f"redis {operation} failed: {e}") from e

    def get(self, key: str) -> Optional[Any]:
        raw = self._call('get', lambda: self.client.get(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise CacheBackendError(f"redis get returned an undecodable value for {key}: {e}") from e

    def set(self, key: str, value: Any, ttl: int) -> None:
        payload = json.dumps(value, default=str)
        self._call('set', lambda: self.client.set(key, payload, ex=int(ttl)))

    def delete(self, key: str) -> bool:
        return bool(self._call('delete', lambda: self.client.delete(key)))

    def keys_by_prefix(self, prefix: str) -> List[str]:
        def scan():
            return [
                key.decode() if isinstance(key, bytes) else key
                for key in self.client.scan_iter(match=f"{prefix}*", count=self._scan_count)
            ]
        return self._call('scan', scan)

    def delete_prefix(self, prefix: str) -> int:
        keys = self.keys_by_prefix(prefix)
        if not keys:
            return 0
        deleted = 0
        for start in range(0, len(keys), self._scan_count):
            batch = keys[start:start + self._scan_count]
            deleted += int(self._call('delete', lambda: self.client.delete(*batch)) or 0)
        return deleted

    def stats(self) -> Dict[str, Any]:
        info = self._call('info', lambda: self.client.info('memory'))
        return {
            'backend': 'redis',
            'size': len(self.keys_by_prefix(f"{CACHE_PREFIX}:")),
            'used_memory': info.get('used_memory_human'),
        }


def create_cache_store(url: Optional[str] = None, max_entries: int = CACHE_MAX_ENTRIES) -> CacheStore:
    """Redis when a URL is configured, in-process memory otherwise."""
    if url:
        logger.info("Statistics cache using Redis")
        return RedisCacheStore(url)
    logger.info("Statistics cache using in-process memory store")
    return MemoryCacheStore(maxsize=max_entries)


# ============================================================================
# SINGLE-FLIGHT
# ============================================================================

class _Flight:
    """One in-progress computation that followers wait on."""

    def __init__(self):
        self.done = threading.Event()
        self.result = None
        self.error: Optional[BaseException] = None


# ============================================================================
# CACHE
# ============================================================================

class StatisticsCache:

    def __init__(self, store: CacheStore):
        self.store = store
        self._flights: Dict[str, _Flight] = {}
        self._flights_lock = threading.Lock()
        self._counters = {'hits': 0, 'misses': 0, 'backend_errors': 0}
        self._counters_lock = threading.Lock()

    def _count(self, counter: str) -> None:
        with self._counters_lock:
            self._counters[counter] += 1

    # -- keys -----------------------------------------------------------------

    def build_key(self, cache_type: str, identity: CacheIdentity, params: Optional[Dict[str, Any]] = None) -> str:
        return build_statistics_cache_key(cache_type, identity.district_label, identity.user_id, params or {})

    # -- fail-open store access -------------------------------------------------

    def _read(self, key: str) -> Optional[Any]:
        try:
            return self.store.get(key)
        except CacheBackendError as e:
            self._count('backend_errors')
            logger.warning(f"Cache read failed for {key}, computing directly: {e}")
            return None

    def _write(self, key: str, value: Any, ttl: int) -> None:
        try:
            self.store.set(key, value, ttl)
        except CacheBackendError as e:
            self._count('backend_errors')
            logger.warning(f"Cache write failed for {key}, result not cached: {e}")

    # -- computation ------------------------------------------------------------

    def _single_flight(self, key: str, produce: Callable[[], Any]) -> Any:
        with self._flights_lock:
            flight = self._flights.get(key)
            leader = flight is None
            if leader:
                flight = _Flight()
                self._flights[key] = flight

        if not leader:
            flight.done.wait()
            if flight.error is not None:
                raise flight.error
            return copy.deepcopy(flight.result)

        try:
            flight.result = produce()
            return flight.result
        except BaseException as e:
            flight.error = e
            raise
        finally:
            with self._flights_lock:
                self._flights.pop(key, None)
            flight.done.set()

    def _compute_and_store(self, key, compute, ttl, should_cache, *, recheck: bool):
        def produce():
            if recheck:
                # Double-check: a previous leader may have just stored it
                cached = self._read(key)
                if cached is not None:
                    return cached
            start = time.perf_counter()
            value = compute()
            elapsed = (time.perf_counter() - start) * 1000
            if should_cache is None or should_cache(value):
                self._write(key, value, ttl)
                logger.info(f"Computed and cached {key} in {elapsed:.1f}ms (ttl={ttl}s)")
            else:
                logger.info(f"Computed {key} in {elapsed:.1f}ms, not cached")
            return value

        return self._single_flight(key, produce)

    def remember(
        self,
        cache_type: str,
        identity: CacheIdentity,
        params: Optional[Dict[str, Any]],
        compute: Callable[[], Any],
        ttl: Optional[int] = None,
        should_cache: Optional[Callable[[Any], bool]] = None,
    ) -> Any:
        """
        Return the cached value for (type, identity, params), computing it on a miss.

        Concurrent misses on one key share a single computation.
        """
        key = self.build_key(cache_type, identity, params)
        cached = self._read(key)
        if cached is not None:
            self._count('hits')
            logger.debug(f"Cache hit for {key}")
            return cached

        self._count('misses')
        ttl = ttl if ttl is not None else ttl_for_type(cache_type)
        return self._compute_and_store(key, compute, ttl, should_cache, recheck=True)

    def refresh(
        self,
        cache_type: str,
        identity: CacheIdentity,
        params: Optional[Dict[str, Any]],
        compute: Callable[[], Any],
        ttl: Optional[int] = None,
        should_cache: Optional[Callable[[Any], bool]] = None,
    ) -> Any:
        """Recompute and overwrite regardless of what is cached."""
        key = self.build_key(cache_type, identity, params)
        ttl = ttl if ttl is not None else ttl_for_type(cache_type)
        return self._compute_and_store(key, compute, ttl, should_cache, recheck=False)

    # -- invalidation -----------------------------------------------------------

    def forget(self, cache_type: str, identity: CacheIdentity, params: Optional[Dict[str, Any]] = None) -> bool:
        key = self.build_key(cache_type, identity, params)
        deleted = self.store.delete(key)
        logger.info(f"Cache forget {key}: {'deleted' if deleted else 'absent'}")
        return deleted

    def forget_scope(self, district_id: Optional[int]) -> int:
        """
        Drop everything computed over a district.

        district_all entries are dropped too: unrestricted views include
        every district's data.
        """
        prefixes = [scope_prefix('district_all')]
        if district_id is not None:
            prefixes.insert(0, scope_prefix(f"district_{district_id}"))
        deleted = sum(self.store.delete_prefix(prefix) for prefix in prefixes)
        logger.info(f"Cache invalidated for district_{district_id}: {deleted} key(s)")
        return deleted

    def forget_user(self, user_id) -> int:
        segment = f":user_{user_id}:"
        deleted = 0
        for key in self.store.keys_by_prefix(f"{CACHE_PREFIX}:"):
            if segment in key and self.store.delete(key):
                deleted += 1
        logger.info(f"Cache invalidated for user_{user_id}: {deleted} key(s)")
        return deleted

    def forget_all(self) -> int:
        deleted = self.store.delete_prefix(f"{CACHE_PREFIX}:")
        logger.info(f"Statistics cache cleared: {deleted} key(s)")
        return deleted

    # -- monitoring -------------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics for monitoring."""
        try:
            store_stats = self.store.stats()
        except CacheBackendError as e:
            store_stats = {'error': str(e)}
        with self._flights_lock:
            in_flight = len(self._flights)
        with self._counters_lock:
            counters = dict(self._counters)
        return {
            **counters,
            'in_flight': in_flight,
            'store': store_stats,
        }
