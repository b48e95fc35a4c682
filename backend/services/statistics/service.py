"""
Statistics Service - the entry point used by the app and the CLI.

Wires a read-only session, a StatisticsCache and a clock (reporting
timezone) to the aggregator. Every public method takes the caller
explicitly; the scope is derived from it on each call.

Usage:
    from services.statistics.service import StatisticsService

    service = StatisticsService(db.session, cache)
    stats = service.get_all_stats(caller, period='week')
    charts = service.get_all_charts(caller)
"""
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from constants import (
    DEFAULT_PERIOD, WARM_UP_PERIODS, WARM_UP_TTL, STATS_GROUPS, GROUP_KPIS, GROUP_ALERTS,
)
from services.statistics.access_scope import Caller, resolve_scope
from services.statistics.aggregator import (
    compute_all, compute_charts, compute_group, has_unavailable, unavailable_names,
)
from services.statistics.cache import CacheIdentity, StatisticsCache
from services.statistics.errors import ComputeError
from services.statistics.growth import compare_periods
from services.statistics.periods import PeriodWindow, reporting_now, resolve_period_for_scope

logger = logging.getLogger('statistics')
warmup_logger = logging.getLogger('statistics.warmup')

TYPE_ALL_STATS = 'all_stats'
TYPE_ALL_CHARTS = 'all_charts'
TYPE_DASHBOARD_KPIS = 'dashboard_kpis'
TYPE_ALERTS = 'dashboard_alerts'
TYPE_COMPARISON = 'overview_comparison'

# Result entry for the chart bundle in warm_up()
WARM_UP_CHARTS = 'charts'


def _cacheable(result) -> bool:
    return not has_unavailable(result)


class StatisticsService:

    def __init__(
        self,
        session,
        cache: StatisticsCache,
        *,
        timezone_name: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session = session
        self.cache = cache
        self.timezone_name = timezone_name
        self._clock = clock

    def now(self) -> datetime:
        if self._clock is not None:
            return self._clock()
        return reporting_now(self.timezone_name)

    # -- resolution ----------------------------------------------------------------

    def resolve(
        self,
        caller: Caller,
        period: Optional[str] = DEFAULT_PERIOD,
        custom_from=None,
        custom_to=None,
        *,
        district_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ):
        """(scope, window, now) for a request. Raises InvalidPeriodError."""
        now = now or self.now()
        scope = resolve_scope(caller, district_id)
        window = resolve_period_for_scope(self.session, scope, period, custom_from, custom_to, now=now)
        return scope, window, now

    @staticmethod
    def _params(window: PeriodWindow, **extra) -> Dict[str, Any]:
        params = window.as_params()
        params.update(extra)
        return params

    # -- statistics page -------------------------------------------------------------

    def get_all_stats(
        self,
        caller: Caller,
        period: Optional[str] = DEFAULT_PERIOD,
        custom_from=None,
        custom_to=None,
        *,
        district_id: Optional[int] = None,
        groups: Optional[Iterable[str]] = None,
    ) -> Dict[str, Any]:
        scope, window, now = self.resolve(caller, period, custom_from, custom_to, district_id=district_id)
        groups = list(groups) if groups is not None else list(STATS_GROUPS)
        params = self._params(window, groups=None if groups == list(STATS_GROUPS) else sorted(groups))
        return self.cache.remember(
            TYPE_ALL_STATS,
            CacheIdentity.for_caller(scope, caller),
            params,
            lambda: compute_all(self.session, scope, window, now=now, groups=groups),
            should_cache=_cacheable,
        )

    def get_all_charts(self, caller: Caller, *, district_id: Optional[int] = None) -> Dict[str, Any]:
        """Chart series over their fixed lookback, cached per reporting day."""
        now = self.now()
        scope = resolve_scope(caller, district_id)
        return self.cache.remember(
            TYPE_ALL_CHARTS,
            CacheIdentity.for_caller(scope, caller),
            {'day': now.date()},
            lambda: compute_charts(self.session, scope, now=now),
            should_cache=_cacheable,
        )

    def get_group(
        self,
        caller: Caller,
        group: str,
        period: Optional[str] = DEFAULT_PERIOD,
        custom_from=None,
        custom_to=None,
        *,
        district_id: Optional[int] = None,
    ):
        """
        One group on its own, cached under its own type (and TTL tier).

        Raises:
            ValueError: unknown group
            ComputeError: the group's query failed
        """
        scope, window, now = self.resolve(caller, period, custom_from, custom_to, district_id=district_id)
        return self.cache.remember(
            group,
            CacheIdentity.for_caller(scope, caller),
            self._params(window),
            lambda: compute_group(group, self.session, scope, window, now=now),
        )

    def compare_periods(
        self,
        caller: Caller,
        period: Optional[str] = DEFAULT_PERIOD,
        custom_from=None,
        custom_to=None,
        *,
        district_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        scope, window, _ = self.resolve(caller, period, custom_from, custom_to, district_id=district_id)
        return self.cache.remember(
            TYPE_COMPARISON,
            CacheIdentity.for_caller(scope, caller),
            self._params(window),
            lambda: compare_periods(self.session, scope, window),
        )

    # -- dashboard -------------------------------------------------------------------

    def _dashboard_group(self, cache_type: str, group: str, caller: Caller, district_id: Optional[int]):
        now = self.now()
        scope = resolve_scope(caller, district_id)
        return self.cache.remember(
            cache_type,
            CacheIdentity.for_caller(scope, caller),
            {'day': now.date()},
            lambda: compute_group(group, self.session, scope, None, now=now),
        )

    def get_dashboard_kpis(self, caller: Caller, *, district_id: Optional[int] = None) -> Dict[str, Any]:
        return self._dashboard_group(TYPE_DASHBOARD_KPIS, GROUP_KPIS, caller, district_id)

    def get_alerts(self, caller: Caller, *, district_id: Optional[int] = None) -> List[Dict[str, Any]]:
        return self._dashboard_group(TYPE_ALERTS, GROUP_ALERTS, caller, district_id)

    # -- warm-up ---------------------------------------------------------------------

    def warm_up(self, caller: Caller, periods: Optional[Iterable[str]] = None) -> Dict[str, str]:
        """
        Recompute and store the statistics bundle for each period, then the
        chart bundle once (charts do not depend on the period).

        Entries land under the same keys the request path reads, with the
        warm-up TTL. Each entry of the result is 'ok', 'partial: <names>'
        (bundle not cached) or 'error: <message>'. A failing period is
        logged and the next one still runs.
        """
        periods = list(periods) if periods is not None else list(WARM_UP_PERIODS)
        scope = resolve_scope(caller)
        identity = CacheIdentity.for_caller(scope, caller)
        now = self.now()
        results = {}

        for period in periods:
            try:
                _, window, _ = self.resolve(caller, period, now=now)
                stats = self.cache.refresh(
                    TYPE_ALL_STATS,
                    identity,
                    self._params(window, groups=None),
                    lambda: compute_all(self.session, scope, window, now=now),
                    ttl=WARM_UP_TTL,
                    should_cache=_cacheable,
                )
                results[period] = self._warm_status(identity, period, stats)
            except (ComputeError, SQLAlchemyError, ValueError) as e:
                results[period] = f"error: {e}"
                warmup_logger.error(f"Failed to warm cache for {identity.district_label} period={period}: {e}")

        try:
            charts = self.cache.refresh(
                TYPE_ALL_CHARTS,
                identity,
                {'day': now.date()},
                lambda: compute_charts(self.session, scope, now=now),
                ttl=WARM_UP_TTL,
                should_cache=_cacheable,
            )
            results[WARM_UP_CHARTS] = self._warm_status(identity, WARM_UP_CHARTS, charts)
        except (ComputeError, SQLAlchemyError, ValueError) as e:
            results[WARM_UP_CHARTS] = f"error: {e}"
            warmup_logger.error(f"Failed to warm charts for {identity.district_label}: {e}")

        return results

    @staticmethod
    def _warm_status(identity: CacheIdentity, entry: str, bundle) -> str:
        missing = unavailable_names(bundle)
        if missing:
            warmup_logger.warning(
                f"Partial warm-up for {identity.district_label} {entry}, not cached: "
                f"unavailable {', '.join(missing)}"
            )
            return f"partial: {', '.join(missing)}"
        warmup_logger.info(f"Warmed cache for {identity.district_label} {entry}")
        return 'ok'

    def cache_stats(self) -> Dict[str, Any]:
        return self.cache.stats()


# ============================================================================
# BACKGROUND WARM-UP
# ============================================================================

# Global state for tracking the background run
_warmup_lock = threading.Lock()
_warmup_in_progress = False
_last_warmup_time: Optional[datetime] = None
_last_warmup_result: Optional[Dict[str, Any]] = None


def get_warm_up_status() -> Dict[str, Any]:
    """Get current warm-up status."""
    return {
        'in_progress': _warmup_in_progress,
        'last_warm_up_time': _last_warmup_time.isoformat() if _last_warmup_time else None,
        'last_warm_up_result': _last_warmup_result,
    }


def start_background_warm_up(
    cache: StatisticsCache,
    caller: Caller,
    session_factory: Callable[[], Any],
    periods: Optional[Iterable[str]] = None,
    *,
    timezone_name: Optional[str] = None,
) -> Optional[threading.Thread]:
    """
    Run warm_up in a daemon thread with its own session.

    Returns:
        The started thread, or None if a warm-up is already in progress
    """
    global _warmup_in_progress

    with _warmup_lock:
        if _warmup_in_progress:
            warmup_logger.info("Cache warm-up already in progress, skipping")
            return None
        _warmup_in_progress = True

    periods = list(periods) if periods is not None else None

    def _do_warm_up():
        global _warmup_in_progress, _last_warmup_time, _last_warmup_result

        session = session_factory()
        try:
            service = StatisticsService(session, cache, timezone_name=timezone_name)
            _last_warmup_result = service.warm_up(caller, periods)
            _last_warmup_time = datetime.utcnow()
            warmup_logger.info(f"Background warm-up completed: {_last_warmup_result}")
        except Exception as e:
            _last_warmup_result = {'error': str(e)}
            warmup_logger.exception(f"Background warm-up failed: {e}")
        finally:
            session.close()
            with _warmup_lock:
                _warmup_in_progress = False

    thread = threading.Thread(target=_do_warm_up, name='statistics-warm-up', daemon=True)
    thread.start()
    return thread
