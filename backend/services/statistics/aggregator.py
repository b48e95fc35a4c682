"""
Statistics Aggregator - runs named groups and chart series.

Groups are computed SEQUENTIALLY on one session. Each group is independent:
a group whose query fails becomes the unavailable marker

    {'status': 'unavailable', 'error': '...'}

and the session is rolled back so the remaining groups still run. A
zero-filled result is never substituted for a failed one.

Usage:
    from services.statistics.aggregator import compute_all, compute_charts

    stats = compute_all(session, scope, window, now=now)
    charts = compute_charts(session, scope, now=now)
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from constants import (
    GROUP_OVERVIEW, GROUP_CASES, GROUP_PROPERTIES, GROUP_APPLICANTS,
    GROUP_DEMOGRAPHICS, GROUP_FINANCIALS, GROUP_GEOGRAPHIC, GROUP_PERFORMANCE,
    GROUP_KPIS, GROUP_ALERTS, STATS_GROUPS,
)
from services.statistics.access_scope import Scope
from services.statistics.calculator import (
    compute_overview, compute_cases, compute_properties, compute_applicants,
    compute_demographics, compute_financials, compute_geographic,
    compute_performance, compute_kpis, compute_alerts,
)
from services.statistics.charts import CHART_QUERIES
from services.statistics.errors import ComputeError
from services.statistics.periods import PeriodWindow
from utils.timing import log_timing

logger = logging.getLogger('statistics')

STATUS_UNAVAILABLE = 'unavailable'

GROUP_QUERIES = {
    GROUP_OVERVIEW: compute_overview,
    GROUP_CASES: compute_cases,
    GROUP_PROPERTIES: compute_properties,
    GROUP_APPLICANTS: compute_applicants,
    GROUP_DEMOGRAPHICS: compute_demographics,
    GROUP_FINANCIALS: compute_financials,
    GROUP_GEOGRAPHIC: compute_geographic,
    GROUP_PERFORMANCE: compute_performance,
    GROUP_KPIS: compute_kpis,
    GROUP_ALERTS: compute_alerts,
}


def unavailable(error) -> Dict[str, str]:
    return {'status': STATUS_UNAVAILABLE, 'error': str(error)}


def is_unavailable(value) -> bool:
    return isinstance(value, dict) and value.get('status') == STATUS_UNAVAILABLE


def has_unavailable(bundle) -> bool:
    """True when any top-level entry of a result bundle is the unavailable marker."""
    if is_unavailable(bundle):
        return True
    if isinstance(bundle, dict):
        return any(is_unavailable(value) for value in bundle.values())
    return False


def unavailable_names(bundle) -> List[str]:
    """Names of the groups or series in a bundle that came back unavailable."""
    if not isinstance(bundle, dict):
        return []
    return [name for name, value in bundle.items() if is_unavailable(value)]


def _validate_names(names: Iterable[str], registry: dict, kind: str) -> List[str]:
    names = list(names)
    unknown = [name for name in names if name not in registry]
    if unknown:
        raise ValueError(f"Unknown {kind}: {unknown}. Valid: {list(registry.keys())}")
    return names


def _rollback(session) -> None:
    try:
        session.rollback()
    except SQLAlchemyError as e:
        logger.error(f"Rollback after failed group also failed: {e}")


def compute_group(group: str, session, scope: Scope, window: Optional[PeriodWindow], *, now: datetime):
    """
    Compute one group.

    Raises:
        ValueError: unknown group name
        ComputeError: the group's query failed
    """
    query_fn = GROUP_QUERIES.get(group)
    if query_fn is None:
        raise ValueError(f"Unknown group: {group!r}. Valid: {list(GROUP_QUERIES.keys())}")
    try:
        return query_fn(session, scope, window, now=now)
    except SQLAlchemyError as e:
        raise ComputeError(group, e) from e


@log_timing("compute_all")
def compute_all(
    session,
    scope: Scope,
    window: Optional[PeriodWindow],
    *,
    now: datetime,
    groups: Optional[Iterable[str]] = None,
) -> Dict[str, Any]:
    """Compute every requested group (default: the statistics page bundle)."""
    groups = _validate_names(groups if groups is not None else STATS_GROUPS, GROUP_QUERIES, 'groups')

    data = {}
    for group in groups:
        try:
            data[group] = compute_group(group, session, scope, window, now=now)
        except ComputeError as e:
            logger.error(f"Error computing {group} for {scope.cache_label}: {e.cause}")
            _rollback(session)
            data[group] = unavailable(e.cause)
    return data


@log_timing("compute_charts")
def compute_charts(
    session,
    scope: Scope,
    *,
    now: datetime,
    series: Optional[Iterable[str]] = None,
) -> Dict[str, Any]:
    """Compute every requested chart series (default: all)."""
    names = _validate_names(series if series is not None else CHART_QUERIES.keys(), CHART_QUERIES, 'chart series')

    charts = {}
    for name in names:
        try:
            charts[name] = CHART_QUERIES[name](session, scope, now=now)
        except SQLAlchemyError as e:
            logger.error(f"Error computing chart {name} for {scope.cache_label}: {e}")
            _rollback(session)
            charts[name] = unavailable(e)
    return charts
