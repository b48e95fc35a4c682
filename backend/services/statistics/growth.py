"""
Period-over-period growth.

The previous window has the same length and ends the day before the
current window starts:

    length         = whole days between window.start and window.end
    previous.end   = window.start - 1 day   (end of that day)
    previous.start = window.start - (length + 1) days
"""
from datetime import timedelta
from typing import Dict, Any

from sqlalchemy import func, select

from models.case import Case
from services.statistics.access_scope import Scope, scope_cases
from services.statistics.periods import PeriodWindow, end_of_day, within

TREND_UP = 'up'
TREND_DOWN = 'down'
TREND_STABLE = 'stable'


def previous_window(window: PeriodWindow) -> PeriodWindow:
    length = window.length_days
    start = window.start - timedelta(days=length + 1)
    end = end_of_day(window.start - timedelta(days=1))
    return PeriodWindow(start=start, end=end, token=window.token)


def growth_percentage(current, previous) -> float:
    """
    Relative change in percent, one decimal.

    A zero baseline never raises: 100.0 when something appeared, else 0.0.
    """
    current = current or 0
    previous = previous or 0
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round((current - previous) / previous * 100, 1)


def trend_of(growth: float) -> str:
    if growth > 0:
        return TREND_UP
    if growth < 0:
        return TREND_DOWN
    return TREND_STABLE


def count_cases_opened(session, scope: Scope, window: PeriodWindow) -> int:
    stmt = scope_cases(
        select(func.count(Case.id)).where(within(Case.opened_on, window)),
        scope,
    )
    return int(session.execute(stmt).scalar() or 0)


def growth_rate(session, scope: Scope, window: PeriodWindow) -> float:
    """Cases opened in the window vs the previous window."""
    current = count_cases_opened(session, scope, window)
    previous = count_cases_opened(session, scope, previous_window(window))
    return growth_percentage(current, previous)


def compare_periods(session, scope: Scope, window: PeriodWindow) -> Dict[str, Any]:
    previous = previous_window(window)
    current_count = count_cases_opened(session, scope, window)
    previous_count = count_cases_opened(session, scope, previous)
    growth = growth_percentage(current_count, previous_count)
    return {
        'current_count': current_count,
        'previous_count': previous_count,
        'growth_rate': growth,
        'difference': current_count - previous_count,
        'trend': trend_of(growth),
        'previous_from': previous.start_date.isoformat(),
        'previous_to': previous.end_date.isoformat(),
    }
