"""
Period resolution - named reporting periods to concrete date windows.

Tokens:
    today   00:00:00 .. 23:59:59 of the current day
    week    Monday 00:00:00 .. Sunday 23:59:59 (ISO week)
    month   first .. last day of the current month
    year    Jan 1 .. Dec 31 of the current year
    all     earliest visible case opening .. now (now - 10 years if none)
    custom  explicit from/to (defaults: now - 1 month .. now)

Unknown or empty tokens fall back to 'month'. Windows are inclusive at day
granularity: queries compare DATE columns against window.start_date and
window.end_date.

"now" is wall-clock time in the reporting timezone (REPORTING_TIMEZONE).
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from dateutil import tz
from dateutil.relativedelta import relativedelta, MO
from sqlalchemy import func, select

from constants import (
    PERIOD_TODAY, PERIOD_WEEK, PERIOD_MONTH, PERIOD_YEAR, PERIOD_ALL, PERIOD_CUSTOM,
    PERIOD_TOKENS, DEFAULT_PERIOD, ALL_PERIOD_FALLBACK_YEARS, DEFAULT_REPORTING_TIMEZONE,
    CHART_MONTHS, CHART_QUARTERS,
)
from models.case import Case
from services.statistics.access_scope import Scope, scope_cases
from services.statistics.errors import InvalidPeriodError
from utils.normalize import ValidationError, is_date_only, to_datetime

logger = logging.getLogger('statistics.periods')

END_OF_DAY = time(23, 59, 59)


@dataclass(frozen=True)
class PeriodWindow:
    start: datetime
    end: datetime
    token: str = PERIOD_CUSTOM

    @property
    def start_date(self) -> date:
        return self.start.date()

    @property
    def end_date(self) -> date:
        return self.end.date()

    @property
    def length_days(self) -> int:
        """Whole days between start and end (a one-day window is 0)."""
        return (self.end - self.start).days

    def as_params(self) -> dict:
        return {
            'period': self.token,
            'from': self.start_date.isoformat(),
            'to': self.end_date.isoformat(),
        }


@dataclass(frozen=True)
class PeriodBucket:
    """One point of a chart series (a month or a quarter)."""
    label: str
    key: str
    start: datetime
    end: datetime

    @property
    def start_date(self) -> date:
        return self.start.date()

    @property
    def end_date(self) -> date:
        return self.end.date()


def start_of_day(value) -> datetime:
    if isinstance(value, datetime):
        return value.replace(hour=0, minute=0, second=0, microsecond=0)
    return datetime.combine(value, time.min)


def end_of_day(value) -> datetime:
    if isinstance(value, datetime):
        value = value.date()
    return datetime.combine(value, END_OF_DAY)


def within(column, window):
    """Inclusive day-granular BETWEEN on a DATE column."""
    return column.between(window.start_date, window.end_date)


def within_timestamps(column, window):
    """Inclusive BETWEEN on a DATETIME column."""
    return column.between(start_of_day(window.start), end_of_day(window.end))


def reporting_now(timezone_name: Optional[str] = None) -> datetime:
    """Current wall-clock time in the reporting timezone, naive, no microseconds."""
    zone = tz.gettz(timezone_name or DEFAULT_REPORTING_TIMEZONE)
    if zone is None:
        logger.warning(f"Unknown reporting timezone {timezone_name!r}, using {DEFAULT_REPORTING_TIMEZONE}")
        zone = tz.gettz(DEFAULT_REPORTING_TIMEZONE)
    return datetime.now(zone).replace(tzinfo=None, microsecond=0)


def normalize_period_token(token: Optional[str]) -> str:
    """Lower-cased known token, or the default period for anything else."""
    if not token:
        return DEFAULT_PERIOD
    normalized = str(token).strip().lower()
    if normalized in PERIOD_TOKENS:
        return normalized
    logger.info(f"Unknown period {token!r}, falling back to {DEFAULT_PERIOD}")
    return DEFAULT_PERIOD


def _parse_bound(value, field: str) -> Optional[datetime]:
    try:
        return to_datetime(value, field=field)
    except ValidationError as e:
        raise InvalidPeriodError(
            f"Invalid '{field}' date: {value!r}",
            field=field,
            received_value=value,
        ) from e


def _custom_window(custom_from, custom_to, now: datetime) -> PeriodWindow:
    start = _parse_bound(custom_from, 'from')
    end = _parse_bound(custom_to, 'to')

    if start is None:
        start = now - relativedelta(months=1)
    elif is_date_only(custom_from):
        start = start_of_day(start)

    if end is None:
        end = now
    elif is_date_only(custom_to):
        # A bare date covers the whole day
        end = end_of_day(end)

    if start > end:
        raise InvalidPeriodError(
            f"Period start {start.isoformat()} is after end {end.isoformat()}",
            field='from',
            received_value=custom_from,
        )
    return PeriodWindow(start=start, end=end, token=PERIOD_CUSTOM)


def resolve_period(
    token: Optional[str],
    custom_from=None,
    custom_to=None,
    *,
    now: datetime,
    earliest: Optional[date] = None,
) -> PeriodWindow:
    """
    Resolve a period token to a concrete window.

    Args:
        token: today / week / month / year / all / custom (anything else -> month)
        custom_from: ISO date or datetime, custom only
        custom_to: ISO date or datetime, custom only
        now: Reference time in the reporting timezone
        earliest: Earliest visible case opening date, used by 'all'

    Raises:
        InvalidPeriodError: custom bound unparseable, or from > to
    """
    period = normalize_period_token(token)
    now = now.replace(microsecond=0)
    today = now.date()

    if period == PERIOD_TODAY:
        return PeriodWindow(start_of_day(today), end_of_day(today), period)

    if period == PERIOD_WEEK:
        monday = today + relativedelta(weekday=MO(-1))
        return PeriodWindow(start_of_day(monday), end_of_day(monday + timedelta(days=6)), period)

    if period == PERIOD_MONTH:
        first = today.replace(day=1)
        last = first + relativedelta(months=1) - timedelta(days=1)
        return PeriodWindow(start_of_day(first), end_of_day(last), period)

    if period == PERIOD_YEAR:
        return PeriodWindow(
            start_of_day(date(today.year, 1, 1)),
            end_of_day(date(today.year, 12, 31)),
            period,
        )

    if period == PERIOD_ALL:
        if earliest is None:
            start = start_of_day(now - relativedelta(years=ALL_PERIOD_FALLBACK_YEARS))
        else:
            start = start_of_day(earliest)
        return PeriodWindow(start, now, period)

    return _custom_window(custom_from, custom_to, now)


def earliest_case_date(session, scope: Scope) -> Optional[date]:
    """Opening date of the oldest case visible in the scope."""
    stmt = scope_cases(select(func.min(Case.opened_on)), scope)
    value = session.execute(stmt).scalar()
    if isinstance(value, datetime):
        return value.date()
    return value


def resolve_period_for_scope(
    session,
    scope: Scope,
    token: Optional[str],
    custom_from=None,
    custom_to=None,
    *,
    now: datetime,
) -> PeriodWindow:
    """resolve_period, looking up the earliest case only when 'all' needs it."""
    earliest = None
    if normalize_period_token(token) == PERIOD_ALL:
        earliest = earliest_case_date(session, scope)
    return resolve_period(token, custom_from, custom_to, now=now, earliest=earliest)


def months_for_chart(now: datetime, count: int = CHART_MONTHS) -> List[PeriodBucket]:
    """The last `count` calendar months, oldest first, current month last."""
    buckets = []
    current = now.date().replace(day=1)
    for i in range(count - 1, -1, -1):
        first = current - relativedelta(months=i)
        last = first + relativedelta(months=1) - timedelta(days=1)
        buckets.append(PeriodBucket(
            label=first.strftime('%b %Y'),
            key=first.strftime('%Y-%m'),
            start=start_of_day(first),
            end=end_of_day(last),
        ))
    return buckets


def quarters_for_chart(now: datetime, count: int = CHART_QUARTERS) -> List[PeriodBucket]:
    """The last `count` calendar quarters, oldest first, current quarter last."""
    buckets = []
    today = now.date()
    current = date(today.year, 3 * ((today.month - 1) // 3) + 1, 1)
    for i in range(count - 1, -1, -1):
        first = current - relativedelta(months=3 * i)
        last = first + relativedelta(months=3) - timedelta(days=1)
        quarter = (first.month - 1) // 3 + 1
        buckets.append(PeriodBucket(
            label=f"Q{quarter} {first.year}",
            key=f"{first.year}-Q{quarter}",
            start=start_of_day(first),
            end=end_of_day(last),
        ))
    return buckets
