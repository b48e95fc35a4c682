"""
Statistics Calculator - one function per aggregate group.

Every function has the same shape:

    compute_<group>(session, scope, window, *, now) -> dict

and reads nothing but the database: no group depends on another group's
output, so any subset can be computed in any order. Counts are SQL-side;
only ages (a dialect-specific computation) are derived in Python from
fetched birth dates.

Usage:
    from services.statistics.calculator import compute_cases

    stats = compute_cases(session, scope, window, now=now)
"""
import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from dateutil.relativedelta import relativedelta
from sqlalchemy import case, exists, func, literal, or_, select

from constants import (
    STATUS_ACTIVE, STATUS_ARCHIVED, ASSOCIATION_STATUSES,
    GENDER_LABELS, RECOGNIZED_GENDERS, get_gender_label,
    AGE_BRACKETS, get_age_bracket,
    OVERDUE_THRESHOLD_DAYS, TOP_COMMUNES_LIMIT, KPI_LOOKBACK_MONTHS, UNDEFINED_LABEL,
    APPLICANT_STRING_FIELDS, APPLICANT_DATE_FIELDS,
    PROPERTY_STRING_FIELDS, PROPERTY_NUMERIC_FIELDS,
    KPI_PROPERTY_REQUIRED_FIELDS, KPI_APPLICANT_REQUIRED_FIELDS,
)
from models import Applicant, Association, Case, CaseApplicant, Property
from services.statistics.access_scope import Scope, scope_condition
from services.statistics.classifier import (
    applicant_visible, classify_applicants, classify_properties, visible_properties,
)
from services.statistics.growth import growth_percentage, growth_rate
from services.statistics.periods import PeriodWindow, end_of_day, start_of_day, within

logger = logging.getLogger('statistics')


# ============================================================================
# SHARED HELPERS
# ============================================================================

def pct(part, whole, digits: int = 1) -> float:
    if not whole:
        return 0.0
    return round(part / whole * 100, digits)


def _case_filters(scope: Scope, window: Optional[PeriodWindow] = None) -> list:
    conditions = [scope_condition(scope)]
    if window is not None:
        conditions.append(within(Case.opened_on, window))
    return conditions


def _scalar(session, stmt) -> int:
    return int(session.execute(stmt).scalar() or 0)


def count_cases(session, scope: Scope, window: Optional[PeriodWindow] = None, *conditions) -> int:
    stmt = select(func.count(Case.id)).where(*_case_filters(scope, window), *conditions)
    return _scalar(session, stmt)


def overdue_cutoff(now: datetime) -> date:
    """Latest opening date that lies strictly more than the threshold before now."""
    limit = now - timedelta(days=OVERDUE_THRESHOLD_DAYS)
    if limit.time() == time.min:
        return limit.date() - timedelta(days=1)
    return limit.date()


def count_overdue(session, scope: Scope, now: datetime) -> int:
    """Open cases opened more than the threshold ago, whatever the window."""
    return count_cases(
        session, scope, None,
        Case.closed_on.is_(None),
        Case.opened_on <= overdue_cutoff(now),
    )


def closed_durations(session, scope: Scope, window: Optional[PeriodWindow]) -> List[int]:
    """Days between opening and closing for closed cases opened in the window."""
    stmt = (
        select(Case.opened_on, Case.closed_on)
        .where(*_case_filters(scope, window), Case.closed_on.isnot(None), Case.opened_on.isnot(None))
    )
    return [abs((closed - opened).days) for opened, closed in session.execute(stmt)]


def age_in_years(birth_date: date, today: date) -> int:
    years = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        years -= 1
    return years


def applicant_ages(session, scope: Scope, window: Optional[PeriodWindow], now: datetime) -> List[Tuple[str, int]]:
    """(gender label, age) for visible applicants with a recognised gender and a birth date."""
    gender = func.trim(Applicant.gender)
    stmt = (
        select(gender, Applicant.birth_date)
        .where(
            applicant_visible(scope, window),
            Applicant.birth_date.isnot(None),
            gender.in_(RECOGNIZED_GENDERS),
        )
    )
    today = now.date()
    return [
        (get_gender_label(value), age_in_years(birth_date, today))
        for value, birth_date in session.execute(stmt)
    ]


def average_age(ages: Iterable[Tuple[str, int]]) -> float:
    values = [age for _, age in ages]
    if not values:
        return 0.0
    return round(sum(values) / len(values), 1)


def age_brackets(ages: Iterable[Tuple[str, int]]) -> Dict[str, int]:
    brackets = {label: 0 for label, _, _ in AGE_BRACKETS}
    for _, age in ages:
        label = get_age_bracket(age)
        if label is not None:
            brackets[label] += 1
    return brackets


def incomplete_condition(model, string_fields=(), date_fields=(), numeric_fields=()):
    """
    OR of every missing-field check on a model.

    Strings: NULL or ''. Dates: NULL. Numbers: NULL or <= 0.
    """
    clauses = []
    for name in string_fields:
        column = getattr(model, name)
        clauses.extend([column.is_(None), column == ''])
    for name in date_fields:
        clauses.append(getattr(model, name).is_(None))
    for name in numeric_fields:
        column = getattr(model, name)
        clauses.extend([column.is_(None), column <= 0])
    return or_(*clauses)


def property_incomplete():
    return incomplete_condition(
        Property,
        string_fields=PROPERTY_STRING_FIELDS,
        numeric_fields=PROPERTY_NUMERIC_FIELDS,
    )


def applicant_incomplete():
    return incomplete_condition(
        Applicant,
        string_fields=APPLICANT_STRING_FIELDS,
        date_fields=APPLICANT_DATE_FIELDS,
    )


def case_has_property():
    return exists(select(literal(1)).select_from(Property).where(Property.case_id == Case.id))


def case_has_applicant():
    return exists(select(literal(1)).select_from(CaseApplicant).where(CaseApplicant.case_id == Case.id))


def _sum_when(condition):
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


def _label(value) -> str:
    if value is None or str(value).strip() == '':
        return UNDEFINED_LABEL
    return str(value).strip()


# ============================================================================
# GROUPS
# ============================================================================

def compute_overview(session, scope: Scope, window: PeriodWindow, *, now: datetime) -> Dict[str, Any]:
    total = count_cases(session, scope, window)
    open_cases = count_cases(session, scope, window, Case.closed_on.is_(None))
    return {
        'total_cases': total,
        'open_cases': open_cases,
        'closed_cases': total - open_cases,
        'growth_rate': growth_rate(session, scope, window),
    }


def compute_cases(session, scope: Scope, window: PeriodWindow, *, now: datetime) -> Dict[str, Any]:
    total = count_cases(session, scope, window)
    open_cases = count_cases(session, scope, window, Case.closed_on.is_(None))
    durations = closed_durations(session, scope, window)
    average = round(sum(durations) / len(durations), 1) if durations else 0.0
    return {
        'total': total,
        'open': open_cases,
        'closed': total - open_cases,
        'average_duration_days': average,
        'overdue': count_overdue(session, scope, now),
    }


def compute_properties(session, scope: Scope, window: PeriodWindow, *, now: datetime) -> Dict[str, Any]:
    classification = classify_properties(session, scope, window)
    result = classification.to_dict()
    total = classification.total_count
    total_area = classification.total_area
    result.update({
        'average_area': round(total_area / total, 2) if total else 0.0,
        'available_pct': pct(classification.available_count, total),
        'available_area_pct': pct(classification.available_area, total_area),
        'acquired_pct': pct(classification.acquired_count, total),
        'acquired_area_pct': pct(classification.acquired_area, total_area),
    })
    return result


def compute_applicants(session, scope: Scope, window: PeriodWindow, *, now: datetime) -> Dict[str, Any]:
    classification = classify_applicants(session, scope, window)
    has_association = exists(
        select(literal(1)).select_from(Association).where(Association.applicant_id == Applicant.id)
    )
    with_property = _scalar(
        session,
        select(func.count(Applicant.id)).where(applicant_visible(scope, window), has_association),
    )
    ages = applicant_ages(session, scope, window, now)
    return {
        'total': classification.total,
        'with_property': with_property,
        'without_property': classification.total - with_property,
        'active': classification.active,
        'acquired': classification.acquired,
        'unlinked': classification.unlinked,
        'average_age': average_age(ages),
    }


def compute_demographics(session, scope: Scope, window: PeriodWindow, *, now: datetime) -> Dict[str, Any]:
    classification = classify_applicants(session, scope, window)
    male = classification.by_gender['male']
    female = classification.by_gender['female']
    recognised_total = male['total'] + female['total']

    gender = func.trim(Applicant.gender)
    has_association = exists(
        select(literal(1)).select_from(Association).where(Association.applicant_id == Applicant.id)
    )
    with_property = {label: 0 for label in GENDER_LABELS.values()}
    stmt = (
        select(gender, func.count(Applicant.id))
        .where(applicant_visible(scope, window), has_association, gender.in_(RECOGNIZED_GENDERS))
        .group_by(gender)
    )
    for value, count in session.execute(stmt):
        with_property[get_gender_label(value)] += int(count or 0)

    ages = applicant_ages(session, scope, window, now)
    return {
        'total_male': male['total'],
        'total_female': female['total'],
        'male_pct': pct(male['total'], recognised_total),
        'female_pct': pct(female['total'], recognised_total),
        'male_with_property': with_property['male'],
        'female_with_property': with_property['female'],
        'male_active': male['active'],
        'female_active': female['active'],
        'male_acquired': male['acquired'],
        'female_acquired': female['acquired'],
        'male_unlinked': male['unlinked'],
        'female_unlinked': female['unlinked'],
        'average_age': average_age(ages),
        'age_brackets': age_brackets(ages),
    }


def _revenue_by_vocation(session, scope: Scope, window: Optional[PeriodWindow], statuses) -> Dict[str, Dict[str, int]]:
    stmt = visible_properties(
        select(Association.status, Property.vocation, func.coalesce(func.sum(Association.total_price), 0))
        .select_from(Association)
        .join(Property, Property.id == Association.property_id),
        scope,
        window,
    ).where(Association.status.in_(statuses)).group_by(Association.status, Property.vocation)

    result = {status: {} for status in statuses}
    for status, vocation, total in session.execute(stmt):
        label = _label(vocation)
        result[status][label] = result[status].get(label, 0) + int(total or 0)
    return result


def compute_financials(session, scope: Scope, window: PeriodWindow, *, now: datetime) -> Dict[str, Any]:
    statuses = list(ASSOCIATION_STATUSES)
    stmt = visible_properties(
        select(
            Association.status,
            func.count(Association.id),
            func.coalesce(func.sum(Association.total_price), 0),
            func.max(Association.total_price),
            func.min(case((Association.total_price > 0, Association.total_price))),
        )
        .select_from(Association)
        .join(Property, Property.id == Association.property_id),
        scope,
        window,
    ).where(Association.status.in_(statuses)).group_by(Association.status)

    totals = {status: 0 for status in statuses}
    count = 0
    maxima = []
    positive_minima = []
    for status, rows, total, maximum, positive_minimum in session.execute(stmt):
        totals[status] = int(total or 0)
        count += int(rows or 0)
        if maximum is not None:
            maxima.append(int(maximum))
        if positive_minimum is not None:
            positive_minima.append(int(positive_minimum))

    active = totals[STATUS_ACTIVE]
    archived = totals[STATUS_ARCHIVED]
    overall = active + archived
    by_vocation = _revenue_by_vocation(session, scope, window, statuses)

    return {
        'total_potential_revenue': overall,
        'active_revenue': active,
        'archived_revenue': archived,
        'active_pct': pct(active, overall),
        'archived_pct': pct(archived, overall),
        'average_revenue': round(overall / count, 2) if count else 0.0,
        'max_revenue': max(maxima) if maxima else 0,
        # 0 when no association carries a positive price
        'min_revenue': min(positive_minima) if positive_minima else 0,
        'by_vocation_active': by_vocation[STATUS_ACTIVE],
        'by_vocation_archived': by_vocation[STATUS_ARCHIVED],
    }


def top_communes(session, scope: Scope, window: Optional[PeriodWindow], limit: int = TOP_COMMUNES_LIMIT) -> List[Dict[str, Any]]:
    count = func.count(Case.id)
    stmt = (
        select(Case.commune, Case.locality, Case.commune_type, count)
        .where(*_case_filters(scope, window))
        .group_by(Case.commune, Case.locality, Case.commune_type)
        .order_by(count.desc(), Case.commune)
        .limit(limit)
    )
    return [
        {'commune': commune, 'locality': locality, 'commune_type': commune_type, 'count': int(total)}
        for commune, locality, commune_type, total in session.execute(stmt)
    ]


def compute_geographic(session, scope: Scope, window: PeriodWindow, *, now: datetime) -> Dict[str, Any]:
    return {'top_communes': top_communes(session, scope, window)}


def completeness(session, scope: Scope, window: Optional[PeriodWindow]) -> Dict[str, Any]:
    """
    Case completeness over the cases opened in the window.

    A case is incomplete when it has no property, no applicant, an
    incomplete property or an incomplete applicant. The three sets are
    unioned in SQL so a case is never counted twice.
    """
    empty = or_(~case_has_property(), ~case_has_applicant())
    with_incomplete_applicants = exists(
        select(literal(1))
        .select_from(CaseApplicant)
        .join(Applicant, Applicant.id == CaseApplicant.applicant_id)
        .where(CaseApplicant.case_id == Case.id, applicant_incomplete())
    )
    with_incomplete_properties = exists(
        select(literal(1))
        .select_from(Property)
        .where(Property.case_id == Case.id, property_incomplete())
    )

    stmt = select(
        func.count(Case.id),
        _sum_when(empty),
        _sum_when(with_incomplete_applicants),
        _sum_when(with_incomplete_properties),
        _sum_when(or_(empty, with_incomplete_applicants, with_incomplete_properties)),
    ).where(*_case_filters(scope, window))
    total, empty_count, applicant_cases, property_cases, incomplete = session.execute(stmt).one()
    total = int(total or 0)
    incomplete = int(incomplete or 0)

    incomplete_properties = _scalar(
        session,
        visible_properties(select(func.count(Property.id)).select_from(Property), scope, window)
        .where(property_incomplete()),
    )
    incomplete_applicants = _scalar(
        session,
        select(func.count(Applicant.id)).where(applicant_visible(scope, window), applicant_incomplete()),
    )

    complete = max(0, total - incomplete)
    return {
        'completion_rate': pct(complete, total),
        'complete': complete,
        'incomplete': incomplete,
        'incomplete_properties': incomplete_properties,
        'incomplete_applicants': incomplete_applicants,
        'details': {
            'empty_cases': int(empty_count or 0),
            'cases_with_incomplete_applicants': int(applicant_cases or 0),
            'cases_with_incomplete_properties': int(property_cases or 0),
        },
    }


def average_processing_days(session, scope: Scope, window: Optional[PeriodWindow]) -> int:
    durations = closed_durations(session, scope, window)
    if not durations:
        return 0
    return int(round(sum(durations) / len(durations)))


def compute_performance(session, scope: Scope, window: PeriodWindow, *, now: datetime) -> Dict[str, Any]:
    result = completeness(session, scope, window)
    result['average_processing_days'] = average_processing_days(session, scope, window)
    result['overdue'] = count_overdue(session, scope, now)
    return result


# ============================================================================
# DASHBOARD GROUPS (independent of the reporting period)
# ============================================================================

def kpi_window(now: datetime) -> PeriodWindow:
    """Start of the month KPI_LOOKBACK_MONTHS ago .. end of the current month."""
    first = now.date().replace(day=1)
    start = first - relativedelta(months=KPI_LOOKBACK_MONTHS)
    last = first + relativedelta(months=1) - timedelta(days=1)
    return PeriodWindow(start=start_of_day(start), end=end_of_day(last), token='kpi')


def month_window(now: datetime, months_ago: int = 0) -> PeriodWindow:
    first = now.date().replace(day=1) - relativedelta(months=months_ago)
    last = first + relativedelta(months=1) - timedelta(days=1)
    return PeriodWindow(start=start_of_day(first), end=end_of_day(last), token='month')


def headline_completion(session, scope: Scope) -> Dict[str, Any]:
    """Dashboard completion: a case is complete with >= 1 applicant and >= 1 property."""
    total = count_cases(session, scope)
    complete = count_cases(session, scope, None, case_has_property(), case_has_applicant())

    property_missing = or_(*[getattr(Property, name).is_(None) for name in KPI_PROPERTY_REQUIRED_FIELDS])
    applicant_missing = or_(*[getattr(Applicant, name).is_(None) for name in KPI_APPLICANT_REQUIRED_FIELDS])
    incomplete_properties = _scalar(
        session,
        visible_properties(select(func.count(Property.id)).select_from(Property), scope).where(property_missing),
    )
    incomplete_applicants = _scalar(
        session,
        select(func.count(Applicant.id)).where(applicant_visible(scope), applicant_missing),
    )
    return {
        'rate': pct(complete, total),
        'complete': complete,
        'incomplete': total - complete,
        'total_cases': total,
        'incomplete_properties': incomplete_properties,
        'incomplete_applicants': incomplete_applicants,
    }


def potential_revenue(session, scope: Scope) -> int:
    stmt = visible_properties(
        select(func.coalesce(func.sum(Association.total_price), 0))
        .select_from(Association)
        .join(Property, Property.id == Association.property_id),
        scope,
    ).where(Association.status == STATUS_ACTIVE)
    return _scalar(session, stmt)


def compute_kpis(session, scope: Scope, window: Optional[PeriodWindow] = None, *, now: datetime) -> Dict[str, Any]:
    """Dashboard headline numbers over the trailing twelve months."""
    lookback = kpi_window(now)
    this_month = month_window(now)
    last_month = month_window(now, months_ago=1)

    properties = classify_properties(session, scope)
    applicants = classify_applicants(session, scope)
    male = applicants.by_gender['male']
    female = applicants.by_gender['female']

    current_count = count_cases(session, scope, this_month)
    previous_count = count_cases(session, scope, last_month)

    return {
        'open_cases': count_cases(session, scope, lookback, Case.closed_on.is_(None)),
        'closed_cases': count_cases(session, scope, lookback, Case.closed_on.isnot(None)),
        'new_cases_this_month': current_count,
        'overdue_cases': count_overdue(session, scope, now),
        'available_properties': properties.available_count,
        'acquired_properties': properties.acquired_count,
        'area': {
            'total': properties.total_area,
            'acquired': properties.acquired_area,
            'available': properties.available_area,
        },
        'active_applicants': applicants.active,
        'applicants': {
            'total': applicants.total,
            'active': applicants.active,
            'acquired': applicants.acquired,
            'unlinked': applicants.unlinked,
            'male': male['total'],
            'female': female['total'],
            'male_active': male['active'],
            'female_active': female['active'],
            'male_acquired': male['acquired'],
            'female_acquired': female['acquired'],
            'male_unlinked': male['unlinked'],
            'female_unlinked': female['unlinked'],
        },
        'applicants_without_property': applicants.unlinked,
        'completion': headline_completion(session, scope),
        'potential_revenue': potential_revenue(session, scope),
        'average_processing_days': average_processing_days(session, scope, lookback),
        'growth_rate': growth_percentage(current_count, previous_count),
    }


ALERT_WARNING = 'warning'
ALERT_DANGER = 'danger'
ALERT_INFO = 'info'


def compute_alerts(session, scope: Scope, window: Optional[PeriodWindow] = None, *, now: datetime) -> List[Dict[str, str]]:
    """System alerts, most urgent data-quality problems first in display order."""
    alerts = []

    without_applicants = count_cases(session, scope, None, ~case_has_applicant())
    if without_applicants > 0:
        alerts.append({
            'type': ALERT_WARNING,
            'title': 'Incomplete cases',
            'message': f"{without_applicants} case(s) without an applicant",
            'count': without_applicants,
        })

    overdue = count_overdue(session, scope, now)
    if overdue > 0:
        alerts.append({
            'type': ALERT_DANGER,
            'title': 'Overdue cases',
            'message': f"{overdue} case(s) open for more than {OVERDUE_THRESHOLD_DAYS} days",
            'count': overdue,
        })

    without_properties = count_cases(session, scope, None, ~case_has_property())
    if without_properties > 0:
        alerts.append({
            'type': ALERT_INFO,
            'title': 'Cases without properties',
            'message': f"{without_properties} case(s) without a linked property",
            'count': without_properties,
        })

    return alerts
