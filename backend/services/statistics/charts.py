"""
Chart series over fixed lookback windows.

Series do not depend on the reporting period: monthly series always cover
the last 12 months, quarterly ones the last 4 quarters, distributions the
whole scope. Each series is an ordered list of records carrying a `label`,
except completion_rate which is a single record.

Usage:
    from services.statistics.charts import CHART_QUERIES

    series = CHART_QUERIES['evolution'](session, scope, now=now)
"""
import logging
from datetime import datetime
from typing import Any, Dict, List

from sqlalchemy import func, select

from constants import (
    STATUS_ACTIVE, AGE_BRACKETS, get_age_bracket, TOP_COMMUNES_LIMIT, TOP_DISTRICTS_LIMIT,
    CHART_MONTHS, CHART_QUARTERS, UNDEFINED_LABEL,
)
from models import Applicant, Association, Case, District, Property
from services.statistics.access_scope import Scope, scope_condition
from services.statistics.calculator import (
    applicant_ages, case_has_applicant, case_has_property, count_cases, pct,
)
from services.statistics.classifier import applicant_visible, visible_properties
from services.statistics.periods import (
    months_for_chart, quarters_for_chart, within, within_timestamps,
)

logger = logging.getLogger('statistics')


def _display_label(value) -> str:
    if value is None or str(value).strip() == '':
        return UNDEFINED_LABEL
    text = str(value).strip()
    return text[:1].upper() + text[1:]


def _count_properties_created(session, scope: Scope, bucket) -> int:
    stmt = visible_properties(
        select(func.count(Property.id)).select_from(Property), scope
    ).where(within_timestamps(Property.created_at, bucket))
    return int(session.execute(stmt).scalar() or 0)


def _count_applicants_created(session, scope: Scope, bucket) -> int:
    stmt = select(func.count(Applicant.id)).where(
        applicant_visible(scope),
        within_timestamps(Applicant.created_at, bucket),
    )
    return int(session.execute(stmt).scalar() or 0)


def query_evolution(session, scope: Scope, *, now: datetime) -> List[Dict[str, Any]]:
    """Cases opened, properties and applicants recorded, per month."""
    return [
        {
            'label': bucket.label,
            'key': bucket.key,
            'cases': count_cases(session, scope, bucket),
            'properties': _count_properties_created(session, scope, bucket),
            'applicants': _count_applicants_created(session, scope, bucket),
        }
        for bucket in months_for_chart(now, CHART_MONTHS)
    ]


def query_openings_closings(session, scope: Scope, *, now: datetime) -> List[Dict[str, Any]]:
    series = []
    for bucket in months_for_chart(now, CHART_MONTHS):
        closings = select(func.count(Case.id)).where(
            scope_condition(scope),
            Case.closed_on.isnot(None),
            within(Case.closed_on, bucket),
        )
        series.append({
            'label': bucket.label,
            'key': bucket.key,
            'openings': count_cases(session, scope, bucket),
            'closings': int(session.execute(closings).scalar() or 0),
        })
    return series


def _property_distribution(session, scope: Scope, column) -> List[Dict[str, Any]]:
    count = func.count(Property.id)
    stmt = visible_properties(
        select(column, count, func.coalesce(func.sum(Property.area), 0)).select_from(Property),
        scope,
    ).group_by(column).order_by(count.desc(), column)
    return [
        {'label': _display_label(value), 'value': int(total), 'area': int(area or 0)}
        for value, total, area in session.execute(stmt)
    ]


def query_by_nature(session, scope: Scope, *, now: datetime) -> List[Dict[str, Any]]:
    return _property_distribution(session, scope, Property.nature)


def query_by_vocation(session, scope: Scope, *, now: datetime) -> List[Dict[str, Any]]:
    return _property_distribution(session, scope, Property.vocation)


def query_top_communes(session, scope: Scope, *, now: datetime) -> List[Dict[str, Any]]:
    count = func.count(Case.id)
    stmt = (
        select(Case.commune, count)
        .where(scope_condition(scope))
        .group_by(Case.commune)
        .order_by(count.desc(), Case.commune)
        .limit(TOP_COMMUNES_LIMIT)
    )
    return [
        {'label': _display_label(commune), 'value': int(total)}
        for commune, total in session.execute(stmt)
    ]


def query_top_districts(session, scope: Scope, *, now: datetime) -> List[Dict[str, Any]]:
    """Only unrestricted callers compare districts."""
    if not scope.unrestricted:
        return []
    count = func.count(Case.id)
    stmt = (
        select(District.name, count)
        .select_from(Case)
        .join(District, District.id == Case.district_id)
        .where(scope_condition(scope))
        .group_by(District.name)
        .order_by(count.desc(), District.name)
        .limit(TOP_DISTRICTS_LIMIT)
    )
    return [
        {'label': name, 'value': int(total)}
        for name, total in session.execute(stmt)
    ]


def query_age_pyramid(session, scope: Scope, *, now: datetime) -> List[Dict[str, Any]]:
    pyramid = {label: {'label': label, 'male': 0, 'female': 0} for label, _, _ in AGE_BRACKETS}
    for gender, age in applicant_ages(session, scope, None, now):
        label = get_age_bracket(age)
        if label is not None:
            pyramid[label][gender] += 1
    return [pyramid[label] for label, _, _ in AGE_BRACKETS]


def query_completion_rate(session, scope: Scope, *, now: datetime) -> Dict[str, Any]:
    """Share of cases with at least one applicant and one property."""
    total = count_cases(session, scope)
    complete = count_cases(session, scope, None, case_has_applicant(), case_has_property())
    return {
        'rate': pct(complete, total),
        'complete': complete,
        'incomplete': total - complete,
    }


def query_quarterly_performance(session, scope: Scope, *, now: datetime) -> List[Dict[str, Any]]:
    series = []
    for bucket in quarters_for_chart(now, CHART_QUARTERS):
        total = count_cases(session, scope, bucket)
        closed = count_cases(session, scope, bucket, Case.closed_on.isnot(None))
        series.append({
            'label': bucket.label,
            'key': bucket.key,
            'open': total - closed,
            'closed': closed,
            'total': total,
        })
    return series


def query_revenue_by_vocation(session, scope: Scope, *, now: datetime) -> List[Dict[str, Any]]:
    revenue = func.coalesce(func.sum(Association.total_price), 0)
    stmt = visible_properties(
        select(Property.vocation, revenue)
        .select_from(Association)
        .join(Property, Property.id == Association.property_id),
        scope,
    ).where(Association.status == STATUS_ACTIVE).group_by(Property.vocation).order_by(revenue.desc())

    totals: Dict[str, int] = {}
    for vocation, total in session.execute(stmt):
        label = _display_label(vocation)
        totals[label] = totals.get(label, 0) + int(total or 0)
    return [
        {'label': label, 'value': value}
        for label, value in sorted(totals.items(), key=lambda item: (-item[1], item[0]))
    ]


# Series registry, in response order
CHART_QUERIES = {
    'evolution': query_evolution,
    'openings_closings': query_openings_closings,
    'by_nature': query_by_nature,
    'by_vocation': query_by_vocation,
    'top_communes': query_top_communes,
    'top_districts': query_top_districts,
    'age_pyramid': query_age_pyramid,
    'completion_rate': query_completion_rate,
    'quarterly_performance': query_quarterly_performance,
    'revenue_by_vocation': query_revenue_by_vocation,
}
