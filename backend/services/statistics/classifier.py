"""
State classifier - derived states of properties and applicants.

Property:  available  >= 1 active association
           acquired   >= 1 archived association and no active one
           unlinked   neither
Applicant: same rule over every association of the applicant, across all
           properties (an applicant with one active claim anywhere is active).

Two implementations:
- classify_properties / classify_applicants: one grouped statement. A
  per-entity association aggregate (conditional SUM), a CASE state label,
  then GROUP BY the label.
- classify_*_by_existence: separate EXISTS / NOT EXISTS counts per state.
  Kept as the reference the grouped path is tested against.

`window` restricts to entities of cases opened in the window; None means
every case in the scope.
"""
import logging
from dataclasses import dataclass, field, asdict
from typing import Dict, Optional

from sqlalchemy import and_, case, exists, func, literal, select

from constants import (
    STATUS_ACTIVE, STATUS_ARCHIVED,
    PROPERTY_AVAILABLE, PROPERTY_ACQUIRED, PROPERTY_UNLINKED,
    APPLICANT_ACTIVE, APPLICANT_ACQUIRED, APPLICANT_UNLINKED,
    GENDER_LABELS, get_gender_label,
)
from models import Applicant, Association, Case, CaseApplicant, Property
from services.statistics.access_scope import Scope, scope_condition
from services.statistics.periods import PeriodWindow, within

logger = logging.getLogger('statistics')


def _empty_gender_breakdown() -> Dict[str, Dict[str, int]]:
    return {
        label: {'total': 0, APPLICANT_ACTIVE: 0, APPLICANT_ACQUIRED: 0, APPLICANT_UNLINKED: 0}
        for label in GENDER_LABELS.values()
    }


@dataclass
class PropertyClassification:
    available_count: int = 0
    available_area: int = 0
    acquired_count: int = 0
    acquired_area: int = 0
    unlinked_count: int = 0
    unlinked_area: int = 0
    total_count: int = 0
    total_area: int = 0

    def add(self, state: str, count: int, area: int) -> None:
        setattr(self, f"{state}_count", getattr(self, f"{state}_count") + count)
        setattr(self, f"{state}_area", getattr(self, f"{state}_area") + area)
        self.total_count += count
        self.total_area += area

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class ApplicantClassification:
    total: int = 0
    active: int = 0
    acquired: int = 0
    unlinked: int = 0
    by_gender: Dict[str, Dict[str, int]] = field(default_factory=_empty_gender_breakdown)

    def add(self, state: str, gender, count: int) -> None:
        setattr(self, state, getattr(self, state) + count)
        self.total += count
        label = get_gender_label(gender)
        if label is not None:
            self.by_gender[label][state] += count
            self.by_gender[label]['total'] += count

    def to_dict(self) -> dict:
        return asdict(self)


# =============================================================================
# VISIBILITY
# =============================================================================

def _case_conditions(scope: Scope, window: Optional[PeriodWindow]) -> list:
    conditions = [scope_condition(scope)]
    if window is not None:
        conditions.append(within(Case.opened_on, window))
    return conditions


def visible_properties(stmt, scope: Scope, window: Optional[PeriodWindow] = None):
    """Join Case onto a statement over Property and apply scope/window."""
    return stmt.join(Case, Case.id == Property.case_id).where(*_case_conditions(scope, window))


def applicant_visible(scope: Scope, window: Optional[PeriodWindow] = None):
    """EXISTS condition: the applicant belongs to a visible case."""
    return exists(
        select(literal(1))
        .select_from(CaseApplicant)
        .join(Case, Case.id == CaseApplicant.case_id)
        .where(CaseApplicant.applicant_id == Applicant.id, *_case_conditions(scope, window))
    )


# =============================================================================
# GROUPED PATH
# =============================================================================

def _association_counts(key_column):
    """Per-entity active / archived association counts."""
    return (
        select(
            key_column.label('entity_id'),
            func.sum(case((Association.status == STATUS_ACTIVE, 1), else_=0)).label('active_count'),
            func.sum(case((Association.status == STATUS_ARCHIVED, 1), else_=0)).label('archived_count'),
        )
        .group_by(key_column)
        .subquery()
    )


def _state_label(counts, active_state: str, acquired_state: str, unlinked_state: str):
    return case(
        (func.coalesce(counts.c.active_count, 0) > 0, literal(active_state)),
        (func.coalesce(counts.c.archived_count, 0) > 0, literal(acquired_state)),
        else_=literal(unlinked_state),
    )


def classify_properties(session, scope: Scope, window: Optional[PeriodWindow] = None) -> PropertyClassification:
    """Count and area per property state in one grouped statement."""
    counts = _association_counts(Association.property_id)
    per_property = visible_properties(
        select(
            Property.id.label('property_id'),
            func.coalesce(Property.area, 0).label('area'),
            _state_label(counts, PROPERTY_AVAILABLE, PROPERTY_ACQUIRED, PROPERTY_UNLINKED).label('state'),
        )
        .select_from(Property)
        .outerjoin(counts, counts.c.entity_id == Property.id),
        scope,
        window,
    ).subquery()

    stmt = (
        select(
            per_property.c.state,
            func.count(per_property.c.property_id),
            func.coalesce(func.sum(per_property.c.area), 0),
        )
        .group_by(per_property.c.state)
    )

    result = PropertyClassification()
    for state, count, area in session.execute(stmt):
        result.add(state, int(count or 0), int(area or 0))
    return result


def classify_applicants(session, scope: Scope, window: Optional[PeriodWindow] = None) -> ApplicantClassification:
    """Applicant counts per state and gender in one grouped statement."""
    counts = _association_counts(Association.applicant_id)
    per_applicant = (
        select(
            Applicant.id.label('applicant_id'),
            func.trim(Applicant.gender).label('gender'),
            _state_label(counts, APPLICANT_ACTIVE, APPLICANT_ACQUIRED, APPLICANT_UNLINKED).label('state'),
        )
        .select_from(Applicant)
        .outerjoin(counts, counts.c.entity_id == Applicant.id)
        .where(applicant_visible(scope, window))
        .subquery()
    )

    stmt = (
        select(per_applicant.c.state, per_applicant.c.gender, func.count(per_applicant.c.applicant_id))
        .group_by(per_applicant.c.state, per_applicant.c.gender)
    )

    result = ApplicantClassification()
    for state, gender, count in session.execute(stmt):
        result.add(state, gender, int(count or 0))
    return result


# =============================================================================
# EXISTENCE PATH (reference)
# =============================================================================

def _has_association(key_column, entity_column, status: str):
    return exists(
        select(literal(1))
        .select_from(Association)
        .where(key_column == entity_column, Association.status == status)
    )


def _property_state_conditions() -> Dict[str, object]:
    has_active = _has_association(Association.property_id, Property.id, STATUS_ACTIVE)
    has_archived = _has_association(Association.property_id, Property.id, STATUS_ARCHIVED)
    return {
        PROPERTY_AVAILABLE: has_active,
        PROPERTY_ACQUIRED: and_(has_archived, ~has_active),
        PROPERTY_UNLINKED: and_(~has_active, ~has_archived),
    }


def _applicant_state_conditions() -> Dict[str, object]:
    has_active = _has_association(Association.applicant_id, Applicant.id, STATUS_ACTIVE)
    has_archived = _has_association(Association.applicant_id, Applicant.id, STATUS_ARCHIVED)
    return {
        APPLICANT_ACTIVE: has_active,
        APPLICANT_ACQUIRED: and_(has_archived, ~has_active),
        APPLICANT_UNLINKED: and_(~has_active, ~has_archived),
    }


def classify_properties_by_existence(session, scope: Scope, window: Optional[PeriodWindow] = None) -> PropertyClassification:
    """One EXISTS / NOT EXISTS count per state."""
    result = PropertyClassification()
    for state, condition in _property_state_conditions().items():
        stmt = visible_properties(
            select(func.count(Property.id), func.coalesce(func.sum(func.coalesce(Property.area, 0)), 0))
            .select_from(Property),
            scope,
            window,
        ).where(condition)
        count, area = session.execute(stmt).one()
        result.add(state, int(count or 0), int(area or 0))
    return result


def classify_applicants_by_existence(session, scope: Scope, window: Optional[PeriodWindow] = None) -> ApplicantClassification:
    """One EXISTS / NOT EXISTS count per state and gender."""
    result = ApplicantClassification()
    gender = func.trim(Applicant.gender)
    for state, condition in _applicant_state_conditions().items():
        stmt = (
            select(gender, func.count(Applicant.id))
            .where(applicant_visible(scope, window), condition)
            .group_by(gender)
        )
        for gender_value, count in session.execute(stmt):
            result.add(state, gender_value, int(count or 0))
    return result
