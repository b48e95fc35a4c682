"""
Access scope - the visibility boundary applied to every aggregate query.

super_admin and central_user see every district and may narrow the view to
one district. Every other role is bound to its own district. The scope is
passed explicitly to each query builder; nothing reads the current user
from global state.

Usage:
    from services.statistics.access_scope import Caller, resolve_scope, scope_cases

    caller = Caller.from_user(user)
    scope = resolve_scope(caller, district_id=request_district)
    stmt = scope_cases(select(func.count(Case.id)), scope)
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import false, true

from constants import UNRESTRICTED_ROLES
from models.case import Case

logger = logging.getLogger('statistics')


@dataclass(frozen=True)
class Caller:
    """Already-authenticated identity handed over by the back office."""
    user_id: Optional[int]
    role: str
    district_id: Optional[int] = None
    active: bool = True

    @classmethod
    def from_user(cls, user) -> "Caller":
        return cls(
            user_id=user.id,
            role=user.role,
            district_id=user.district_id,
            active=bool(user.status) if user.status is not None else True,
        )

    @property
    def is_unrestricted(self) -> bool:
        return self.role in UNRESTRICTED_ROLES


@dataclass(frozen=True)
class Scope:
    """
    Resolved visibility boundary.

    unrestricted=True with district_id=None sees every district.
    district_id set filters cases on that district.
    unrestricted=False with district_id=None sees nothing.
    """
    unrestricted: bool
    district_id: Optional[int] = None

    @property
    def sees_all_districts(self) -> bool:
        return self.unrestricted and self.district_id is None

    @property
    def is_empty(self) -> bool:
        return not self.unrestricted and self.district_id is None

    @property
    def cache_label(self) -> str:
        if self.district_id is not None:
            return f"district_{self.district_id}"
        if self.unrestricted:
            return "district_all"
        return "district_none"


EMPTY_SCOPE = Scope(unrestricted=False, district_id=None)


def resolve_scope(caller: Caller, district_id: Optional[int] = None) -> Scope:
    """
    Resolve a caller identity into its visibility scope.

    An unrestricted caller may narrow to one district. A restricted caller's
    request for another district is ignored: the own district wins.
    Disabled accounts and restricted callers without a district see nothing.
    """
    if not caller.active:
        logger.warning(f"Inactive caller user_{caller.user_id} resolved to empty scope")
        return EMPTY_SCOPE

    if caller.is_unrestricted:
        return Scope(unrestricted=True, district_id=district_id)

    if caller.district_id is None:
        logger.warning(f"Caller user_{caller.user_id} ({caller.role}) has no district, empty scope")
        return EMPTY_SCOPE

    if district_id is not None and district_id != caller.district_id:
        logger.info(
            f"Ignoring district_{district_id} requested by user_{caller.user_id}, "
            f"bound to district_{caller.district_id}"
        )
    return Scope(unrestricted=False, district_id=caller.district_id)


def scope_condition(scope: Scope, district_column=None):
    """SQL condition on a district column (Case.district_id by default)."""
    column = district_column if district_column is not None else Case.district_id
    if scope.district_id is not None:
        return column == scope.district_id
    if scope.unrestricted:
        return true()
    return false()


def scope_cases(stmt, scope: Scope):
    """Apply the scope to a select / query that already involves Case."""
    if scope.sees_all_districts:
        return stmt
    return stmt.where(scope_condition(scope))
