"""
Invalidation hooks for the surrounding back office.

Call these after a mutation has been committed. Nothing subscribes
automatically: the CRUD layer decides when to notify.

    on_case_changed(cache, district_id)             case created/updated/closed/deleted
    on_property_changed(cache, district_id)         property of a case in that district
    on_applicant_changed(cache, district_ids)       applicant linked to cases in those districts
    on_association_changed(cache, district_id)      association created/archived/removed
    on_user_changed(cache, user_id)                 role or district of a user changed

A cache store that cannot be reached is logged and skipped: entries then
expire through their TTL.
"""
import logging
from typing import Iterable, Optional

from services.statistics.cache import StatisticsCache
from services.statistics.errors import CacheBackendError

logger = logging.getLogger('statistics.cache')


def _forget_scope(cache: StatisticsCache, district_id: Optional[int], reason: str) -> int:
    try:
        return cache.forget_scope(district_id)
    except CacheBackendError as e:
        logger.error(f"Invalidation after {reason} failed for district_{district_id}, relying on TTL: {e}")
        return 0


def on_case_changed(cache: StatisticsCache, district_id: Optional[int]) -> int:
    return _forget_scope(cache, district_id, 'case change')


def on_property_changed(cache: StatisticsCache, district_id: Optional[int]) -> int:
    return _forget_scope(cache, district_id, 'property change')


def on_applicant_changed(cache: StatisticsCache, district_ids: Iterable[Optional[int]]) -> int:
    """An applicant can sit in cases of several districts."""
    deleted = 0
    for district_id in sorted({d for d in district_ids if d is not None}):
        deleted += _forget_scope(cache, district_id, 'applicant change')
    if deleted == 0:
        # Unlinked applicant: only cross-district views can include it
        deleted += _forget_scope(cache, None, 'applicant change')
    return deleted


def on_association_changed(cache: StatisticsCache, district_id: Optional[int]) -> int:
    return _forget_scope(cache, district_id, 'association change')


def on_user_changed(cache: StatisticsCache, user_id) -> int:
    try:
        return cache.forget_user(user_id)
    except CacheBackendError as e:
        logger.error(f"Invalidation for user_{user_id} failed, relying on TTL: {e}")
        return 0
