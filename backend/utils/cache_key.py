"""
Cache key helpers.

Provides stable, normalized cache key construction so that two requests for
the same statistics always land on the same key, regardless of parameter
order or how a date was spelled.

Key layout:
    stats:district_<id|all>:user_<id>:<type>:<md5[:16]>
"""

from datetime import date, datetime
import hashlib
import json
import re
from typing import Any, Dict

from constants import CACHE_PREFIX

# 2025-01-01, 2025-01-01 00:00:00, 2025-01-01T10:00Z, 2025-01-01T10:00:00+03:00
_DATE_LIKE = re.compile(r'^(\d{4}-\d{2}-\d{2})(?:[T ]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?)?$')


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _normalize_cache_value(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        if isinstance(value, datetime):
            value = value.date()
        return value.isoformat()
    if isinstance(value, str):
        stripped = value.strip()
        match = _DATE_LIKE.match(stripped)
        if match:
            return match.group(1)
        return stripped
    if isinstance(value, (list, tuple)):
        return [_normalize_cache_value(v) for v in value]
    if isinstance(value, dict):
        return {
            str(k): _normalize_cache_value(v)
            for k, v in sorted(value.items(), key=lambda item: str(item[0]))
            if not _is_empty(v)
        }
    return value


def normalize_cache_params(params: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalize params for cache keys.

    - Skips empty values
    - Sorts keys for stability (recursively)
    - Canonicalizes dates, datetimes and date-like strings to YYYY-MM-DD
    """
    if not params:
        return {}
    filtered: Dict[str, Any] = {}
    for key, value in params.items():
        if _is_empty(value):
            continue
        filtered[str(key)] = _normalize_cache_value(value)
    return {k: filtered[k] for k in sorted(filtered.keys())}


def hash_cache_params(params: Dict[str, Any]) -> str:
    """md5 of the normalized params, first 16 hex chars."""
    normalized = normalize_cache_params(params)
    cache_str = json.dumps(normalized, sort_keys=True, default=str)
    return hashlib.md5(cache_str.encode()).hexdigest()[:16]


def scope_prefix(district_label: str) -> str:
    return f"{CACHE_PREFIX}:{district_label}:"


def build_statistics_cache_key(
    cache_type: str,
    district_label: str,
    user_id: Any,
    params: Dict[str, Any],
) -> str:
    """
    Build deterministic cache key for a statistics result.

    Args:
        cache_type: Result type (e.g. 'all_stats', 'all_charts', 'overview')
        district_label: 'district_<id>' or 'district_all'
        user_id: Caller user id
        params: Request params (period, from, to, ...)
    """
    return f"{scope_prefix(district_label)}user_{user_id}:{cache_type}:{hash_cache_params(params)}"
