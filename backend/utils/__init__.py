"""
Utility modules for the backend.
"""
from .cache_key import (
    normalize_cache_params,
    hash_cache_params,
    build_statistics_cache_key,
)
from .normalize import (
    ValidationError,
    is_date_only,
    to_datetime,
)
from .timing import log_timing

__all__ = [
    'normalize_cache_params',
    'hash_cache_params',
    'build_statistics_cache_key',
    'ValidationError',
    'is_date_only',
    'to_datetime',
    'log_timing',
]
