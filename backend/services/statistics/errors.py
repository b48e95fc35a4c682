"""
Statistics error types.

    StatisticsError
    ├── InvalidPeriodError   bad custom range (also a ValueError)
    ├── ComputeError         one aggregate group failed at the database
    └── CacheBackendError    cache store unreachable (always recovered)
"""


class StatisticsError(Exception):
    """Base class for statistics failures."""


class InvalidPeriodError(StatisticsError, ValueError):
    """Raised when a custom period cannot be parsed or has from > to."""

    def __init__(self, message: str, field: str = None, received_value=None):
        super().__init__(message)
        self.field = field
        self.received_value = received_value


class ComputeError(StatisticsError):
    """Raised when a single aggregate group fails at the database."""

    def __init__(self, group: str, cause: Exception):
        super().__init__(f"{group}: {cause}")
        self.group = group
        self.cause = cause


class CacheBackendError(StatisticsError):
    """Raised by cache stores when the backend cannot be reached."""
