"""Incremental, coverage-extending cache for per-day analytics metrics."""

from series_engine.errors import (
    AlreadyExists,
    BadRequest,
    CoverageError,
    CredentialMissing,
    InvalidExtension,
    ProviderError,
    RateLimited,
    SeriesCacheError,
    StorageFailure,
    Unauthorized,
    Unavailable,
)
from series_engine.models import CacheKey, CacheRecord, DailyValue, DateRange, desired_window

__all__ = [
    "AlreadyExists",
    "BadRequest",
    "CacheKey",
    "CacheRecord",
    "CoverageError",
    "CredentialMissing",
    "DailyValue",
    "DateRange",
    "InvalidExtension",
    "ProviderError",
    "RateLimited",
    "SeriesCacheError",
    "StorageFailure",
    "Unauthorized",
    "Unavailable",
    "desired_window",
]
