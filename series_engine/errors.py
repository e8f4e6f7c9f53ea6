from __future__ import annotations

from typing import Any, Optional


class SeriesCacheError(Exception):
    """Base class for every failure the cache classifies."""

    code = "series_cache_error"
    retryable = False

    def __init__(self, message: str, *, context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}


class CredentialMissing(SeriesCacheError):
    """No stored credential for the owner; the client has to connect an account."""

    code = "credential_missing"


class ProviderError(SeriesCacheError):
    code = "provider_error"

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        status: Optional[int] = None,
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, context=context)
        self.provider = provider
        self.status = status


class Unauthorized(ProviderError):
    """Credential rejected by the provider; callers prompt for re-authorization."""

    code = "unauthorized"


class RateLimited(ProviderError):
    code = "rate_limited"
    retryable = True

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        status: Optional[int] = None,
        retry_after: Optional[float] = None,
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, provider=provider, status=status, context=context)
        self.retry_after = retry_after


class BadRequest(ProviderError):
    code = "bad_request"


class Unavailable(ProviderError):
    """Provider outage, 5xx, connection failure or timeout."""

    code = "unavailable"
    retryable = True


class CoverageError(SeriesCacheError):
    """Store-level invariant violation; indicates a resolver bug, never user facing."""

    code = "coverage_error"


class AlreadyExists(CoverageError):
    code = "already_exists"


class InvalidExtension(CoverageError):
    code = "invalid_extension"


class StorageFailure(SeriesCacheError):
    code = "storage_failure"
    retryable = True


__all__ = [
    "AlreadyExists",
    "BadRequest",
    "CoverageError",
    "CredentialMissing",
    "InvalidExtension",
    "ProviderError",
    "RateLimited",
    "SeriesCacheError",
    "StorageFailure",
    "Unauthorized",
    "Unavailable",
]
