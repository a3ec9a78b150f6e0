"""Domain-level exceptions shared by the proximity and post modules."""

from __future__ import annotations


class CoreError(Exception):
    """Base class for MetroSocial core errors."""

    reason: str = "unknown"
    status_code: int = 400

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason


class ValidationError(CoreError):
    """Missing or malformed content on a create/update operation."""

    reason = "invalid"
    status_code = 422


class NotFoundError(CoreError):
    reason = "not_found"
    status_code = 404


class AuthorizationError(CoreError):
    """The acting identity is missing or could not be verified."""

    reason = "invalid_token"
    status_code = 401


class RateLimitExceeded(CoreError):
    reason = "rate_limited"
    status_code = 429


class TransientNetworkError(CoreError):
    """Client-side fetch or push failure; callers retry on the next cycle."""

    reason = "network"
    status_code = 503


_BY_STATUS = {
    ValidationError.status_code: ValidationError,
    NotFoundError.status_code: NotFoundError,
    AuthorizationError.status_code: AuthorizationError,
    403: AuthorizationError,
    RateLimitExceeded.status_code: RateLimitExceeded,
}


def error_for_status(status_code: int, reason: str | None = None) -> CoreError:
    """Map an HTTP status back onto the taxonomy (used by the feed client)."""
    if status_code >= 500:
        return TransientNetworkError(reason or f"http_{status_code}")
    cls = _BY_STATUS.get(status_code)
    if cls is None:
        if status_code == 400:
            return ValidationError(reason)
        return CoreError(reason or f"http_{status_code}")
    return cls(reason)
