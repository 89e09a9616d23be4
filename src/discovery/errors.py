"""Error taxonomy shared by the search and recommendation pipelines.

Every failure that reaches a caller is one of the kinds below.  Routers and
the orchestrator never surface a raw exception; they convert it with
:meth:`DiscoveryError.to_payload` into::

    {"success": false, "error": {"type": ..., "message": ..., "details": ...}}
"""

from typing import Any


class DiscoveryError(Exception):
    """Base class for all structured errors."""

    kind = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_payload(self) -> dict[str, Any]:
        return {
            "success": False,
            "error": {
                "type": self.kind,
                "message": self.message,
                "details": self.details,
            },
        }


class ValidationError(DiscoveryError):
    """Malformed, missing, oversized or suspicious input."""

    kind = "VALIDATION_ERROR"
    status_code = 400


class PermissionDenied(DiscoveryError):
    kind = "PERMISSION_DENIED"
    status_code = 403


class RateLimitExceeded(DiscoveryError):
    kind = "RATE_LIMIT_EXCEEDED"
    status_code = 429


class ResourceNotFound(DiscoveryError):
    kind = "RESOURCE_NOT_FOUND"
    status_code = 404


class SearchTimeout(DiscoveryError):
    kind = "SEARCH_TIMEOUT"
    status_code = 504


class CacheUnavailable(DiscoveryError):
    kind = "CACHE_UNAVAILABLE"
    status_code = 503


class StoreUnavailable(DiscoveryError):
    """The backing store could not be reached or answered with an error."""

    kind = "STORE_UNAVAILABLE"
    status_code = 503


class InternalError(DiscoveryError):
    kind = "INTERNAL_ERROR"
    status_code = 500

    @classmethod
    def wrap(cls, exc: BaseException, message: str = "Internal error") -> "InternalError":
        """Wrap an unexpected exception, keeping its message for diagnostics."""
        return cls(message, {"original_error": str(exc) or type(exc).__name__})


class DataConsistencyError(InternalError):
    """Retrieval and the store disagree (e.g. a candidate has no profile)."""


def as_discovery_error(exc: BaseException) -> DiscoveryError:
    if isinstance(exc, DiscoveryError):
        return exc
    return InternalError.wrap(exc)


_STATUS_BY_KIND = {
    cls.kind: cls.status_code
    for cls in (
        ValidationError,
        PermissionDenied,
        RateLimitExceeded,
        ResourceNotFound,
        SearchTimeout,
        CacheUnavailable,
        StoreUnavailable,
        InternalError,
    )
}


def status_for(kind: str) -> int:
    """HTTP status code for an error kind; unknown kinds map to 500."""
    return _STATUS_BY_KIND.get(kind, 500)
