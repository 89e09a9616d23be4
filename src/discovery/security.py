"""Request guards: API key, search-term validation, rate limiting, permissions."""

import os
import re
import time
from collections import defaultdict, deque
from typing import Annotated, Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader

from .config import SecurityConfig
from .errors import PermissionDenied, RateLimitExceeded, ValidationError
from .models import SearchContext, SecurityContext

API_KEY_HEADER_NAME = "X-API-Key"

api_key_header = APIKeyHeader(name=API_KEY_HEADER_NAME, auto_error=False)

# Letters, digits, whitespace and the punctuation people use in handles.
_ALLOWED_TERM = re.compile(r"^[\w\s.@#'\-]+$")
_WHITESPACE = re.compile(r"\s+")


def get_api_key() -> str | None:
    return os.environ.get("API_KEY")


async def verify_api_key(
    api_key: Annotated[str | None, Depends(api_key_header)],
) -> str | None:
    expected_key = get_api_key()
    if not expected_key or api_key != expected_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
    return api_key


RequireApiKey = Annotated[str, Depends(verify_api_key)]


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------

def validate_search_term(term: str | None, config: SecurityConfig) -> str:
    """Return the trimmed term, or raise :class:`ValidationError`."""
    trimmed = (term or "").strip()
    if not trimmed:
        raise ValidationError("Search term is required")
    if len(trimmed) < config.min_term_length:
        raise ValidationError(
            "Search term is too short", {"min_length": config.min_term_length}
        )
    if len(trimmed) > config.max_term_length:
        raise ValidationError(
            "Search term is too long", {"max_length": config.max_term_length}
        )

    lowered = trimmed.lower()
    for pattern in config.suspicious_patterns:
        if pattern in lowered:
            raise ValidationError("Search term contains a forbidden pattern")
    if not _ALLOWED_TERM.match(trimmed):
        raise ValidationError("Search term contains invalid characters")
    return trimmed


def normalize_term(term: str) -> str:
    """Trim, lowercase and collapse runs of whitespace."""
    return _WHITESPACE.sub(" ", term.strip().lower())


def check_permission(context: SearchContext, security: SecurityContext | None) -> None:
    if context == "admin" and (security is None or "admin" not in security.roles):
        raise PermissionDenied("Admin search requires the admin role")


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------

class RateLimiter:
    """Sliding-window request counter per user and per IP address."""

    def __init__(self, config: SecurityConfig | None = None, clock: Callable[[], float] = time.monotonic):
        self.config = config or SecurityConfig()
        self._clock = clock
        self._users: dict[str, deque[float]] = defaultdict(deque)
        self._ips: dict[str, deque[float]] = defaultdict(deque)
        self._last_purge = clock()

    def _trim(self, window: deque[float], now: float) -> None:
        while window and now - window[0] >= self.config.rate_limit_window:
            window.popleft()

    def acquire(self, user_id: str, ip_address: str | None = None) -> None:
        """Count one request, or raise :class:`RateLimitExceeded` without counting it."""
        now = self._clock()
        if now - self._last_purge >= self.config.rate_limit_window:
            self.purge_expired(now)
        user_window = self._users[user_id]
        self._trim(user_window, now)
        if len(user_window) >= self.config.rate_limit_per_user:
            raise RateLimitExceeded(
                "Too many searches",
                {"scope": "user", "reset_in": self._reset_in(user_window, now)},
            )

        ip_window = None
        if ip_address:
            ip_window = self._ips[ip_address]
            self._trim(ip_window, now)
            if len(ip_window) >= self.config.rate_limit_per_ip:
                raise RateLimitExceeded(
                    "Too many searches",
                    {"scope": "ip", "reset_in": self._reset_in(ip_window, now)},
                )

        user_window.append(now)
        if ip_window is not None:
            ip_window.append(now)

    def _reset_in(self, window: deque[float], now: float) -> float:
        return round(max(0.0, window[0] + self.config.rate_limit_window - now), 3)

    def reset(self) -> None:
        self._users.clear()
        self._ips.clear()

    def purge_expired(self, now: float | None = None) -> int:
        """Drop users and addresses with no request left in the window."""
        now = self._clock() if now is None else now
        self._last_purge = now
        removed = 0
        for windows in (self._users, self._ips):
            for key in list(windows):
                self._trim(windows[key], now)
                if not windows[key]:
                    del windows[key]
                    removed += 1
        return removed

    def tracked(self) -> tuple[int, int]:
        """Number of (users, addresses) currently holding a window."""
        return len(self._users), len(self._ips)
