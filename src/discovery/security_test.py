import os
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from .config import SecurityConfig
from .errors import PermissionDenied, RateLimitExceeded, ValidationError
from .main import app
from .models import SecurityContext
from .security import RateLimiter, check_permission, normalize_term, validate_search_term


@pytest.fixture
def api_key():
    return "test-api-key-12345"


@pytest.fixture
def client_with_api_key(api_key):
    with patch.dict(os.environ, {"API_KEY": api_key}):
        yield TestClient(app), api_key


class TestRootEndpointAuth:
    def test_root_returns_401_without_api_key(self, client_with_api_key):
        client, _ = client_with_api_key
        response = client.get("/")
        assert response.status_code == 401

    def test_root_returns_401_with_invalid_api_key(self, client_with_api_key):
        client, _ = client_with_api_key
        response = client.get("/", headers={"X-API-Key": "invalid-key"})
        assert response.status_code == 401

    def test_root_returns_401_response_body(self, client_with_api_key):
        client, _ = client_with_api_key
        response = client.get("/")
        assert response.json() == {"detail": "Invalid or missing API key"}

    def test_root_returns_200_with_valid_api_key(self, client_with_api_key):
        client, api_key = client_with_api_key
        response = client.get("/", headers={"X-API-Key": api_key})
        assert response.status_code == 200
        assert response.json() == {"message": "Discovery API"}

    def test_unset_key_rejects_everything(self):
        with patch.dict(os.environ, {}, clear=True):
            response = TestClient(app).get("/", headers={"X-API-Key": ""})
        assert response.status_code == 401


class TestHealthEndpointNoAuth:
    def test_health_returns_200_without_api_key(self, client_with_api_key):
        client, _ = client_with_api_key
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_returns_ok_status(self, client_with_api_key):
        client, _ = client_with_api_key
        response = client.get("/health")
        assert response.json() == {"status": "ok"}


class TestValidateSearchTerm:
    @pytest.mark.parametrize("term", ["ana", "  ana  ", "o'brien", "@ana.b", "#tag", "jean-luc", "josé"])
    def test_accepts(self, term):
        assert validate_search_term(term, SecurityConfig()) == term.strip()

    @pytest.mark.parametrize(
        "term",
        [None, "", "   ", "<script>", "JavaScript:void", "x; DROP TABLE users", "a--b", "ana!", "a" * 101],
    )
    def test_rejects(self, term):
        with pytest.raises(ValidationError):
            validate_search_term(term, SecurityConfig())

    def test_min_length(self):
        with pytest.raises(ValidationError) as info:
            validate_search_term("ab", SecurityConfig(min_term_length=3))
        assert info.value.details == {"min_length": 3}

    def test_normalize(self):
        assert normalize_term("  Ana   Maria ") == "ana maria"


class TestPermission:
    def test_admin_requires_role(self):
        with pytest.raises(PermissionDenied):
            check_permission("admin", None)
        with pytest.raises(PermissionDenied):
            check_permission("admin", SecurityContext(roles=["user"]))
        check_permission("admin", SecurityContext(roles=["admin"]))

    def test_other_contexts_open(self):
        check_permission("discovery", None)
        check_permission("mention", SecurityContext())


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestRateLimiter:
    def test_per_user_window(self):
        clock = FakeClock()
        limiter = RateLimiter(SecurityConfig(rate_limit_per_user=2, rate_limit_window=60), clock)

        limiter.acquire("u")
        clock.now = 10
        limiter.acquire("u")
        with pytest.raises(RateLimitExceeded) as info:
            limiter.acquire("u")
        assert info.value.details == {"scope": "user", "reset_in": 50.0}

        limiter.acquire("other")
        clock.now = 60
        limiter.acquire("u")

    def test_per_ip(self):
        limiter = RateLimiter(SecurityConfig(rate_limit_per_ip=1), FakeClock())

        limiter.acquire("a", "10.0.0.1")
        limiter.acquire("b", "10.0.0.2")
        with pytest.raises(RateLimitExceeded) as info:
            limiter.acquire("c", "10.0.0.1")
        assert info.value.details["scope"] == "ip"

    def test_rejected_request_not_counted(self):
        clock = FakeClock()
        limiter = RateLimiter(
            SecurityConfig(rate_limit_per_user=5, rate_limit_per_ip=1, rate_limit_window=60), clock
        )
        limiter.acquire("u", "ip")
        for _ in range(3):
            with pytest.raises(RateLimitExceeded):
                limiter.acquire("u", "ip")
        limiter.acquire("u", "other-ip")
        limiter.acquire("u", "third-ip")
        limiter.acquire("u", "fourth-ip")

    def test_reset(self):
        limiter = RateLimiter(SecurityConfig(rate_limit_per_user=1), FakeClock())
        limiter.acquire("u")
        limiter.reset()
        limiter.acquire("u")

    def test_idle_keys_are_dropped(self):
        clock = FakeClock()
        limiter = RateLimiter(SecurityConfig(rate_limit_window=60), clock)
        for i in range(1000):
            limiter.acquire(f"user-{i}", f"10.0.{i // 256}.{i % 256}")
        assert limiter.tracked() == (1000, 1000)

        clock.now = 61
        limiter.acquire("fresh")

        assert limiter.tracked() == (1, 0)

    def test_purge_keeps_active_windows(self):
        clock = FakeClock()
        limiter = RateLimiter(SecurityConfig(rate_limit_window=60), clock)
        limiter.acquire("idle", "10.0.0.1")
        clock.now = 30
        limiter.acquire("busy", "10.0.0.2")

        clock.now = 70
        assert limiter.purge_expired() == 2
        assert limiter.tracked() == (1, 1)
