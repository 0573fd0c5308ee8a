"""
Tests for the sliding-window rate limiter and client IP extraction.

Run with: pytest tests/test_rate_limiter.py -v
"""

from unittest.mock import MagicMock, patch

import pytest


@pytest.fixture
def limiter():
    from aeronotes.core.rate_limiter import RateLimitConfig, RateLimiter

    return RateLimiter({"test": RateLimitConfig(max_requests=2, window_seconds=60)})


class TestRateLimiter:
    """Tests for RateLimiter."""

    def test_blocks_after_max_requests(self, limiter):
        assert limiter.is_allowed("test", "a") == (True, 0)
        assert limiter.is_allowed("test", "a") == (True, 0)

        allowed, retry_after = limiter.is_allowed("test", "a")

        assert allowed is False
        assert 1 <= retry_after <= 61

    def test_identifiers_are_independent(self, limiter):
        limiter.is_allowed("test", "a")
        limiter.is_allowed("test", "a")

        assert limiter.is_allowed("test", "b")[0] is True

    def test_unknown_type_is_allowed(self, limiter):
        assert limiter.is_allowed("nope", "a") == (True, 0)
        assert limiter.get_remaining("nope", "a") == 999

    def test_remaining_and_reset(self, limiter):
        limiter.is_allowed("test", "a")
        assert limiter.get_remaining("test", "a") == 1

        limiter.reset("test", "a")

        assert limiter.get_remaining("test", "a") == 2

    def test_window_slides(self, limiter):
        with patch("aeronotes.core.rate_limiter.time.time", return_value=1000.0):
            limiter.is_allowed("test", "a")
            limiter.is_allowed("test", "a")

        with patch("aeronotes.core.rate_limiter.time.time", return_value=1061.0):
            assert limiter.is_allowed("test", "a") == (True, 0)

    def test_cleanup_all(self, limiter):
        with patch("aeronotes.core.rate_limiter.time.time", return_value=1000.0):
            limiter.is_allowed("test", "a")
            limiter.is_allowed("test", "b")

        with patch("aeronotes.core.rate_limiter.time.time", return_value=1030.0):
            limiter.is_allowed("test", "b")

        with patch("aeronotes.core.rate_limiter.time.time", return_value=1070.0):
            removed = limiter.cleanup_all()
            remaining = limiter.get_remaining("test", "b")

        assert removed == 2
        assert remaining == 1


class TestClientIP:
    """Tests for get_client_ip."""

    def _request(self, headers=None, host="10.0.0.9"):
        request = MagicMock()
        request.headers = headers or {}
        request.client = MagicMock(host=host) if host else None
        return request

    def test_forwarded_for_wins(self):
        from aeronotes.core.rate_limiter import get_client_ip

        request = self._request({"X-Forwarded-For": "1.2.3.4, 10.0.0.1", "X-Real-IP": "5.6.7.8"})

        assert get_client_ip(request) == "1.2.3.4"

    def test_real_ip(self):
        from aeronotes.core.rate_limiter import get_client_ip

        assert get_client_ip(self._request({"X-Real-IP": " 5.6.7.8 "})) == "5.6.7.8"

    def test_socket_peer_and_unknown(self):
        from aeronotes.core.rate_limiter import get_client_ip

        assert get_client_ip(self._request()) == "10.0.0.9"
        assert get_client_ip(self._request(host=None)) == "unknown"
