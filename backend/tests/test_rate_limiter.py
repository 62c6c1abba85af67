"""Tests for the per-address submission rate limiter"""

from unittest.mock import MagicMock, patch

import pytest
from redis.exceptions import RedisError

from app.services.rate_limiter import RateLimiter, RateLimitResult, window_key


@pytest.fixture
def redis_client():
    """Mock Redis client with a fresh, unexpired counter"""
    client = MagicMock()
    client.incr.return_value = 1
    client.ttl.return_value = 3600
    return client


@pytest.fixture
def limiter(redis_client) -> RateLimiter:
    return RateLimiter(client=redis_client)


def check(limiter: RateLimiter, subject: str = "user@example.com", **kwargs) -> RateLimitResult:
    kwargs.setdefault("limit", 5)
    kwargs.setdefault("window_seconds", 3600)
    return limiter.check_limit(subject, **kwargs)


class TestRateLimiter:
    """Tests for RateLimiter.check_limit"""

    def test_first_attempt_starts_window(self, limiter, redis_client):
        result = check(limiter)

        assert result.allowed is True
        assert result.remaining == 4
        redis_client.expire.assert_called_once_with("rate:deletion_request:user@example.com", 3600)

    def test_later_attempt_keeps_window(self, limiter, redis_client):
        """Test that only the first attempt sets the expiry"""
        redis_client.incr.return_value = 3
        redis_client.ttl.return_value = 1800

        result = check(limiter)

        assert result.allowed is True
        assert result.remaining == 2
        assert result.retry_after == 1800
        redis_client.expire.assert_not_called()

    def test_attempt_at_limit_allowed(self, limiter, redis_client):
        redis_client.incr.return_value = 5

        result = check(limiter)

        assert result.allowed is True
        assert result.remaining == 0
        assert result.headers == {}

    def test_attempt_over_limit_blocked(self, limiter, redis_client):
        redis_client.incr.return_value = 6
        redis_client.ttl.return_value = 500

        result = check(limiter)

        assert result.allowed is False
        assert result.remaining == 0
        assert result.headers == {"Retry-After": "500"}

    def test_defaults_come_from_settings(self, limiter, redis_client):
        redis_client.incr.return_value = 3

        with patch("app.services.rate_limiter.settings") as mock_settings:
            mock_settings.submission_rate_limit = 2
            mock_settings.submission_rate_window_seconds = 60
            result = limiter.check_limit("user@example.com")

        assert result.allowed is False

    def test_address_case_and_padding_ignored(self, limiter, redis_client):
        check(limiter, subject="  User@Example.COM ")

        redis_client.incr.assert_called_once_with("rate:deletion_request:user@example.com")

    def test_addresses_and_actions_tracked_separately(self, limiter, redis_client):
        check(limiter, subject="user@example.com")
        check(limiter, subject="other@example.com")
        check(limiter, subject="user@example.com", action="confirm")

        keys = [call.args[0] for call in redis_client.incr.call_args_list]
        assert keys == [
            "rate:deletion_request:user@example.com",
            "rate:deletion_request:other@example.com",
            "rate:confirm:user@example.com",
        ]

    def test_redis_error_fails_open(self, limiter, redis_client):
        redis_client.incr.side_effect = RedisError("Connection refused")

        result = check(limiter)

        assert result.allowed is True
        assert result.remaining == 5
        assert result.retry_after == 0

    def test_key_without_expiry_uses_window(self, limiter, redis_client):
        redis_client.incr.return_value = 6
        redis_client.ttl.return_value = -1

        assert check(limiter).retry_after == 3600

    def test_retry_after_at_least_one_second(self, limiter, redis_client):
        redis_client.ttl.return_value = 0

        assert check(limiter, window_seconds=0).retry_after == 1

    def test_connects_lazily(self):
        with patch("app.services.rate_limiter.redis.Redis.from_url") as from_url:
            from_url.return_value.incr.return_value = 1
            from_url.return_value.ttl.return_value = 3600
            limiter = RateLimiter(redis_url="redis://cache:6379/1")
            from_url.assert_not_called()

            check(limiter)

        from_url.assert_called_once_with("redis://cache:6379/1", decode_responses=True)


def test_window_key():
    assert window_key("deletion_request", " A@B.com") == "rate:deletion_request:a@b.com"
