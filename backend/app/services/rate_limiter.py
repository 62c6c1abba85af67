import logging
from dataclasses import dataclass

import redis
from redis.exceptions import RedisError

from app.config import settings

logger = logging.getLogger(__name__)

SUBMISSION_ACTION = "deletion_request"


@dataclass
class RateLimitResult:
    """Outcome of one counted attempt."""

    allowed: bool
    remaining: int
    retry_after: int

    @property
    def headers(self) -> dict[str, str]:
        return {"Retry-After": str(self.retry_after)} if not self.allowed else {}


def window_key(action: str, subject: str) -> str:
    """Counter key; addresses differing only in case or padding share a window"""
    return f"rate:{action}:{subject.strip().lower()}"


class RateLimiter:
    """Fixed-window counters in Redis, one window per (action, email address).

    Complements the per-IP slowapi limit: an address can only be sent so many
    confirmation emails per window no matter where the requests come from.
    When Redis is unreachable every attempt is allowed.
    """

    def __init__(self, client: redis.Redis | None = None, redis_url: str | None = None):
        self._client = client
        self._redis_url = redis_url or settings.redis_url

    @property
    def client(self) -> redis.Redis:
        # Connect on first use so importing the app never needs Redis
        if self._client is None:
            self._client = redis.Redis.from_url(self._redis_url, decode_responses=True)
        return self._client

    def check_limit(
        self,
        subject: str,
        action: str = SUBMISSION_ACTION,
        limit: int | None = None,
        window_seconds: int | None = None,
    ) -> RateLimitResult:
        """Count an attempt by subject and report whether it is within the window's limit"""
        limit = settings.submission_rate_limit if limit is None else limit
        if window_seconds is None:
            window_seconds = settings.submission_rate_window_seconds

        key = window_key(action, subject)
        try:
            attempts = self.client.incr(key)
            if attempts == 1:
                self.client.expire(key, window_seconds)
            ttl = self.client.ttl(key)
        except RedisError as e:
            logger.warning(f"Rate limiter unavailable, allowing {action} attempt: {e}")
            return RateLimitResult(allowed=True, remaining=limit, retry_after=0)

        # A key without expiry (ttl -1) would otherwise never reset
        retry_after = ttl if ttl and ttl > 0 else window_seconds
        return RateLimitResult(
            allowed=attempts <= limit,
            remaining=max(limit - attempts, 0),
            retry_after=max(retry_after, 1),
        )


rate_limiter = RateLimiter()
