from datetime import timedelta
from functools import lru_cache

from app.config import settings
from app.services.deletion_request_service import DeletionRequestService
from app.services.notification_service import NotificationService
from app.services.rate_limiter import RateLimiter, rate_limiter
from app.services.request_store import build_request_store


@lru_cache
def get_deletion_service() -> DeletionRequestService:
    """Process-wide service; its lock only protects callers sharing this instance"""
    return DeletionRequestService(
        store=build_request_store(settings),
        expiry_window=timedelta(hours=settings.token_expiry_hours),
    )


@lru_cache
def get_notification_service() -> NotificationService:
    return NotificationService()


def get_rate_limiter() -> RateLimiter:
    return rate_limiter
