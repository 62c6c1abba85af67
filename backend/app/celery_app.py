from datetime import timedelta

from celery import Celery

from app.config import settings

celery_app = Celery(
    "deletion_requests",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["app.tasks.cleanup_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
)

# Celery Beat Schedule
celery_app.conf.beat_schedule = {
    "purge-expired-requests": {
        "task": "app.tasks.cleanup_tasks.purge_expired_requests",
        "schedule": timedelta(minutes=settings.expiry_sweep_minutes),
    },
}
