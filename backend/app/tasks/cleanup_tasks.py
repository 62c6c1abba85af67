import logging

from app.celery_app import celery_app
from app.dependencies.services import get_deletion_service

logger = logging.getLogger(__name__)


@celery_app.task
def purge_expired_requests() -> int:
    """
    Periodic sweep removing unconfirmed requests whose link has expired.

    Duplicate checks already reclaim expired requests for the submitting
    address; this catches the ones nobody resubmits for. Confirmed requests
    are never touched.
    """
    service = get_deletion_service()
    purged = service.purge_expired()
    if purged:
        logger.info(f"Purged {purged} expired deletion request(s)")
    return purged
