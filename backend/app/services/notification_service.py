import logging

from app.config import settings
from app.schemas.request import DeletionRequestRecord
from app.services.gmail_service import GmailService
from app.utils.email_templates import EmailTemplates

logger = logging.getLogger(__name__)


class NotificationService:
    """Composes and sends the emails of the deletion flow.

    Without Gmail credentials (local development) messages are logged
    instead of sent. Delivery failures raise MailDeliveryError and are
    never retried.
    """

    def __init__(self, gmail_service: GmailService | None = None):
        self.gmail_service = gmail_service or GmailService()
        self.templates = EmailTemplates

    def send_confirmation_email(self, to_email: str, confirmation_link: str) -> None:
        """Ask the requester to confirm the deletion through confirmation_link"""
        subject, body = self.templates.generate_confirmation_email(
            confirmation_link,
            expiry_hours=settings.token_expiry_hours,
            support_email=settings.support_email,
        )
        self._deliver(to_email, subject, body)
        logger.info(f"Confirmation email sent to {to_email}")

    def send_support_notice(self, request: DeletionRequestRecord) -> None:
        """Tell the support team that a deletion request was confirmed"""
        if not settings.support_email:
            logger.warning(
                f"SUPPORT_EMAIL is not set; no notice sent for request {request.token[:8]}..."
            )
            return

        subject, body = self.templates.generate_support_notice(request)
        self._deliver(settings.support_email, subject, body, reply_to=request.email)
        logger.info(f"Support notification sent for {request.email}")

    def _deliver(self, to_email: str, subject: str, body: str, reply_to: str | None = None) -> None:
        # Local development mode - just log
        if not self.gmail_service.is_configured:
            logger.info(f"Mail transport not configured, would send {subject!r} to {to_email}")
            return

        self.gmail_service.send_email(to_email, subject, body, reply_to=reply_to)
