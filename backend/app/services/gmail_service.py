import base64
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import NoReturn

from google.auth.exceptions import RefreshError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from app.config import settings
from app.exceptions import GmailQuotaExceededError, MailDeliveryError


class GmailService:
    """Sends mail from the support mailbox through the Gmail API.

    The mailbox is authorized once out of band; the refresh token, client id
    and client secret come from settings.
    """

    SCOPES = ["https://www.googleapis.com/auth/gmail.send"]

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        refresh_token: str | None = None,
        token_uri: str | None = None,
        from_email: str | None = None,
        from_name: str | None = None,
    ):
        self.client_id = client_id if client_id is not None else settings.gmail_client_id
        self.client_secret = (
            client_secret if client_secret is not None else settings.gmail_client_secret
        )
        self.refresh_token = (
            refresh_token if refresh_token is not None else settings.gmail_refresh_token
        )
        self.token_uri = token_uri or settings.gmail_token_uri
        self.from_email = from_email if from_email is not None else settings.from_email
        self.from_name = from_name if from_name is not None else settings.from_name

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)

    def get_credentials(self) -> Credentials:
        """Build credentials for the support mailbox; the access token is fetched on first use"""
        return Credentials(
            token=None,
            refresh_token=self.refresh_token,
            token_uri=self.token_uri,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=self.SCOPES,
        )

    def build_message(
        self, to_email: str, subject: str, html_body: str, reply_to: str | None = None
    ) -> str:
        """Encode an HTML message the way the Gmail API expects it (base64url raw)"""
        message = MIMEText(html_body, "html", "utf-8")
        message["To"] = to_email
        message["From"] = formataddr((self.from_name, self.from_email))
        message["Subject"] = subject
        if reply_to:
            message["Reply-To"] = reply_to

        return base64.urlsafe_b64encode(message.as_bytes()).decode()

    def send_email(
        self, to_email: str, subject: str, html_body: str, reply_to: str | None = None
    ) -> dict[str, str]:
        """
        Send an HTML email via Gmail API

        Returns:
            Dict with 'message_id', 'thread_id'

        Raises:
            GmailQuotaExceededError: Gmail rejected the call for quota/rate reasons
            MailDeliveryError: For any other send failure
        """
        if not self.is_configured:
            raise MailDeliveryError("Gmail credentials are not configured")

        raw_message = self.build_message(to_email, subject, html_body, reply_to)

        try:
            service = build("gmail", "v1", credentials=self.get_credentials(), cache_discovery=False)
            sent_message = (
                service.users().messages().send(userId="me", body={"raw": raw_message}).execute()
            )
        except HttpError as http_error:
            self._raise_for_http_error(http_error)
        except RefreshError as e:
            raise MailDeliveryError(f"Gmail authorization failed: {e}") from e

        return {
            "message_id": sent_message["id"],
            "thread_id": sent_message.get("threadId"),
        }

    @staticmethod
    def _raise_for_http_error(http_error: HttpError) -> NoReturn:
        status = getattr(http_error.resp, "status", None)
        # httplib2 responses are dicts with lower-cased header names
        retry_after_header = None
        if hasattr(http_error.resp, "get"):
            retry_after_header = http_error.resp.get("retry-after")

        rate_limit_reasons = {"rateLimitExceeded", "userRateLimitExceeded", "quotaExceeded"}
        reasons = []
        if getattr(http_error, "error_details", None):
            for detail in http_error.error_details:
                if isinstance(detail, dict) and detail.get("reason"):
                    reasons.append(detail["reason"])

        # Determine if the error is due to Gmail quota/rate limit
        if status in (403, 429) and any(
            r in reason for reason in reasons for r in rate_limit_reasons
        ):
            retry_after = None
            if retry_after_header:
                try:
                    retry_after = int(retry_after_header)
                except ValueError:
                    retry_after = None

            raise GmailQuotaExceededError(
                message="Gmail quota exceeded", retry_after=retry_after
            ) from http_error

        raise MailDeliveryError(f"Failed to send email: {http_error}") from http_error
