class DeletionRequestError(Exception):
    """Base class for errors surfaced by the deletion request lifecycle."""


class ValidationError(DeletionRequestError):
    """Raised when a submission is missing an email address or a reason."""


class DuplicateActiveRequestError(DeletionRequestError):
    """Raised when the email already has an unconfirmed, unexpired request."""

    def __init__(self, email: str):
        super().__init__(
            "You already have a pending deletion request. Please check your email for the "
            "confirmation link, or wait for it to expire before submitting a new request."
        )
        self.email = email


class TokenError(DeletionRequestError):
    """Base class for confirmation outcomes other than a successful transition."""

    def __init__(self, message: str, token: str):
        super().__init__(message)
        self.token = token


class NotFoundError(TokenError):
    def __init__(self, token: str):
        super().__init__("This confirmation link is invalid or has already been used.", token)


class ExpiredError(TokenError):
    def __init__(self, token: str):
        super().__init__("This confirmation link has expired.", token)


class AlreadyConfirmedError(TokenError):
    def __init__(self, token: str):
        super().__init__("This confirmation link has already been used.", token)


class StorageError(DeletionRequestError):
    """Raised when the request store cannot read or write a record."""


class MailDeliveryError(Exception):
    """Raised when an outbound email could not be handed to the mail provider."""


class GmailQuotaExceededError(MailDeliveryError):
    """Raised when Gmail API returns a quota or rate limit error."""

    def __init__(self, message: str, retry_after: int | None = None):
        super().__init__(message)
        self.retry_after = retry_after
