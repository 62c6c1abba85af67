import enum
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from app.exceptions import (
    AlreadyConfirmedError,
    DuplicateActiveRequestError,
    ExpiredError,
    NotFoundError,
    ValidationError,
)
from app.schemas.request import DeletionRequestRecord, get_reason_text
from app.services.request_store import RequestStore

DEFAULT_EXPIRY_WINDOW = timedelta(hours=24)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_token() -> str:
    """Random UUID4; 122 bits of entropy make the confirmation link unguessable."""
    return str(uuid.uuid4())


class ConfirmStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ALREADY_CONFIRMED = "already_confirmed"


@dataclass
class ConfirmResult:
    """Outcome of a confirmation attempt."""

    status: ConfirmStatus
    token: str
    request: DeletionRequestRecord | None = None

    @property
    def confirmed(self) -> bool:
        return self.status == ConfirmStatus.CONFIRMED

    def raise_for_status(self) -> DeletionRequestRecord:
        """Return the confirmed record, or raise the matching TokenError"""
        if self.status == ConfirmStatus.NOT_FOUND:
            raise NotFoundError(self.token)
        if self.status == ConfirmStatus.EXPIRED:
            raise ExpiredError(self.token)
        if self.status == ConfirmStatus.ALREADY_CONFIRMED:
            raise AlreadyConfirmedError(self.token)
        return self.request


class DeletionRequestService:
    """Owns the lifecycle of token-backed deletion requests.

    A request is created unconfirmed, and either gets confirmed exactly once
    through its token or expires once ``expiry_window`` has elapsed since
    ``created_at``. Expired requests are reclaimed lazily when the same email
    submits again, when their link is used, or by ``purge_expired``.

    Storage failures propagate as ``StorageError``; nothing is retried here.
    """

    def __init__(
        self,
        store: RequestStore,
        expiry_window: timedelta = DEFAULT_EXPIRY_WINDOW,
        clock: Callable[[], datetime] = utc_now,
        token_factory: Callable[[], str] = generate_token,
    ):
        self.store = store
        self.expiry_window = expiry_window
        self.clock = clock
        self.token_factory = token_factory
        # Serializes check-then-write sequences (duplicate check + create, lookup + confirm)
        self._lock = threading.Lock()

    def is_expired(self, request: DeletionRequestRecord) -> bool:
        """Confirmed requests never expire"""
        if request.confirmed:
            return False
        return self.clock() - request.created_at > self.expiry_window

    def create_request(self, email: str, reason: str, feedback: str = "") -> str:
        """Persist a new unconfirmed request and return its token.

        Callers must have validated the input and checked
        ``has_active_request`` first; ``submit_request`` does both.
        """
        token = self.token_factory()
        request = DeletionRequestRecord(
            token=token,
            email=email,
            reason=reason,
            reason_text=get_reason_text(reason),
            feedback=feedback or "",
            created_at=self.clock(),
            confirmed=False,
        )
        self.store.put(token, request)
        return token

    def get_request(self, token: str) -> DeletionRequestRecord | None:
        """Get a request by token"""
        return self.store.get(token)

    def has_active_request(self, email: str) -> bool:
        """Check whether email has an unconfirmed, unexpired request.

        Expired unconfirmed requests for the email are deleted along the way.
        """
        for request in self.store.list_all():
            if request.email != email or request.confirmed:
                continue
            if self.is_expired(request):
                self.store.delete(request.token)
                continue
            return True
        return False

    def confirm_request(self, token: str) -> ConfirmResult:
        """Apply the confirmation transition for token.

        Not thread-safe on its own; ``confirm_token`` wraps it in the lock.
        """
        request = self.store.get(token)

        if request is None:
            return ConfirmResult(ConfirmStatus.NOT_FOUND, token)

        if self.is_expired(request):
            self.store.delete(token)
            return ConfirmResult(ConfirmStatus.EXPIRED, token)

        if request.confirmed:
            return ConfirmResult(ConfirmStatus.ALREADY_CONFIRMED, token, request)

        confirmed = request.model_copy(update={"confirmed": True, "confirmed_at": self.clock()})
        self.store.put(token, confirmed)
        return ConfirmResult(ConfirmStatus.CONFIRMED, token, confirmed)

    def delete_request(self, token: str) -> None:
        """Remove a request outright (cleanup after processing or a failed send)"""
        self.store.delete(token)

    def purge_expired(self) -> int:
        """Delete every expired unconfirmed request; returns how many were removed.

        The sweep runs in a worker process the lock does not reach, so each
        candidate is read again and only deleted while still unconfirmed.
        """
        purged = 0
        with self._lock:
            for candidate in self.store.list_all():
                if not self.is_expired(candidate):
                    continue
                current = self.store.get(candidate.token)
                if current is None or not self.is_expired(current):
                    continue
                if self.store.delete_unconfirmed(candidate.token):
                    purged += 1
        return purged

    def submit_request(self, email: str, reason: str, feedback: str = "") -> str:
        """Validate a submission and create the request if the email has none active.

        Raises:
            ValidationError: email lacks an "@" or reason is empty
            DuplicateActiveRequestError: an active request already exists
            StorageError: the store failed
        """
        if not email or "@" not in email:
            raise ValidationError("Please provide a valid email address.")
        if not reason:
            raise ValidationError("Please select a reason for deletion.")

        with self._lock:
            if self.has_active_request(email):
                raise DuplicateActiveRequestError(email)
            return self.create_request(email, reason, feedback)

    def confirm_token(self, token: str) -> ConfirmResult:
        """Confirm the request behind token; at most one caller ever sees CONFIRMED."""
        with self._lock:
            return self.confirm_request(token)
