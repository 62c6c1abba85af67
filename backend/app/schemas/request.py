from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

# Reason codes offered by the deletion form and their display text
REASON_TEXTS = {
    "no-longer-needed": "I no longer need this account",
    "privacy-concerns": "Privacy concerns",
    "too-many-emails": "Receiving too many emails",
    "switching-service": "Switching to a different service",
    "difficult-to-use": "The service is difficult to use",
    "other": "Other reason",
}


def get_reason_text(reason: str) -> str:
    """Resolve a reason code to its display text; unknown codes are returned as-is."""
    return REASON_TEXTS.get(reason, reason)


class DeletionRequestCreate(BaseModel):
    """Raw form/JSON submission. Field checks happen in the service so the
    caller gets the same messages for both content types."""

    email: str = ""
    reason: str = ""
    feedback: str = ""

    @field_validator("email", "reason", "feedback", mode="before")
    @classmethod
    def coerce_to_str(cls, v) -> str:
        if v is None:
            return ""
        return v if isinstance(v, str) else str(v)


class DeletionRequestRecord(BaseModel):
    """A stored deletion request.

    Serialized with camelCase keys (``reasonText``, ``createdAt``,
    ``confirmedAt``) so record files stay readable by existing tooling.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    token: str
    email: str
    reason: str
    reason_text: str
    feedback: str = ""
    created_at: datetime
    confirmed: bool = False
    confirmed_at: datetime | None = None

    @field_validator("created_at", "confirmed_at")
    @classmethod
    def ensure_utc(cls, v: datetime | None) -> datetime | None:
        # SQLite drops tzinfo; every stored timestamp is UTC
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class SubmissionResponse(BaseModel):
    success: bool
    message: str


class ErrorResponse(BaseModel):
    error: str
