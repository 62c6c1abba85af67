from sqlalchemy import Boolean, Column, DateTime, String, Text

from app.database import Base


class DeletionRequest(Base):
    __tablename__ = "deletion_requests"

    # UUID4 string handed out in the confirmation link
    token = Column(String(64), primary_key=True)

    # Request details
    email = Column(String, nullable=False, index=True)
    reason = Column(String, nullable=False)
    reason_text = Column(String, nullable=False)
    feedback = Column(Text, default="", nullable=False)

    # Tracking
    created_at = Column(DateTime(timezone=True), nullable=False)
    confirmed = Column(Boolean, default=False, nullable=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
