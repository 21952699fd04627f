"""Notification model for in-app notifications.

Rows double as the SLA sweeps' idempotence ledger: a sweep skips a complaint
that already has a notification of its type inside the look-back window.
"""

from sqlalchemy import Column, String, DateTime, Text, Integer, Boolean, ForeignKey, Index, Uuid
import uuid

from app.core.clock import utcnow
from app.database import Base


class NotificationType:
    COMPLAINT_CREATED = "COMPLAINT_CREATED"
    ASSIGNMENT = "ASSIGNMENT"
    ASSIGNMENT_NEEDED = "ASSIGNMENT_NEEDED"
    SLA_REMINDER_1H = "SLA_REMINDER_1H"
    SLA_REMINDER_2H = "SLA_REMINDER_2H"
    SLA_BREACH = "SLA_BREACH"
    SLA_BREACH_SUMMARY = "SLA_BREACH_SUMMARY"


class Notification(Base):
    """In-app notification for users."""

    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_complaint_type_created", "complaint_id", "type", "created_at"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)

    # Target user
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    complaint_id = Column(
        Uuid(as_uuid=True), ForeignKey("complaints.id", ondelete="CASCADE"), nullable=True, index=True
    )

    # Notification content
    type = Column(String(50), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    # Status
    read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    def __repr__(self):
        return f"<Notification {self.type}: {self.title[:30]}>"
