"""Complaint and its append-only audit trail."""

from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Uuid
from sqlalchemy.orm import relationship
import uuid

from app.core.clock import utcnow
from app.database import Base
from app.models.lookups import ComplaintStatus


class Complaint(Base):
    """Customer complaint routed by branch and line of business."""

    __tablename__ = "complaints"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    complaint_number = Column(String(20), unique=True, nullable=False, index=True)  # COMP<year><seq>

    # Customer details
    customer_name = Column(String(200), nullable=False)
    customer_id = Column(String(100), nullable=False)
    policy_number = Column(String(100), nullable=False)
    policy_type = Column(String(100), nullable=False, default="General")
    description = Column(Text, nullable=False)
    channel = Column(String(30), nullable=False, default="WEB")

    # Classification / routing
    type_id = Column(Integer, ForeignKey("complaint_types.id"), nullable=False)
    status_id = Column(Integer, ForeignKey("complaint_statuses.id"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False, index=True)
    line_of_business_id = Column(Integer, ForeignKey("lines_of_business.id"), nullable=False, index=True)

    # Ownership
    assigned_to_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # SLA
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, onupdate=utcnow)
    due_date = Column(DateTime, nullable=False, index=True)  # set once at creation
    resolved_at = Column(DateTime, nullable=True)

    status = relationship("ComplaintStatusRecord", lazy="selectin")
    type = relationship("ComplaintType", lazy="selectin")
    branch = relationship("Branch", lazy="selectin")
    line_of_business = relationship("LineOfBusiness", lazy="selectin")
    assigned_to = relationship("User", foreign_keys=[assigned_to_id], lazy="selectin")
    created_by = relationship("User", foreign_keys=[created_by_id], lazy="selectin")

    @property
    def current_status(self) -> ComplaintStatus | None:
        return self.status.status if self.status else None

    def __repr__(self):
        return f"<Complaint {self.complaint_number}>"


class ComplaintAction(Base):
    """Audit trail entry: who did what to a complaint."""

    __tablename__ = "complaint_actions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    complaint_id = Column(
        Uuid(as_uuid=True), ForeignKey("complaints.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    description = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User", lazy="selectin")

    def __repr__(self):
        return f"<ComplaintAction on {self.complaint_id}: {self.description[:30]}>"
