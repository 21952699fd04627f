from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from app.core.clock import utcnow
from app.database import Base


class User(Base):
    """Staff user: ADMIN or AGENT. Agents with branch + line of business are assignment candidates."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    name = Column(String(200), nullable=False)
    role = Column(String(20), nullable=False, default="AGENT", index=True)  # ADMIN, AGENT
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=True, index=True)
    line_of_business_id = Column(Integer, ForeignKey("lines_of_business.id"), nullable=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, onupdate=utcnow)

    branch = relationship("Branch", lazy="selectin")
    line_of_business = relationship("LineOfBusiness", lazy="selectin")

    def __repr__(self):
        return f"<User {self.email} ({self.role})>"
