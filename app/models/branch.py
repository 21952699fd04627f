"""Organisational units a complaint is routed by: branch and line of business."""

from sqlalchemy import Column, Integer, String, Text, DateTime

from app.core.clock import utcnow
from app.database import Base


class Branch(Base):
    __tablename__ = "branches"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, onupdate=utcnow)

    def __repr__(self):
        return f"<Branch {self.name}>"


class LineOfBusiness(Base):
    __tablename__ = "lines_of_business"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, onupdate=utcnow)

    def __repr__(self):
        return f"<LineOfBusiness {self.name}>"
