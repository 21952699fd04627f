"""
Lookup tables: complaint statuses and complaint types.

Statuses are persisted as rows (so the admin UI can describe them) but business
logic only ever works with the closed ComplaintStatus enum. Translation happens
here, at the storage boundary.
"""

from enum import Enum
import logging

from sqlalchemy import Column, Integer, String, Text, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import Base

logger = logging.getLogger(__name__)


class ComplaintStatus(str, Enum):
    """Complaint lifecycle states."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


# Statuses that count towards an agent's workload
ACTIVE_STATUSES = (ComplaintStatus.PENDING, ComplaintStatus.IN_PROGRESS)

STATUS_DESCRIPTIONS = {
    ComplaintStatus.PENDING: "Complaint is pending review",
    ComplaintStatus.IN_PROGRESS: "Complaint is being worked on",
    ComplaintStatus.RESOLVED: "Complaint has been resolved",
    ComplaintStatus.CLOSED: "Complaint is closed",
}


class ComplaintStatusRecord(Base):
    """Persisted status row; name is always a ComplaintStatus value."""

    __tablename__ = "complaint_statuses"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(30), unique=True, nullable=False)
    description = Column(Text, nullable=True)

    @property
    def status(self) -> ComplaintStatus:
        return ComplaintStatus(self.name)

    def __repr__(self):
        return f"<ComplaintStatusRecord {self.name}>"


class ComplaintType(Base):
    __tablename__ = "complaint_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)

    def __repr__(self):
        return f"<ComplaintType {self.name}>"


def status_names(statuses) -> list[str]:
    """Enum members to the names stored in complaint_statuses.name."""
    return [ComplaintStatus(s).value for s in statuses]


async def get_status_record(db: AsyncSession, status: ComplaintStatus) -> ComplaintStatusRecord | None:
    result = await db.execute(
        select(ComplaintStatusRecord).where(ComplaintStatusRecord.name == status.value)
    )
    return result.scalar_one_or_none()


async def seed_lookups(db: AsyncSession) -> int:
    """Create any missing status rows. Returns the number created."""
    result = await db.execute(select(ComplaintStatusRecord.name))
    existing = set(result.scalars().all())

    created = 0
    for status in ComplaintStatus:
        if status.value not in existing:
            db.add(ComplaintStatusRecord(name=status.value, description=STATUS_DESCRIPTIONS[status]))
            created += 1

    if created:
        await db.commit()
        logger.info(f"Seeded {created} complaint statuses")
    return created
