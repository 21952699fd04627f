"""Branch, line of business and complaint lookup schemas."""

from datetime import datetime
from pydantic import BaseModel
from typing import Optional

from app.schemas.types import NameStr


class OrgUnitCreate(BaseModel):
    """Create payload shared by branches and lines of business."""

    name: NameStr
    description: Optional[str] = None


class OrgUnitUpdate(BaseModel):
    name: Optional[NameStr] = None
    description: Optional[str] = None


class OrgUnitResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    user_count: int = 0
    complaint_count: int = 0

    class Config:
        from_attributes = True


class LookupResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None

    class Config:
        from_attributes = True


class ComplaintTypeCreate(BaseModel):
    name: NameStr
    description: Optional[str] = None
