"""Complaint schemas for request/response validation."""

from datetime import datetime
from pydantic import BaseModel, Field
from typing import Optional

from app.models.lookups import ComplaintStatus
from app.schemas.types import UUIDStr


class ComplaintCreate(BaseModel):
    """Schema for creating a complaint."""

    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_id: str = Field(..., min_length=1, max_length=100)
    policy_number: str = Field(..., min_length=1, max_length=100)
    policy_type: str = Field("General", max_length=100)
    description: str = Field(..., min_length=1)
    channel: str = Field("WEB", max_length=30)
    type_id: int
    branch_id: int
    line_of_business_id: int


class ComplaintUpdate(BaseModel):
    """Field edit. due_date and created_at are never editable."""

    customer_name: Optional[str] = Field(None, min_length=1, max_length=200)
    customer_id: Optional[str] = Field(None, min_length=1, max_length=100)
    policy_number: Optional[str] = Field(None, min_length=1, max_length=100)
    policy_type: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, min_length=1)
    channel: Optional[str] = Field(None, max_length=30)
    type_id: Optional[int] = None
    branch_id: Optional[int] = None
    line_of_business_id: Optional[int] = None


class StatusChangeRequest(BaseModel):
    status: ComplaintStatus


class AssignRequest(BaseModel):
    """Omit assigned_to_id for automatic (least-loaded) assignment."""

    assigned_to_id: Optional[int] = None


class ActionCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=5000)


class UserSummary(BaseModel):
    id: int
    name: str
    email: str


class ComplaintResponse(BaseModel):
    """Schema for complaint response."""

    id: UUIDStr
    complaint_number: str
    customer_name: str
    customer_id: str
    policy_number: str
    policy_type: str
    description: str
    channel: str
    status: Optional[str] = None
    type_id: int
    type_name: Optional[str] = None
    branch_id: int
    branch_name: Optional[str] = None
    line_of_business_id: int
    line_of_business_name: Optional[str] = None
    assigned_to: Optional[UserSummary] = None
    created_by: Optional[UserSummary] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    due_date: datetime
    resolved_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ComplaintListResponse(BaseModel):
    """Paginated complaint list response."""

    items: list[ComplaintResponse]
    total: int
    page: int
    page_size: int


class ActionResponse(BaseModel):
    id: UUIDStr
    complaint_id: UUIDStr
    user_id: int
    user_name: Optional[str] = None
    description: str
    created_at: datetime
