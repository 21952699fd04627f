"""Notification schemas."""

from datetime import datetime
from pydantic import BaseModel
from typing import Optional

from app.schemas.types import UUIDStr


class NotificationResponse(BaseModel):
    id: UUIDStr
    type: str  # COMPLAINT_CREATED, ASSIGNMENT, SLA_BREACH, ...
    title: str
    message: str
    complaint_id: Optional[UUIDStr] = None
    read: bool = False
    read_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationListResponse(BaseModel):
    items: list[NotificationResponse]
    total: int
    limit: int
    offset: int


class NotificationStats(BaseModel):
    total: int = 0
    unread: int = 0
