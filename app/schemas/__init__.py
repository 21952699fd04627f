from app.schemas.auth import (
    UserCreate,
    UserUpdate,
    UserResponse,
    Token,
    TokenData,
    LoginRequest,
)
from app.schemas.complaint import (
    ComplaintCreate,
    ComplaintUpdate,
    ComplaintResponse,
    ComplaintListResponse,
    StatusChangeRequest,
    AssignRequest,
    ActionCreate,
    ActionResponse,
)
from app.schemas.notification import (
    NotificationResponse,
    NotificationListResponse,
    NotificationStats,
)
from app.schemas.organisation import (
    OrgUnitCreate,
    OrgUnitUpdate,
    OrgUnitResponse,
    LookupResponse,
    ComplaintTypeCreate,
)
from app.schemas.sla import SweepReportResponse, SweepRunResponse

__all__ = [
    "UserCreate",
    "UserUpdate",
    "UserResponse",
    "Token",
    "TokenData",
    "LoginRequest",
    "ComplaintCreate",
    "ComplaintUpdate",
    "ComplaintResponse",
    "ComplaintListResponse",
    "StatusChangeRequest",
    "AssignRequest",
    "ActionCreate",
    "ActionResponse",
    "NotificationResponse",
    "NotificationListResponse",
    "NotificationStats",
    "OrgUnitCreate",
    "OrgUnitUpdate",
    "OrgUnitResponse",
    "LookupResponse",
    "ComplaintTypeCreate",
    "SweepReportResponse",
    "SweepRunResponse",
]
