from app.models.branch import Branch, LineOfBusiness
from app.models.lookups import ComplaintStatus, ComplaintStatusRecord, ComplaintType
from app.models.user import User
from app.models.complaint import Complaint, ComplaintAction
from app.models.notification import Notification, NotificationType

__all__ = [
    "Branch",
    "LineOfBusiness",
    "ComplaintStatus",
    "ComplaintStatusRecord",
    "ComplaintType",
    "User",
    "Complaint",
    "ComplaintAction",
    "Notification",
    "NotificationType",
]
