"""
Role-Based Access Control (RBAC) Module

Two roles: ADMIN manages everything; AGENT works the complaints assigned to them.
"""

from enum import Enum
from typing import Set
from fastapi import HTTPException, status
import logging

from app.api.deps import CurrentUser
from app.models.user import User

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """User roles."""
    ADMIN = "ADMIN"
    AGENT = "AGENT"


class Permission(str, Enum):
    """Fine-grained permissions."""
    VIEW_ALL_COMPLAINTS = "view_all_complaints"
    CREATE_COMPLAINTS = "create_complaints"
    ASSIGN_COMPLAINTS = "assign_complaints"
    MANAGE_USERS = "manage_users"
    MANAGE_ORGANISATION = "manage_organisation"
    RUN_SLA_CHECKS = "run_sla_checks"


# Role-to-permissions mapping
ROLE_PERMISSIONS: dict[Role, Set[Permission]] = {
    Role.AGENT: {
        Permission.CREATE_COMPLAINTS,
    },
    Role.ADMIN: set(Permission),  # All permissions
}


def get_user_role(user: User) -> Role:
    """Role from the stored role column; unknown values degrade to AGENT."""
    try:
        return Role(getattr(user, "role", None))
    except ValueError:
        return Role.AGENT


def get_user_permissions(user: User) -> Set[Permission]:
    """Get all permissions for a user based on their role."""
    return ROLE_PERMISSIONS.get(get_user_role(user), set())


def has_permission(user: User, permission: Permission) -> bool:
    """Check if user has a specific permission."""
    return permission in get_user_permissions(user)


def can_access_complaint(user: User, complaint) -> bool:
    """Admins see everything; others only complaints they created or own."""
    if has_permission(user, Permission.VIEW_ALL_COMPLAINTS):
        return True
    return user.id in (complaint.created_by_id, complaint.assigned_to_id)


def require_permission(permission: Permission):
    """
    Dependency factory for requiring a specific permission. Returns the user.

    Usage:
        UserManager = Annotated[User, Depends(require_permission(Permission.MANAGE_USERS))]

        @router.post("")
        async def create_user(user_data: UserCreate, admin: UserManager):
            ...
    """
    def checker(current_user: CurrentUser) -> User:
        if not has_permission(current_user, permission):
            logger.warning(
                f"Permission denied: user {current_user.id} lacks {permission.value}",
                extra={"user_id": current_user.id, "permission": permission.value}
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: requires {permission.value}"
            )
        return current_user
    return checker

