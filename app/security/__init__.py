# Security module
from app.security.rbac import Permission, has_permission, require_permission

__all__ = [
    "Permission",
    "has_permission",
    "require_permission",
]
