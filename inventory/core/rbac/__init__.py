"""Role-based access control: permission tokens, default roles and checks."""

from .permissions import Permission, Resource, Action, ALL_PERMISSIONS
from .checker import PermissionChecker, has_permission, require_permission

__all__ = [
    "Permission",
    "Resource",
    "Action",
    "ALL_PERMISSIONS",
    "PermissionChecker",
    "has_permission",
    "require_permission",
]
