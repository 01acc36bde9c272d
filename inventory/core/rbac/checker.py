"""Permission checking utilities.

The checker only tests set membership against tokens supplied by the
caller's role; it never resolves roles itself.
"""

from functools import wraps
from typing import Callable, Union, List

from fastapi import HTTPException, status

from .permissions import Permission

PermissionLike = Union[str, Permission]


class PermissionChecker:
    """Checks a fixed set of permission tokens."""

    def __init__(self, user_permissions: list[str]):
        self.permissions = set(user_permissions)

    def has_permission(self, permission: PermissionLike) -> bool:
        perm_str = str(permission)

        if perm_str in self.permissions or "*" in self.permissions:
            return True

        # "product.*" covers product.create and product.create.direct
        resource = perm_str.split(".")[0]
        return f"{resource}.*" in self.permissions

    def has_any_permission(self, permissions: List[PermissionLike]) -> bool:
        return any(self.has_permission(p) for p in permissions)

    def has_all_permissions(self, permissions: List[PermissionLike]) -> bool:
        return all(self.has_permission(p) for p in permissions)

    def has_direct(self, request_type) -> bool:
        """May the caller perform this kind of mutation without review?"""
        return self.has_permission(request_type.direct_permission)

    def has_request(self, request_type) -> bool:
        """May the caller ask for this kind of mutation?"""
        return self.has_permission(request_type.request_permission)


def has_permission(user, permission: PermissionLike) -> bool:
    """
    Check if a user has a specific permission.

    Args:
        user: User model instance with role relationship
        permission: Permission string or Permission object

    Returns:
        True if user has the permission
    """
    if not user or not user.role:
        return False
    return PermissionChecker(user.role.permissions or []).has_permission(permission)


def require_permission(*permissions: PermissionLike, require_all: bool = False):
    """
    Decorator factory for FastAPI endpoints requiring specific permissions.

    Usage:
        @router.get("/products")
        @require_permission("product.view")
        async def list_products(current_user: User = Depends(get_current_user)):
            ...
    """
    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            current_user = kwargs.get("current_user")
            if not current_user:
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Authentication required"
                )

            if not current_user.role:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="User has no assigned role"
                )

            checker = PermissionChecker(current_user.role.permissions or [])
            perm_strs = [str(p) for p in permissions]

            if require_all:
                has_access = checker.has_all_permissions(perm_strs)
            else:
                has_access = checker.has_any_permission(perm_strs)

            if not has_access:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Insufficient permissions. Required: {', '.join(perm_strs)}"
                )

            return await func(*args, **kwargs)

        return wrapper
    return decorator
