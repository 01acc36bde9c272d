"""Default role definitions.

1. Admin - everything, including reviewing requests
2. Manager - direct mutations, no reviewing
3. Operator - may only request mutations
4. Viewer - read-only
"""

from typing import Dict, List
from .permissions import Resource, Action, Permission, GATED_PERMISSIONS


ADMIN_PERMISSIONS = ["*"]

MANAGER_PERMISSIONS: List[str] = [
    *[str(p._replace(direct=True)) for p in GATED_PERMISSIONS],
    str(Permission(Resource.PRODUCT, Action.VIEW)),
    str(Permission(Resource.ROUTE, Action.VIEW)),
    str(Permission(Resource.ROUTE, Action.COMPLETE)),
    str(Permission(Resource.APPROVAL, Action.VIEW)),
]

OPERATOR_PERMISSIONS: List[str] = [
    *[str(p) for p in GATED_PERMISSIONS],
    str(Permission(Resource.PRODUCT, Action.VIEW)),
    str(Permission(Resource.ROUTE, Action.VIEW)),
]

VIEWER_PERMISSIONS: List[str] = [
    str(Permission(Resource.PRODUCT, Action.VIEW)),
    str(Permission(Resource.ROUTE, Action.VIEW)),
]

DEFAULT_ROLES: Dict[str, Dict] = {
    "admin": {"name": "Admin", "permissions": ADMIN_PERMISSIONS},
    "manager": {"name": "Manager", "permissions": MANAGER_PERMISSIONS},
    "operator": {"name": "Operator", "permissions": OPERATOR_PERMISSIONS},
    "viewer": {"name": "Viewer", "permissions": VIEWER_PERMISSIONS},
}
