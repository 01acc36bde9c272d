"""Permission tokens for the inventory pipeline.

Permission string format: "resource.action" with an optional ".direct"
suffix for mutations.

  - product.create          may ask for a product to be created
  - product.create.direct   may create it without review
  - approval.process        may approve or reject requests

Wildcards: "product.*" covers every product token, "*" covers all.
"""

from enum import Enum
from typing import NamedTuple, Optional

DIRECT_SUFFIX = "direct"


class Resource(str, Enum):
    PRODUCT = "product"
    ROUTE = "route"
    APPROVAL = "approval"
    NOTIFICATION = "notification"


class Action(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    VIEW = "view"
    COMPLETE = "complete"
    PROCESS = "process"


class Permission(NamedTuple):
    resource: Resource
    action: Action
    direct: bool = False

    def __str__(self) -> str:
        base = f"{self.resource.value}.{self.action.value}"
        return f"{base}.{DIRECT_SUFFIX}" if self.direct else base

    @classmethod
    def from_string(cls, value: str) -> "Permission":
        """Parse "resource.action[.direct]"."""
        parts = value.split(".")
        direct = False
        if len(parts) == 3 and parts[2] == DIRECT_SUFFIX:
            direct = True
            parts = parts[:2]
        if len(parts) != 2:
            raise ValueError(f"Invalid permission format: {value}")
        return cls(Resource(parts[0]), Action(parts[1]), direct)


# Mutations that come in a request tier and a direct tier
GATED_PERMISSIONS: list[Permission] = [
    Permission(Resource.PRODUCT, Action.CREATE),
    Permission(Resource.PRODUCT, Action.UPDATE),
    Permission(Resource.PRODUCT, Action.DELETE),
    Permission(Resource.ROUTE, Action.CREATE),
    Permission(Resource.ROUTE, Action.UPDATE),
    Permission(Resource.ROUTE, Action.DELETE),
]

PLAIN_PERMISSIONS: list[Permission] = [
    Permission(Resource.PRODUCT, Action.VIEW),
    Permission(Resource.ROUTE, Action.VIEW),
    Permission(Resource.ROUTE, Action.COMPLETE),
    Permission(Resource.APPROVAL, Action.VIEW),
    Permission(Resource.APPROVAL, Action.PROCESS),
]


def _all_permissions() -> frozenset[str]:
    tokens = {str(p) for p in PLAIN_PERMISSIONS}
    for perm in GATED_PERMISSIONS:
        tokens.add(str(perm))
        tokens.add(str(perm._replace(direct=True)))
    return frozenset(tokens)


ALL_PERMISSIONS = _all_permissions()


def is_valid_permission(value: str) -> bool:
    return value in ALL_PERMISSIONS


def direct_variant(permission: str) -> Optional[str]:
    """``product.create`` -> ``product.create.direct`` for gated tokens."""
    if permission.endswith(f".{DIRECT_SUFFIX}"):
        return permission
    if permission in {str(p) for p in GATED_PERMISSIONS}:
        return f"{permission}.{DIRECT_SUFFIX}"
    return None
