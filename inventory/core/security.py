"""Bearer tokens.

User tokens are issued elsewhere; this module only needs to read them,
plus mint and verify the short-lived internal credential the executor
presents when it replays an approved action.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from jose import JWTError, jwt

from inventory.core.config import get_settings

settings = get_settings()

ACCESS_SCOPE = "access"
INTERNAL_SCOPE = "internal"


@dataclass
class InternalCaller:
    """Identity carried by an internal replay credential."""
    user_id: int
    user_name: str
    approval_request_id: Optional[int] = None
    permissions: list[str] = field(default_factory=list)


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """Create a user JWT (used by tooling and tests)."""
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode = {"sub": str(user_id), "exp": expire, "scope": ACCESS_SCOPE}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_token(token: str) -> Optional[int]:
    """Decode a user JWT. Returns the user id, or None if invalid."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
    if payload.get("scope") != ACCESS_SCOPE or payload.get("sub") is None:
        return None
    try:
        return int(payload["sub"])
    except (TypeError, ValueError):
        return None


def create_internal_token(
    user_id: int,
    user_name: str,
    *,
    approval_request_id: Optional[int] = None,
    permissions: Optional[list[str]] = None,
) -> str:
    """Mint the credential used to replay an approved action as its approver."""
    expire = datetime.utcnow() + timedelta(minutes=settings.internal_token_expire_minutes)
    to_encode = {
        "sub": str(user_id),
        "name": user_name,
        "exp": expire,
        "scope": INTERNAL_SCOPE,
        "approval_request_id": approval_request_id,
        "permissions": permissions or [],
    }
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_internal_token(token: str) -> Optional[InternalCaller]:
    """Verify an internal credential. Ordinary user tokens are rejected."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
    if payload.get("scope") != INTERNAL_SCOPE:
        return None
    try:
        return InternalCaller(
            user_id=int(payload["sub"]),
            user_name=payload.get("name") or "",
            approval_request_id=payload.get("approval_request_id"),
            permissions=list(payload.get("permissions") or []),
        )
    except (KeyError, TypeError, ValueError):
        return None
