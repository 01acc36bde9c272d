"""Notification inbox API endpoints."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from inventory.api.deps import get_current_user, get_db
from inventory.db.models import User
from inventory.services.notifications import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])


# Schemas
class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    message: str
    data: Optional[Dict[str, Any]]
    is_read: bool
    created_at: datetime
    read_at: Optional[datetime]

    class Config:
        from_attributes = True


class UnreadCountResponse(BaseModel):
    count: int


class MarkAllReadResponse(BaseModel):
    marked: int


# Endpoints
@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    unread_only: bool = False,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
):
    """The current user's notifications, newest first."""
    notifications = NotificationService(db).list_for_user(
        current_user.id,
        unread_only=unread_only,
        limit=per_page,
        offset=(page - 1) * per_page,
    )
    return [NotificationResponse.model_validate(n) for n in notifications]


@router.get("/recent", response_model=List[NotificationResponse])
async def recent_notifications(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    count: Optional[int] = Query(None, ge=1, le=50),
):
    notifications = NotificationService(db).recent_for_user(current_user.id, count)
    return [NotificationResponse.model_validate(n) for n in notifications]


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return UnreadCountResponse(count=NotificationService(db).unread_count(current_user.id))


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return MarkAllReadResponse(marked=NotificationService(db).mark_all_as_read(current_user.id))


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Mark one notification read. Marking it twice is harmless."""
    notification = NotificationService(db).mark_as_read(notification_id, current_user.id)
    return NotificationResponse.model_validate(notification)
