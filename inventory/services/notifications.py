"""Notification fan-out and inbox.

Handles:
- Persisting one notification per recipient, then pushing it live
- Role and broadcast audiences, resolved through the user directory
- Replay of unread notifications to a reconnecting session
- Inbox queries and read tracking
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from jinja2 import Environment, StrictUndefined
from sqlalchemy.orm import Session
from sqlalchemy import and_

from inventory.core.config import get_settings
from inventory.core.exceptions import InsufficientPermissionError, NotFoundError
from inventory.db.models import Notification, NotificationType
from .directory import UserDirectory
from .realtime import (
    NotificationHub,
    PENDING_NOTIFICATION,
    PENDING_NOTIFICATIONS_COMPLETE,
    RECEIVE_NOTIFICATION,
)

logger = logging.getLogger(__name__)

_templates = Environment(undefined=StrictUndefined, autoescape=False)

# Title and message templates per notification kind
NOTIFICATION_TEMPLATES = {
    "approval_created": {
        "title": "New {{ readable }} Request",
        "message": "{{ requested_by_name }} submitted a {{ readable | lower }} request that needs your review.",
    },
    "approval_approved": {
        "title": "Request Approved",
        "message": "Your {{ readable | lower }} request was approved by {{ processed_by_name }}.",
    },
    "approval_rejected": {
        "title": "Request Rejected",
        "message": (
            "Your {{ readable | lower }} request was rejected by {{ processed_by_name }}."
            "{% if reason %} Reason: {{ reason }}{% endif %}"
        ),
    },
    "approval_failed": {
        "title": "Request Failed",
        "message": (
            "Your {{ readable | lower }} request was approved but failed to execute."
            "{% if reason %} Error: {{ reason }}{% endif %}"
        ),
    },
    "product_created": {
        "title": "Product Added",
        "message": "{{ vendor or '' }} {{ model or '' }} ({{ inventory_code }}) was added to {{ department_name or 'inventory' }}.",
    },
    "product_updated": {
        "title": "Product Updated",
        "message": "Product {{ inventory_code }} was updated{% if changes %}: {{ changes | join(', ') }}{% endif %}.",
    },
    "product_deleted": {
        "title": "Product Removed",
        "message": "{{ vendor or '' }} {{ model or '' }} ({{ inventory_code }}) was removed from inventory.",
    },
    "route_created": {
        "title": "Transfer Started",
        "message": "Product {{ inventory_code }} is being transferred from {{ from_department_name or 'unassigned' }} to {{ to_department_name }}.",
    },
    "route_completed": {
        "title": "Transfer Completed",
        "message": "Product {{ inventory_code }} now belongs to {{ to_department_name }}{% if to_worker %} ({{ to_worker }}){% endif %}.",
    },
}


def render_notification(key: str, **context: Any) -> Dict[str, str]:
    """Render the title and message for a notification kind."""
    template = NOTIFICATION_TEMPLATES[key]
    return {
        "title": _templates.from_string(template["title"]).render(**context),
        "message": " ".join(_templates.from_string(template["message"]).render(**context).split()),
    }


def notification_to_dict(notification: Notification) -> Dict[str, Any]:
    return {
        "id": notification.id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "data": notification.data or {},
        "is_read": notification.is_read,
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
    }


class NotificationService:
    """
    Persists notifications and pushes them to connected sessions.

    Pushing is best effort: a notification that could not be pushed is
    still in the inbox and is replayed on the next connect.
    """

    def __init__(
        self,
        db: Session,
        hub: Optional[NotificationHub] = None,
        directory: Optional[UserDirectory] = None,
    ):
        self.db = db
        self.hub = hub
        self.directory = directory or UserDirectory(db)
        self.settings = get_settings()

    # Fan-out

    async def notify_user(
        self,
        user_id: int,
        type: NotificationType,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        notifications = await self.notify_users([user_id], type, title, message, data)
        return notifications[0]

    async def notify_users(
        self,
        user_ids: Iterable[int],
        type: NotificationType,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> List[Notification]:
        notifications = [
            Notification(
                user_id=user_id,
                type=type.value,
                title=title,
                message=message,
                data=data or {},
                approval_request_id=(data or {}).get("approval_request_id"),
            )
            for user_id in user_ids
        ]
        if not notifications:
            return []

        self.db.add_all(notifications)
        self.db.commit()

        for notification in notifications:
            await self._push(notification)
        return notifications

    async def notify_role(
        self,
        role_name: str,
        type: NotificationType,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> List[Notification]:
        user_ids = self.directory.get_user_ids_by_role(role_name)
        if not user_ids:
            logger.warning(f"No users hold role {role_name}; notification '{title}' not delivered")
        return await self.notify_users(user_ids, type, title, message, data)

    async def notify_all(
        self,
        type: NotificationType,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> List[Notification]:
        return await self.notify_users(self.directory.get_all_user_ids(), type, title, message, data)

    async def broadcast_to_role(self, role_name: str, event: str, data: Dict[str, Any]) -> int:
        """Push a non-persisted signal (e.g. refresh a list) to a role group."""
        if not self.hub:
            return 0
        try:
            return await self.hub.send_to_role(role_name, event, data)
        except Exception:
            logger.exception(f"Failed to push {event} to role {role_name}")
            return 0

    async def _push(self, notification: Notification) -> None:
        if not self.hub:
            return
        try:
            await self.hub.send_to_user(
                notification.user_id,
                RECEIVE_NOTIFICATION,
                notification_to_dict(notification),
            )
        except Exception:
            logger.exception(f"Failed to push notification {notification.id} to user {notification.user_id}")

    # Replay

    def pending_for_user(self, user_id: int, limit: Optional[int] = None) -> List[Notification]:
        """Unread notifications, oldest first."""
        return self.db.query(Notification).filter(
            and_(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
        ).order_by(
            Notification.created_at.asc(), Notification.id.asc()
        ).limit(limit or self.settings.notification_replay_limit).all()

    async def replay_pending(self, connection: Any, user_id: int) -> int:
        """Send unread notifications to one connection, spaced out, oldest first."""
        pending = self.pending_for_user(user_id)
        for index, notification in enumerate(pending):
            if index:
                await asyncio.sleep(self.settings.notification_replay_interval)
            await connection.send_json({
                "event": PENDING_NOTIFICATION,
                "data": notification_to_dict(notification),
            })
        await connection.send_json({
            "event": PENDING_NOTIFICATIONS_COMPLETE,
            "data": {"count": len(pending)},
        })
        if pending:
            logger.info(f"Replayed {len(pending)} pending notifications to user {user_id}")
        return len(pending)

    # Inbox

    def list_for_user(
        self,
        user_id: int,
        *,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Notification]:
        query = self.db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read == False)  # noqa: E712
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(offset).limit(limit).all()

    def recent_for_user(self, user_id: int, count: Optional[int] = None) -> List[Notification]:
        return self.list_for_user(user_id, limit=count or self.settings.recent_notifications_count)

    def unread_count(self, user_id: int) -> int:
        return self.db.query(Notification).filter(
            and_(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
        ).count()

    def mark_as_read(self, notification_id: int, user_id: int) -> Notification:
        notification = self.db.get(Notification, notification_id)
        if not notification:
            raise NotFoundError("Notification", notification_id)
        if notification.user_id != user_id:
            raise InsufficientPermissionError("ownership of the notification")
        notification.mark_as_read()
        self.db.commit()
        return notification

    def mark_all_as_read(self, user_id: int) -> int:
        unread = self.db.query(Notification).filter(
            and_(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
        ).all()
        for notification in unread:
            notification.mark_as_read()
        self.db.commit()
        return len(unread)

    def delete_for_approval_request(self, approval_request_id: int) -> int:
        """Remove notifications that refer to a withdrawn approval request."""
        removed = self.db.query(Notification).filter(
            Notification.approval_request_id == approval_request_id
        ).delete(synchronize_session=False)
        self.db.commit()
        if removed:
            logger.info(f"Removed {removed} notifications for cancelled approval request {approval_request_id}")
        return removed
