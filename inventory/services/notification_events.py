"""Turns bus events into user notifications.

Each event id is recorded once per consumer in the same commit as the
notifications it produced, so a redelivered event writes nothing twice.
"""

import logging
from typing import Any, Callable, Dict

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inventory.core.approval.request_types import readable_request_type
from inventory.core.config import get_settings
from inventory.db.models import NotificationType, ProcessedEvent
from inventory.messaging.events import (
    ApprovalRequestCancelled,
    ApprovalRequestCreated,
    ApprovalRequestProcessed,
    DomainEvent,
    parse_event,
)
from .approvals import STATUS_APPROVED, STATUS_REJECTED
from .notifications import NotificationService, render_notification
from .propagation import is_processed
from .realtime import NotificationHub, REFRESH_APPROVALS

logger = logging.getLogger(__name__)

NOTIFICATIONS_CONSUMER = "notification-queue"

# Routing key -> (notification type, template) for events every user sees
BROADCAST_EVENTS = {
    "product.created": (NotificationType.PRODUCT_CREATED, "product_created"),
    "product.updated": (NotificationType.PRODUCT_UPDATED, "product_updated"),
    "product.deleted": (NotificationType.PRODUCT_DELETED, "product_deleted"),
    "route.created": (NotificationType.ROUTE_CREATED, "route_created"),
    "route.completed": (NotificationType.ROUTE_COMPLETED, "route_completed"),
}

NOTIFICATION_ROUTING_KEYS = (
    ApprovalRequestCreated.routing_key,
    ApprovalRequestProcessed.routing_key,
    ApprovalRequestCancelled.routing_key,
    *BROADCAST_EVENTS,
)


class NotificationEventHandler:
    """Dispatches one event to the matching notification routine."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        hub: NotificationHub = None,
        settings=None,
        consumer: str = NOTIFICATIONS_CONSUMER,
    ):
        self.session_factory = session_factory
        self.consumer = consumer
        self.hub = hub
        self.settings = settings or get_settings()

    async def handle(self, routing_key: str, body: Dict[str, Any]) -> None:
        if routing_key not in NOTIFICATION_ROUTING_KEYS:
            logger.debug(f"Ignoring {routing_key} event")
            return

        event = parse_event(routing_key, body)
        db = self.session_factory()
        try:
            if is_processed(db, self.consumer, event.event_id):
                logger.info(f"Skipping already processed {routing_key} event {event.event_id}")
                return
            # Committed together with the first batch of notifications
            db.add(ProcessedEvent(consumer=self.consumer, event_id=event.event_id, routing_key=routing_key))

            service = NotificationService(db, self.hub)
            if isinstance(event, ApprovalRequestCreated):
                await self.on_request_created(service, event)
            elif isinstance(event, ApprovalRequestProcessed):
                await self.on_request_processed(service, event)
            elif isinstance(event, ApprovalRequestCancelled):
                await self.on_request_cancelled(service, event)
            else:
                await self.on_inventory_event(service, routing_key, event)
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info(f"Event {event.event_id} was processed concurrently")
        finally:
            db.close()

    async def on_request_created(self, service: NotificationService, event: ApprovalRequestCreated) -> None:
        admin_role = self.settings.admin_role_name
        content = render_notification(
            "approval_created",
            readable=readable_request_type(event.request_type),
            requested_by_name=event.requested_by_name,
        )
        await service.notify_role(
            admin_role,
            NotificationType.APPROVAL_REQUEST,
            content["title"],
            content["message"],
            {
                "approval_request_id": event.request_id,
                "request_type": event.request_type,
                "requested_by_name": event.requested_by_name,
            },
        )
        await service.broadcast_to_role(admin_role, REFRESH_APPROVALS, {"approval_request_id": event.request_id})

    async def on_request_processed(self, service: NotificationService, event: ApprovalRequestProcessed) -> None:
        if event.status == STATUS_APPROVED:
            key = "approval_approved"
        elif event.status == STATUS_REJECTED:
            key = "approval_rejected"
        else:
            key = "approval_failed"

        content = render_notification(
            key,
            readable=readable_request_type(event.request_type),
            processed_by_name=event.processed_by_name,
            reason=event.rejection_reason,
        )
        await service.notify_user(
            event.requested_by_id,
            NotificationType.APPROVAL_RESPONSE,
            content["title"],
            content["message"],
            {
                "approval_request_id": event.request_id,
                "request_type": event.request_type,
                "status": event.status,
            },
        )
        await service.broadcast_to_role(
            self.settings.admin_role_name, REFRESH_APPROVALS, {"approval_request_id": event.request_id}
        )

    async def on_request_cancelled(self, service: NotificationService, event: ApprovalRequestCancelled) -> None:
        service.delete_for_approval_request(event.request_id)
        await service.broadcast_to_role(
            self.settings.admin_role_name, REFRESH_APPROVALS, {"approval_request_id": event.request_id}
        )

    async def on_inventory_event(self, service: NotificationService, routing_key: str, event: DomainEvent) -> None:
        notification_type, template = BROADCAST_EVENTS[routing_key]
        context = event.model_dump()
        content = render_notification(template, **context)
        data = {key: context[key] for key in ("product_id", "route_id", "inventory_code") if key in context}
        await service.notify_all(notification_type, content["title"], content["message"], data)
