"""Domain events published on the ``inventory-events`` exchange.

Each event is an immutable snapshot carrying everything a consumer needs,
so no consumer has to call back into the publishing service. The routing
key of an event is ``<entity>.<verb>``.
"""

import uuid
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field


class DomainEvent(BaseModel):
    routing_key: ClassVar[str] = ""

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    occurred_at: datetime = Field(default_factory=datetime.utcnow)

    def to_message(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


# Approval lifecycle

class ApprovalRequestCreated(DomainEvent):
    routing_key: ClassVar[str] = "approval.request.created"

    request_id: int
    request_type: str
    requested_by_id: int
    requested_by_name: str
    created_at: datetime


class ApprovalRequestProcessed(DomainEvent):
    routing_key: ClassVar[str] = "approval.request.processed"

    request_id: int
    request_type: str
    status: str  # Approved, Rejected or Failed
    processed_by_id: int
    processed_by_name: str
    requested_by_id: int
    rejection_reason: Optional[str] = None


class ApprovalRequestCancelled(DomainEvent):
    routing_key: ClassVar[str] = "approval.request.cancelled"

    request_id: int
    request_type: str
    requested_by_id: int
    cancelled_at: datetime


# Products

class ProductCreated(DomainEvent):
    routing_key: ClassVar[str] = "product.created"

    product_id: int
    inventory_code: int
    model: Optional[str] = None
    vendor: Optional[str] = None
    category_name: Optional[str] = None
    department_id: int
    department_name: Optional[str] = None
    worker: Optional[str] = None


class ProductUpdated(DomainEvent):
    routing_key: ClassVar[str] = "product.updated"

    product_id: int
    inventory_code: int
    changes: List[str] = Field(default_factory=list)


class ProductDeleted(DomainEvent):
    routing_key: ClassVar[str] = "product.deleted"

    product_id: int
    inventory_code: int
    model: Optional[str] = None
    vendor: Optional[str] = None


class ProductTransferred(DomainEvent):
    routing_key: ClassVar[str] = "product.transferred"

    product_id: int
    to_department_id: int
    to_worker: Optional[str] = None
    image_data: Optional[str] = None  # base64
    image_file_name: Optional[str] = None
    transferred_at: datetime


# Routes

class RouteCreated(DomainEvent):
    routing_key: ClassVar[str] = "route.created"

    route_id: int
    product_id: Optional[int] = None
    inventory_code: int
    from_department_name: Optional[str] = None
    to_department_name: str
    to_worker: Optional[str] = None


class RouteCompleted(DomainEvent):
    routing_key: ClassVar[str] = "route.completed"

    route_id: int
    product_id: Optional[int] = None
    inventory_code: int
    model: Optional[str] = None
    vendor: Optional[str] = None
    category_name: Optional[str] = None
    from_department_id: Optional[int] = None
    from_department_name: Optional[str] = None
    from_worker: Optional[str] = None
    to_department_id: int
    to_department_name: str
    to_worker: Optional[str] = None
    notes: Optional[str] = None
    completed_at: datetime


EVENT_TYPES: Dict[str, Type[DomainEvent]] = {
    cls.routing_key: cls
    for cls in (
        ApprovalRequestCreated,
        ApprovalRequestProcessed,
        ApprovalRequestCancelled,
        ProductCreated,
        ProductUpdated,
        ProductDeleted,
        ProductTransferred,
        RouteCreated,
        RouteCompleted,
    )
}


def parse_event(routing_key: str, body: Dict[str, Any]) -> DomainEvent:
    """Build the event model registered for ``routing_key``.

    Raises:
        KeyError: No event type is registered for the routing key
        pydantic.ValidationError: The body does not match the event schema
    """
    return EVENT_TYPES[routing_key].model_validate(body)
