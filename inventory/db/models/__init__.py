"""Database models for the inventory approval pipeline."""

from inventory.db.models.role import Role
from inventory.db.models.user import User
from inventory.db.models.catalog import Category, Department
from inventory.db.models.product import Product
from inventory.db.models.route import InventoryRoute, RouteType
from inventory.db.models.approval import ApprovalRequest, ApprovalHistory
from inventory.db.models.notification import Notification, NotificationType
from inventory.db.models.processed_event import ProcessedEvent

__all__ = [
    "Role",
    "User",
    "Category",
    "Department",
    "Product",
    "InventoryRoute",
    "RouteType",
    "ApprovalRequest",
    "ApprovalHistory",
    "Notification",
    "NotificationType",
    "ProcessedEvent",
]
