"""Application services: gated orchestrators, the action executor and notifications."""

from .approvals import ApprovalProcessor
from .executor import ActionExecutor
from .notifications import NotificationService
from .products import ProductCommands, ProductManagementService
from .routes import RouteCommands, RouteManagementService

__all__ = [
    "ApprovalProcessor",
    "ActionExecutor",
    "NotificationService",
    "ProductCommands",
    "ProductManagementService",
    "RouteCommands",
    "RouteManagementService",
]
