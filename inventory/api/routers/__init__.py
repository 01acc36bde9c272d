"""API routers."""

from . import approvals, health, notifications, products, realtime, routes

__all__ = ["approvals", "health", "notifications", "products", "realtime", "routes"]
