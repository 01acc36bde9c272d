"""Kinds of mutation that can be deferred to a reviewer."""

from enum import Enum


class RequestType(str, Enum):
    PRODUCT_CREATE = "product.create"
    PRODUCT_UPDATE = "product.update"
    PRODUCT_DELETE = "product.delete"
    PRODUCT_TRANSFER = "product.transfer"
    ROUTE_UPDATE = "route.update"
    ROUTE_DELETE = "route.delete"

    @property
    def entity_type(self) -> str:
        return "Product" if self in PRODUCT_REQUESTS else "Route"

    @property
    def request_permission(self) -> str:
        # Transfers create a route, so they are governed by route.create
        if self is RequestType.PRODUCT_TRANSFER:
            return "route.create"
        return self.value

    @property
    def direct_permission(self) -> str:
        return f"{self.request_permission}.direct"

    @property
    def readable(self) -> str:
        """Human title, e.g. ``Product Create``."""
        return " ".join(part.capitalize() for part in self.value.split("."))


PRODUCT_REQUESTS = {
    RequestType.PRODUCT_CREATE,
    RequestType.PRODUCT_UPDATE,
    RequestType.PRODUCT_DELETE,
}


def readable_request_type(value: str) -> str:
    """Readable title for a stored request type, tolerating unknown values."""
    try:
        return RequestType(value).readable
    except ValueError:
        return value.replace(".", " ").title()
