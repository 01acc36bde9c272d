from datetime import datetime
from enum import Enum
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Text, LargeBinary

from inventory.db.base import Base


class RouteType(str, Enum):
    NEW = "new"
    EXISTING = "existing"
    TRANSFER = "transfer"
    REMOVAL = "removal"
    UPDATE = "update"


class InventoryRoute(Base):
    """
    A movement of a product between departments.

    The product fields are a snapshot taken when the route was created so
    the route stays readable after the product changes. Completing a
    route is what actually moves the product (via ``product.transferred``).
    """
    __tablename__ = "inventory_routes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    route_type = Column(String(20), nullable=False, default=RouteType.TRANSFER.value)

    # Product snapshot
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    inventory_code = Column(Integer, nullable=False)
    model = Column(String(255), nullable=True)
    vendor = Column(String(255), nullable=True)
    category_name = Column(String(255), nullable=True)
    is_working = Column(Boolean, default=True)

    from_department_id = Column(Integer, nullable=True)
    from_department_name = Column(String(255), nullable=True)
    from_worker = Column(String(255), nullable=True)
    to_department_id = Column(Integer, nullable=False)
    to_department_name = Column(String(255), nullable=False)
    to_worker = Column(String(255), nullable=True)

    notes = Column(Text, nullable=True)
    image_data = Column(LargeBinary, nullable=True)
    image_file_name = Column(String(255), nullable=True)

    is_completed = Column(Boolean, nullable=False, default=False, index=True)
    completed_at = Column(DateTime, nullable=True)

    approval_request_id = Column(Integer, nullable=True, unique=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<InventoryRoute {self.id} {self.inventory_code} -> {self.to_department_name}>"
