from datetime import datetime
from typing import Optional
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Text, LargeBinary
from sqlalchemy.orm import relationship

from inventory.db.base import Base

MIN_INVENTORY_CODE = 1
MAX_INVENTORY_CODE = 9999


class Product(Base):
    """
    A tracked inventory item.

    Department and worker change through transfers; everything else through
    create/update. ``approval_request_id`` is set when the product was
    created by replaying an approved request, which makes that replay
    idempotent.
    """
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    inventory_code = Column(Integer, unique=True, nullable=False, index=True)
    model = Column(String(255), nullable=True)
    vendor = Column(String(255), nullable=True)
    worker = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)

    is_working = Column(Boolean, default=True)
    is_active = Column(Boolean, default=True)
    is_new_item = Column(Boolean, default=False)

    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)

    image_data = Column(LargeBinary, nullable=True)
    image_file_name = Column(String(255), nullable=True)

    approval_request_id = Column(Integer, nullable=True, unique=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    category = relationship("Category")
    department = relationship("Department")

    def apply_transfer(self, department_id: int, worker: Optional[str]) -> bool:
        """Move the product; returns False when it is already there."""
        if self.department_id == department_id and self.worker == worker:
            return False
        self.department_id = department_id
        self.worker = worker
        self.updated_at = datetime.utcnow()
        return True

    def __repr__(self) -> str:
        return f"<Product {self.inventory_code} {self.vendor} {self.model}>"
