"""Product mutations and their approval-gated entry points.

``ProductCommands`` performs the mutations and publishes their events.
Both the direct path (``ProductManagementService``) and the internal
replay endpoints call it, so an approved request does exactly what a
direct caller would have done.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from inventory.core.approval import ActionGate, Actor, ApprovalService, RequestType
from inventory.core.codec import Attachment
from inventory.core.exceptions import DuplicateEntityError, NotFoundError
from inventory.db.models import Category, Department, Product
from inventory.messaging.events import ProductCreated, ProductDeleted, ProductUpdated
from .schemas import ProductData, ProductUpdate

logger = logging.getLogger(__name__)


class ProductCommands:
    """Mutations on products. Each commits, then publishes its event."""

    def __init__(self, db: Session, publisher):
        self.db = db
        self.publisher = publisher

    def get(self, product_id: int) -> Product:
        product = self.db.get(Product, product_id)
        if not product:
            raise NotFoundError("Product", product_id)
        return product

    def ensure_code_available(self, inventory_code: int, *, exclude_id: Optional[int] = None) -> None:
        query = self.db.query(Product).filter(Product.inventory_code == inventory_code)
        if exclude_id is not None:
            query = query.filter(Product.id != exclude_id)
        if query.first():
            raise DuplicateEntityError(f"Product with inventory code {inventory_code} already exists")

    def resolve_category(self, category_id: int) -> Category:
        category = self.db.get(Category, category_id)
        if not category:
            raise NotFoundError("Category", category_id)
        return category

    def resolve_department(self, department_id: int) -> Department:
        department = self.db.get(Department, department_id)
        if not department:
            raise NotFoundError("Department", department_id)
        return department

    def create(
        self,
        data: ProductData,
        attachment: Optional[Attachment] = None,
        *,
        approval_request_id: Optional[int] = None,
    ) -> Product:
        if approval_request_id is not None:
            existing = self.db.query(Product).filter(Product.approval_request_id == approval_request_id).first()
            if existing:
                logger.info(f"Product for approval request {approval_request_id} already exists ({existing.id})")
                return existing

        self.ensure_code_available(data.inventory_code)
        category = self.resolve_category(data.category_id)
        department = self.resolve_department(data.department_id)

        product = Product(**data.model_dump(), approval_request_id=approval_request_id)
        if attachment is not None:
            product.image_data = attachment.content
            product.image_file_name = attachment.file_name

        self.db.add(product)
        self.db.commit()
        self.db.refresh(product)
        logger.info(f"Created product {product.id} (inventory code {product.inventory_code})")

        self.publisher.publish(ProductCreated(
            product_id=product.id,
            inventory_code=product.inventory_code,
            model=product.model,
            vendor=product.vendor,
            category_name=category.name,
            department_id=department.id,
            department_name=department.name,
            worker=product.worker,
        ))
        return product

    def update(
        self,
        product_id: int,
        update: ProductUpdate,
        attachment: Optional[Attachment] = None,
    ) -> Product:
        product = self.get(product_id)
        fields = update.set_fields()

        if fields.get("inventory_code") not in (None, product.inventory_code):
            self.ensure_code_available(fields["inventory_code"], exclude_id=product.id)
        if fields.get("category_id"):
            self.resolve_category(fields["category_id"])
        if fields.get("department_id"):
            self.resolve_department(fields["department_id"])

        changes = describe_changes(product, update, attachment)
        for name, value in fields.items():
            setattr(product, name, value)
        if attachment is not None:
            product.image_data = attachment.content
            product.image_file_name = attachment.file_name

        self.db.commit()
        self.db.refresh(product)
        logger.info(f"Updated product {product.id}: {', '.join(changes) or 'no changes'}")

        self.publisher.publish(ProductUpdated(
            product_id=product.id,
            inventory_code=product.inventory_code,
            changes=changes,
        ))
        return product

    def delete(self, product_id: int, *, missing_ok: bool = False) -> None:
        product = self.db.get(Product, product_id)
        if not product:
            if missing_ok:
                logger.info(f"Product {product_id} already deleted")
                return
            raise NotFoundError("Product", product_id)

        event = ProductDeleted(
            product_id=product.id,
            inventory_code=product.inventory_code,
            model=product.model,
            vendor=product.vendor,
        )
        self.db.delete(product)
        self.db.commit()
        logger.info(f"Deleted product {product_id}")

        self.publisher.publish(event)


def describe_changes(product: Product, update: ProductUpdate, attachment: Optional[Attachment] = None) -> List[str]:
    """Human-readable list of what ``update`` would change on ``product``."""
    changes = []
    for name, value in update.set_fields().items():
        current = getattr(product, name)
        if value != current:
            changes.append(f"{name.replace('_', ' ').capitalize()}: {current} -> {value}")
    if attachment is not None and attachment.content != product.image_data:
        changes.append("Image updated")
    return changes


class ProductManagementService:
    """Gated product operations for an authenticated caller."""

    def __init__(self, db: Session, actor: Actor, publisher):
        self.db = db
        self.commands = ProductCommands(db, publisher)
        self.gate = ActionGate(ApprovalService(db), actor, publisher)

    def create_product(self, data: ProductData, attachment: Optional[Attachment] = None) -> Product:
        self.commands.ensure_code_available(data.inventory_code)
        category = self.commands.resolve_category(data.category_id)
        department = self.commands.resolve_department(data.department_id)

        def describe() -> Dict[str, Any]:
            return {
                "product_data": {
                    **data.model_dump(),
                    "category_name": category.name,
                    "department_name": department.name,
                }
            }

        return self.gate.submit(
            RequestType.PRODUCT_CREATE,
            execute=lambda: self.commands.create(data, attachment),
            describe=describe,
            attachment=attachment,
        )

    def update_product(
        self,
        product_id: int,
        update: ProductUpdate,
        attachment: Optional[Attachment] = None,
    ) -> Product:
        product = self.commands.get(product_id)
        changes = describe_changes(product, update, attachment)
        if not changes:
            return product

        fields = update.set_fields()
        if fields.get("inventory_code") not in (None, product.inventory_code):
            self.commands.ensure_code_available(fields["inventory_code"], exclude_id=product.id)

        return self.gate.submit(
            RequestType.PRODUCT_UPDATE,
            execute=lambda: self.commands.update(product_id, update, attachment),
            describe=lambda: {
                "product_id": product.id,
                "inventory_code": product.inventory_code,
                "update_data": fields,
                "changes": changes,
            },
            attachment=attachment,
            entity_id=product.id,
        )

    def delete_product(self, product_id: int, reason: Optional[str] = None) -> None:
        product = self.commands.get(product_id)
        department = self.db.get(Department, product.department_id)

        self.gate.submit(
            RequestType.PRODUCT_DELETE,
            execute=lambda: self.commands.delete(product_id),
            describe=lambda: {
                "product_id": product.id,
                "inventory_code": product.inventory_code,
                "model": product.model,
                "vendor": product.vendor,
                "department_name": department.name if department else None,
                "delete_reason": reason,
            },
            entity_id=product.id,
        )
