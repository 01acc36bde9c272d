"""Inventory route mutations and their approval-gated entry points.

A transfer creates an open route; completing the route is what moves the
product, and that happens through the ``product.transferred`` event so the
product side applies it on its own terms.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from inventory.core.approval import ActionGate, Actor, ApprovalService, RequestType
from inventory.core.codec import Attachment
from inventory.core.exceptions import DomainValidationError, InvalidStateError, NotFoundError
from inventory.db.models import Category, Department, InventoryRoute, Product, RouteType
from inventory.messaging.events import ProductTransferred, RouteCompleted, RouteCreated
from .schemas import RouteUpdate, TransferData

logger = logging.getLogger(__name__)


class RouteCommands:
    """Mutations on routes. Each commits, then publishes its events."""

    def __init__(self, db: Session, publisher):
        self.db = db
        self.publisher = publisher

    def get(self, route_id: int) -> InventoryRoute:
        route = self.db.get(InventoryRoute, route_id)
        if not route:
            raise NotFoundError("Route", route_id)
        return route

    def get_product(self, product_id: int) -> Product:
        product = self.db.get(Product, product_id)
        if not product:
            raise NotFoundError("Product", product_id)
        return product

    def get_department(self, department_id: int) -> Department:
        department = self.db.get(Department, department_id)
        if not department:
            raise NotFoundError("Department", department_id)
        return department

    def validate_transfer(self, product: Product, data: TransferData) -> Department:
        to_department = self.get_department(data.to_department_id)
        if product.department_id == data.to_department_id and product.worker == data.to_worker:
            raise DomainValidationError(
                f"Product {product.inventory_code} is already assigned to {to_department.name}"
                + (f" / {data.to_worker}" if data.to_worker else "")
            )
        return to_department

    def transfer(
        self,
        data: TransferData,
        attachment: Optional[Attachment] = None,
        *,
        approval_request_id: Optional[int] = None,
    ) -> InventoryRoute:
        if approval_request_id is not None:
            existing = self.db.query(InventoryRoute).filter(
                InventoryRoute.approval_request_id == approval_request_id
            ).first()
            if existing:
                logger.info(f"Route for approval request {approval_request_id} already exists ({existing.id})")
                return existing

        product = self.get_product(data.product_id)
        to_department = self.validate_transfer(product, data)
        from_department = self.db.get(Department, product.department_id)
        category = self.db.get(Category, product.category_id)

        route = InventoryRoute(
            route_type=RouteType.TRANSFER.value,
            product_id=product.id,
            inventory_code=product.inventory_code,
            model=product.model,
            vendor=product.vendor,
            category_name=category.name if category else None,
            is_working=product.is_working,
            from_department_id=product.department_id,
            from_department_name=from_department.name if from_department else None,
            from_worker=product.worker,
            to_department_id=to_department.id,
            to_department_name=to_department.name,
            to_worker=data.to_worker,
            notes=data.notes,
            approval_request_id=approval_request_id,
        )
        if attachment is not None:
            route.image_data = attachment.content
            route.image_file_name = attachment.file_name

        self.db.add(route)
        self.db.commit()
        self.db.refresh(route)
        logger.info(f"Created transfer route {route.id} for product {product.id} to {to_department.name}")

        self.publisher.publish(RouteCreated(
            route_id=route.id,
            product_id=route.product_id,
            inventory_code=route.inventory_code,
            from_department_name=route.from_department_name,
            to_department_name=route.to_department_name,
            to_worker=route.to_worker,
        ))
        return route

    def update(self, route_id: int, update: RouteUpdate) -> InventoryRoute:
        route = self.get(route_id)
        if route.is_completed:
            raise InvalidStateError("Cannot update a completed route")

        fields = update.model_dump(exclude_unset=True)
        if fields.get("to_department_id"):
            department = self.get_department(fields["to_department_id"])
            route.to_department_id = department.id
            route.to_department_name = department.name
        if "to_worker" in fields:
            route.to_worker = fields["to_worker"]
        if "notes" in fields:
            route.notes = fields["notes"]

        self.db.commit()
        self.db.refresh(route)
        logger.info(f"Updated route {route.id}")
        return route

    def delete(self, route_id: int, *, missing_ok: bool = False) -> None:
        route = self.db.get(InventoryRoute, route_id)
        if not route:
            if missing_ok:
                logger.info(f"Route {route_id} already deleted")
                return
            raise NotFoundError("Route", route_id)
        if route.is_completed:
            raise InvalidStateError("Cannot delete completed routes, they are part of the product history")

        self.db.delete(route)
        self.db.commit()
        logger.info(f"Deleted route {route_id}")

    def complete(self, route_id: int) -> InventoryRoute:
        route = self.get(route_id)
        if route.is_completed:
            raise InvalidStateError("Route is already completed")

        route.is_completed = True
        route.completed_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(route)
        logger.info(f"Completed route {route.id}")

        image = Attachment(route.image_data, route.image_file_name) if route.image_data else None
        if route.product_id is None:
            logger.warning(f"Route {route.id} completed but its product no longer exists")
        else:
            self.publisher.publish(ProductTransferred(
                product_id=route.product_id,
                to_department_id=route.to_department_id,
                to_worker=route.to_worker,
                image_data=image.to_base64() if image else None,
                image_file_name=image.file_name if image else None,
                transferred_at=route.completed_at,
            ))
        self.publisher.publish(RouteCompleted(
            route_id=route.id,
            product_id=route.product_id,
            inventory_code=route.inventory_code,
            model=route.model,
            vendor=route.vendor,
            category_name=route.category_name,
            from_department_id=route.from_department_id,
            from_department_name=route.from_department_name,
            from_worker=route.from_worker,
            to_department_id=route.to_department_id,
            to_department_name=route.to_department_name,
            to_worker=route.to_worker,
            notes=route.notes,
            completed_at=route.completed_at,
        ))
        return route


class RouteManagementService:
    """Gated route operations for an authenticated caller."""

    def __init__(self, db: Session, actor: Actor, publisher):
        self.db = db
        self.commands = RouteCommands(db, publisher)
        self.gate = ActionGate(ApprovalService(db), actor, publisher)

    def transfer_inventory(self, data: TransferData, attachment: Optional[Attachment] = None) -> InventoryRoute:
        product = self.commands.get_product(data.product_id)
        to_department = self.commands.validate_transfer(product, data)

        def describe() -> Dict[str, Any]:
            from_department = self.db.get(Department, product.department_id)
            category = self.db.get(Category, product.category_id)
            return {
                "product_id": product.id,
                "inventory_code": product.inventory_code,
                "product_model": product.model,
                "product_vendor": product.vendor,
                "product_category": category.name if category else None,
                "from_department_id": product.department_id,
                "from_department_name": from_department.name if from_department else None,
                "from_worker": product.worker,
                "to_department_id": to_department.id,
                "to_department_name": to_department.name,
                "to_worker": data.to_worker,
                "notes": data.notes,
            }

        return self.gate.submit(
            RequestType.PRODUCT_TRANSFER,
            execute=lambda: self.commands.transfer(data, attachment),
            describe=describe,
            attachment=attachment,
        )

    def update_route(self, route_id: int, update: RouteUpdate) -> InventoryRoute:
        route = self.commands.get(route_id)
        if route.is_completed:
            raise InvalidStateError("Cannot update a completed route")

        fields = update.model_dump(exclude_unset=True)
        to_department_name = None
        if fields.get("to_department_id"):
            to_department_name = self.commands.get_department(fields["to_department_id"]).name

        return self.gate.submit(
            RequestType.ROUTE_UPDATE,
            execute=lambda: self.commands.update(route_id, update),
            describe=lambda: {
                "route_id": route.id,
                "inventory_code": route.inventory_code,
                "update_data": fields,
                "to_department_name": to_department_name or route.to_department_name,
            },
            entity_id=route.id,
        )

    def delete_route(self, route_id: int) -> None:
        route = self.commands.get(route_id)
        if route.is_completed:
            raise InvalidStateError("Cannot delete completed routes, they are part of the product history")

        self.gate.submit(
            RequestType.ROUTE_DELETE,
            execute=lambda: self.commands.delete(route_id),
            describe=lambda: {
                "route_id": route.id,
                "inventory_code": route.inventory_code,
                "from_department_name": route.from_department_name,
                "to_department_name": route.to_department_name,
            },
            entity_id=route.id,
        )

    def complete_route(self, route_id: int) -> InventoryRoute:
        return self.commands.complete(route_id)
