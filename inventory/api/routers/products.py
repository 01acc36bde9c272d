"""Product endpoints.

Public mutations go through the approval gate and answer 201/200/204 when
executed directly, 202 when stored for review. The ``/approved`` variants
are for the action executor only.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from inventory.api.deps import get_actor, get_current_user, get_db, get_internal_caller, get_publisher
from inventory.core.approval import Actor, RequestType
from inventory.core.rbac import PermissionChecker, require_permission
from inventory.core.security import InternalCaller
from inventory.db.models import Product, User
from inventory.messaging.publisher import EventPublisher
from inventory.services.products import ProductCommands, ProductManagementService
from inventory.services.schemas import AttachmentIn, ProductData, ProductUpdate

router = APIRouter(prefix="/products", tags=["products"])


# Schemas
class ProductResponse(BaseModel):
    id: int
    inventory_code: int
    model: Optional[str]
    vendor: Optional[str]
    worker: Optional[str]
    description: Optional[str]
    is_working: bool
    is_active: bool
    is_new_item: bool
    category_id: int
    department_id: int
    image_file_name: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProductListResponse(BaseModel):
    items: List[ProductResponse]
    total: int
    page: int
    per_page: int


class ProductCreateBody(BaseModel):
    product: ProductData
    image: Optional[AttachmentIn] = None


class ProductUpdateBody(BaseModel):
    update: ProductUpdate
    image: Optional[AttachmentIn] = None


def _attachment(image: Optional[AttachmentIn]):
    return image.to_attachment() if image else None


def _require_direct(caller: InternalCaller, request_type: RequestType) -> None:
    if not PermissionChecker(caller.permissions).has_direct(request_type):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Credential does not cover {request_type.value}",
        )


# Endpoints
@router.get("", response_model=ProductListResponse)
@require_permission("product.view")
async def list_products(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    department_id: Optional[int] = None,
    category_id: Optional[int] = None,
):
    """List products."""
    query = db.query(Product)
    if department_id:
        query = query.filter(Product.department_id == department_id)
    if category_id:
        query = query.filter(Product.category_id == category_id)

    total = query.count()
    products = query.order_by(Product.inventory_code.asc()).offset((page - 1) * per_page).limit(per_page).all()

    return ProductListResponse(
        items=[ProductResponse.model_validate(p) for p in products],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/{product_id}", response_model=ProductResponse)
@require_permission("product.view")
async def get_product(
    product_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    product = ProductCommands(db, None).get(product_id)
    return ProductResponse.model_validate(product)


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    body: ProductCreateBody,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
    actor: Actor = Depends(get_actor),
):
    """Create a product, or submit the creation for approval."""
    service = ProductManagementService(db, actor, publisher)
    product = service.create_product(body.product, _attachment(body.image))
    return ProductResponse.model_validate(product)


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: int,
    body: ProductUpdateBody,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
    actor: Actor = Depends(get_actor),
):
    """Update a product, or submit the update for approval."""
    service = ProductManagementService(db, actor, publisher)
    product = service.update_product(product_id, body.update, _attachment(body.image))
    return ProductResponse.model_validate(product)


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: int,
    reason: Optional[str] = None,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
    actor: Actor = Depends(get_actor),
):
    """Delete a product, or submit the deletion for approval."""
    service = ProductManagementService(db, actor, publisher)
    service.delete_product(product_id, reason)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Internal replay endpoints
@router.post("/approved", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_approved_product(
    body: ProductCreateBody,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
    caller: InternalCaller = Depends(get_internal_caller),
):
    _require_direct(caller, RequestType.PRODUCT_CREATE)
    product = ProductCommands(db, publisher).create(
        body.product,
        _attachment(body.image),
        approval_request_id=caller.approval_request_id,
    )
    return ProductResponse.model_validate(product)


@router.put("/{product_id}/approved", response_model=ProductResponse)
async def update_approved_product(
    product_id: int,
    body: ProductUpdateBody,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
    caller: InternalCaller = Depends(get_internal_caller),
):
    _require_direct(caller, RequestType.PRODUCT_UPDATE)
    product = ProductCommands(db, publisher).update(product_id, body.update, _attachment(body.image))
    return ProductResponse.model_validate(product)


@router.delete("/{product_id}/approved", status_code=status.HTTP_204_NO_CONTENT)
async def delete_approved_product(
    product_id: int,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
    caller: InternalCaller = Depends(get_internal_caller),
):
    _require_direct(caller, RequestType.PRODUCT_DELETE)
    ProductCommands(db, publisher).delete(product_id, missing_ok=True)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
