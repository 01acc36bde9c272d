"""Inventory route endpoints."""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from inventory.api.deps import get_actor, get_current_user, get_db, get_internal_caller, get_publisher
from inventory.core.approval import Actor, RequestType
from inventory.core.rbac import PermissionChecker, require_permission
from inventory.core.security import InternalCaller
from inventory.db.models import InventoryRoute, User
from inventory.messaging.publisher import EventPublisher
from inventory.services.routes import RouteCommands, RouteManagementService
from inventory.services.schemas import AttachmentIn, RouteUpdate, TransferData

router = APIRouter(prefix="/routes", tags=["routes"])


class RouteResponse(BaseModel):
    id: int
    route_type: str
    product_id: Optional[int]
    inventory_code: int
    model: Optional[str]
    vendor: Optional[str]
    category_name: Optional[str]
    from_department_id: Optional[int]
    from_department_name: Optional[str]
    from_worker: Optional[str]
    to_department_id: int
    to_department_name: str
    to_worker: Optional[str]
    notes: Optional[str]
    image_file_name: Optional[str]
    is_completed: bool
    completed_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class RouteListResponse(BaseModel):
    items: List[RouteResponse]
    total: int
    page: int
    per_page: int


class TransferBody(BaseModel):
    transfer: TransferData
    image: Optional[AttachmentIn] = None


class RouteUpdateBody(BaseModel):
    update: RouteUpdate


def _require_direct(caller: InternalCaller, request_type: RequestType) -> None:
    if not PermissionChecker(caller.permissions).has_direct(request_type):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Credential does not cover {request_type.value}",
        )


@router.get("", response_model=RouteListResponse)
@require_permission("route.view")
async def list_routes(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    product_id: Optional[int] = None,
    completed: Optional[bool] = None,
):
    """List routes, newest first."""
    query = db.query(InventoryRoute)
    if product_id:
        query = query.filter(InventoryRoute.product_id == product_id)
    if completed is not None:
        query = query.filter(InventoryRoute.is_completed == completed)

    total = query.count()
    routes = query.order_by(InventoryRoute.created_at.desc()).offset((page - 1) * per_page).limit(per_page).all()

    return RouteListResponse(
        items=[RouteResponse.model_validate(r) for r in routes],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/{route_id}", response_model=RouteResponse)
@require_permission("route.view")
async def get_route(
    route_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return RouteResponse.model_validate(RouteCommands(db, None).get(route_id))


@router.post("/transfer", response_model=RouteResponse, status_code=status.HTTP_201_CREATED)
async def transfer_inventory(
    body: TransferBody,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
    actor: Actor = Depends(get_actor),
):
    """Open a transfer route, or submit the transfer for approval."""
    service = RouteManagementService(db, actor, publisher)
    image = body.image.to_attachment() if body.image else None
    return RouteResponse.model_validate(service.transfer_inventory(body.transfer, image))


@router.put("/{route_id}", response_model=RouteResponse)
async def update_route(
    route_id: int,
    body: RouteUpdateBody,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
    actor: Actor = Depends(get_actor),
):
    service = RouteManagementService(db, actor, publisher)
    return RouteResponse.model_validate(service.update_route(route_id, body.update))


@router.delete("/{route_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_route(
    route_id: int,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
    actor: Actor = Depends(get_actor),
):
    service = RouteManagementService(db, actor, publisher)
    service.delete_route(route_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{route_id}/complete", response_model=RouteResponse)
@require_permission("route.complete")
async def complete_route(
    route_id: int,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
    current_user: User = Depends(get_current_user),
):
    """Mark a route completed; the product moves when the event lands."""
    route = RouteCommands(db, publisher).complete(route_id)
    return RouteResponse.model_validate(route)


# Internal replay endpoints
@router.post("/transfer/approved", response_model=RouteResponse, status_code=status.HTTP_201_CREATED)
async def transfer_approved(
    body: TransferBody,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
    caller: InternalCaller = Depends(get_internal_caller),
):
    _require_direct(caller, RequestType.PRODUCT_TRANSFER)
    image = body.image.to_attachment() if body.image else None
    route = RouteCommands(db, publisher).transfer(
        body.transfer,
        image,
        approval_request_id=caller.approval_request_id,
    )
    return RouteResponse.model_validate(route)


@router.put("/{route_id}/approved", response_model=RouteResponse)
async def update_approved_route(
    route_id: int,
    body: RouteUpdateBody,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
    caller: InternalCaller = Depends(get_internal_caller),
):
    _require_direct(caller, RequestType.ROUTE_UPDATE)
    return RouteResponse.model_validate(RouteCommands(db, publisher).update(route_id, body.update))


@router.delete("/{route_id}/approved", status_code=status.HTTP_204_NO_CONTENT)
async def delete_approved_route(
    route_id: int,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
    caller: InternalCaller = Depends(get_internal_caller),
):
    _require_direct(caller, RequestType.ROUTE_DELETE)
    RouteCommands(db, publisher).delete(route_id, missing_ok=True)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
