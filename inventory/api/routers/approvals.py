"""Approval workflow API endpoints."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from inventory.api.deps import get_current_user, get_db, get_executor, get_publisher
from inventory.core.approval import Actor, ApprovalService
from inventory.core.approval.request_types import readable_request_type
from inventory.core.codec import decode_action
from inventory.core.exceptions import PayloadError
from inventory.core.rbac import PermissionChecker, require_permission
from inventory.db.models import ApprovalRequest, User
from inventory.messaging.publisher import EventPublisher
from inventory.services.approvals import ApprovalProcessor
from inventory.services.executor import ActionExecutor

router = APIRouter(prefix="/approvals", tags=["approvals"])


# Schemas
class AttachmentSummary(BaseModel):
    file_name: Optional[str]
    content_type: Optional[str]
    size: int


class ApprovalRequestResponse(BaseModel):
    id: int
    request_type: str
    request_type_label: str
    entity_type: str
    entity_id: Optional[int]
    status: str
    requested_by_id: int
    requested_by_name: str
    approved_by_id: Optional[int]
    approved_by_name: Optional[str]
    rejection_reason: Optional[str]
    created_at: datetime
    processed_at: Optional[datetime]
    executed_at: Optional[datetime]
    action: Optional[Dict[str, Any]] = None
    attachment: Optional[AttachmentSummary] = None


class ApprovalHistoryResponse(BaseModel):
    id: int
    from_state: Optional[str]
    to_state: str
    transition: str
    user_id: Optional[int]
    user_name: Optional[str]
    comment: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class ApprovalListResponse(BaseModel):
    items: List[ApprovalRequestResponse]
    total: int
    page: int
    per_page: int


class RejectBody(BaseModel):
    reason: str = Field(..., min_length=1)


def to_response(request: ApprovalRequest, include_action: bool = False) -> ApprovalRequestResponse:
    """Build the API view of a request, optionally with its decoded action."""
    response = ApprovalRequestResponse(
        id=request.id,
        request_type=request.request_type,
        request_type_label=readable_request_type(request.request_type),
        entity_type=request.entity_type,
        entity_id=request.entity_id,
        status=request.status,
        requested_by_id=request.requested_by_id,
        requested_by_name=request.requested_by_name,
        approved_by_id=request.approved_by_id,
        approved_by_name=request.approved_by_name,
        rejection_reason=request.rejection_reason,
        created_at=request.created_at,
        processed_at=request.processed_at,
        executed_at=request.executed_at,
    )
    if include_action:
        payload = decode_action(request.action_data)
        response.action = payload.data
        if payload.attachment is not None:
            response.attachment = AttachmentSummary(
                file_name=payload.attachment.file_name,
                content_type=payload.attachment.content_type,
                size=payload.attachment.size,
            )
    return response


def _list_response(items, total: int, page: int, per_page: int) -> ApprovalListResponse:
    return ApprovalListResponse(
        items=[to_response(r) for r in items],
        total=total,
        page=page,
        per_page=per_page,
    )


# Endpoints
@router.get("", response_model=ApprovalListResponse)
@require_permission("approval.view")
async def list_approvals(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    status_filter: Optional[str] = Query(None, alias="status"),
    request_type: Optional[str] = None,
):
    """List approval requests, newest first."""
    items, total = ApprovalService(db).list_requests(
        status=status_filter,
        request_type=request_type,
        limit=per_page,
        offset=(page - 1) * per_page,
    )
    return _list_response(items, total, page, per_page)


@router.get("/pending", response_model=ApprovalListResponse)
@require_permission("approval.view")
async def list_pending_approvals(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
):
    """Pending requests in the order they should be reviewed."""
    items, total = ApprovalService(db).list_pending(limit=per_page, offset=(page - 1) * per_page)
    return _list_response(items, total, page, per_page)


@router.get("/mine", response_model=ApprovalListResponse)
async def list_my_requests(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    status_filter: Optional[str] = Query(None, alias="status"),
):
    """Requests submitted by the current user."""
    items, total = ApprovalService(db).list_requests(
        status=status_filter,
        requested_by_id=current_user.id,
        limit=per_page,
        offset=(page - 1) * per_page,
    )
    return _list_response(items, total, page, per_page)


@router.get("/{request_id}", response_model=ApprovalRequestResponse)
async def get_approval(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get one request with its decoded action. Requesters can see their own."""
    request = ApprovalService(db).get_request(request_id)
    checker = PermissionChecker(current_user.permissions)
    if request.requested_by_id != current_user.id and not checker.has_permission("approval.view"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")

    try:
        return to_response(request, include_action=True)
    except PayloadError:
        # Still show the request; the reviewer can reject it
        return to_response(request)


@router.get("/{request_id}/history", response_model=List[ApprovalHistoryResponse])
@require_permission("approval.view")
async def get_approval_history(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    history = ApprovalService(db).get_history(request_id)
    return [ApprovalHistoryResponse.model_validate(h) for h in history]


@router.post("/{request_id}/approve", response_model=ApprovalRequestResponse)
@require_permission("approval.process")
async def approve_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    publisher: EventPublisher = Depends(get_publisher),
    executor: ActionExecutor = Depends(get_executor),
):
    """Approve a pending request and replay its action."""
    request = await ApprovalProcessor(db, publisher, executor).approve(request_id, Actor.from_user(current_user))
    return to_response(request)


@router.post("/{request_id}/reject", response_model=ApprovalRequestResponse)
@require_permission("approval.process")
async def reject_request(
    request_id: int,
    body: RejectBody,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    publisher: EventPublisher = Depends(get_publisher),
    executor: ActionExecutor = Depends(get_executor),
):
    """Reject a pending request. A reason is required."""
    processor = ApprovalProcessor(db, publisher, executor)
    request = await processor.reject(request_id, Actor.from_user(current_user), body.reason)
    return to_response(request)


@router.post("/{request_id}/cancel", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    publisher: EventPublisher = Depends(get_publisher),
    executor: ActionExecutor = Depends(get_executor),
):
    """Withdraw one of your own pending requests."""
    await ApprovalProcessor(db, publisher, executor).cancel(request_id, Actor.from_user(current_user))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
