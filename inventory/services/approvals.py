"""Resolution of approval requests.

Approve: Pending -> Approved (committed), replay the action, then
Approved -> Executed or Failed (committed), then one
``approval.request.processed`` event carrying the outcome.

Reject: Pending -> Rejected, then the processed event.

Cancel: the cancelled event is published while the row is still locked
and before the state change is committed; if the publish fails the
cancellation is rolled back and the error propagates.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from inventory.core.approval import Actor, ApprovalService
from inventory.core.exceptions import PublishError
from inventory.db.models import ApprovalRequest
from inventory.messaging.events import ApprovalRequestCancelled, ApprovalRequestProcessed
from .executor import ActionExecutor

logger = logging.getLogger(__name__)

STATUS_APPROVED = "Approved"
STATUS_REJECTED = "Rejected"
STATUS_FAILED = "Failed"


class ApprovalProcessor:
    """Applies reviewer and requester decisions to approval requests."""

    def __init__(self, db: Session, publisher, executor: Optional[ActionExecutor] = None):
        self.db = db
        self.publisher = publisher
        self.executor = executor or ActionExecutor()
        self.approvals = ApprovalService(db)

    async def approve(self, request_id: int, approver: Actor) -> ApprovalRequest:
        """
        Approve a pending request and replay it.

        A failed replay is recorded on the request (status Failed plus the
        reason) and does not raise: the decision itself succeeded.

        Raises:
            NotFoundError: Unknown request
            InvalidStateError: Request is not pending
            InsufficientPermissionError: Approver lacks approval.process
        """
        request = self.approvals.approve(request_id, approver.user_id, approver.user_name, approver.permissions)
        self.db.commit()

        failure: Optional[str] = None
        try:
            succeeded = await self.executor.execute(
                request.request_type,
                request.action_data,
                approver.user_id,
                approver.user_name,
                approval_request_id=request.id,
            )
            if not succeeded:
                failure = "Execution failed"
        except Exception as e:
            logger.exception(f"Executing approval request {request_id} raised")
            failure = f"Execution error: {e}"

        if failure is None:
            request = self.approvals.mark_executed(request_id)
        else:
            request = self.approvals.mark_failed(request_id, failure)
        self.db.commit()

        self.publisher.publish(ApprovalRequestProcessed(
            request_id=request.id,
            request_type=request.request_type,
            status=STATUS_APPROVED if failure is None else STATUS_FAILED,
            processed_by_id=approver.user_id,
            processed_by_name=approver.user_name,
            requested_by_id=request.requested_by_id,
            rejection_reason=failure,
        ))
        return request

    async def reject(self, request_id: int, approver: Actor, reason: str) -> ApprovalRequest:
        request = self.approvals.reject(
            request_id, approver.user_id, approver.user_name, approver.permissions, reason,
        )
        self.db.commit()

        self.publisher.publish(ApprovalRequestProcessed(
            request_id=request.id,
            request_type=request.request_type,
            status=STATUS_REJECTED,
            processed_by_id=approver.user_id,
            processed_by_name=approver.user_name,
            requested_by_id=request.requested_by_id,
            rejection_reason=reason,
        ))
        return request

    async def cancel(self, request_id: int, requester: Actor) -> None:
        """
        Withdraw a pending request. Only its requester may do this.

        Raises:
            NotFoundError: Unknown request
            InvalidStateError: Request is not pending
            InsufficientPermissionError: Caller is not the requester
            PublishError: The cancelled event could not be published;
                the request is left unchanged
        """
        request = self.approvals.cancel(request_id, requester.user_id, requester.user_name)

        try:
            self.publisher.publish(ApprovalRequestCancelled(
                request_id=request.id,
                request_type=request.request_type,
                requested_by_id=request.requested_by_id,
                cancelled_at=request.cancelled_at,
            ), strict=True)
        except PublishError:
            self.db.rollback()
            logger.exception(f"Cancel of approval request {request_id} aborted, event not published")
            raise

        self.db.commit()
        logger.info(f"Approval request {request_id} cancelled by {requester.user_name}")
