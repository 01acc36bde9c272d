"""Approval request store.

Persists approval requests and applies state machine transitions to them.
Every transition re-reads the row under a lock, so guards are evaluated
against the committed state; the row's version counter catches writers
that bypass the lock.
"""

import logging
from datetime import datetime
from typing import Optional, List, Tuple

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy import and_

from inventory.core.exceptions import DuplicateEntityError, InvalidStateError, NotFoundError
from inventory.db.models.approval import ApprovalRequest, ApprovalHistory
from .machine import ApprovalStateMachine
from .states import ApprovalState, ApprovalTransition, HIDDEN_STATES

logger = logging.getLogger(__name__)

CREATE_TRANSITION = "create"


class ApprovalService:
    """
    Persistence and transitions for approval requests.

    Methods flush but never commit; the caller owns the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_request(
        self,
        request_type: str,
        entity_type: str,
        action_data: str,
        *,
        requested_by_id: int,
        requested_by_name: str,
        entity_id: Optional[int] = None,
    ) -> ApprovalRequest:
        """
        Store a new pending request.

        At most one pending request of a given type may exist per entity.

        Raises:
            DuplicateEntityError: A pending request for the same entity exists
        """
        if entity_id is not None:
            existing = self.db.query(ApprovalRequest).filter(
                and_(
                    ApprovalRequest.request_type == request_type,
                    ApprovalRequest.entity_id == entity_id,
                    ApprovalRequest.status == ApprovalState.PENDING.value,
                )
            ).first()
            if existing:
                raise DuplicateEntityError(
                    f"{entity_type} {entity_id} already has a pending {request_type} request (#{existing.id})"
                )

        request = ApprovalRequest(
            request_type=request_type,
            entity_type=entity_type,
            entity_id=entity_id,
            action_data=action_data,
            status=ApprovalState.PENDING.value,
            requested_by_id=requested_by_id,
            requested_by_name=requested_by_name,
        )
        self.db.add(request)
        self.db.flush()

        self.db.add(ApprovalHistory(
            request_id=request.id,
            from_state=None,
            to_state=ApprovalState.PENDING.value,
            transition=CREATE_TRANSITION,
            user_id=requested_by_id,
            user_name=requested_by_name,
        ))
        self.db.flush()

        logger.info(f"Created approval request {request.id} ({request_type}) for {requested_by_name}")
        return request

    def get_request(self, request_id: int) -> ApprovalRequest:
        """
        Get a visible approval request.

        Raises:
            NotFoundError: Unknown or cancelled request
        """
        request = self.db.query(ApprovalRequest).filter(ApprovalRequest.id == request_id).first()
        if not request or ApprovalState(request.status) in HIDDEN_STATES:
            raise NotFoundError("Approval request", request_id)
        return request

    def list_requests(
        self,
        *,
        status: Optional[str] = None,
        requested_by_id: Optional[int] = None,
        request_type: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[ApprovalRequest], int]:
        """List visible requests, newest first. Returns (items, total)."""
        query = self.db.query(ApprovalRequest).filter(
            ApprovalRequest.status.notin_([s.value for s in HIDDEN_STATES])
        )
        if status:
            query = query.filter(ApprovalRequest.status == status)
        if requested_by_id is not None:
            query = query.filter(ApprovalRequest.requested_by_id == requested_by_id)
        if request_type:
            query = query.filter(ApprovalRequest.request_type == request_type)

        total = query.count()
        items = query.order_by(ApprovalRequest.created_at.desc(), ApprovalRequest.id.desc()).offset(offset).limit(limit).all()
        return items, total

    def list_pending(self, *, limit: int = 20, offset: int = 0) -> Tuple[List[ApprovalRequest], int]:
        """Pending requests, oldest first, the order a reviewer works through them."""
        query = self.db.query(ApprovalRequest).filter(
            ApprovalRequest.status == ApprovalState.PENDING.value
        )
        total = query.count()
        items = query.order_by(ApprovalRequest.created_at.asc(), ApprovalRequest.id.asc()).offset(offset).limit(limit).all()
        return items, total

    def get_history(self, request_id: int) -> List[ApprovalHistory]:
        self.get_request(request_id)
        return self.db.query(ApprovalHistory).filter(
            ApprovalHistory.request_id == request_id
        ).order_by(ApprovalHistory.id.asc()).all()

    def transition(
        self,
        request_id: int,
        transition: ApprovalTransition,
        *,
        user_id: Optional[int] = None,
        user_name: Optional[str] = None,
        user_permissions: Optional[List[str]] = None,
        comment: Optional[str] = None,
        system: bool = False,
    ) -> ApprovalRequest:
        """
        Perform a state transition on an approval request.

        Args:
            request_id: ID of the approval request
            transition: Transition to perform
            user_id: ID of user performing the transition
            user_name: Name of that user
            user_permissions: The user's permission tokens
            comment: Reason (rejection reason or failure detail)
            system: Transition driven by the pipeline rather than a person

        Returns:
            Updated approval request

        Raises:
            NotFoundError: If request not found
            InvalidStateError: If transition invalid from the current state
            InsufficientPermissionError: If the user may not perform it
        """
        request = self.db.query(ApprovalRequest).filter(
            ApprovalRequest.id == request_id
        ).with_for_update().populate_existing().first()

        if not request or ApprovalState(request.status) in HIDDEN_STATES:
            raise NotFoundError("Approval request", request_id)

        machine = ApprovalStateMachine(
            request.id,
            ApprovalState(request.status),
            requested_by_id=request.requested_by_id,
            user_permissions=user_permissions,
        )

        old_state = request.status
        new_state = machine.transition(
            transition,
            comment=comment,
            user_id=user_id,
            system=system,
        )

        now = datetime.utcnow()
        request.status = new_state.value

        if transition in (ApprovalTransition.APPROVE, ApprovalTransition.REJECT):
            request.approved_by_id = user_id
            request.approved_by_name = user_name
            request.processed_at = now
        if transition in (ApprovalTransition.REJECT, ApprovalTransition.MARK_FAILED):
            request.rejection_reason = comment
        if transition == ApprovalTransition.MARK_EXECUTED:
            request.executed_at = now
        if transition == ApprovalTransition.CANCEL:
            request.cancelled_at = now

        self.db.add(ApprovalHistory(
            request_id=request.id,
            from_state=old_state,
            to_state=new_state.value,
            transition=transition.value,
            user_id=user_id,
            user_name=user_name,
            comment=comment,
        ))

        try:
            self.db.flush()
        except StaleDataError as e:
            self.db.rollback()
            raise InvalidStateError(
                f"Approval request {request_id} was modified concurrently",
                old_state,
                transition.value,
            ) from e

        logger.info(f"Approval request {request_id}: {old_state} -> {new_state.value} ({transition.value})")
        return request

    def approve(self, request_id: int, user_id: int, user_name: str, user_permissions: List[str]) -> ApprovalRequest:
        return self.transition(
            request_id, ApprovalTransition.APPROVE,
            user_id=user_id, user_name=user_name, user_permissions=user_permissions,
        )

    def reject(self, request_id: int, user_id: int, user_name: str, user_permissions: List[str], reason: str) -> ApprovalRequest:
        return self.transition(
            request_id, ApprovalTransition.REJECT,
            user_id=user_id, user_name=user_name, user_permissions=user_permissions, comment=reason,
        )

    def cancel(self, request_id: int, user_id: int, user_name: str) -> ApprovalRequest:
        return self.transition(request_id, ApprovalTransition.CANCEL, user_id=user_id, user_name=user_name)

    def mark_executed(self, request_id: int) -> ApprovalRequest:
        return self.transition(request_id, ApprovalTransition.MARK_EXECUTED, system=True)

    def mark_failed(self, request_id: int, reason: str) -> ApprovalRequest:
        return self.transition(request_id, ApprovalTransition.MARK_FAILED, comment=reason, system=True)
