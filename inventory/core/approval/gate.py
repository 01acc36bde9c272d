"""Authorize-then-invoke for gated mutations.

Every gated mutation goes through :meth:`ActionGate.submit`. A caller with
the direct permission runs the mutation now; a caller with only the
request permission gets an approval request instead. The mutation itself
is the same callable the post-approval replay runs, so the two paths
cannot drift apart.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, TypeVar

from inventory.core.codec import Attachment, encode_action
from inventory.core.exceptions import ApprovalPending, InsufficientPermissionError
from inventory.core.rbac.checker import PermissionChecker
from inventory.messaging.events import ApprovalRequestCreated
from .request_types import RequestType
from .service import ApprovalService

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Actor:
    """Who is asking, and with which permission tokens."""
    user_id: int
    user_name: str
    permissions: list[str] = field(default_factory=list)
    role_name: Optional[str] = None

    @classmethod
    def from_user(cls, user) -> "Actor":
        return cls(
            user_id=user.id,
            user_name=user.name,
            permissions=user.permissions,
            role_name=user.role.name if user.role else None,
        )


class ActionGate:
    """Routes a mutation to direct execution or to an approval request."""

    def __init__(self, approvals: ApprovalService, actor: Actor, publisher):
        self.approvals = approvals
        self.actor = actor
        self.publisher = publisher
        self.checker = PermissionChecker(actor.permissions)

    def submit(
        self,
        request_type: RequestType,
        *,
        execute: Callable[[], T],
        describe: Callable[[], Dict[str, Any]],
        attachment: Optional[Attachment] = None,
        entity_id: Optional[int] = None,
    ) -> T:
        """
        Run or defer a mutation.

        Args:
            request_type: Kind of mutation
            execute: Performs the mutation; called only on the direct path
            describe: Builds the reviewer-facing action payload; called only
                on the approval path
            attachment: Binary data travelling with the payload
            entity_id: Existing entity the mutation targets, if any

        Returns:
            Whatever ``execute`` returns

        Raises:
            ApprovalPending: The mutation was stored for review
            InsufficientPermissionError: Caller may neither run nor request it
        """
        if self.checker.has_direct(request_type):
            logger.info(f"{self.actor.user_name} executing {request_type.value} directly")
            return execute()

        if not self.checker.has_request(request_type):
            raise InsufficientPermissionError(request_type.request_permission)

        request = self.approvals.create_request(
            request_type.value,
            request_type.entity_type,
            encode_action(describe(), attachment),
            requested_by_id=self.actor.user_id,
            requested_by_name=self.actor.user_name,
            entity_id=entity_id,
        )
        self.approvals.db.commit()

        self.publisher.publish(ApprovalRequestCreated(
            request_id=request.id,
            request_type=request.request_type,
            requested_by_id=request.requested_by_id,
            requested_by_name=request.requested_by_name,
            created_at=request.created_at,
        ))

        raise ApprovalPending(
            request.id,
            f"Your {request_type.readable.lower()} request has been submitted for approval",
        )
