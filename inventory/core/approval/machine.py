"""Approval state machine implementation.

Validates transitions, checks the actor's right to perform them and
leaves persistence of the outcome to the caller.
"""

from typing import Optional

from inventory.core.exceptions import InvalidStateError, InsufficientPermissionError
from inventory.core.rbac.checker import PermissionChecker
from .states import (
    ApprovalState,
    ApprovalTransition,
    can_transition,
    get_transition_rule,
)


class ApprovalStateMachine:
    """
    State machine for a single approval request.

    Manages transitions between approval states with:
    - Validation of valid transitions
    - Permission checking for reviewer transitions
    - Requester checks for cancellation
    """

    def __init__(
        self,
        request_id: Optional[int],
        current_state: ApprovalState,
        *,
        requested_by_id: Optional[int] = None,
        user_permissions: Optional[list[str]] = None,
    ):
        """
        Initialize the state machine.

        Args:
            request_id: ID of the approval request
            current_state: Current approval state
            requested_by_id: User who submitted the request
            user_permissions: Permission tokens of the acting user
        """
        self.request_id = request_id
        self._state = current_state
        self.requested_by_id = requested_by_id
        self.checker = PermissionChecker(user_permissions or [])

    @property
    def state(self) -> ApprovalState:
        return self._state

    def transition(
        self,
        transition: ApprovalTransition,
        *,
        comment: Optional[str] = None,
        user_id: Optional[int] = None,
        system: bool = False,
    ) -> ApprovalState:
        """
        Perform a state transition.

        Args:
            transition: The transition to perform
            comment: Reason or note (required for reject and mark_failed)
            user_id: ID of user performing the transition
            system: Skip the permission check for pipeline-driven transitions

        Returns:
            The new state after transition

        Raises:
            InvalidStateError: If the transition is invalid from the current state
            InsufficientPermissionError: If the actor may not perform it
        """
        if not can_transition(self._state, transition):
            raise InvalidStateError(
                f"Cannot {transition.value} a request in state {self._state.value}",
                self._state.value,
                transition.value,
            )

        rule = get_transition_rule(self._state, transition)

        if rule.requires_permission and not system:
            if not self.checker.has_permission(rule.requires_permission):
                raise InsufficientPermissionError(rule.requires_permission)

        if rule.requester_only and user_id != self.requested_by_id:
            raise InsufficientPermissionError("the original requester")

        if rule.requires_comment and not comment:
            raise InvalidStateError(
                f"Transition {transition.value} requires a reason",
                self._state.value,
                transition.value,
            )

        self._state = rule.to_state
        return self._state
