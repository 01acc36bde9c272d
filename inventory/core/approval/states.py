"""Approval request states and transitions.

State Machine Diagram:

    ┌──────────┐  cancel   ┌───────────┐
    │ PENDING  │──────────►│ CANCELLED │ (requester only)
    └────┬─────┘           └───────────┘
         │
         ├──────────────────────┐
         │ approve              │ reject
    ┌────▼─────┐          ┌─────▼────┐
    │ APPROVED │          │ REJECTED │
    └────┬─────┘          └──────────┘
         │
         ├──────────────────────┐
         │ mark_executed        │ mark_failed
    ┌────▼─────┐          ┌─────▼────┐
    │ EXECUTED │          │  FAILED  │
    └──────────┘          └──────────┘

APPROVED is only ever held between the decision and the replay of the
action; FAILED is not retried automatically.
"""

from enum import Enum
from typing import Set, Dict, Optional, NamedTuple


class ApprovalState(str, Enum):
    """States of an approval request."""

    PENDING = "pending"          # Awaiting a reviewer
    APPROVED = "approved"        # Decision made, action being replayed

    # Terminal states
    REJECTED = "rejected"        # Reviewer declined
    EXECUTED = "executed"        # Replay succeeded
    FAILED = "failed"            # Replay failed, reason recorded
    CANCELLED = "cancelled"      # Withdrawn by the requester


class ApprovalTransition(str, Enum):
    """Actions that trigger state transitions."""

    APPROVE = "approve"                # PENDING → APPROVED
    REJECT = "reject"                  # PENDING → REJECTED
    CANCEL = "cancel"                  # PENDING → CANCELLED
    MARK_EXECUTED = "mark_executed"    # APPROVED → EXECUTED
    MARK_FAILED = "mark_failed"        # APPROVED → FAILED


class TransitionRule(NamedTuple):
    """Defines a valid state transition."""
    from_state: ApprovalState
    to_state: ApprovalState
    transition: ApprovalTransition
    requires_permission: Optional[str] = None
    requires_comment: bool = False
    requester_only: bool = False


PROCESS_PERMISSION = "approval.process"

TRANSITION_RULES: list[TransitionRule] = [
    # Reviewer decisions
    TransitionRule(ApprovalState.PENDING, ApprovalState.APPROVED, ApprovalTransition.APPROVE,
                   PROCESS_PERMISSION),
    TransitionRule(ApprovalState.PENDING, ApprovalState.REJECTED, ApprovalTransition.REJECT,
                   PROCESS_PERMISSION, requires_comment=True),

    # Requester withdrawal
    TransitionRule(ApprovalState.PENDING, ApprovalState.CANCELLED, ApprovalTransition.CANCEL,
                   requester_only=True),

    # Replay outcome (system-triggered)
    TransitionRule(ApprovalState.APPROVED, ApprovalState.EXECUTED, ApprovalTransition.MARK_EXECUTED),
    TransitionRule(ApprovalState.APPROVED, ApprovalState.FAILED, ApprovalTransition.MARK_FAILED,
                   requires_comment=True),
]

# Build lookup tables for efficient access
VALID_TRANSITIONS: Dict[ApprovalState, Set[ApprovalTransition]] = {}
TRANSITION_TARGETS: Dict[tuple[ApprovalState, ApprovalTransition], TransitionRule] = {}

for rule in TRANSITION_RULES:
    VALID_TRANSITIONS.setdefault(rule.from_state, set()).add(rule.transition)
    TRANSITION_TARGETS[(rule.from_state, rule.transition)] = rule


TERMINAL_STATES: Set[ApprovalState] = {
    ApprovalState.REJECTED,
    ApprovalState.EXECUTED,
    ApprovalState.FAILED,
    ApprovalState.CANCELLED,
}

# States that are hidden from lookups by id
HIDDEN_STATES: Set[ApprovalState] = {
    ApprovalState.CANCELLED,
}


def can_transition(from_state: ApprovalState, transition: ApprovalTransition) -> bool:
    """Check if a transition is valid from the given state."""
    return transition in VALID_TRANSITIONS.get(from_state, set())


def get_transition_rule(from_state: ApprovalState, transition: ApprovalTransition) -> Optional[TransitionRule]:
    """Get the transition rule for a state/action combination."""
    return TRANSITION_TARGETS.get((from_state, transition))

