"""Approval workflow: request states, the state machine, the request store
and the gate that decides between direct execution and review.
"""

from .states import ApprovalState, ApprovalTransition, VALID_TRANSITIONS, TERMINAL_STATES
from .request_types import RequestType
from .machine import ApprovalStateMachine
from .service import ApprovalService
from .gate import ActionGate, Actor

__all__ = [
    "ApprovalState",
    "ApprovalTransition",
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "RequestType",
    "ApprovalStateMachine",
    "ApprovalService",
    "ActionGate",
    "Actor",
]
