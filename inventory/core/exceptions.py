"""Error taxonomy for the approval pipeline.

Everything a caller can be told "no" with derives from ``InventoryError``
and is mapped to an HTTP status in ``inventory.api.main``.
``ApprovalPending`` is not an error: it signals that a mutation was
accepted and deferred to a reviewer.
"""

from typing import Optional


class InventoryError(Exception):
    """Base class for domain and pipeline errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(InventoryError):
    """A referenced entity or approval request does not exist."""

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class InvalidStateError(InventoryError):
    """A transition was attempted from a state that does not allow it."""

    def __init__(self, message: str, current_state: Optional[str] = None, transition: Optional[str] = None):
        super().__init__(message)
        self.current_state = current_state
        self.transition = transition


class InsufficientPermissionError(InventoryError):
    """Caller holds neither the direct nor the request permission."""

    def __init__(self, required_permission: str):
        super().__init__(f"Permission denied: requires {required_permission}")
        self.required_permission = required_permission


class DuplicateEntityError(InventoryError):
    pass


class DomainValidationError(InventoryError):
    pass


class PayloadError(DomainValidationError):
    """An action payload could not be encoded or decoded."""


class ExecutionError(InventoryError):
    """Replaying an approved action against its owning service failed."""


class PublishError(InventoryError):
    """An event could not be handed to the broker."""


class ApprovalPending(Exception):
    """The mutation was stored as an approval request instead of being executed."""

    def __init__(self, approval_request_id: int, message: Optional[str] = None):
        super().__init__(message or "Your request has been submitted for approval")
        self.approval_request_id = approval_request_id
        self.message = str(self)
