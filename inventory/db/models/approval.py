"""Approval workflow database models.

Stores approval requests and their state transition history.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import relationship

from inventory.db.base import Base


class ApprovalRequest(Base):
    """
    A deferred mutation awaiting a reviewer's decision.

    ``action_data`` is the encoded action payload and is opaque to the
    store. ``version`` is SQLAlchemy's version counter, so an UPDATE from a
    stale read fails instead of overwriting a concurrent decision.
    """
    __tablename__ = "approval_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # What is being requested
    request_type = Column(String(50), nullable=False, index=True)  # product.create, product.transfer, ...
    entity_type = Column(String(50), nullable=False)  # Product, Route
    entity_id = Column(Integer, nullable=True)  # None until the entity exists
    action_data = Column(Text, nullable=False)

    # Workflow state
    status = Column(String(20), nullable=False, default="pending", index=True)
    version = Column(Integer, nullable=False, default=1)

    # Requester
    requested_by_id = Column(Integer, nullable=False, index=True)
    requested_by_name = Column(String(255), nullable=False)

    # Decision
    approved_by_id = Column(Integer, nullable=True)
    approved_by_name = Column(String(255), nullable=True)
    rejection_reason = Column(Text, nullable=True)  # also carries execution failure detail

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    processed_at = Column(DateTime, nullable=True)
    executed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    # Relationships
    history = relationship(
        "ApprovalHistory",
        back_populates="request",
        order_by="ApprovalHistory.id",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_approval_requests_type_entity", "request_type", "entity_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<ApprovalRequest {self.id} {self.request_type} [{self.status}]>"


class ApprovalHistory(Base):
    """
    Records all state transitions for approval requests.

    Cancelled requests keep their history, so the audit trail survives a
    cancel.
    """
    __tablename__ = "approval_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(Integer, ForeignKey("approval_requests.id", ondelete="CASCADE"), nullable=False, index=True)

    # Transition details
    from_state = Column(String(20), nullable=True)  # None for creation
    to_state = Column(String(20), nullable=False)
    transition = Column(String(30), nullable=False)

    # Actor
    user_id = Column(Integer, nullable=True)
    user_name = Column(String(255), nullable=True)

    comment = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    request = relationship("ApprovalRequest", back_populates="history")

    def __repr__(self) -> str:
        return f"<ApprovalHistory {self.from_state} -> {self.to_state}>"
