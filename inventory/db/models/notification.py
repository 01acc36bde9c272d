"""Per-user notification inbox."""

from datetime import datetime
from enum import Enum
from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey, Boolean, Text, Index
from sqlalchemy.orm import relationship

from inventory.db.base import Base


class NotificationType(str, Enum):
    """Kinds of notification shown to users."""
    APPROVAL_REQUEST = "approval_request"
    APPROVAL_RESPONSE = "approval_response"
    PRODUCT_CREATED = "product_created"
    PRODUCT_UPDATED = "product_updated"
    PRODUCT_DELETED = "product_deleted"
    ROUTE_CREATED = "route_created"
    ROUTE_COMPLETED = "route_completed"


class Notification(Base):
    """
    One message for one user.

    Persisted before it is pushed, so a user who is offline gets it on the
    next connect. ``data`` holds the ids the message refers to; the
    approval request id is also kept in its own column so a withdrawn
    request can be cleaned up without scanning the inbox.
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)
    approval_request_id = Column(Integer, nullable=True, index=True)

    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    read_at = Column(DateTime, nullable=True)

    # Relationships
    user = relationship("User", back_populates="notifications")

    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "is_read"),
    )

    def mark_as_read(self) -> None:
        if self.is_read:
            return
        self.is_read = True
        self.read_at = datetime.utcnow()

    def __repr__(self) -> str:
        return f"<Notification {self.type} to user={self.user_id}>"
