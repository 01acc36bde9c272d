from datetime import datetime
from sqlalchemy import Column, String, DateTime

from inventory.db.base import Base


class ProcessedEvent(Base):
    """Dedup ledger: one row per event a consumer has already applied."""
    __tablename__ = "processed_events"

    consumer = Column(String(100), primary_key=True)
    event_id = Column(String(64), primary_key=True)
    routing_key = Column(String(100), nullable=False)
    processed_at = Column(DateTime, default=datetime.utcnow, index=True)

    def __repr__(self) -> str:
        return f"<ProcessedEvent {self.consumer}:{self.event_id}>"
