"""Celery tasks backing the event bus.

Provides async task processing for:
- Re-publishing events the API could not hand to the broker
- Periodic pruning of the consumers' dedup ledger
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional
import logging

from celery import Celery, shared_task

from inventory.core.config import get_settings
from inventory.core.exceptions import PublishError
from inventory.db.models import ProcessedEvent
from inventory.db.session import SessionLocal
from inventory.messaging.publisher import EventPublisher

logger = logging.getLogger(__name__)
settings = get_settings()

celery_app = Celery(
    'inventory',
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_routes={
        'inventory.workers.tasks.republish_event': {'queue': 'events'},
        'inventory.workers.tasks.purge_processed_events': {'queue': 'maintenance'},
    },
    task_default_queue='default',
    beat_schedule={
        'purge-processed-events': {
            'task': 'inventory.workers.tasks.purge_processed_events',
            'schedule': timedelta(hours=6),
        },
    },
)


@shared_task(bind=True, max_retries=5, default_retry_delay=30)
def republish_event(
    self,
    routing_key: str,
    body: Dict[str, Any],
    message_id: Optional[str] = None,
) -> bool:
    """
    Publish an event the API failed to publish.

    Args:
        routing_key: Event routing key
        body: Serialized event
        message_id: Event id, kept so consumers can deduplicate
    """
    try:
        EventPublisher().publish_raw(routing_key, body, message_id=message_id)
    except PublishError as e:
        logger.warning(f"Republish of {routing_key} event {message_id} failed (attempt {self.request.retries + 1})")
        raise self.retry(exc=e)

    logger.info(f"Republished {routing_key} event {message_id}")
    return True


@shared_task
def purge_processed_events(retention_days: Optional[int] = None) -> int:
    """
    Delete dedup records older than the retention window.

    Returns:
        Number of rows deleted
    """
    days = retention_days if retention_days is not None else settings.processed_event_retention_days
    cutoff = datetime.utcnow() - timedelta(days=days)

    db = SessionLocal()
    try:
        deleted = db.query(ProcessedEvent).filter(
            ProcessedEvent.processed_at < cutoff
        ).delete(synchronize_session=False)
        db.commit()
        logger.info(f"Purged {deleted} processed-event records older than {days} days")
        return deleted
    except Exception:
        db.rollback()
        logger.exception("Purging processed events failed")
        raise
    finally:
        db.close()
