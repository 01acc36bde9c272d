"""Celery tasks and broker consumers."""

from inventory.workers.tasks import (
    celery_app,
    republish_event,
    purge_processed_events,
)

__all__ = [
    "celery_app",
    "republish_event",
    "purge_processed_events",
]
