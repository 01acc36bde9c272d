"""Event publisher.

Events are published after the state change they describe has been
committed. A failed publish never rolls that state back: it is logged
and handed to a Celery task that keeps retrying. Callers that must not
proceed without the event (cancellation) publish with ``strict=True``.
"""

import logging
from typing import Any, Callable, Dict, Optional

from kombu import Connection
from kombu.exceptions import KombuError

from inventory.core.config import get_settings
from inventory.core.exceptions import PublishError
from .events import DomainEvent
from .topology import events_exchange

logger = logging.getLogger(__name__)


class EventPublisher:
    """Publishes domain events to the topic exchange."""

    def __init__(
        self,
        connection_factory: Optional[Callable[[], Connection]] = None,
        settings=None,
    ):
        self.settings = settings or get_settings()
        self._connection_factory = connection_factory or (lambda: Connection(self.settings.broker_url))
        self.exchange = events_exchange(self.settings)

    def publish(self, event: DomainEvent, *, strict: bool = False) -> bool:
        """
        Publish an event.

        Args:
            event: Event to publish
            strict: Raise instead of deferring when the broker is unreachable

        Returns:
            True if the broker accepted the event, False if it was deferred

        Raises:
            PublishError: Only with ``strict=True``
        """
        body = event.to_message()
        try:
            self.publish_raw(event.routing_key, body, message_id=event.event_id)
        except PublishError:
            if strict:
                raise
            logger.exception(f"Failed to publish {event.routing_key} event {event.event_id}, deferring")
            self._defer(event.routing_key, body, event.event_id)
            return False
        return True

    def publish_raw(self, routing_key: str, body: Dict[str, Any], *, message_id: Optional[str] = None) -> None:
        """Publish an already-serialized event body. Raises ``PublishError``."""
        retry_policy = {
            "max_retries": self.settings.publish_max_retries,
            "interval_start": 0,
            "interval_step": 1,
            "interval_max": 5,
        }
        try:
            with self._connection_factory() as conn:
                producer = conn.Producer(serializer="json")
                producer.publish(
                    body,
                    exchange=self.exchange,
                    routing_key=routing_key,
                    declare=[self.exchange],
                    delivery_mode=2,
                    message_id=message_id,
                    retry=True,
                    retry_policy=retry_policy,
                )
        except (KombuError, OSError) as e:
            raise PublishError(f"Could not publish {routing_key}: {e}") from e

        logger.info(f"Published {routing_key} event {message_id}")

    def _defer(self, routing_key: str, body: Dict[str, Any], message_id: str) -> None:
        # Import here to avoid circular imports
        from inventory.workers.tasks import republish_event

        try:
            republish_event.delay(routing_key, body, message_id)
        except (KombuError, OSError):
            logger.exception(f"Could not defer {routing_key} event {message_id}; event lost")
