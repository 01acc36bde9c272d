"""Base class for long-lived event consumers.

One consumer owns one durable queue and processes its messages one at a
time (prefetch 1), which keeps per-entity ordering within the queue.

Failure policy per message:
- handled: ack
- permanent failure (unknown entity, malformed body): ack, log a warning
- transient failure: ack and put a copy back on the queue with an
  incremented ``x-retries`` header; once ``consumer_max_retries`` is
  reached the copy goes to the dead-letter exchange instead
"""

import logging
from typing import Any, Dict, Tuple

from kombu.exceptions import KombuError
from kombu.mixins import ConsumerMixin
from pydantic import ValidationError

from inventory.core.config import get_settings
from inventory.core.exceptions import NotFoundError, PayloadError
from .topology import consumer_queue, dead_letter_exchange, dead_letter_queue, events_exchange

logger = logging.getLogger(__name__)

RETRIES_HEADER = "x-retries"
ORIGINAL_KEY_HEADER = "x-original-routing-key"
LAST_ERROR_HEADER = "x-last-error"

# Retrying cannot fix these
PERMANENT_ERRORS: Tuple[type, ...] = (NotFoundError, PayloadError, ValidationError, KeyError)


class EventConsumer(ConsumerMixin):
    """Consumes one queue bound to the events exchange."""

    queue_name: str = ""
    routing_keys: Tuple[str, ...] = ()

    def __init__(self, connection, settings=None):
        self.connection = connection
        self.settings = settings or get_settings()
        self.max_retries = self.settings.consumer_max_retries
        self.exchange = events_exchange(self.settings)
        self.dead_letter_exchange = dead_letter_exchange(self.settings)
        self.queue = consumer_queue(self.queue_name, self.routing_keys, self.exchange)
        self.dead_letter_queue = dead_letter_queue(self.queue_name, self.dead_letter_exchange)
        self._producer = None

    def get_consumers(self, Consumer, channel):
        self.exchange(channel).declare()
        self.dead_letter_queue(channel).declare()
        return [
            Consumer(
                queues=[self.queue],
                callbacks=[self.on_message],
                accept=["json"],
                prefetch_count=1,
            )
        ]

    def handle(self, routing_key: str, body: Dict[str, Any]) -> None:
        """Apply one event. Subclasses implement this."""
        raise NotImplementedError

    @property
    def producer(self):
        if self._producer is None:
            self._producer = self.connection.Producer(serializer="json")
        return self._producer

    def on_message(self, body: Dict[str, Any], message) -> None:
        headers = message.headers or {}
        routing_key = headers.get(ORIGINAL_KEY_HEADER) or message.delivery_info.get("routing_key", "")

        try:
            self.handle(routing_key, body)
        except PERMANENT_ERRORS as e:
            logger.warning(f"{self.queue_name}: dropping {routing_key} message: {e}")
            message.ack()
        except Exception as e:
            logger.exception(f"{self.queue_name}: error processing {routing_key} message")
            self._retry_or_dead_letter(routing_key, body, message, e)
        else:
            message.ack()

    def _retry_or_dead_letter(self, routing_key: str, body: Dict[str, Any], message, error: Exception) -> None:
        retries = int((message.headers or {}).get(RETRIES_HEADER, 0))
        headers = {
            RETRIES_HEADER: retries + 1,
            ORIGINAL_KEY_HEADER: routing_key,
            LAST_ERROR_HEADER: str(error)[:500],
        }

        try:
            if retries < self.max_retries:
                # Default exchange: delivers to this queue only
                self.producer.publish(
                    body,
                    exchange="",
                    routing_key=self.queue_name,
                    headers=headers,
                    delivery_mode=2,
                )
                logger.info(f"{self.queue_name}: requeued {routing_key} message (retry {retries + 1}/{self.max_retries})")
            else:
                self.producer.publish(
                    body,
                    exchange=self.dead_letter_exchange,
                    routing_key=self.queue_name,
                    headers=headers,
                    declare=[self.dead_letter_queue],
                    delivery_mode=2,
                )
                logger.error(f"{self.queue_name}: {routing_key} message dead-lettered after {retries} retries")
        except (KombuError, OSError):
            logger.exception(f"{self.queue_name}: could not reroute failed message, returning it to the queue")
            message.requeue()
            return

        message.ack()
