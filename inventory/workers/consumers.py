"""Long-lived broker consumers.

Run one per queue:

    python -m inventory.workers.consumers product-transfers
    python -m inventory.workers.consumers notifications
"""

import argparse
import asyncio
import logging
import sys
from typing import Any, Dict, Optional

from kombu import Connection
from sqlalchemy.orm import Session

from inventory.core.config import get_settings
from inventory.core.logger import configure_from_settings
from inventory.db.session import SessionLocal
from inventory.messaging.consumer import EventConsumer
from inventory.messaging.events import ProductTransferred, parse_event
from inventory.services.notification_events import NOTIFICATION_ROUTING_KEYS, NotificationEventHandler
from inventory.services.propagation import PRODUCT_TRANSFERS_CONSUMER, apply_product_transfer

logger = logging.getLogger(__name__)


class ProductTransferConsumer(EventConsumer):
    """Applies completed transfers to products."""

    queue_name = PRODUCT_TRANSFERS_CONSUMER
    routing_keys = (ProductTransferred.routing_key,)

    def __init__(self, connection, settings=None, session_factory=SessionLocal):
        super().__init__(connection, settings)
        self.session_factory = session_factory

    def handle(self, routing_key: str, body: Dict[str, Any]) -> None:
        event = parse_event(routing_key, body)
        db: Session = self.session_factory()
        try:
            apply_product_transfer(db, event, consumer=self.queue_name)
        finally:
            db.close()


class NotificationConsumer(EventConsumer):
    """
    Feeds bus events to the notification handler.

    With ``loop`` set (the API's event loop, when the consumer runs in a
    thread of the API process) handlers run on that loop so they can push
    to its WebSocket connections; otherwise each message gets its own loop.
    """

    queue_name = "notification-queue"
    routing_keys = NOTIFICATION_ROUTING_KEYS

    def __init__(
        self,
        connection,
        handler: NotificationEventHandler,
        settings=None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        timeout: float = 30.0,
    ):
        super().__init__(connection, settings)
        self.handler = handler
        self.loop = loop
        self.timeout = timeout

    def handle(self, routing_key: str, body: Dict[str, Any]) -> None:
        coro = self.handler.handle(routing_key, body)
        if self.loop is None:
            asyncio.run(coro)
        else:
            asyncio.run_coroutine_threadsafe(coro, self.loop).result(self.timeout)


def build_consumer(name: str, connection: Connection, settings=None) -> EventConsumer:
    if name == "product-transfers":
        return ProductTransferConsumer(connection, settings)
    if name == "notifications":
        return NotificationConsumer(connection, NotificationEventHandler(SessionLocal), settings)
    raise ValueError(f"Unknown consumer: {name}")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run an event consumer")
    parser.add_argument("consumer", choices=["product-transfers", "notifications"])
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_from_settings(settings)

    with Connection(settings.broker_url) as connection:
        consumer = build_consumer(args.consumer, connection, settings)
        logger.info(f"Starting {args.consumer} consumer on {consumer.queue_name}")
        try:
            consumer.run()
        except KeyboardInterrupt:
            logger.info(f"Stopping {args.consumer} consumer")
    return 0


if __name__ == "__main__":
    sys.exit(main())
