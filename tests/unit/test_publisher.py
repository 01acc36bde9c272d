"""Tests for the event publisher."""

from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest
from kombu import Connection

from inventory.core.config import Settings
from inventory.core.exceptions import PublishError
from inventory.messaging.events import ApprovalRequestCancelled, ProductDeleted
from inventory.messaging.publisher import EventPublisher
from inventory.messaging.topology import consumer_queue, events_exchange


@pytest.fixture
def settings():
    return Settings(broker_url="memory://", publish_max_retries=0)


def _broken_connection():
    conn = MagicMock()
    conn.__enter__.return_value = conn
    conn.Producer.return_value.publish.side_effect = OSError("connection refused")
    return conn


class TestPublish:

    def test_event_reaches_bound_queue(self, settings):
        connection = Connection("memory://")
        queue = consumer_queue("publisher-test", ["product.*"], events_exchange(settings))(connection.channel())
        queue.declare()

        publisher = EventPublisher(lambda: Connection("memory://"), settings)
        event = ProductDeleted(product_id=3, inventory_code=1234)
        assert publisher.publish(event) is True

        message = queue.get(no_ack=True)
        assert message is not None
        assert message.payload["product_id"] == 3
        assert message.payload["event_id"] == event.event_id
        assert message.delivery_info["routing_key"] == "product.deleted"
        connection.release()

    def test_failure_is_deferred(self, settings):
        publisher = EventPublisher(_broken_connection, settings)
        event = ProductDeleted(product_id=3, inventory_code=1234)

        with patch.object(EventPublisher, "_defer") as defer:
            assert publisher.publish(event) is False

        defer.assert_called_once_with("product.deleted", event.to_message(), event.event_id)

    def test_strict_failure_raises(self, settings):
        publisher = EventPublisher(_broken_connection, settings)
        event = ApprovalRequestCancelled(
            request_id=1, request_type="product.create", requested_by_id=2, cancelled_at=datetime.utcnow(),
        )

        with patch.object(EventPublisher, "_defer") as defer:
            with pytest.raises(PublishError):
                publisher.publish(event, strict=True)

        defer.assert_not_called()

    def test_defer_hands_event_to_celery(self, settings):
        publisher = EventPublisher(_broken_connection, settings)

        with patch("inventory.workers.tasks.republish_event") as task:
            publisher._defer("product.deleted", {"product_id": 3}, "abc")

        task.delay.assert_called_once_with("product.deleted", {"product_id": 3}, "abc")
