"""Tests for the Celery maintenance and republish tasks."""

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from inventory.core.exceptions import PublishError
from inventory.db.models import ProcessedEvent
from inventory.messaging.publisher import EventPublisher
from inventory.workers import tasks

pytestmark = [pytest.mark.db, pytest.mark.integration]


def test_purge_keeps_recent_records(db_session, session_factory):
    db_session.add_all([
        ProcessedEvent(consumer="product-transfers", event_id="old", routing_key="product.transferred",
                       processed_at=datetime.utcnow() - timedelta(days=30)),
        ProcessedEvent(consumer="product-transfers", event_id="new", routing_key="product.transferred",
                       processed_at=datetime.utcnow()),
    ])
    db_session.commit()

    with patch.object(tasks, "SessionLocal", session_factory):
        deleted = tasks.purge_processed_events(retention_days=7)

    assert deleted == 1
    db_session.expire_all()
    assert [r.event_id for r in db_session.query(ProcessedEvent).all()] == ["new"]


def test_republish_hands_event_to_broker():
    with patch.object(EventPublisher, "publish_raw") as publish_raw:
        assert tasks.republish_event("product.created", {"product_id": 1}, message_id="abc") is True

    publish_raw.assert_called_once_with("product.created", {"product_id": 1}, message_id="abc")


def test_republish_failure_is_raised_for_retry():
    with patch.object(EventPublisher, "publish_raw", side_effect=PublishError("broker down")):
        with pytest.raises(PublishError):
            tasks.republish_event("product.created", {"product_id": 1}, message_id="abc")
