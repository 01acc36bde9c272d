"""Integration tests for applying product transfers from the event bus."""

from datetime import datetime

import pytest

from inventory.core.codec import Attachment
from inventory.core.exceptions import NotFoundError
from inventory.db.models import ProcessedEvent, Product
from inventory.messaging.events import ProductTransferred
from inventory.services.propagation import apply_product_transfer, is_processed

from tests.factories import create_department, create_product

pytestmark = [pytest.mark.db, pytest.mark.integration]


def _event(product_id, department_id, worker=None, **kwargs):
    return ProductTransferred(
        product_id=product_id,
        to_department_id=department_id,
        to_worker=worker,
        transferred_at=datetime.utcnow(),
        **kwargs,
    )


def test_moves_product(db_session):
    product = create_product(db_session, worker="Ann")
    target = create_department(db_session)
    event = _event(product.id, target.id, "Bo")

    assert apply_product_transfer(db_session, event) is True

    db_session.expire_all()
    moved = db_session.get(Product, product.id)
    assert (moved.department_id, moved.worker) == (target.id, "Bo")
    assert is_processed(db_session, "product-transfers", event.event_id)


def test_redelivery_is_skipped(db_session):
    product = create_product(db_session)
    target = create_department(db_session)
    event = _event(product.id, target.id)

    apply_product_transfer(db_session, event)
    assert apply_product_transfer(db_session, event) is False
    assert db_session.query(ProcessedEvent).count() == 1


def test_same_transfer_under_new_id_is_a_noop(db_session):
    product = create_product(db_session)
    target = create_department(db_session)

    apply_product_transfer(db_session, _event(product.id, target.id))
    assert apply_product_transfer(db_session, _event(product.id, target.id)) is False
    assert db_session.query(ProcessedEvent).count() == 2


def test_image_travels_with_transfer(db_session):
    product = create_product(db_session, image_data=b"old")
    event = _event(
        product.id,
        product.department_id,
        product.worker,
        image_data=Attachment(b"new").to_base64(),
        image_file_name="new.png",
    )

    assert apply_product_transfer(db_session, event) is True
    assert db_session.get(Product, product.id).image_data == b"new"


def test_unknown_product(db_session):
    with pytest.raises(NotFoundError):
        apply_product_transfer(db_session, _event(404, 1))


def test_consumers_deduplicate_independently(db_session):
    product = create_product(db_session)
    target = create_department(db_session)
    event = _event(product.id, target.id)

    apply_product_transfer(db_session, event)
    apply_product_transfer(db_session, event, consumer="audit")

    assert db_session.query(ProcessedEvent).count() == 2
