"""Applies product transfers announced by the route side.

Redelivery is expected (at-least-once delivery): each event id is
recorded per consumer and a second delivery is skipped. The update itself
is also idempotent, so an event re-sent under a new id changes nothing
either.
"""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inventory.core.codec import Attachment
from inventory.core.exceptions import NotFoundError
from inventory.db.models import ProcessedEvent, Product
from inventory.messaging.events import ProductTransferred

logger = logging.getLogger(__name__)

PRODUCT_TRANSFERS_CONSUMER = "product-transfers"


def is_processed(db: Session, consumer: str, event_id: str) -> bool:
    return db.get(ProcessedEvent, (consumer, event_id)) is not None


def apply_product_transfer(
    db: Session,
    event: ProductTransferred,
    *,
    consumer: str = PRODUCT_TRANSFERS_CONSUMER,
) -> bool:
    """
    Move a product to the department and worker named in ``event``.

    Returns:
        True if the product changed, False for duplicates and no-ops

    Raises:
        NotFoundError: The product does not exist (not retryable)
    """
    if is_processed(db, consumer, event.event_id):
        logger.info(f"Skipping already processed {event.routing_key} event {event.event_id}")
        return False

    product = db.get(Product, event.product_id)
    if not product:
        raise NotFoundError("Product", event.product_id)

    changed = product.apply_transfer(event.to_department_id, event.to_worker)

    if event.image_data:
        image = Attachment.from_base64(event.image_data, file_name=event.image_file_name)
        if image.content != product.image_data:
            product.image_data = image.content
            product.image_file_name = image.file_name
            changed = True

    db.add(ProcessedEvent(consumer=consumer, event_id=event.event_id, routing_key=event.routing_key))
    try:
        db.commit()
    except IntegrityError:
        # Another consumer instance recorded the same event first
        db.rollback()
        logger.info(f"Event {event.event_id} was processed concurrently")
        return False

    if changed:
        logger.info(
            f"Product {product.id} transferred to department {event.to_department_id}"
            + (f" ({event.to_worker})" if event.to_worker else "")
        )
    else:
        logger.info(f"Product {product.id} already at department {event.to_department_id}, nothing to do")
    return changed
