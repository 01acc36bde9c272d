"""Exchanges and queues of the event bus."""

from typing import Iterable

from kombu import Exchange, Queue, binding


def events_exchange(settings) -> Exchange:
    return Exchange(settings.events_exchange, type="topic", durable=True)


def dead_letter_exchange(settings) -> Exchange:
    return Exchange(settings.dead_letter_exchange, type="direct", durable=True)


def consumer_queue(name: str, routing_keys: Iterable[str], exchange: Exchange) -> Queue:
    """Durable queue bound to ``exchange`` once per routing key pattern."""
    return Queue(
        name,
        bindings=[binding(exchange, routing_key=key) for key in routing_keys],
        durable=True,
    )


def dead_letter_queue(name: str, exchange: Exchange) -> Queue:
    """Parking queue for messages of ``name`` that exhausted their retries."""
    return Queue(f"{name}.dead-letter", exchange=exchange, routing_key=name, durable=True)
