"""Domain events and the topic-routed bus that carries them."""

from .events import DomainEvent, parse_event, EVENT_TYPES
from .publisher import EventPublisher

__all__ = [
    "DomainEvent",
    "parse_event",
    "EVENT_TYPES",
    "EventPublisher",
]
