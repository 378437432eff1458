from .events import Event, EventType
from .publisher import (
    EventPublisher,
    InMemoryPublisher,
    NullPublisher,
    RabbitMQPublisher,
    safe_publish,
)

__all__ = [
    "Event",
    "EventType",
    "EventPublisher",
    "InMemoryPublisher",
    "NullPublisher",
    "RabbitMQPublisher",
    "safe_publish",
]
