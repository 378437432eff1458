"""
Purpose: The EventPublisher capability injected into every service that notifies.
What it does:
- EventPublisher: the interface (publish one Event).
- NullPublisher: does nothing.
- InMemoryPublisher: keeps what was published (simulations, tests).
- RabbitMQPublisher: topic exchange "events", routing key = event type. Sends from
  a background worker so a slow or absent broker never holds up a request.
- safe_publish(): the fan-out helper services call. A failing publisher is
  logged and never fails the surrounding operation.
"""

from __future__ import annotations

import json
import logging
import os
import queue
import threading
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

import pika

from .events import Event, EventType

logger = logging.getLogger(__name__)

# Tells the publisher worker to stop.
_STOP = object()


class EventPublisher(ABC):
    @abstractmethod
    def publish(self, event: Event) -> None:
        ...


class NullPublisher(EventPublisher):
    def publish(self, event: Event) -> None:
        return None


class InMemoryPublisher(EventPublisher):
    def __init__(self):
        self.events: List[Event] = []
        self._lock = threading.Lock()

    def publish(self, event: Event) -> None:
        with self._lock:
            self.events.append(event)

    def of_type(self, event_type: EventType) -> List[Event]:
        return [event for event in self.events if event.type == event_type]

    def clear(self) -> None:
        with self._lock:
            self.events.clear()


class RabbitMQPublisher(EventPublisher):
    """
    Publishes events as persistent JSON messages to a topic exchange.
    publish() only enqueues. One daemon worker thread owns the pika connection
    (pika connections must stay on one thread), connects lazily and reconnects
    after a failure. A message that fails to send is logged and dropped.
    """

    def __init__(
        self,
        url: str,
        exchange_name: str = "events",
        exchange_type: str = "topic",
        max_pending: int = 10000,
    ):
        self.parameters = pika.URLParameters(url)
        self.exchange_name = exchange_name
        self.exchange_type = exchange_type
        self.connection = None
        self.channel = None
        self.pending: queue.Queue = queue.Queue(maxsize=max_pending)
        self._worker: Optional[threading.Thread] = None
        self._start_lock = threading.Lock()

    @classmethod
    def from_env(cls) -> Optional["RabbitMQPublisher"]:
        url = os.getenv("RABBITMQ_URL")
        if not url:
            return None
        return cls(url)

    def publish(self, event: Event) -> None:
        self._ensure_worker()
        try:
            self.pending.put_nowait(event)
        except queue.Full:
            logger.warning("Event queue full; dropping %s for order %s", event.type.value, event.order_id)

    def close(self, timeout: float = 5.0) -> None:
        """Sends what is queued, then stops the worker and closes the connection."""
        worker = self._worker
        if worker is None:
            return
        self.pending.put(_STOP)
        worker.join(timeout)
        self._worker = None

    def _ensure_worker(self) -> None:
        with self._start_lock:
            if self._worker is None or not self._worker.is_alive():
                self._worker = threading.Thread(target=self._run, name="rabbitmq-publisher", daemon=True)
                self._worker.start()

    # ----------------
    # Worker thread only
    # ----------------
    def _run(self) -> None:
        while True:
            event = self.pending.get()
            if event is _STOP:
                self._disconnect()
                return
            try:
                self._send(event)
            except pika.exceptions.AMQPError:
                logger.exception("Failed to publish %s for order %s", event.type.value, event.order_id)
                self._disconnect()

    def _connect(self) -> None:
        self.connection = pika.BlockingConnection(self.parameters)
        self.channel = self.connection.channel()
        # durable so the exchange survives broker restarts
        self.channel.exchange_declare(
            exchange=self.exchange_name,
            exchange_type=self.exchange_type,
            durable=True,
        )
        logger.info("Connected to RabbitMQ exchange %s", self.exchange_name)

    def _send(self, event: Event) -> None:
        if not self.connection or self.connection.is_closed:
            self._connect()
        self.channel.basic_publish(
            exchange=self.exchange_name,
            routing_key=event.type.value,
            body=json.dumps(event.as_message(), default=str),
            properties=pika.BasicProperties(
                delivery_mode=2,  # persistent
                content_type="application/json",
            ),
        )

    def _disconnect(self) -> None:
        try:
            if self.connection and not self.connection.is_closed:
                self.connection.close()
        except pika.exceptions.AMQPError:
            logger.warning("RabbitMQ connection did not close cleanly", exc_info=True)
        self.connection = None
        self.channel = None


def safe_publish(publisher: Optional[EventPublisher], events: Iterable[Event]) -> None:
    """Best-effort fan-out. Never raises."""
    if publisher is None:
        return
    for event in events:
        try:
            publisher.publish(event)
        except Exception:
            logger.exception("Failed to publish %s for order %s", event.type.value, event.order_id)
