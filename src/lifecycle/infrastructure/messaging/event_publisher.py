"""Event publisher implementations."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from lifecycle.domain.ports.services import EventPublisher


logger = structlog.get_logger(__name__)

EventHandler = Callable[[dict[str, Any]], Awaitable[None]]


class InMemoryEventPublisher(EventPublisher):
    """In-memory event publisher for development/testing."""

    def __init__(self) -> None:
        self._events: list[tuple[str, dict[str, Any]]] = []
        self._handlers: dict[str, list[EventHandler]] = {}

    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        self._events.append((event_type, payload))
        logger.info(
            "event_published",
            event_type=event_type,
            attempt_id=payload.get("attempt_id"),
        )

        for handler in self._handlers.get(event_type, []):
            await handler(payload)

    async def publish_batch(self, events: list[tuple[str, dict[str, Any]]]) -> None:
        for event_type, payload in events:
            await self.publish(event_type, payload)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    @property
    def published_events(self) -> list[tuple[str, dict[str, Any]]]:
        return list(self._events)

    def events_for(self, attempt_id: str) -> list[str]:
        """Event types published for one attempt, in publish order."""
        return [t for t, p in self._events if p.get("attempt_id") == attempt_id]

    def clear(self) -> None:
        self._events.clear()


class KafkaEventPublisher(EventPublisher):
    """Kafka implementation of EventPublisher.

    Messages are keyed by attempt id so every event of one attempt lands on
    the same partition and consumers see its phases in order.
    """

    def __init__(self, producer: Any, topic_prefix: str = "lifecycle") -> None:
        self._producer = producer
        self._topic_prefix = topic_prefix

    def _encode(self, event_type: str, payload: dict[str, Any]) -> tuple[str, bytes, bytes | None]:
        topic = f"{self._topic_prefix}.{event_type}"
        value = json.dumps(payload, default=str).encode("utf-8")
        attempt_id = payload.get("attempt_id")
        key = attempt_id.encode("utf-8") if attempt_id else None
        return topic, value, key

    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        topic, value, key = self._encode(event_type, payload)
        await self._producer.send_and_wait(topic, value=value, key=key)
        logger.info("kafka_event_published", topic=topic)

    async def publish_batch(self, events: list[tuple[str, dict[str, Any]]]) -> None:
        for event_type, payload in events:
            topic, value, key = self._encode(event_type, payload)
            await self._producer.send(topic, value=value, key=key)

        await self._producer.flush()
        logger.info("kafka_batch_published", event_count=len(events))
