"""Unit tests for base domain models."""

from __future__ import annotations

from lifecycle.domain.models.base import (
    AggregateRoot,
    DomainEvent,
    generate_id,
    utc_now,
)


class SampleAggregate(AggregateRoot):
    name: str = "sample"


class TestGenerateId:
    def test_unique(self) -> None:
        ids = {generate_id() for _ in range(100)}
        assert len(ids) == 100


class TestUtcNow:
    def test_timezone_aware(self) -> None:
        assert utc_now().tzinfo is not None


class TestAggregateRoot:
    def test_touch_bumps_version(self) -> None:
        aggregate = SampleAggregate()
        before = aggregate.updated_at
        aggregate.touch()
        assert aggregate.version == 2
        assert aggregate.updated_at >= before

    def test_collect_events_clears(self) -> None:
        aggregate = SampleAggregate()
        aggregate.add_event(DomainEvent(event_type="test.event"))
        assert len(aggregate.pending_events) == 1
        events = aggregate.collect_events()
        assert [e.event_type for e in events] == ["test.event"]
        assert aggregate.pending_events == []

    def test_events_not_serialized(self) -> None:
        aggregate = SampleAggregate()
        aggregate.add_event(DomainEvent(event_type="test.event"))
        assert "_domain_events" not in aggregate.model_dump()

    def test_instances_do_not_share_events(self) -> None:
        first, second = SampleAggregate(), SampleAggregate()
        first.add_event(DomainEvent(event_type="test.event"))
        assert second.pending_events == []
