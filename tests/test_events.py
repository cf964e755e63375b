"""Tests for the in-process event bus."""

from __future__ import annotations

from typing import Any, List

from contentforge.events import RESOURCE_MUTATED, STATE_MUTATED, TOPICS, EventBus


def test_publish_reaches_every_subscriber_in_order() -> None:
    bus = EventBus()
    received: List[str] = []
    bus.subscribe(STATE_MUTATED, lambda payload: received.append(f"first:{payload}"))
    bus.subscribe(STATE_MUTATED, lambda payload: received.append(f"second:{payload}"))

    notified = bus.publish(STATE_MUTATED, "x")

    assert notified == 2
    assert received == ["first:x", "second:x"]


def test_failing_subscriber_does_not_block_others() -> None:
    bus = EventBus()
    received: List[Any] = []

    def broken(payload: Any) -> None:
        raise ValueError("boom")

    bus.subscribe(RESOURCE_MUTATED, broken)
    bus.subscribe(RESOURCE_MUTATED, received.append)

    notified = bus.publish(RESOURCE_MUTATED, {"reason": "test"})

    assert notified == 1
    assert received == [{"reason": "test"}]
    assert bus.stats == {"subscribers": 2, "published": 1, "errors": 1}


def test_subscribe_is_idempotent_and_unsubscribe_reports_presence() -> None:
    bus = EventBus()
    received: List[Any] = []

    assert bus.subscribe(STATE_MUTATED, received.append) is True
    assert bus.subscribe(STATE_MUTATED, received.append) is False
    assert bus.subscriber_count(STATE_MUTATED) == 1

    assert bus.unsubscribe(STATE_MUTATED, received.append) is True
    assert bus.unsubscribe(STATE_MUTATED, received.append) is False
    assert bus.publish(STATE_MUTATED, 1) == 0
    assert received == []


def test_decorator_subscription_and_clear() -> None:
    bus = EventBus()
    received: List[Any] = []

    @bus.on(RESOURCE_MUTATED)
    def handler(payload: Any) -> None:
        received.append(payload)

    bus.publish(RESOURCE_MUTATED, "a")
    bus.publish(STATE_MUTATED, "ignored")

    assert received == ["a"]
    assert bus.clear() == 1
    assert bus.subscriber_count() == 0


def test_topic_names() -> None:
    assert "resource:encountered" in TOPICS
    assert "diagnostic:resource-annotations" in TOPICS
    assert "diagnostic:route-annotations" in TOPICS
    assert len(set(TOPICS)) == len(TOPICS)
