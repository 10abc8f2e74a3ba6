"""Tests for :mod:`fluxgraph.obs.events`."""

from __future__ import annotations

import logging

import pytest

from fluxgraph.obs.events import DEFAULT_MAX_HISTORY, EventBus, GraphEvent


def test_event_bus_emit_and_history():
    bus = EventBus()
    event = bus.emit(GraphEvent.NODE_ADDED, {"id": "n1"})

    assert event.type == "node:added"
    assert event.payload == {"id": "n1"}
    assert list(bus.history()) == [event]


def test_subscribers_receive_matching_events_only():
    bus = EventBus()
    received = []
    bus.on(GraphEvent.EDGE_ADDED, received.append)

    bus.emit(GraphEvent.NODE_ADDED)
    bus.emit("edge:added", "payload")

    assert [event.payload for event in received] == ["payload"]


def test_once_and_unsubscribe():
    bus = EventBus()
    once_calls = []
    regular_calls = []
    bus.once(GraphEvent.NODE_UPDATED, once_calls.append)
    unsubscribe = bus.on(GraphEvent.NODE_UPDATED, regular_calls.append)

    bus.emit(GraphEvent.NODE_UPDATED)
    unsubscribe()
    bus.emit(GraphEvent.NODE_UPDATED)

    assert len(once_calls) == 1
    assert len(regular_calls) == 1
    assert bus.subscriber_count() == 0


def test_on_all_sees_every_event():
    bus = EventBus()
    seen = []
    bus.on_all(lambda event: seen.append(event.type))

    bus.emit(GraphEvent.NODE_ADDED)
    bus.emit(GraphEvent.GRAPH_CLEARED)

    assert seen == ["node:added", "graph:cleared"]
    assert bus.subscriber_count() == 1
    assert bus.subscriber_count(GraphEvent.NODE_ADDED) == 0


def test_failing_subscriber_does_not_block_others(caplog):
    bus = EventBus()
    received = []

    def broken(event):
        raise RuntimeError("boom")

    bus.on(GraphEvent.NODE_DELETED, broken)
    bus.on(GraphEvent.NODE_DELETED, received.append)

    with caplog.at_level(logging.ERROR):
        bus.emit(GraphEvent.NODE_DELETED, "n1")

    assert [event.payload for event in received] == ["n1"]
    assert "Error in event handler for node:deleted" in caplog.text


def test_clear_drops_history_and_subscriptions():
    bus = EventBus()
    bus.on_all(lambda event: None)
    bus.emit(GraphEvent.NODE_ADDED)

    bus.clear()

    assert list(bus.history()) == []
    assert bus.subscriber_count() == 0


def test_history_keeps_only_latest_events():
    bus = EventBus(max_history=2)
    for index in range(5):
        bus.emit(GraphEvent.NODE_UPDATED, index)

    assert [event.payload for event in bus.history()] == [3, 4]


def test_history_is_bounded_by_default():
    bus = EventBus()
    for _ in range(DEFAULT_MAX_HISTORY + 10):
        bus.emit(GraphEvent.NODE_UPDATED)

    assert len(bus.history()) == DEFAULT_MAX_HISTORY


def test_unbounded_history_and_invalid_limit():
    bus = EventBus(max_history=None)
    for _ in range(DEFAULT_MAX_HISTORY + 10):
        bus.emit(GraphEvent.NODE_UPDATED)

    assert len(bus.history()) == DEFAULT_MAX_HISTORY + 10
    with pytest.raises(ValueError):
        EventBus(max_history=-1)
