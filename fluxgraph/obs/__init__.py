"""Observability primitives for fluxgraph."""

from .events import Event, EventBus, GraphEvent

__all__ = ["Event", "EventBus", "GraphEvent"]
