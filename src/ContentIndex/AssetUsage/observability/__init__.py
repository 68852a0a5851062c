"""Structured observability events for usage index operations."""

from .events import (
    Event,
    EventIds,
    clear_context,
    clear_sinks,
    emit_event,
    flush_events,
    get_context,
    register_sink,
    set_context,
    unregister_sink,
)

__all__ = [
    "Event",
    "EventIds",
    "clear_context",
    "clear_sinks",
    "emit_event",
    "flush_events",
    "get_context",
    "register_sink",
    "set_context",
    "unregister_sink",
]
