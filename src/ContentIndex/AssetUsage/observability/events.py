# === NAVMAP v1 ===
# {
#   "module": "ContentIndex.AssetUsage.observability.events",
#   "purpose": "Canonical Event model and emission system.",
#   "sections": [
#     {
#       "id": "eventids",
#       "name": "EventIds",
#       "anchor": "class-eventids",
#       "kind": "class"
#     },
#     {
#       "id": "event",
#       "name": "Event",
#       "anchor": "class-event",
#       "kind": "class"
#     },
#     {
#       "id": "set-context",
#       "name": "set_context",
#       "anchor": "function-set-context",
#       "kind": "function"
#     },
#     {
#       "id": "register-sink",
#       "name": "register_sink",
#       "anchor": "function-register-sink",
#       "kind": "function"
#     },
#     {
#       "id": "emit-event",
#       "name": "emit_event",
#       "anchor": "function-emit-event",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Canonical Event model and emission system.

Event envelope (present on ALL events):
  - ts: UTC ISO 8601 timestamp
  - type: namespaced event type (e.g., "reconcile.begin", "usage.registered")
  - level: INFO|WARN|ERROR
  - run_id: correlates one CLI command or reconciliation with its nested events
  - service: service name stamped by settings (default "asset-usage")
  - context: {app_version, os_name, python_version, hostname, pid}
  - ids: {usage_key, asset_id, node_identifier}
  - payload: event-specific fields (varies by type)
"""

import contextvars
import json
import logging
import os
import platform
import sys
import uuid
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from importlib import metadata
from typing import Any

logger = logging.getLogger(__name__)

_LEVELS = ("INFO", "WARN", "ERROR")

# ============================================================================
# Context Variables (for correlation)
# ============================================================================

_run_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("run_id", default=None)
_service_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("service", default=None)


def _app_version() -> str:
    try:
        return metadata.version("content-index-asset-usage")
    except metadata.PackageNotFoundError:
        return "0.0.0"


# ============================================================================
# Data Models
# ============================================================================


@dataclass(frozen=True)
class EventIds:
    """IDs for correlating events with usage records and nodes."""

    usage_key: str | None = None
    asset_id: str | None = None
    node_identifier: str | None = None


@dataclass(frozen=True)
class EventContext:
    """Runtime context captured at event emission."""

    app_version: str
    os_name: str
    python_version: str
    hostname: str | None = None
    pid: int | None = None


@dataclass(frozen=True)
class Event:
    """Canonical event envelope."""

    ts: str
    type: str
    level: str
    run_id: str
    service: str
    context: EventContext
    ids: EventIds
    payload: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return {
            "ts": self.ts,
            "type": self.type,
            "level": self.level,
            "run_id": self.run_id,
            "service": self.service,
            "context": asdict(self.context),
            "ids": asdict(self.ids),
            "payload": self.payload,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


# ============================================================================
# Context Management
# ============================================================================


def set_context(run_id: str | None = None, service: str | None = None) -> None:
    """Set correlation context for emitted events.

    Example:
        >>> set_context(run_id="run-123", service="asset-usage")
    """
    if run_id is not None:
        _run_id_var.set(run_id)
    if service is not None:
        _service_var.set(service)


def get_context() -> dict[str, str | None]:
    return {"run_id": _run_id_var.get(), "service": _service_var.get()}


def clear_context() -> None:
    """Clear correlation context (idempotent)."""
    _run_id_var.set(None)
    _service_var.set(None)


# ============================================================================
# Sinks
# ============================================================================

_sinks: list = []


def register_sink(sink) -> None:
    """Register an event sink exposing ``emit(event)`` and optionally ``flush()``."""
    _sinks.append(sink)


def unregister_sink(sink) -> None:
    if sink in _sinks:
        _sinks.remove(sink)


def clear_sinks() -> None:
    """Close and drop every registered sink."""
    while _sinks:
        sink = _sinks.pop()
        close = getattr(sink, "close", None)
        if callable(close):
            try:
                close()
            except Exception as e:
                logger.error(f"Error closing sink {sink.__class__.__name__}: {e}")


def flush_events() -> None:
    """Flush all registered event sinks."""
    for sink in _sinks:
        try:
            if hasattr(sink, "flush"):
                sink.flush()
        except Exception as e:
            logger.error(f"Error flushing sink {sink.__class__.__name__}: {e}")


# ============================================================================
# Event Emission
# ============================================================================


def emit_event(
    type: str,
    level: str = "INFO",
    payload: dict[str, Any] | None = None,
    run_id: str | None = None,
    service: str | None = None,
    usage_key: str | None = None,
    asset_id: str | None = None,
    node_identifier: str | None = None,
) -> Event:
    """Emit a structured event to all registered sinks.

    Sink failures are logged and never reach the caller.

    Raises:
        ValueError: If ``type`` is empty or ``level`` is not INFO|WARN|ERROR
    """
    if not type or not level:
        raise ValueError("Event type and level are required")
    if level not in _LEVELS:
        raise ValueError(f"Invalid level: {level}; must be INFO|WARN|ERROR")

    ctx = get_context()
    event = Event(
        ts=datetime.now(UTC).isoformat(),
        type=type,
        level=level,
        run_id=run_id or ctx["run_id"] or str(uuid.uuid4()),
        service=service or ctx["service"] or "asset-usage",
        context=EventContext(
            app_version=_app_version(),
            os_name=platform.system(),
            python_version=f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
            hostname=os.getenv("HOSTNAME", None),
            pid=os.getpid(),
        ),
        ids=EventIds(usage_key=usage_key, asset_id=asset_id, node_identifier=node_identifier),
        payload=payload or {},
    )

    for sink in _sinks:
        try:
            sink.emit(event)
        except Exception as e:
            logger.error(f"Error emitting to sink {sink.__class__.__name__}: {e}")

    return event


__all__ = [
    "Event",
    "EventIds",
    "EventContext",
    "emit_event",
    "set_context",
    "get_context",
    "clear_context",
    "flush_events",
    "register_sink",
    "unregister_sink",
    "clear_sinks",
]
