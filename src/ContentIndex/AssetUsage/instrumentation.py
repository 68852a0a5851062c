# === NAVMAP v1 ===
# {
#   "module": "ContentIndex.AssetUsage.instrumentation",
#   "purpose": "Observability event helpers for usage registration, reconciliation, and CLI commands",
#   "sections": [
#     {"id": "usage", "name": "Usage Events", "anchor": "USE", "kind": "api"},
#     {"id": "reconcile", "name": "Reconcile Events", "anchor": "REC", "kind": "api"},
#     {"id": "cli", "name": "CLI Command Events", "anchor": "CLI", "kind": "api"},
#     {"id": "timing", "name": "TimedOperation", "anchor": "class-timedoperation", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Helpers emitting structured events for usage index operations."""

from __future__ import annotations

import time

from .observability.events import emit_event

# ============================================================================
# USAGE EVENTS (USE)
# ============================================================================


def emit_usage_registered(usage_key: str, asset_id: str, node_identifier: str | None) -> None:
    emit_event(
        type="usage.registered",
        payload={"operation": "register"},
        usage_key=usage_key,
        asset_id=asset_id,
        node_identifier=node_identifier,
    )


def emit_usage_unregistered(usage_key: str, asset_id: str, node_identifier: str | None) -> None:
    emit_event(
        type="usage.unregistered",
        payload={"operation": "unregister"},
        usage_key=usage_key,
        asset_id=asset_id,
        node_identifier=node_identifier,
    )


def emit_usage_purged(asset_id: str, removed: int) -> None:
    """Emit the event for all usages of a removed asset being dropped."""

    emit_event(
        type="usage.purged",
        payload={"operation": "purge", "removed": removed},
        asset_id=asset_id,
    )


# ============================================================================
# RECONCILE EVENTS (REC)
# ============================================================================


def emit_reconcile_begin(total_nodes: int, known_usages: int, dry_run: bool = False) -> float:
    """Emit reconciliation begin event and return the start time."""

    start_time = time.time()
    emit_event(
        type="reconcile.begin",
        payload={
            "phase": "begin",
            "total_nodes": total_nodes,
            "known_usages": known_usages,
            "dry_run": dry_run,
        },
    )
    return start_time


def emit_reconcile_usage_added(usage_key: str, asset_id: str, node_identifier: str) -> None:
    emit_event(
        type="reconcile.usage_added",
        payload={"phase": "scan"},
        usage_key=usage_key,
        asset_id=asset_id,
        node_identifier=node_identifier,
    )


def emit_reconcile_usage_removed(usage_key: str, asset_id: str, node_identifier: str | None) -> None:
    emit_event(
        type="reconcile.usage_removed",
        level="WARN",
        payload={"phase": "sweep"},
        usage_key=usage_key,
        asset_id=asset_id,
        node_identifier=node_identifier,
    )


def emit_reconcile_error(node_identifier: str, property_name: str, message: str) -> None:
    emit_event(
        type="reconcile.error",
        level="ERROR",
        payload={"phase": "scan", "property": property_name, "message": message},
        node_identifier=node_identifier,
    )


def emit_reconcile_complete(
    *,
    added: int,
    removed: int,
    errors: int,
    processed: int,
    cancelled: bool,
    dry_run: bool,
    duration_ms: float,
) -> None:
    emit_event(
        type="reconcile.complete",
        level="WARN" if errors or cancelled else "INFO",
        payload={
            "phase": "complete",
            "added": added,
            "removed": removed,
            "errors": errors,
            "processed": processed,
            "cancelled": cancelled,
            "dry_run": dry_run,
            "duration_ms": round(duration_ms, 1),
        },
    )


# ============================================================================
# CLI COMMAND EVENTS (CLI)
# ============================================================================


def emit_cli_command_begin(command: str, args: dict | None = None) -> float:
    """Emit CLI command begin event.

    Returns:
        Start time for later duration calculation
    """
    start_time = time.time()
    payload = {"command": command, "phase": "begin"}
    if args:
        payload["args"] = args
    emit_event(type=f"cli.{command}.begin", payload=payload)
    return start_time


def emit_cli_command_success(
    command: str,
    duration_ms: float,
    result_summary: dict | None = None,
) -> None:
    payload = {
        "command": command,
        "phase": "success",
        "duration_ms": round(duration_ms, 1),
    }
    if result_summary:
        payload["result_summary"] = result_summary
    emit_event(type=f"cli.{command}.success", payload=payload)


def emit_cli_command_error(command: str, duration_ms: float, error: Exception) -> None:
    payload = {
        "command": command,
        "phase": "error",
        "duration_ms": round(duration_ms, 1),
        "error_type": type(error).__name__,
        "error_message": str(error),
    }
    emit_event(type=f"cli.{command}.error", level="ERROR", payload=payload)


# ============================================================================
# TIMING CONTEXT MANAGERS
# ============================================================================


class TimedOperation:
    """Context manager measuring elapsed wall time in milliseconds."""

    def __init__(self, operation_name: str):
        self.operation_name = operation_name
        self.start_time = 0.0

    def __enter__(self) -> TimedOperation:
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        return None

    @property
    def elapsed_ms(self) -> float:
        return (time.time() - self.start_time) * 1000
