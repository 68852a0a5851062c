"""Exception hierarchy shared across usage registration, queries, and reconciliation.

The usage index sits between a content tree it does not own and a keyed store it
does not control.  Failures therefore fall into two families: per-item problems
inside the content tree (an unknown node type, a variant whose original vanished)
that callers accumulate and report, and store failures that must abort the
running operation.  Keeping both families under one base lets operator tooling
catch everything while library callers react to the specific category.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "AssetUsageError",
    "UsageStoreError",
    "NodeTypeNotFoundError",
    "AssetResolutionError",
    "SnapshotError",
    "ConfigurationError",
]


class AssetUsageError(RuntimeError):
    """Base exception for asset usage indexing failures."""


class UsageStoreError(AssetUsageError):
    """Raised when the usage store cannot be read or written.

    Store failures are never retried internally; they propagate to whoever
    triggered the incremental update or the reconciliation run.
    """

    def __init__(self, message: str, *, operation: Optional[str] = None) -> None:
        super().__init__(message)
        self.operation = operation


class NodeTypeNotFoundError(AssetUsageError):
    """Raised when a node references a node type that is not declared."""

    def __init__(self, node_type_name: str) -> None:
        super().__init__(f"Node type '{node_type_name}' is not declared")
        self.node_type_name = node_type_name


class AssetResolutionError(AssetUsageError):
    """Raised when an asset value cannot be resolved to an original asset identifier."""


class SnapshotError(AssetUsageError):
    """Raised when a content snapshot is missing or fails schema validation."""


class ConfigurationError(AssetUsageError):
    """Raised when settings or CLI inputs are invalid."""


# === NAVMAP v1 ===
# {
#   "module": "ContentIndex.AssetUsage.errors",
#   "purpose": "Define the exception hierarchy used by registration, reconciliation, and the CLI",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "store", "name": "Store Errors", "anchor": "STO", "kind": "api"},
#     {"id": "content", "name": "Content Tree Errors", "anchor": "CNT", "kind": "api"}
#   ]
# }
# === /NAVMAP ===
