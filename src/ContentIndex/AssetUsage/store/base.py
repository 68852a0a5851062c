# === NAVMAP v1 ===
# {
#   "module": "ContentIndex.AssetUsage.store.base",
#   "purpose": "Usage store contract and the record types it persists",
#   "sections": [
#     {"id": "types", "name": "Data Transfer Objects", "anchor": "DTO", "kind": "models"},
#     {"id": "contract", "name": "UsageStore", "anchor": "class-usagestore", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Usage store contract.

Stores hold at most one :class:`UsageRecord` per ``(usage_key, asset_id)``
pair.  ``register`` is an upsert and ``unregister`` a no-op for absent pairs,
so concurrent incremental updates and a reconciliation sweep can interleave
without corrupting state.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

__all__ = ["UsageMetadata", "UsageRecord", "UsageStore"]


# ============================================================================
# Data Transfer Objects (DTO)
# ============================================================================


@dataclass(frozen=True)
class UsageMetadata:
    """Node location a usage record points back to."""

    node_identifier: Optional[str] = None
    workspace_name: Optional[str] = None
    dimensions_json: str = "{}"
    node_type_name: Optional[str] = None

    @property
    def dimensions(self) -> Dict[str, List[str]]:
        """Decoded dimension values; ``{}`` when the stored JSON is unusable."""

        try:
            decoded = json.loads(self.dimensions_json or "{}")
        except ValueError:
            return {}
        return decoded if isinstance(decoded, dict) else {}


@dataclass(frozen=True)
class UsageRecord:
    """Stored fact that ``usage_key`` references ``asset_id``."""

    usage_key: str
    asset_id: str
    metadata: UsageMetadata = field(default_factory=UsageMetadata)

    @property
    def pair(self) -> tuple:
        return (self.usage_key, self.asset_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "usage_key": self.usage_key,
            "asset_id": self.asset_id,
            "node_identifier": self.metadata.node_identifier,
            "workspace": self.metadata.workspace_name,
            "dimensions": self.metadata.dimensions_json,
            "node_type": self.metadata.node_type_name,
        }


# ============================================================================
# Contract
# ============================================================================


@runtime_checkable
class UsageStore(Protocol):
    """Keyed persistence for usage records.

    Implementations raise :class:`~ContentIndex.AssetUsage.errors.UsageStoreError`
    when the backing store is unavailable; callers never retry.
    """

    def register(self, usage_key: str, asset_id: str, metadata: UsageMetadata) -> None: ...

    def unregister(self, usage_key: str, asset_id: str) -> None: ...

    def unregister_all_by_asset(self, asset_id: str) -> int: ...

    def list_all(self) -> Sequence[UsageRecord]: ...

    def list_by_asset(self, asset_id: str) -> Sequence[UsageRecord]: ...

    def exists(self, usage_key: str, asset_id: str) -> bool: ...

    def count(self, usage_key: Optional[str] = None, asset_id: Optional[str] = None) -> int: ...
