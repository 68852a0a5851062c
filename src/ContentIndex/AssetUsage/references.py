"""Read-side queries answering "where is this asset used?"."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .resolver import AssetResolver
from .store.base import UsageStore

__all__ = ["AssetUsageInNodeProperties", "UsageReferences"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssetUsageInNodeProperties:
    """One node location referencing an asset through its properties."""

    asset_id: str
    node_identifier: Optional[str]
    workspace_name: Optional[str]
    dimensions: Dict[str, List[str]] = field(default_factory=dict)
    node_type_name: Optional[str] = None
    usage_key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "node_identifier": self.node_identifier,
            "workspace": self.workspace_name,
            "dimensions": self.dimensions,
            "node_type": self.node_type_name,
            "usage_key": self.usage_key,
        }


class UsageReferences:
    """Usage lookups for assets, variants, or raw asset identifiers.

    Variants are attributed to their original, so asking about a variant
    returns the usages of the original asset.
    """

    def __init__(self, store: UsageStore, resolver: Optional[AssetResolver] = None) -> None:
        self.store = store
        self.resolver = resolver or AssetResolver()

    def get_usage_references(self, asset: Any) -> List[AssetUsageInNodeProperties]:
        asset_id = self.resolver.resolve_original_identifier(asset)
        references = [
            AssetUsageInNodeProperties(
                asset_id=record.asset_id,
                node_identifier=record.metadata.node_identifier,
                workspace_name=record.metadata.workspace_name,
                dimensions=record.metadata.dimensions,
                node_type_name=record.metadata.node_type_name,
                usage_key=record.usage_key,
            )
            for record in self.store.list_by_asset(asset_id)
        ]
        logger.debug("Found %d usages of %s", len(references), asset_id, extra={"asset_id": asset_id})
        return references

    def is_in_use(self, asset: Any) -> bool:
        return self.store.count(asset_id=self.resolver.resolve_original_identifier(asset)) > 0

    def get_usage_count(self, asset: Any) -> int:
        return self.store.count(asset_id=self.resolver.resolve_original_identifier(asset))
