# === NAVMAP v1 ===
# {
#   "module": "ContentIndex.AssetUsage.contracts",
#   "purpose": "Collaborator contracts consumed by the usage index (content tree, node types, assets, notifications)",
#   "sections": [
#     {"id": "kinds", "name": "PropertyKind", "anchor": "class-propertykind", "kind": "class"},
#     {"id": "assets", "name": "Asset Contracts", "anchor": "AST", "kind": "api"},
#     {"id": "nodes", "name": "Node Contracts", "anchor": "NOD", "kind": "api"},
#     {"id": "tree", "name": "ContentTreeReader", "anchor": "class-contenttreereader", "kind": "class"},
#     {"id": "notifications", "name": "ChangeNotifications", "anchor": "class-changenotifications", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Collaborator contracts for the asset usage index.

The index does not own the content tree, its node-type schema, or the asset
library.  It only needs the narrow read-only views declared here.  Hosts adapt
their own objects to these protocols (structural typing, no inheritance
required); :mod:`ContentIndex.AssetUsage.models` ships plain dataclass
implementations used by the snapshot reader and the test-suite.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, Iterator, Mapping, Optional, Protocol, Sequence, runtime_checkable

__all__ = [
    "PropertyKind",
    "DimensionValues",
    "AssetLike",
    "AssetVariantLike",
    "NodeTypeLike",
    "NodeLike",
    "WorkspaceLike",
    "ContentTreeReader",
    "ChangeNotifications",
]

DimensionValues = Mapping[str, Sequence[str]]


class PropertyKind(str, Enum):
    """Closed set of declared property types that can hold asset references."""

    SINGLE_ASSET = "single-asset"
    ASSET_SUPERTYPE = "asset-supertype"
    IMAGE = "image"
    ASSET_ARRAY = "asset-array"

    @classmethod
    def from_declared_type(cls, declared: Optional[str]) -> Optional["PropertyKind"]:
        """Map a declared schema type to a kind, or ``None`` for non-asset types."""

        if not declared:
            return None
        return _DECLARED_TYPE_KINDS.get(declared)


# Anything not listed here is not an asset property.
_DECLARED_TYPE_KINDS = {
    "single-asset": PropertyKind.SINGLE_ASSET,
    "asset-supertype": PropertyKind.ASSET_SUPERTYPE,
    "image": PropertyKind.IMAGE,
    "asset-array": PropertyKind.ASSET_ARRAY,
}


# ============================================================================
# ASSET CONTRACTS (AST)
# ============================================================================


@runtime_checkable
class AssetLike(Protocol):
    """Anything carrying a stable asset identifier."""

    @property
    def identifier(self) -> str: ...


@runtime_checkable
class AssetVariantLike(Protocol):
    """A derived rendition; usage is always attributed to its original.

    ``get_original_asset`` may raise when the original cannot be loaded.
    """

    @property
    def identifier(self) -> str: ...

    def get_original_asset(self) -> AssetLike: ...


# ============================================================================
# NODE CONTRACTS (NOD)
# ============================================================================


class NodeTypeLike(Protocol):
    """Read-only view of a node-type schema."""

    @property
    def name(self) -> str: ...

    def property_names(self) -> Iterable[str]: ...

    def property_type(self, property_name: str) -> Optional[str]: ...


class WorkspaceLike(Protocol):
    @property
    def name(self) -> str: ...


class NodeLike(Protocol):
    """Read-only view of one node in one workspace and dimension combination.

    ``node_type`` raises :class:`~ContentIndex.AssetUsage.errors.NodeTypeNotFoundError`
    when the declared type is unknown.
    """

    @property
    def identifier(self) -> str: ...

    @property
    def node_type(self) -> NodeTypeLike: ...

    @property
    def workspace_name(self) -> str: ...

    @property
    def dimensions(self) -> DimensionValues: ...

    @property
    def removed(self) -> bool: ...

    def has_property(self, property_name: str) -> bool: ...

    def get_property(self, property_name: str) -> Any: ...


class ContentTreeReader(Protocol):
    """Enumerates the authoritative node set and looks up single nodes."""

    def count(self) -> int: ...

    def iterate(self) -> Iterator[NodeLike]: ...

    def find_node(
        self, identifier: str, workspace_name: str, dimensions: DimensionValues
    ) -> Optional[NodeLike]: ...


class ChangeNotifications(Protocol):
    """One method per content-tree change event, delivered synchronously.

    Wiring a host event source to an implementation is the host's job; the
    index registers no listeners of its own.
    """

    def asset_removed(self, asset: Any) -> Any: ...

    def node_added(self, node: NodeLike) -> Any: ...

    def node_removed(self, node: NodeLike) -> Any: ...

    def node_discarded(self, node: NodeLike) -> Any: ...

    def node_property_changed(
        self, node: NodeLike, property_name: str, old_value: Any, new_value: Any
    ) -> Any: ...

    def before_node_publishing(self, node: NodeLike, target_workspace: WorkspaceLike) -> Any: ...

    def after_node_publishing(self, node: NodeLike) -> Any: ...
