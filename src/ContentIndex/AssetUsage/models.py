"""Plain dataclass implementations of the collaborator contracts.

These back the JSON snapshot reader and the test-suite.  Hosts with their own
content repository adapt their objects to :mod:`.contracts` instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .errors import AssetResolutionError, NodeTypeNotFoundError

__all__ = ["Asset", "AssetVariant", "NodeType", "Workspace", "Node"]


@dataclass(frozen=True)
class Asset:
    """An original asset."""

    identifier: str


@dataclass(frozen=True)
class AssetVariant:
    """A rendition of ``original``; ``original`` is ``None`` when it cannot be loaded."""

    identifier: str
    original: Optional[Asset] = None

    def get_original_asset(self) -> Asset:
        if self.original is None:
            raise AssetResolutionError(
                f"Original asset of variant {self.identifier!r} could not be loaded"
            )
        return self.original


@dataclass(frozen=True)
class NodeType:
    """Node-type schema: property name to declared type, in declaration order."""

    name: str
    properties: Mapping[str, str] = field(default_factory=dict)

    def property_names(self) -> Iterable[str]:
        return list(self.properties)

    def property_type(self, property_name: str) -> Optional[str]:
        return self.properties.get(property_name)


@dataclass(frozen=True)
class Workspace:
    name: str


@dataclass
class Node:
    """One node in one workspace and dimension combination.

    ``node_type_resolved`` is ``None`` when the declared type is unknown; reading
    :attr:`node_type` then raises :class:`NodeTypeNotFoundError`.
    """

    identifier: str
    node_type_name: str
    workspace_name: str
    dimensions: Dict[str, List[str]] = field(default_factory=dict)
    properties: Dict[str, Any] = field(default_factory=dict)
    removed: bool = False
    node_type_resolved: Optional[NodeType] = None

    @property
    def node_type(self) -> NodeType:
        if self.node_type_resolved is None:
            raise NodeTypeNotFoundError(self.node_type_name)
        return self.node_type_resolved

    def has_property(self, property_name: str) -> bool:
        return property_name in self.properties

    def get_property(self, property_name: str) -> Any:
        return self.properties.get(property_name)

    def set_property(self, property_name: str, value: Any) -> Any:
        """Set ``property_name`` and return the previous value."""

        previous = self.properties.get(property_name)
        self.properties[property_name] = value
        return previous
