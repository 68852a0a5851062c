"""Per-node-type discovery of properties that can hold asset references."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional, Tuple

from .contracts import NodeTypeLike, PropertyKind

__all__ = ["PropertyClassifier"]

logger = logging.getLogger(__name__)


class PropertyClassifier:
    """Classify node-type properties and memoize the result per type name.

    The cache is owned by the instance and never invalidated; node-type schemas
    are treated as immutable for the lifetime of the process, so a schema
    change requires a fresh classifier.
    """

    def __init__(self) -> None:
        self._cache: Dict[str, Dict[str, PropertyKind]] = {}
        self._lock = threading.Lock()

    def asset_properties(self, node_type: Optional[NodeTypeLike]) -> Dict[str, PropertyKind]:
        """Return ``{property_name: kind}`` for all asset-capable properties of ``node_type``."""

        if node_type is None:
            return {}
        type_name = node_type.name
        cached = self._cache.get(type_name)
        if cached is not None:
            return cached

        kinds: Dict[str, PropertyKind] = {}
        for property_name in node_type.property_names():
            kind = PropertyKind.from_declared_type(node_type.property_type(property_name))
            if kind is not None:
                kinds[property_name] = kind

        with self._lock:
            cached = self._cache.setdefault(type_name, kinds)
        logger.debug(
            "Classified node type %s: %d asset properties", type_name, len(cached)
        )
        return cached

    def asset_property_names(self, node_type: Optional[NodeTypeLike]) -> Tuple[str, ...]:
        """Return asset-capable property names in schema declaration order."""

        return tuple(self.asset_properties(node_type))

    def is_asset_property(self, node_type: Optional[NodeTypeLike], property_name: str) -> bool:
        return property_name in self.asset_properties(node_type)
