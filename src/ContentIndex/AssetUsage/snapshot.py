# === NAVMAP v1 ===
# {
#   "module": "ContentIndex.AssetUsage.snapshot",
#   "purpose": "Load content-tree snapshots (JSON or YAML) and expose them through the content-tree reader contract",
#   "sections": [
#     {"id": "schema", "name": "Snapshot Schema", "anchor": "SCH", "kind": "infra"},
#     {"id": "snapshot", "name": "ContentSnapshot", "anchor": "class-contentsnapshot", "kind": "class"},
#     {"id": "loader", "name": "load_snapshot", "anchor": "function-load-snapshot", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Content-tree snapshots.

A snapshot is a self-contained export of the node types, assets and nodes of a
content repository.  The operator CLI reconciles the usage store against one::

    {
      "nodeTypes": {"Text": {"properties": {"image": "image", "title": "string"}}},
      "assets": {"A1": {}, "V1": {"originalAssetId": "A1"}},
      "nodes": [
        {"identifier": "N1", "nodeType": "Text", "workspace": "live",
         "dimensions": {"language": ["en"]}, "properties": {"image": "A1"}}
      ]
    }

Property values naming a known asset are materialised as :class:`Asset` or
:class:`AssetVariant` objects; any other value is passed through unchanged.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import yaml
from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError as JSONSchemaValidationError

from .errors import SnapshotError
from .keys import serialize_dimensions
from .models import Asset, AssetVariant, Node, NodeType

__all__ = ["SNAPSHOT_JSON_SCHEMA", "ContentSnapshot", "load_snapshot", "parse_snapshot"]

logger = logging.getLogger(__name__)

# ============================================================================
# Snapshot Schema (SCH)
# ============================================================================

SNAPSHOT_JSON_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["nodes"],
    "additionalProperties": False,
    "properties": {
        "nodeTypes": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "properties": {
                    "properties": {
                        "type": "object",
                        "additionalProperties": {"type": "string"},
                    }
                },
            },
        },
        "assets": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "properties": {"originalAssetId": {"type": "string", "minLength": 1}},
            },
        },
        "nodes": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["identifier", "nodeType", "workspace"],
                "properties": {
                    "identifier": {"type": "string", "minLength": 1},
                    "nodeType": {"type": "string", "minLength": 1},
                    "workspace": {"type": "string", "minLength": 1},
                    "dimensions": {
                        "type": "object",
                        "additionalProperties": {"type": "array", "items": {"type": "string"}},
                    },
                    "removed": {"type": "boolean"},
                    "properties": {"type": "object"},
                },
            },
        },
    },
}

Draft202012Validator.check_schema(SNAPSHOT_JSON_SCHEMA)
_SNAPSHOT_VALIDATOR = Draft202012Validator(SNAPSHOT_JSON_SCHEMA)


_NodeAddress = Tuple[str, str, str]


class ContentSnapshot:
    """In-memory content tree built from a validated snapshot document."""

    def __init__(
        self,
        node_types: Mapping[str, NodeType],
        assets: Mapping[str, Union[Asset, AssetVariant]],
        nodes: Sequence[Node],
    ) -> None:
        self.node_types = dict(node_types)
        self.assets = dict(assets)
        self._nodes: List[Node] = list(nodes)
        self._index: Dict[_NodeAddress, Node] = {}
        for node in self._nodes:
            self._index[self._address(node.identifier, node.workspace_name, node.dimensions)] = node

    @staticmethod
    def _address(identifier: str, workspace_name: str, dimensions: Mapping[str, Sequence[str]]) -> _NodeAddress:
        return (identifier, workspace_name, serialize_dimensions(dimensions))

    def count(self) -> int:
        return len(self._nodes)

    def iterate(self) -> Iterator[Node]:
        return iter(self._nodes)

    def find_node(
        self, identifier: str, workspace_name: str, dimensions: Mapping[str, Sequence[str]]
    ) -> Optional[Node]:
        return self._index.get(self._address(identifier, workspace_name, dimensions))

    def __len__(self) -> int:
        return len(self._nodes)


def _materialise(value: Any, assets: Mapping[str, Union[Asset, AssetVariant]]) -> Any:
    if isinstance(value, str):
        return assets.get(value, value)
    if isinstance(value, list):
        return [_materialise(item, assets) for item in value]
    return value


def parse_snapshot(payload: Any, *, source: Optional[Path] = None) -> ContentSnapshot:
    """Validate ``payload`` and build a :class:`ContentSnapshot` from it.

    Raises:
        SnapshotError: If the document violates the snapshot schema.
    """

    try:
        _SNAPSHOT_VALIDATOR.validate(payload)
    except JSONSchemaValidationError as exc:
        location = " -> ".join(str(part) for part in exc.path)
        message = exc.message
        if location:
            message = f"{location}: {message}"
        context = f" for {source}" if source else ""
        raise SnapshotError(f"Snapshot validation failed{context}: {message}") from exc

    node_types = {
        name: NodeType(name=name, properties=dict((declaration or {}).get("properties", {})))
        for name, declaration in payload.get("nodeTypes", {}).items()
    }

    originals: Dict[str, Asset] = {}
    assets: Dict[str, Union[Asset, AssetVariant]] = {}
    raw_assets: Mapping[str, Mapping[str, Any]] = payload.get("assets", {})
    for asset_id, declaration in raw_assets.items():
        if not declaration.get("originalAssetId"):
            originals[asset_id] = Asset(asset_id)
            assets[asset_id] = originals[asset_id]
    for asset_id, declaration in raw_assets.items():
        original_id = declaration.get("originalAssetId")
        if original_id:
            # A dangling original is kept so resolution fails per reference.
            assets[asset_id] = AssetVariant(asset_id, originals.get(original_id))

    nodes: List[Node] = []
    for entry in payload["nodes"]:
        type_name = entry["nodeType"]
        nodes.append(
            Node(
                identifier=entry["identifier"],
                node_type_name=type_name,
                workspace_name=entry["workspace"],
                dimensions={k: list(v) for k, v in entry.get("dimensions", {}).items()},
                properties={k: _materialise(v, assets) for k, v in entry.get("properties", {}).items()},
                removed=bool(entry.get("removed", False)),
                node_type_resolved=node_types.get(type_name),
            )
        )

    logger.debug(
        "Parsed snapshot",
        extra={
            "extra_fields": {
                "node_types": len(node_types),
                "assets": len(assets),
                "nodes": len(nodes),
            }
        },
    )
    return ContentSnapshot(node_types, assets, nodes)


def load_snapshot(path: Path) -> ContentSnapshot:
    """Read a ``.json``, ``.yaml`` or ``.yml`` snapshot file.

    Raises:
        SnapshotError: If the file is missing, unparsable or invalid.
    """

    if not path.exists():
        raise SnapshotError(f"Snapshot file not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
        if path.suffix.lower() in {".yaml", ".yml"}:
            payload = yaml.safe_load(text)
        else:
            payload = json.loads(text)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
        raise SnapshotError(f"Unable to read snapshot {path}: {exc}") from exc
    return parse_snapshot(payload, source=path)
