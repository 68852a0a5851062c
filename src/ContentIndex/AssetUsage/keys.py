"""Usage key derivation.

A usage key names "one node, in one workspace, under one dimension
combination".  It is never stored on its own; it is recomputed from the node
whenever a usage is registered, unregistered, or confirmed, so every code path
must derive it through :func:`derive_usage_key`.
"""

from __future__ import annotations

import hashlib
import json
from typing import Mapping, Sequence

__all__ = ["serialize_dimensions", "derive_usage_key"]


def serialize_dimensions(dimension_values: Mapping[str, Sequence[str]]) -> str:
    """Return canonical JSON for ``dimension_values``.

    Dimension names are sorted; the order of values inside one dimension is
    kept because it encodes the fallback chain.

    Examples:
        >>> serialize_dimensions({"language": ["en"], "country": ["us"]})
        '{"country":["us"],"language":["en"]}'
        >>> serialize_dimensions({})
        '{}'
    """

    canonical = {name: list(values) for name, values in dimension_values.items()}
    return json.dumps(canonical, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def derive_usage_key(
    node_identifier: str,
    dimension_values: Mapping[str, Sequence[str]],
    workspace_name: str,
) -> str:
    """Return the 128-bit hex usage key for a node location.

    Examples:
        >>> key = derive_usage_key("N1", {}, "live")
        >>> len(key)
        32
        >>> key == derive_usage_key("N1", {}, "live")
        True
    """

    raw = f"{node_identifier}|{serialize_dimensions(dimension_values)}|{workspace_name}"
    return hashlib.md5(raw.encode("utf-8")).hexdigest()
