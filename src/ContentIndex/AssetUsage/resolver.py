"""Resolve asset-like values to the identifier of their original asset."""

from __future__ import annotations

from typing import Any, List

from .contracts import AssetLike
from .errors import AssetResolutionError

__all__ = ["AssetResolver", "as_asset_list"]


def as_asset_list(value: Any) -> List[Any]:
    """Normalise a single asset or a sequence of assets into a list.

    Empty values (``None``, ``""``, ``[]``) yield an empty list.
    """

    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [item for item in value if item]
    return [value]


class AssetResolver:
    """Default resolver for asset objects, variants, and raw identifiers.

    Raw string values are taken to be original asset identifiers already, which
    is how persisted node properties usually reference assets.
    """

    def is_variant(self, value: Any) -> bool:
        return callable(getattr(value, "get_original_asset", None))

    def original_of(self, value: Any) -> Any:
        """Return the original asset of ``value`` (``value`` itself if it is not a variant)."""

        if not self.is_variant(value):
            return value
        try:
            return value.get_original_asset()
        except AssetResolutionError:
            raise
        except Exception as exc:
            raise AssetResolutionError(
                f"Could not load original asset of variant {getattr(value, 'identifier', value)!r}: {exc}"
            ) from exc

    def identifier_of(self, value: Any) -> str:
        if isinstance(value, str):
            return value
        if isinstance(value, AssetLike):
            return value.identifier
        raise AssetResolutionError(f"Value {value!r} is not an asset reference")

    def resolve_original_identifier(self, value: Any) -> str:
        """Return the identifier usage must be attributed to."""

        return self.identifier_of(self.original_of(value))
