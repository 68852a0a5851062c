# === NAVMAP v1 ===
# {
#   "module": "ContentIndex.AssetUsage.integration",
#   "purpose": "Incremental updater keeping the usage store in step with content-tree change notifications",
#   "sections": [
#     {"id": "types", "name": "Outcome Types", "anchor": "TYP", "kind": "models"},
#     {"id": "integration", "name": "AssetUsageIntegration", "anchor": "class-assetusageintegration", "kind": "class"},
#     {"id": "registration", "name": "Registration Primitives", "anchor": "REG", "kind": "api"},
#     {"id": "handlers", "name": "Notification Handlers", "anchor": "HND", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Incremental usage updates driven by content-tree change notifications.

:class:`AssetUsageIntegration` implements
:class:`~ContentIndex.AssetUsage.contracts.ChangeNotifications`.  Each handler
runs synchronously in the caller's thread and returns an :class:`UpdateOutcome`
describing what it did.  Per-reference resolution failures are recorded in the
outcome and logged; store failures raise
:class:`~ContentIndex.AssetUsage.errors.UsageStoreError` immediately.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .classifier import PropertyClassifier
from .contracts import ContentTreeReader, NodeLike, WorkspaceLike
from .errors import AssetResolutionError, NodeTypeNotFoundError
from .instrumentation import emit_usage_purged, emit_usage_registered, emit_usage_unregistered
from .keys import derive_usage_key, serialize_dimensions
from .resolver import AssetResolver, as_asset_list
from .store.base import UsageMetadata, UsageStore

__all__ = ["UsageError", "UpdateOutcome", "AssetUsageIntegration"]

logger = logging.getLogger(__name__)


# ============================================================================
# OUTCOME TYPES (TYP)
# ============================================================================


@dataclass(frozen=True)
class UsageError:
    """A per-node, per-property failure that did not abort the operation."""

    node_identifier: str
    property_name: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "node_identifier": self.node_identifier,
            "property": self.property_name,
            "message": self.message,
        }


@dataclass
class UpdateOutcome:
    """Store mutations performed by one notification handler."""

    registered: List[Tuple[str, str]] = field(default_factory=list)
    unregistered: List[Tuple[str, str]] = field(default_factory=list)
    retained: List[Tuple[str, str]] = field(default_factory=list)
    errors: List[UsageError] = field(default_factory=list)

    def merge(self, other: "UpdateOutcome") -> "UpdateOutcome":
        self.registered.extend(other.registered)
        self.unregistered.extend(other.unregistered)
        self.retained.extend(other.retained)
        self.errors.extend(other.errors)
        return self

    @property
    def changed(self) -> bool:
        return bool(self.registered or self.unregistered)


# ============================================================================
# INTEGRATION
# ============================================================================


class AssetUsageIntegration:
    """Apply minimal register/unregister operations for content-tree changes.

    Args:
        store: Usage store receiving the mutations.
        classifier: Shared property classifier; a private one is created when omitted.
        resolver: Asset resolver; defaults to :class:`AssetResolver`.
        content_tree: Reader used to locate the node a publish will overwrite.
            Without it, ``before_node_publishing`` only clears the source location.
    """

    def __init__(
        self,
        store: UsageStore,
        *,
        classifier: Optional[PropertyClassifier] = None,
        resolver: Optional[AssetResolver] = None,
        content_tree: Optional[ContentTreeReader] = None,
    ) -> None:
        self.store = store
        self.classifier = classifier or PropertyClassifier()
        self.resolver = resolver or AssetResolver()
        self.content_tree = content_tree

    # ------------------------------------------------------------------------
    # Registration primitives (REG)
    # ------------------------------------------------------------------------

    @staticmethod
    def usage_key_for(node: NodeLike) -> str:
        return derive_usage_key(node.identifier, node.dimensions, node.workspace_name)

    def register_usage(
        self,
        node_identifier: str,
        node_type_name: str,
        dimension_values: Mapping[str, Sequence[str]],
        workspace_name: str,
        asset: Any,
    ) -> str:
        """Register ``asset`` (an asset object or a raw identifier) for a node location.

        Returns:
            The usage key the record was stored under.

        Raises:
            AssetResolutionError: If ``asset`` cannot be resolved to an original identifier.
            UsageStoreError: If the store rejects the write.
        """

        asset_id = self.resolver.resolve_original_identifier(asset)
        usage_key = derive_usage_key(node_identifier, dimension_values, workspace_name)
        metadata = UsageMetadata(
            node_identifier=node_identifier,
            workspace_name=workspace_name,
            dimensions_json=serialize_dimensions(dimension_values),
            node_type_name=node_type_name,
        )
        self.store.register(usage_key, asset_id, metadata)
        logger.debug(
            "Registered usage of %s in node %s",
            asset_id,
            node_identifier,
            extra={"usage_key": usage_key, "asset_id": asset_id, "node_identifier": node_identifier},
        )
        emit_usage_registered(usage_key, asset_id, node_identifier)
        return usage_key

    def register_usage_in_node(self, node: NodeLike, property_name: str, value: Any) -> UpdateOutcome:
        """Register every asset held by ``value`` under the node's current usage key."""

        outcome = UpdateOutcome()
        node_type_name = node.node_type.name
        for asset in as_asset_list(value):
            try:
                asset_id = self.resolver.resolve_original_identifier(asset)
            except AssetResolutionError as exc:
                self._record_error(outcome, node, property_name, exc)
                continue
            usage_key = self.register_usage(
                node.identifier, node_type_name, node.dimensions, node.workspace_name, asset_id
            )
            pair = (usage_key, asset_id)
            if pair not in outcome.registered:
                outcome.registered.append(pair)
        return outcome

    def unregister_usage_in_node(
        self,
        node: NodeLike,
        value: Any,
        check_all_references: bool = True,
        *,
        property_name: Optional[str] = None,
    ) -> UpdateOutcome:
        """Unregister the assets held by ``value`` for the node's current usage key.

        With ``check_all_references`` and more than one asset property on the
        node type, an asset is kept while any asset property other than
        ``property_name`` still references it.  Pass ``property_name=None`` once
        the node no longer holds ``value`` anywhere.
        """

        outcome = UpdateOutcome()
        label = property_name or "*"
        references = self._sibling_references(node, property_name) if check_all_references else None
        usage_key = self.usage_key_for(node)
        for asset in as_asset_list(value):
            try:
                asset_id = self.resolver.resolve_original_identifier(asset)
            except AssetResolutionError as exc:
                self._record_error(outcome, node, label, exc)
                continue
            pair = (usage_key, asset_id)
            if references and references.get(asset_id, 0) > 0:
                logger.debug(
                    "Keeping usage of %s in node %s; still referenced by another property",
                    asset_id,
                    node.identifier,
                    extra={"usage_key": usage_key, "asset_id": asset_id, "node_identifier": node.identifier},
                )
                if pair not in outcome.retained:
                    outcome.retained.append(pair)
                continue
            self.store.unregister(usage_key, asset_id)
            emit_usage_unregistered(usage_key, asset_id, node.identifier)
            if pair not in outcome.unregistered:
                outcome.unregistered.append(pair)
        return outcome

    def _sibling_references(self, node: NodeLike, exclude_property: Optional[str]) -> Optional[Counter]:
        """Count asset references across the node's asset properties except ``exclude_property``.

        Returns ``None`` when the node type has at most one asset property.
        """

        property_names = self.classifier.asset_property_names(node.node_type)
        if len(property_names) <= 1:
            return None
        references: Counter = Counter()
        for name in property_names:
            if name == exclude_property:
                continue
            for asset in self._property_assets(node, name):
                try:
                    references[self.resolver.resolve_original_identifier(asset)] += 1
                except AssetResolutionError as exc:
                    logger.debug("Ignoring unresolvable sibling reference in %s.%s: %s", node.identifier, name, exc)
        return references

    @staticmethod
    def _property_assets(node: NodeLike, property_name: str) -> List[Any]:
        if not node.has_property(property_name):
            return []
        return as_asset_list(node.get_property(property_name))

    @staticmethod
    def _record_error(outcome: UpdateOutcome, node: NodeLike, property_name: str, exc: Exception) -> None:
        logger.warning(
            "Skipping asset reference in %s.%s: %s",
            node.identifier,
            property_name,
            exc,
            extra={"node_identifier": node.identifier},
        )
        outcome.errors.append(UsageError(node.identifier, property_name, str(exc)))

    def _asset_property_names(self, node: NodeLike, outcome: UpdateOutcome) -> Tuple[str, ...]:
        try:
            return self.classifier.asset_property_names(node.node_type)
        except NodeTypeNotFoundError as exc:
            self._record_error(outcome, node, "*", exc)
            return ()

    # ------------------------------------------------------------------------
    # Notification handlers (HND)
    # ------------------------------------------------------------------------

    def asset_removed(self, asset: Any) -> int:
        """Drop every usage of ``asset`` (resolved to its original) and return the count."""

        asset_id = self.resolver.resolve_original_identifier(asset)
        removed = self.store.unregister_all_by_asset(asset_id)
        logger.info("Removed %d usages of deleted asset %s", removed, asset_id, extra={"asset_id": asset_id})
        emit_usage_purged(asset_id, removed)
        return removed

    def node_added(self, node: NodeLike) -> UpdateOutcome:
        outcome = UpdateOutcome()
        for property_name in self._asset_property_names(node, outcome):
            value = node.get_property(property_name) if node.has_property(property_name) else None
            if value:
                outcome.merge(self.register_usage_in_node(node, property_name, value))
        return outcome

    def node_removed(self, node: NodeLike) -> UpdateOutcome:
        """Unregister everything the node references; no sibling counting."""

        outcome = UpdateOutcome()
        for property_name in self._asset_property_names(node, outcome):
            value = node.get_property(property_name) if node.has_property(property_name) else None
            if value:
                outcome.merge(
                    self.unregister_usage_in_node(node, value, False, property_name=property_name)
                )
        return outcome

    def node_discarded(self, node: NodeLike) -> UpdateOutcome:
        return self.node_removed(node)

    def node_property_changed(
        self, node: NodeLike, property_name: str, old_value: Any, new_value: Any
    ) -> UpdateOutcome:
        """Move usage from ``old_value`` to ``new_value`` for one property.

        The old value is unregistered before the new one is registered, and an
        old asset still referenced by a sibling asset property is kept.
        """

        outcome = UpdateOutcome()
        if old_value == new_value:
            return outcome
        try:
            if not self.classifier.is_asset_property(node.node_type, property_name):
                return outcome
        except NodeTypeNotFoundError as exc:
            self._record_error(outcome, node, property_name, exc)
            return outcome

        if old_value:
            outcome.merge(self.unregister_usage_in_node(node, old_value, True, property_name=property_name))
        if new_value:
            outcome.merge(self.register_usage_in_node(node, property_name, new_value))
        return outcome

    def before_node_publishing(self, node: NodeLike, target_workspace: WorkspaceLike) -> UpdateOutcome:
        """Clear the usages of the overwritten target node and of the source node.

        Both locations are re-registered by :meth:`after_node_publishing`.
        """

        outcome = UpdateOutcome()
        target_node = None
        if self.content_tree is not None:
            target_node = self.content_tree.find_node(node.identifier, target_workspace.name, node.dimensions)
        else:
            logger.debug("No content tree configured; cannot look up publish target for %s", node.identifier)

        if target_node is not None:
            outcome.merge(self.node_removed(target_node))
        outcome.merge(self.node_removed(node))
        return outcome

    def after_node_publishing(self, node: NodeLike) -> UpdateOutcome:
        if node.removed:
            return UpdateOutcome()
        return self.node_added(node)

