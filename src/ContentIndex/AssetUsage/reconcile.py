# === NAVMAP v1 ===
# {
#   "module": "ContentIndex.AssetUsage.reconcile",
#   "purpose": "Full mark-and-sweep reconciliation of the usage store against the content tree",
#   "sections": [
#     {"id": "types", "name": "Report Types", "anchor": "TYP", "kind": "models"},
#     {"id": "reconciler", "name": "Reconciler", "anchor": "class-reconciler", "kind": "class"},
#     {"id": "scan", "name": "Scan Phase", "anchor": "SCN", "kind": "api"},
#     {"id": "sweep", "name": "Sweep Phase", "anchor": "SWP", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Full reconciliation (rebuild) of the usage index.

The reconciler snapshots every stored usage once, walks the whole content tree
confirming or adding usages, then removes what no live node confirmed:

1. **Mark**: ``known[usage_key][asset_id]`` from :meth:`UsageStore.list_all`,
   copied into ``unconfirmed``.
2. **Scan**: for every non-removed node, resolve each asset reference; known
   pairs are confirmed, unknown pairs are registered and reported as added.
3. **Sweep**: every pair still unconfirmed is unregistered and reported as
   removed.

Per-node problems (unknown node type, unresolvable variant) never abort the
run.  Store failures do.  A cancelled run stops scanning and skips the sweep,
because a partial scan cannot prove any usage stale.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .cancellation import CancellationToken
from .classifier import PropertyClassifier
from .contracts import ContentTreeReader, NodeLike
from .errors import AssetResolutionError, NodeTypeNotFoundError
from .instrumentation import (
    TimedOperation,
    emit_reconcile_begin,
    emit_reconcile_complete,
    emit_reconcile_error,
    emit_reconcile_usage_added,
    emit_reconcile_usage_removed,
)
from .integration import AssetUsageIntegration, UsageError
from .keys import derive_usage_key, serialize_dimensions
from .resolver import AssetResolver, as_asset_list
from .settings import ReconcileConfiguration
from .store.base import UsageMetadata, UsageRecord, UsageStore

__all__ = ["UsageRow", "ReconcileReport", "Reconciler", "ProgressCallback"]

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


# ============================================================================
# REPORT TYPES (TYP)
# ============================================================================


@dataclass(frozen=True)
class UsageRow:
    """One added or removed usage as shown to operators."""

    usage_key: str
    asset_id: str
    node_identifier: Optional[str]
    dimensions: Optional[str]
    workspace: Optional[str]
    node_type: Optional[str]

    @classmethod
    def from_record(cls, record: UsageRecord) -> "UsageRow":
        metadata = record.metadata
        return cls(
            usage_key=record.usage_key,
            asset_id=record.asset_id,
            node_identifier=metadata.node_identifier,
            dimensions=metadata.dimensions_json,
            workspace=metadata.workspace_name,
            node_type=metadata.node_type_name,
        )

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "usage_key": self.usage_key,
            "asset_id": self.asset_id,
            "node_identifier": self.node_identifier,
            "dimensions": self.dimensions,
            "workspace": self.workspace,
            "node_type": self.node_type,
        }


@dataclass
class ReconcileReport:
    """Outcome of one reconciliation run."""

    added: List[UsageRow] = field(default_factory=list)
    removed: List[UsageRow] = field(default_factory=list)
    errors: List[UsageError] = field(default_factory=list)
    total_nodes: int = 0
    processed_nodes: int = 0
    removed_nodes: int = 0
    confirmed: int = 0
    dry_run: bool = False
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return not self.errors and not self.cancelled

    def to_dict(self) -> Dict[str, object]:
        return {
            "added": [row.to_dict() for row in self.added],
            "removed": [row.to_dict() for row in self.removed],
            "errors": [error.to_dict() for error in self.errors],
            "total_nodes": self.total_nodes,
            "processed_nodes": self.processed_nodes,
            "removed_nodes": self.removed_nodes,
            "confirmed": self.confirmed,
            "dry_run": self.dry_run,
            "cancelled": self.cancelled,
        }


# ============================================================================
# RECONCILER
# ============================================================================


class Reconciler:
    """Rebuild the usage index from the content tree with a minimal diff."""

    def __init__(
        self,
        store: UsageStore,
        content_tree: ContentTreeReader,
        *,
        classifier: Optional[PropertyClassifier] = None,
        resolver: Optional[AssetResolver] = None,
        config: Optional[ReconcileConfiguration] = None,
    ) -> None:
        self.store = store
        self.content_tree = content_tree
        self.classifier = classifier or PropertyClassifier()
        self.resolver = resolver or AssetResolver()
        self.config = config or ReconcileConfiguration()
        self._integration = AssetUsageIntegration(
            store, classifier=self.classifier, resolver=self.resolver, content_tree=content_tree
        )

    def run(
        self,
        *,
        dry_run: Optional[bool] = None,
        progress: Optional[ProgressCallback] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> ReconcileReport:
        """Reconcile once and return the report.

        Args:
            dry_run: Compute the diff without writing; defaults to the configuration.
            progress: Called with ``(processed, total)`` after every node.
            cancellation: Token polled between nodes.

        Raises:
            UsageStoreError: If the store cannot be read or written.
        """

        dry_run = self.config.dry_run if dry_run is None else dry_run
        report = ReconcileReport(dry_run=dry_run, total_nodes=self.content_tree.count())
        logger.info("Starting updating asset usage index", extra={"extra_fields": {"dry_run": dry_run}})

        known: Dict[str, Dict[str, UsageRecord]] = {}
        for record in self.store.list_all():
            known.setdefault(record.usage_key, {})[record.asset_id] = record
        unconfirmed = {usage_key: dict(assets) for usage_key, assets in known.items()}

        with TimedOperation("reconcile") as timer:
            emit_reconcile_begin(report.total_nodes, sum(len(a) for a in known.values()), dry_run)
            for node in self.content_tree.iterate():
                if cancellation is not None and cancellation.is_cancelled():
                    report.cancelled = True
                    logger.warning(
                        "Reconciliation cancelled after %d of %d nodes; skipping sweep",
                        report.processed_nodes,
                        report.total_nodes,
                    )
                    break
                self._scan_node(node, known, unconfirmed, report)
                report.processed_nodes += 1
                if progress is not None:
                    progress(report.processed_nodes, report.total_nodes)
                if report.processed_nodes % self.config.progress_every == 0:
                    logger.info("Processed %d/%d nodes", report.processed_nodes, report.total_nodes)

            if not report.cancelled:
                self._sweep(unconfirmed, report)

        logger.info(
            "Added %d usages. Removed %d usages.",
            len(report.added),
            len(report.removed),
            extra={"extra_fields": {"errors": len(report.errors), "dry_run": dry_run}},
        )
        emit_reconcile_complete(
            added=len(report.added),
            removed=len(report.removed),
            errors=len(report.errors),
            processed=report.processed_nodes,
            cancelled=report.cancelled,
            dry_run=dry_run,
            duration_ms=timer.elapsed_ms,
        )
        return report

    # ------------------------------------------------------------------------
    # Scan phase (SCN)
    # ------------------------------------------------------------------------

    def _scan_node(
        self,
        node: NodeLike,
        known: Dict[str, Dict[str, UsageRecord]],
        unconfirmed: Dict[str, Dict[str, UsageRecord]],
        report: ReconcileReport,
    ) -> None:
        if node.removed:
            report.removed_nodes += 1
            return
        try:
            node_type = node.node_type
        except NodeTypeNotFoundError as exc:
            report.errors.append(UsageError(node.identifier, "*", str(exc)))
            logger.warning(
                "Skipping node %s: %s", node.identifier, exc, extra={"node_identifier": node.identifier}
            )
            emit_reconcile_error(node.identifier, "*", str(exc))
            return

        property_names = self.classifier.asset_property_names(node_type)
        if not property_names:
            return

        usage_key = derive_usage_key(node.identifier, node.dimensions, node.workspace_name)
        for property_name in property_names:
            if not node.has_property(property_name):
                continue
            for asset in as_asset_list(node.get_property(property_name)):
                try:
                    asset_id = self.resolver.resolve_original_identifier(asset)
                except AssetResolutionError as exc:
                    error = UsageError(node.identifier, property_name, str(exc))
                    report.errors.append(error)
                    logger.error(
                        "Asset reference error in %s.%s: %s",
                        node.identifier,
                        property_name,
                        exc,
                        extra={"node_identifier": node.identifier},
                    )
                    emit_reconcile_error(node.identifier, property_name, str(exc))
                    continue

                if asset_id in known.get(usage_key, {}):
                    if unconfirmed.get(usage_key, {}).pop(asset_id, None) is not None:
                        report.confirmed += 1
                    continue

                self._add(node, node_type.name, usage_key, asset_id, report)
                known.setdefault(usage_key, {})[asset_id] = UsageRecord(usage_key, asset_id, UsageMetadata())

    def _add(
        self,
        node: NodeLike,
        node_type_name: str,
        usage_key: str,
        asset_id: str,
        report: ReconcileReport,
    ) -> None:
        if not report.dry_run:
            self._integration.register_usage(
                node.identifier, node_type_name, node.dimensions, node.workspace_name, asset_id
            )
        report.added.append(
            UsageRow(
                usage_key=usage_key,
                asset_id=asset_id,
                node_identifier=node.identifier,
                dimensions=serialize_dimensions(node.dimensions),
                workspace=node.workspace_name,
                node_type=node_type_name,
            )
        )
        logger.info(
            "Added missing usage for asset %s in node %s",
            asset_id,
            node.identifier,
            extra={"usage_key": usage_key, "asset_id": asset_id, "node_identifier": node.identifier},
        )
        emit_reconcile_usage_added(usage_key, asset_id, node.identifier)

    # ------------------------------------------------------------------------
    # Sweep phase (SWP)
    # ------------------------------------------------------------------------

    def _sweep(self, unconfirmed: Dict[str, Dict[str, UsageRecord]], report: ReconcileReport) -> None:
        for usage_key, assets in unconfirmed.items():
            for asset_id, record in assets.items():
                if not report.dry_run:
                    self.store.unregister(usage_key, asset_id)
                row = UsageRow.from_record(record)
                report.removed.append(row)
                logger.warning(
                    "Removed usage for asset %s in node %s - this could indicate a problem",
                    asset_id,
                    row.node_identifier or "n/a",
                    extra={"usage_key": usage_key, "asset_id": asset_id, "node_identifier": row.node_identifier},
                )
                emit_reconcile_usage_removed(usage_key, asset_id, row.node_identifier)
