"""Secondary index mapping assets to the content-tree locations that use them.

Typical embedding::

    from ContentIndex.AssetUsage import AssetUsageIntegration, InMemoryUsageStore

    integration = AssetUsageIntegration(InMemoryUsageStore(), content_tree=tree)
    integration.node_added(node)

Operators run full reconciliations through the ``asset-usage`` CLI.
"""

from .cancellation import CancellationToken
from .classifier import PropertyClassifier
from .contracts import ChangeNotifications, ContentTreeReader, PropertyKind
from .errors import (
    AssetResolutionError,
    AssetUsageError,
    ConfigurationError,
    NodeTypeNotFoundError,
    SnapshotError,
    UsageStoreError,
)
from .integration import AssetUsageIntegration, UpdateOutcome, UsageError
from .keys import derive_usage_key, serialize_dimensions
from .reconcile import ReconcileReport, Reconciler, UsageRow
from .references import AssetUsageInNodeProperties, UsageReferences
from .resolver import AssetResolver
from .settings import AssetUsageSettings, get_settings
from .snapshot import ContentSnapshot, load_snapshot
from .store import InMemoryUsageStore, UsageMetadata, UsageRecord, UsageStore

__all__ = [
    "AssetResolutionError",
    "AssetResolver",
    "AssetUsageError",
    "AssetUsageInNodeProperties",
    "AssetUsageIntegration",
    "AssetUsageSettings",
    "CancellationToken",
    "ChangeNotifications",
    "ConfigurationError",
    "ContentSnapshot",
    "ContentTreeReader",
    "InMemoryUsageStore",
    "NodeTypeNotFoundError",
    "PropertyClassifier",
    "PropertyKind",
    "ReconcileReport",
    "Reconciler",
    "SnapshotError",
    "UpdateOutcome",
    "UsageError",
    "UsageMetadata",
    "UsageRecord",
    "UsageReferences",
    "UsageRow",
    "UsageStore",
    "UsageStoreError",
    "derive_usage_key",
    "get_settings",
    "load_snapshot",
    "serialize_dimensions",
]
