# === NAVMAP v1 ===
# {
#   "module": "tests.asset_usage.conftest",
#   "purpose": "Shared fixtures: content models, stores, and isolated settings",
#   "sections": [
#     {"id": "isolation", "name": "Environment Isolation", "anchor": "ISO", "kind": "infra"},
#     {"id": "content", "name": "Content Fixtures", "anchor": "CNT", "kind": "fixtures"},
#     {"id": "stores", "name": "Store Fixtures", "anchor": "STO", "kind": "fixtures"}
#   ]
# }
# === /NAVMAP ===

"""Shared fixtures for the asset usage tests."""

from __future__ import annotations

import logging

import pytest

from ContentIndex.AssetUsage.models import Asset, AssetVariant, Node, NodeType
from ContentIndex.AssetUsage.observability.events import clear_context, clear_sinks
from ContentIndex.AssetUsage.settings import DatabaseConfiguration, reset_settings_cache
from ContentIndex.AssetUsage.store.duckdb_store import DuckDBUsageStore
from ContentIndex.AssetUsage.store.memory import InMemoryUsageStore


# ============================================================================
# ENVIRONMENT ISOLATION (ISO)
# ============================================================================


@pytest.fixture(autouse=True)
def _isolate_environment(tmp_path, monkeypatch):
    """Keep logs, events, and settings of one test away from the next."""

    monkeypatch.setenv("ASSET_USAGE_LOG_DIR", str(tmp_path / "logs"))
    for name in ("ASSET_USAGE_DATABASE__DB_PATH", "ASSET_USAGE_LOGGING__LEVEL"):
        monkeypatch.delenv(name, raising=False)
    reset_settings_cache()
    yield
    clear_sinks()
    clear_context()
    reset_settings_cache()
    logger = logging.getLogger("ContentIndex.AssetUsage")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True


# ============================================================================
# CONTENT FIXTURES (CNT)
# ============================================================================


@pytest.fixture
def text_type():
    """Node type with a single image property."""
    return NodeType("Text", {"title": "string", "image": "image"})


@pytest.fixture
def gallery_type():
    """Node type with several asset properties, including a multi-valued one."""
    return NodeType(
        "Gallery",
        {
            "title": "string",
            "teaser": "image",
            "hero": "single-asset",
            "attachments": "asset-array",
        },
    )


@pytest.fixture
def asset_a1():
    return Asset("A1")


@pytest.fixture
def asset_a2():
    return Asset("A2")


@pytest.fixture
def variant_v1(asset_a1):
    return AssetVariant("V1", asset_a1)


@pytest.fixture
def make_node():
    """Factory building nodes with sensible defaults."""

    def _make(
        node_type,
        identifier="N1",
        workspace="live",
        dimensions=None,
        removed=False,
        **properties,
    ):
        return Node(
            identifier=identifier,
            node_type_name=node_type.name,
            workspace_name=workspace,
            dimensions=dimensions or {},
            properties=dict(properties),
            removed=removed,
            node_type_resolved=node_type,
        )

    return _make


# ============================================================================
# STORE FIXTURES (STO)
# ============================================================================


@pytest.fixture
def memory_store():
    return InMemoryUsageStore()


@pytest.fixture
def duckdb_store(tmp_path):
    """Bootstrapped DuckDB store on a temporary file."""
    config = DatabaseConfiguration(
        db_path=tmp_path / "usage.duckdb",
        enable_locks=False,
    )
    store = DuckDBUsageStore(config)
    store.bootstrap()
    yield store
    store.close()
