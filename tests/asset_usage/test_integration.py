# === NAVMAP v1 ===
# {
#   "module": "tests.asset_usage.test_integration",
#   "purpose": "Behaviour of the incremental updater for every change notification",
#   "sections": [
#     {"id": "scenario", "name": "Single Node Scenario", "anchor": "SCN", "kind": "tests"},
#     {"id": "refcount", "name": "Sibling Reference Counting", "anchor": "REF", "kind": "tests"},
#     {"id": "publish", "name": "Publishing", "anchor": "PUB", "kind": "tests"},
#     {"id": "errors", "name": "Error Handling", "anchor": "ERR", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Tests for AssetUsageIntegration."""

from __future__ import annotations

import pytest

from ContentIndex.AssetUsage.errors import UsageStoreError
from ContentIndex.AssetUsage.integration import AssetUsageIntegration
from ContentIndex.AssetUsage.keys import derive_usage_key
from ContentIndex.AssetUsage.models import AssetVariant, Node, Workspace
from ContentIndex.AssetUsage.snapshot import ContentSnapshot
from ContentIndex.AssetUsage.store.base import UsageMetadata

K_N1 = derive_usage_key("N1", {}, "live")


class FailingStore:
    """Store whose writes always fail."""

    def register(self, usage_key, asset_id, metadata):
        raise UsageStoreError("store offline", operation="register")

    def unregister(self, usage_key, asset_id):
        raise UsageStoreError("store offline", operation="unregister")


@pytest.fixture
def integration(memory_store):
    return AssetUsageIntegration(memory_store)


# ============================================================================
# SINGLE NODE SCENARIO (SCN)
# ============================================================================


class TestSingleNodeScenario:
    def test_add_then_clear_property(self, integration, memory_store, make_node, text_type, asset_a1):
        node = make_node(text_type, image=asset_a1)

        outcome = integration.node_added(node)
        assert memory_store.pairs() == {(K_N1, "A1")}
        assert outcome.registered == [(K_N1, "A1")]

        node.set_property("image", None)
        outcome = integration.node_property_changed(node, "image", asset_a1, None)
        assert memory_store.pairs() == set()
        assert outcome.unregistered == [(K_N1, "A1")]

    def test_asset_removed_purges_every_location(self, integration, memory_store, asset_a1):
        k2 = derive_usage_key("N2", {}, "live")
        memory_store.register(K_N1, "A1", UsageMetadata("N1"))
        memory_store.register(k2, "A1", UsageMetadata("N2"))
        memory_store.register(k2, "A2", UsageMetadata("N2"))

        assert integration.asset_removed(asset_a1) == 2
        assert memory_store.pairs() == {(k2, "A2")}

    def test_asset_removed_for_variant_purges_original(self, integration, memory_store, variant_v1):
        memory_store.register(K_N1, "A1", UsageMetadata("N1"))
        integration.asset_removed(variant_v1)
        assert memory_store.pairs() == set()

    def test_metadata_describes_node_location(self, integration, memory_store, make_node, text_type, asset_a1):
        node = make_node(text_type, dimensions={"language": ["en"]}, image=asset_a1)
        integration.node_added(node)
        (record,) = memory_store.list_all()
        assert record.metadata == UsageMetadata("N1", "live", '{"language":["en"]}', "Text")

    def test_variant_registers_original(self, integration, memory_store, make_node, text_type, variant_v1):
        integration.node_added(make_node(text_type, image=variant_v1))
        assert memory_store.pairs() == {(K_N1, "A1")}

    def test_duplicate_references_collapse(self, integration, memory_store, make_node, gallery_type, asset_a1, variant_v1):
        node = make_node(gallery_type, teaser=asset_a1, hero=variant_v1, attachments=[asset_a1, "A1"])
        outcome = integration.node_added(node)
        assert memory_store.pairs() == {(K_N1, "A1")}
        assert memory_store.count() == 1
        assert len(outcome.registered) == 3

    def test_every_property_is_visited_past_empty_ones(self, integration, memory_store, make_node, gallery_type, asset_a2):
        node = make_node(gallery_type, teaser=None, attachments=[asset_a2])
        integration.node_added(node)
        assert memory_store.pairs() == {(K_N1, "A2")}

    def test_non_asset_property_change_is_ignored(self, integration, memory_store, make_node, text_type):
        node = make_node(text_type, title="new")
        outcome = integration.node_property_changed(node, "title", "old", "new")
        assert not outcome.changed
        assert memory_store.count() == 0

    def test_unchanged_value_is_ignored(self, integration, memory_store, make_node, text_type, asset_a1):
        node = make_node(text_type, image=asset_a1)
        memory_store.register(K_N1, "A1", UsageMetadata("N1"))
        outcome = integration.node_property_changed(node, "image", asset_a1, asset_a1)
        assert not outcome.changed
        assert memory_store.pairs() == {(K_N1, "A1")}

    def test_property_replacement_moves_usage(self, integration, memory_store, make_node, text_type, asset_a1, asset_a2):
        node = make_node(text_type, image=asset_a1)
        integration.node_added(node)
        node.set_property("image", asset_a2)
        integration.node_property_changed(node, "image", asset_a1, asset_a2)
        assert memory_store.pairs() == {(K_N1, "A2")}

    def test_node_removed_and_discarded(self, integration, memory_store, make_node, gallery_type, asset_a1, asset_a2):
        node = make_node(gallery_type, teaser=asset_a1, attachments=[asset_a2])
        integration.node_added(node)
        integration.node_removed(node)
        assert memory_store.count() == 0

        integration.node_added(node)
        integration.node_discarded(node)
        assert memory_store.count() == 0

    def test_dimension_move_is_unregister_plus_register(self, integration, memory_store, make_node, text_type, asset_a1):
        english = make_node(text_type, dimensions={"language": ["en"]}, image=asset_a1)
        german = make_node(text_type, dimensions={"language": ["de"]}, image=asset_a1)
        integration.node_added(english)
        integration.node_removed(english)
        integration.node_added(german)
        assert memory_store.pairs() == {(derive_usage_key("N1", {"language": ["de"]}, "live"), "A1")}


# ============================================================================
# SIBLING REFERENCE COUNTING (REF)
# ============================================================================


class TestSiblingReferenceCounting:
    def test_clearing_one_of_two_references_keeps_usage(self, integration, memory_store, make_node, gallery_type, asset_a1):
        node = make_node(gallery_type, teaser=asset_a1, hero=asset_a1)
        integration.node_added(node)

        node.set_property("teaser", None)
        outcome = integration.node_property_changed(node, "teaser", asset_a1, None)
        assert memory_store.pairs() == {(K_N1, "A1")}
        assert outcome.retained == [(K_N1, "A1")]

        node.set_property("hero", None)
        integration.node_property_changed(node, "hero", asset_a1, None)
        assert memory_store.pairs() == set()

    def test_reference_inside_array_sibling_counts(self, integration, memory_store, make_node, gallery_type, asset_a1, asset_a2):
        node = make_node(gallery_type, teaser=asset_a1, attachments=[asset_a2, asset_a1])
        integration.node_added(node)
        node.set_property("teaser", asset_a2)
        integration.node_property_changed(node, "teaser", asset_a1, asset_a2)
        assert memory_store.pairs() == {(K_N1, "A1"), (K_N1, "A2")}

    def test_variant_sibling_counts_as_original(self, integration, memory_store, make_node, gallery_type, asset_a1, variant_v1):
        node = make_node(gallery_type, teaser=asset_a1, hero=variant_v1)
        integration.node_added(node)
        node.set_property("teaser", None)
        integration.node_property_changed(node, "teaser", asset_a1, None)
        assert memory_store.pairs() == {(K_N1, "A1")}

    def test_changed_property_itself_is_not_counted(self, integration, memory_store, make_node, gallery_type, asset_a1, asset_a2):
        node = make_node(gallery_type, attachments=[asset_a1, asset_a2])
        integration.node_added(node)
        node.set_property("attachments", [asset_a2])
        integration.node_property_changed(node, "attachments", [asset_a1, asset_a2], [asset_a2])
        assert memory_store.pairs() == {(K_N1, "A2")}

    def test_node_removal_ignores_siblings(self, integration, memory_store, make_node, gallery_type, asset_a1):
        node = make_node(gallery_type, teaser=asset_a1, hero=asset_a1)
        integration.node_added(node)
        integration.node_removed(node)
        assert memory_store.count() == 0

    def test_public_unregister_without_reference_check(self, integration, memory_store, make_node, gallery_type, asset_a1):
        node = make_node(gallery_type, teaser=asset_a1, hero=asset_a1)
        integration.node_added(node)
        integration.unregister_usage_in_node(node, asset_a1, check_all_references=False)
        assert memory_store.count() == 0


# ============================================================================
# PUBLISHING (PUB)
# ============================================================================


class TestPublishing:
    def _publish(self, integration, source, target_workspace):
        integration.before_node_publishing(source, Workspace(target_workspace))
        published = Node(
            identifier=source.identifier,
            node_type_name=source.node_type_name,
            workspace_name=target_workspace,
            dimensions=source.dimensions,
            properties=dict(source.properties),
            removed=source.removed,
            node_type_resolved=source.node_type_resolved,
        )
        integration.after_node_publishing(published)
        return published

    def test_publish_replaces_target_usage(self, memory_store, make_node, text_type, asset_a1, asset_a2):
        live = make_node(text_type, workspace="live", image=asset_a1)
        draft = make_node(text_type, workspace="user-x", image=asset_a2)
        integration = AssetUsageIntegration(memory_store, content_tree=ContentSnapshot({}, {}, [live, draft]))
        integration.node_added(live)
        integration.node_added(draft)

        self._publish(integration, draft, "live")

        assert memory_store.pairs() == {(K_N1, "A2")}

    def test_publish_clears_target_even_when_source_property_is_empty(self, memory_store, make_node, text_type, asset_a1):
        live = make_node(text_type, workspace="live", image=asset_a1)
        draft = make_node(text_type, workspace="user-x", image=None)
        integration = AssetUsageIntegration(memory_store, content_tree=ContentSnapshot({}, {}, [live, draft]))
        integration.node_added(live)

        self._publish(integration, draft, "live")

        assert memory_store.pairs() == set()

    def test_publish_of_removed_node_registers_nothing(self, memory_store, make_node, text_type, asset_a1):
        live = make_node(text_type, workspace="live", image=asset_a1)
        deletion = make_node(text_type, workspace="user-x", image=asset_a1, removed=True)
        integration = AssetUsageIntegration(memory_store, content_tree=ContentSnapshot({}, {}, [live]))
        integration.node_added(live)

        self._publish(integration, deletion, "live")

        assert memory_store.pairs() == set()

    def test_publish_without_content_tree_clears_source_only(self, integration, memory_store, make_node, text_type, asset_a1):
        draft = make_node(text_type, workspace="user-x", image=asset_a1)
        integration.node_added(draft)
        outcome = integration.before_node_publishing(draft, Workspace("live"))
        assert outcome.unregistered == [(derive_usage_key("N1", {}, "user-x"), "A1")]
        assert memory_store.count() == 0


# ============================================================================
# ERROR HANDLING (ERR)
# ============================================================================


class TestErrors:
    def test_unresolvable_asset_is_recorded_and_others_processed(self, integration, memory_store, make_node, gallery_type, asset_a2):
        node = make_node(gallery_type, attachments=[AssetVariant("V9"), asset_a2])
        outcome = integration.node_added(node)
        assert memory_store.pairs() == {(K_N1, "A2")}
        assert [(e.node_identifier, e.property_name) for e in outcome.errors] == [("N1", "attachments")]

    def test_unknown_node_type_is_recorded(self, integration, memory_store, asset_a1):
        node = Node("N1", "Missing", "live", properties={"image": asset_a1})
        outcome = integration.node_added(node)
        assert memory_store.count() == 0
        assert "Missing" in outcome.errors[0].message

    def test_store_failure_propagates(self, make_node, text_type, asset_a1):
        integration = AssetUsageIntegration(FailingStore())
        with pytest.raises(UsageStoreError):
            integration.node_added(make_node(text_type, image=asset_a1))
        with pytest.raises(UsageStoreError):
            integration.node_removed(make_node(text_type, image=asset_a1))

    def test_register_usage_accepts_raw_identifiers(self, integration, memory_store):
        key = integration.register_usage("N1", "Text", {}, "live", "A5")
        assert key == K_N1
        assert memory_store.exists(K_N1, "A5")
