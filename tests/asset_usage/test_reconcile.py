"""Tests for full reconciliation."""

from __future__ import annotations

import pytest

from ContentIndex.AssetUsage.cancellation import CancellationToken
from ContentIndex.AssetUsage.errors import UsageStoreError
from ContentIndex.AssetUsage.keys import derive_usage_key
from ContentIndex.AssetUsage.models import AssetVariant, Node
from ContentIndex.AssetUsage.reconcile import Reconciler
from ContentIndex.AssetUsage.settings import ReconcileConfiguration
from ContentIndex.AssetUsage.snapshot import ContentSnapshot
from ContentIndex.AssetUsage.store.base import UsageMetadata

K_N1 = derive_usage_key("N1", {}, "live")
K_N2 = derive_usage_key("N2", {}, "live")
K_STALE = derive_usage_key("GONE", {}, "live")


def _tree(*nodes):
    return ContentSnapshot({}, {}, list(nodes))


class ListStoreFailure:
    def list_all(self):
        raise UsageStoreError("store offline", operation="list_all")


class TestReconciler:
    def test_adds_missing_and_removes_stale(self, memory_store, make_node, text_type, asset_a1, asset_a2):
        memory_store.register(K_N1, "A1", UsageMetadata("N1", "live", "{}", "Text"))
        memory_store.register(K_STALE, "A1", UsageMetadata("GONE", "live", "{}", "Text"))
        tree = _tree(
            make_node(text_type, identifier="N1", image=asset_a1),
            make_node(text_type, identifier="N2", image=asset_a2),
        )

        report = Reconciler(memory_store, tree).run()

        assert memory_store.pairs() == {(K_N1, "A1"), (K_N2, "A2")}
        assert [(row.usage_key, row.asset_id) for row in report.added] == [(K_N2, "A2")]
        assert [(row.usage_key, row.asset_id) for row in report.removed] == [(K_STALE, "A1")]
        assert report.removed[0].node_identifier == "GONE"
        assert report.confirmed == 1
        assert report.ok

    def test_second_run_is_a_no_op(self, duckdb_store, make_node, gallery_type, asset_a1, asset_a2, variant_v1):
        tree = _tree(
            make_node(gallery_type, identifier="N1", teaser=asset_a1, hero=variant_v1),
            make_node(gallery_type, identifier="N2", attachments=[asset_a1, asset_a2]),
            make_node(gallery_type, identifier="N2", workspace="user-x", dimensions={"language": ["en"]}, teaser=asset_a2),
        )
        duckdb_store.register(K_STALE, "A9", UsageMetadata("GONE"))

        first = Reconciler(duckdb_store, tree).run()
        second = Reconciler(duckdb_store, tree).run()

        assert len(first.added) == 4
        assert len(first.removed) == 1
        assert second.added == [] and second.removed == []
        assert second.confirmed == 4
        assert duckdb_store.count() == 4

    def test_duplicate_reference_within_node_is_added_once(self, memory_store, make_node, gallery_type, asset_a1, variant_v1):
        tree = _tree(make_node(gallery_type, teaser=asset_a1, hero=variant_v1, attachments=["A1"]))
        report = Reconciler(memory_store, tree).run()
        assert len(report.added) == 1
        assert memory_store.pairs() == {(K_N1, "A1")}

    def test_removed_nodes_do_not_confirm_usages(self, memory_store, make_node, text_type, asset_a1):
        memory_store.register(K_N1, "A1", UsageMetadata("N1"))
        report = Reconciler(memory_store, _tree(make_node(text_type, image=asset_a1, removed=True))).run()
        assert memory_store.count() == 0
        assert report.removed_nodes == 1

    def test_unknown_node_type_is_reported_as_error(self, memory_store, asset_a1):
        tree = _tree(Node("N1", "Missing", "live", properties={"image": asset_a1}))
        report = Reconciler(memory_store, tree).run()
        assert [(e.node_identifier, e.property_name) for e in report.errors] == [("N1", "*")]
        assert "Missing" in report.errors[0].message
        assert report.removed_nodes == 0
        assert report.processed_nodes == 1
        assert not report.ok
        assert memory_store.count() == 0

    def test_resolution_errors_are_reported_per_property(self, memory_store, make_node, gallery_type, asset_a2):
        tree = _tree(make_node(gallery_type, teaser=AssetVariant("V9"), attachments=[asset_a2]))
        report = Reconciler(memory_store, tree).run()
        assert memory_store.pairs() == {(K_N1, "A2")}
        assert [(e.node_identifier, e.property_name) for e in report.errors] == [("N1", "teaser")]
        assert "V9" in report.errors[0].message
        assert not report.ok

    def test_dry_run_reports_without_writing(self, memory_store, make_node, text_type, asset_a2):
        memory_store.register(K_STALE, "A1", UsageMetadata("GONE"))
        tree = _tree(make_node(text_type, identifier="N2", image=asset_a2))
        report = Reconciler(memory_store, tree).run(dry_run=True)
        assert report.dry_run
        assert len(report.added) == 1 and len(report.removed) == 1
        assert memory_store.pairs() == {(K_STALE, "A1")}

    def test_dry_run_default_comes_from_configuration(self, memory_store, make_node, text_type, asset_a1):
        tree = _tree(make_node(text_type, image=asset_a1))
        report = Reconciler(memory_store, tree, config=ReconcileConfiguration(dry_run=True)).run()
        assert report.dry_run
        assert memory_store.count() == 0

    def test_progress_is_reported_for_every_node(self, memory_store, make_node, text_type, asset_a1):
        tree = _tree(
            make_node(text_type, identifier="N1", image=asset_a1),
            make_node(text_type, identifier="N2", removed=True),
            make_node(text_type, identifier="N3"),
        )
        seen = []
        Reconciler(memory_store, tree).run(progress=lambda done, total: seen.append((done, total)))
        assert seen == [(1, 3), (2, 3), (3, 3)]

    def test_cancelled_run_never_sweeps(self, memory_store, make_node, text_type, asset_a1, asset_a2):
        memory_store.register(K_STALE, "A1", UsageMetadata("GONE"))
        token = CancellationToken()
        tree = _tree(
            make_node(text_type, identifier="N1", image=asset_a1),
            make_node(text_type, identifier="N2", image=asset_a2),
        )

        def cancel_after_first(done, total):
            token.cancel()

        report = Reconciler(memory_store, tree).run(progress=cancel_after_first, cancellation=token)

        assert report.cancelled
        assert report.processed_nodes == 1
        assert report.removed == []
        assert memory_store.pairs() == {(K_STALE, "A1"), (K_N1, "A1")}

    def test_store_failure_aborts(self, make_node, text_type, asset_a1):
        with pytest.raises(UsageStoreError):
            Reconciler(ListStoreFailure(), _tree(make_node(text_type, image=asset_a1))).run()

    def test_report_serialises(self, memory_store, make_node, text_type, asset_a1):
        report = Reconciler(memory_store, _tree(make_node(text_type, image=asset_a1))).run()
        payload = report.to_dict()
        assert payload["added"][0]["asset_id"] == "A1"
        assert payload["added"][0]["dimensions"] == "{}"
        assert payload["removed"] == [] and payload["cancelled"] is False
