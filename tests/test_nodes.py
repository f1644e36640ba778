"""Tests for NodeStore CRUD, usage tracking and merging"""
import re

import pytest

from codebrain.graph.nodes import type_from_id
from codebrain.types import NodeType, Source
from conftest import make_node


class TestCreate:
    """Tests for NodeStore.create."""

    def test_create_sets_defaults(self, graph, clock):
        node = make_node(graph)

        assert re.fullmatch(r"n_pat_\d+_[0-9a-f]{8}", node.id)
        assert node.type == NodeType.PATTERN
        assert node.scores.weight == 0.5
        assert node.scores.usage == 0
        assert node.scores.success_rate == 0.0
        assert node.timestamps.created == node.timestamps.updated == node.timestamps.last_used == clock.now
        assert node.meta.source == Source.AUTO
        assert node.meta.version == 1

    def test_create_is_retrievable(self, graph):
        node = make_node(graph, context={"file": "src/app.py", "function": "main"})
        fetched = graph.nodes.get(node.id)
        assert fetched == node
        assert fetched.context.file == "src/app.py"

    def test_create_accepts_partition_name(self, graph):
        node = make_node(graph, node_type="corrections")
        assert node.type == NodeType.CORRECTION
        assert node.id.startswith("n_cor_")

    def test_create_invalid_type(self, graph):
        with pytest.raises(ValueError):
            make_node(graph, node_type="bogus")

    def test_create_invalid_weight(self, graph):
        with pytest.raises(ValueError):
            make_node(graph, weight=1.5)

    def test_summary_truncated(self, graph):
        node = make_node(graph, summary="x" * 300)
        assert len(node.content.summary) == 200

    def test_create_updates_count_and_pending(self, graph, storage):
        make_node(graph)
        make_node(graph, node_type="decision")
        assert storage.get_meta().node_count == 2
        assert graph.nodes.count() == 2
        assert [c["op"] for c in graph.nodes.pending] == ["add", "add"]

    def test_create_notifies_observer(self, graph):
        created = []
        graph.nodes.on_created = created.append
        node = make_node(graph)
        assert created == [node]


class TestGet:
    """Tests for lookups and ID parsing."""

    def test_unknown_id(self, graph):
        assert graph.nodes.get("n_pat_1_deadbeef") is None
        assert not graph.nodes.exists("n_pat_1_deadbeef")

    def test_malformed_ids(self, graph):
        for bad in ("", "garbage", "n_xyz_1_abcd1234", "e_abcdef_123456"):
            assert graph.nodes.get(bad) is None

    def test_type_from_id(self):
        assert type_from_id("n_con_1700000000_abcd1234") == NodeType.CONVENTION
        assert type_from_id("n_con") is None
        assert type_from_id(None) is None


class TestUpdate:
    """Tests for NodeStore.update."""

    def test_update_merges_sections(self, graph, clock):
        node = make_node(graph, context={"file": "a.py", "function": "f"})
        clock.advance(seconds=10)

        updated = graph.nodes.update(node.id, {"content": {"detail": "new detail"}, "scores": {"weight": 0.9}})

        assert updated.content.detail == "new detail"
        assert updated.content.summary == node.content.summary
        assert updated.context.function == "f"
        assert updated.scores.weight == 0.9
        assert updated.meta.version == 2
        assert updated.timestamps.updated == clock.now
        assert updated.timestamps.created == node.timestamps.created

    def test_content_hash_tracks_summary_and_detail_only(self, graph):
        node = make_node(graph)

        rescored = graph.nodes.update(node.id, {"scores": {"weight": 0.7}, "context": {"file": "x.py"}})
        assert rescored.content_hash == node.content_hash

        rewritten = graph.nodes.update(node.id, {"content": {"summary": "Something else"}})
        assert rewritten.content_hash != node.content_hash
        assert rewritten.meta.version == 3

    def test_update_ignores_type(self, graph):
        node = make_node(graph)
        updated = graph.nodes.update(node.id, {"type": "decision"})
        assert updated.type == NodeType.PATTERN

    def test_update_missing_node(self, graph):
        assert graph.nodes.update("n_pat_1_deadbeef", {"scores": {"weight": 1.0}}) is None

    def test_update_records_changed_fields(self, graph):
        node = make_node(graph)
        graph.nodes.get_and_clear_pending()

        graph.nodes.update(node.id, {"scores": {"weight": 0.8}, "content": {"detail": "changed"}})

        change = graph.nodes.pending[-1]
        assert change["op"] == "modify"
        assert change["before"] == node.content_hash
        assert change["after"] != node.content_hash
        assert sorted(change["fields"]) == ["content.detail", "scores.weight"]

    def test_update_moves_file_index(self, graph):
        node = make_node(graph, context={"file": "old.py"})
        graph.nodes.update(node.id, {"context": {"file": "new.py"}})
        assert graph.indices.lookup("by_file", "old.py") == []
        assert graph.indices.lookup("by_file", "new.py") == [node.id]


class TestDelete:
    """Tests for NodeStore.delete."""

    def test_delete(self, graph, storage):
        node = make_node(graph, context={"file": "a.py", "symbols": ["f"]})
        deleted = []
        graph.nodes.on_deleted = deleted.append

        assert graph.nodes.delete(node.id)

        assert graph.nodes.get(node.id) is None
        assert storage.get_meta().node_count == 0
        assert graph.indices.lookup("by_file", "a.py") == []
        assert graph.indices.lookup("by_symbol", "f") == []
        assert graph.nodes.pending[-1]["op"] == "delete"
        assert [n.id for n in deleted] == [node.id]

    def test_delete_missing(self, graph, storage):
        assert not graph.nodes.delete("n_pat_1_deadbeef")
        assert storage.get_meta().node_count == 0

    def test_repeated_delete_counts_once(self, graph, storage):
        keep = make_node(graph, summary="Keep")
        gone = make_node(graph, summary="Gone")

        assert graph.nodes.delete(gone.id)
        assert not graph.nodes.delete(gone.id)

        assert storage.get_meta().node_count == 1
        assert graph.nodes.exists(keep.id)


class TestRecordUsage:
    """Tests for usage and success-rate tracking."""

    def test_first_use(self, graph, clock):
        node = make_node(graph)
        clock.advance(seconds=60)

        used = graph.nodes.record_usage(node.id, True)

        assert used.scores.usage == 1
        assert used.scores.success_rate == 1.0
        assert used.timestamps.last_used == clock.now
        assert used.scores.weight == 0.5

    def test_running_success_rate(self, graph):
        node = make_node(graph)
        graph.nodes.record_usage(node.id, True)
        used = graph.nodes.record_usage(node.id, False)
        assert used.scores.success_rate == pytest.approx(0.5)

    def test_use_without_outcome(self, graph):
        node = make_node(graph)
        graph.nodes.record_usage(node.id, True)
        used = graph.nodes.record_usage(node.id, None)
        assert used.scores.usage == 2
        assert used.scores.success_rate == 1.0

    def test_usage_bonus_after_threshold(self, graph):
        node = make_node(graph)
        for _ in range(5):
            used = graph.nodes.record_usage(node.id)
        assert used.scores.weight == pytest.approx(0.5)

        used = graph.nodes.record_usage(node.id)
        assert used.scores.weight == pytest.approx(0.51)

    def test_usage_not_pending(self, graph):
        node = make_node(graph)
        graph.nodes.get_and_clear_pending()
        graph.nodes.record_usage(node.id)
        assert graph.nodes.pending == []

    def test_missing_node(self, graph):
        assert graph.nodes.record_usage("n_pat_1_deadbeef") is None


class TestFindAndMerge:
    """Tests for find and merge."""

    def test_find_filters(self, graph):
        a = make_node(graph, summary="Retry on timeout", context={"file": "net.py"}, weight=0.8)
        make_node(graph, summary="Use snake_case", node_type="convention", weight=0.3)

        assert [n.id for n in graph.nodes.find(query="RETRY")] == [a.id]
        assert [n.id for n in graph.nodes.find(file="net.py")] == [a.id]
        assert [n.id for n in graph.nodes.find(min_weight=0.5)] == [a.id]
        assert len(graph.nodes.find(types=["pattern", "convention"])) == 2
        assert len(graph.nodes.find(limit=1)) == 1

    def test_merge(self, graph, storage):
        keep = make_node(graph, summary="Short", detail="short", weight=0.8)
        drop = make_node(graph, summary="Long", detail="a much longer detail", weight=0.4)
        graph.nodes.record_usage(drop.id)

        merged = graph.nodes.merge(keep.id, drop.id)

        assert merged.content.detail == "a much longer detail"
        assert merged.scores.weight == pytest.approx(0.6)
        assert merged.scores.usage == 1
        assert graph.nodes.get(drop.id) is None
        assert storage.get_meta().node_count == 1

    def test_merge_same_node(self, graph):
        node = make_node(graph)
        assert graph.nodes.merge(node.id, node.id) is None
