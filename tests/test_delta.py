"""Tests for structural diffs and the delta manager"""
import json

import pytest

from codebrain.delta import DeltaManager, diff
from codebrain.types import Source
from conftest import make_node


@pytest.fixture
def deltas(storage, graph, clock):
    return DeltaManager(storage, graph, clock)


class TestDiff:
    """Tests for diff.compute / apply / reverse."""

    def test_nested_changes(self):
        before = {"a": {"b": 1, "c": 2}, "gone": True}
        after = {"a": {"b": 1, "c": 3}, "new": [1, 2]}

        ops = diff.compute(before, after)

        assert {"op": "replace", "path": "a.c", "from": 2, "to": 3} in ops
        assert {"op": "delete", "path": "gone", "value": True} in ops
        assert {"op": "add", "path": "new", "value": [1, 2]} in ops
        assert len(ops) == 3

    def test_apply_and_reverse(self):
        before = {"a": {"b": 1}, "x": "keep"}
        after = {"a": {"b": 2, "c": {"d": 4}}, "x": "keep"}
        ops = diff.compute(before, after)

        assert diff.apply(before, ops) == after
        assert diff.apply(after, diff.reverse(ops)) == before
        assert before == {"a": {"b": 1}, "x": "keep"}

    def test_lists_compared_whole(self):
        assert diff.compute({"l": [1, 2]}, {"l": [1, 3]}) == [
            {"op": "replace", "path": "l", "from": [1, 2], "to": [1, 3]},
        ]

    def test_root_values(self):
        assert diff.compute(None, {"a": 1}) == [{"op": "add", "path": "", "value": {"a": 1}}]
        assert diff.apply({"a": 1}, [{"op": "delete", "path": "", "value": {"a": 1}}]) is None

    def test_unknown_op(self):
        with pytest.raises(ValueError):
            diff.apply({}, [{"op": "move", "path": "a"}])

    def test_equals_and_changed_paths(self):
        assert diff.equals({"a": 1}, {"a": 1})
        assert diff.changed_paths({"a": 1, "b": {"c": 1}}, {"a": 2, "b": {"c": 2}}) == ["a", "b.c"]


class TestCommit:
    """Tests for DeltaManager.commit."""

    def test_nothing_pending(self, deltas, storage):
        assert deltas.commit("empty") is None
        meta = storage.get_meta()
        assert meta.head is None
        assert meta.delta_count == 0

    def test_commit_writes_delta_and_moves_head(self, deltas, graph, storage, clock):
        node = make_node(graph)

        delta_hash = deltas.commit("first", session_id="s1")

        assert delta_hash is not None
        assert storage.get_meta().head == delta_hash
        assert storage.get_meta().delta_count == 1
        assert graph.pending_count() == 0

        on_disk = json.loads(storage.get_path(f"deltas.objects.{delta_hash}").read_text())
        assert on_disk["parent"] is None
        assert on_disk["timestamp"] == clock.now
        assert on_disk["metadata"] == {"message": "first", "trigger": "user", "session_id": "s1"}
        assert on_disk["changes"] == [{
            "op": "add", "path": f"nodes.patterns.{node.id}", "before": None, "after": node.content_hash,
        }]

    def test_parent_chain(self, deltas, graph):
        make_node(graph, summary="One")
        first = deltas.commit("one")
        make_node(graph, summary="Two")
        second = deltas.commit("two", trigger=Source.AUTO)

        delta = deltas.get(second)
        assert delta.parent == first
        assert delta.trigger == Source.AUTO

    def test_identical_changes_get_distinct_hashes(self, deltas):
        changes = [{"op": "add", "path": "nodes.patterns.x", "after": "12345678"}]
        first = deltas.create(changes, "a")
        deltas.storage.set_head(None)
        second = deltas.create(changes, "b")
        assert first.hash != second.hash

    def test_get_rejects_malformed_hash(self, deltas):
        assert deltas.get("../../etc") is None
        assert deltas.get("abcdef01") is None
        assert deltas.get(None) is None


class TestRollbackAndHistory:
    """Tests for rollback and history traversal."""

    def _commit_three(self, deltas, graph):
        hashes = []
        for i in range(3):
            make_node(graph, summary=f"Node {i}")
            hashes.append(deltas.commit(f"commit {i}"))
        return hashes

    def test_history_newest_first(self, deltas, graph):
        hashes = self._commit_three(deltas, graph)
        history = deltas.get_history()
        assert [d.hash for d in history] == list(reversed(hashes))
        assert [d.hash for d in deltas.get_history(limit=2)] == [hashes[2], hashes[1]]

    def test_rollback_moves_head_only(self, deltas, graph, storage):
        hashes = self._commit_three(deltas, graph)

        assert deltas.rollback(hashes[0])

        assert storage.get_meta().head == hashes[0]
        assert [d.hash for d in deltas.get_history()] == [hashes[0]]
        assert deltas.get(hashes[2]) is not None
        assert graph.nodes.count() == 3

    def test_rollback_unknown(self, deltas, graph, storage):
        hashes = self._commit_three(deltas, graph)
        assert not deltas.rollback("deadbeef")
        assert storage.get_meta().head == hashes[2]

    def test_commit_after_rollback_branches(self, deltas, graph):
        hashes = self._commit_three(deltas, graph)
        deltas.rollback(hashes[0])
        make_node(graph, summary="Branch")

        branch = deltas.commit("branch")

        assert deltas.get(branch).parent == hashes[0]
        assert [d.hash for d in deltas.get_history()] == [branch, hashes[0]]

    def test_history_stops_at_missing_delta(self, deltas, graph, storage):
        hashes = self._commit_three(deltas, graph)
        storage.delete(f"deltas.objects.{hashes[1]}", immediate=True)
        assert [d.hash for d in deltas.get_history()] == [hashes[2]]

    def test_summarize(self, deltas, graph):
        a = make_node(graph, summary="A")
        b = make_node(graph, summary="B")
        graph.edges.create(a.id, b.id, "semantic")
        graph.nodes.update(a.id, {"scores": {"weight": 0.9}})
        graph.nodes.delete(b.id)

        summary = DeltaManager.summarize(deltas.get(deltas.commit("mixed")))

        assert summary["stats"] == {"adds": 3, "modifies": 1, "deletes": 1, "total": 5}
        assert summary["categories"] == ["nodes", "graph"]


class TestStatusAndMaintenance:
    """Tests for status, history pruning, reset and log output."""

    def test_status_counts_pending_without_draining(self, deltas, graph, storage):
        assert deltas.status() == {"head": None, "pending": {"adds": 0, "modifies": 0, "deletes": 0, "total": 0},
                                   "clean": True}
        assert not deltas.has_pending()

        a = make_node(graph, summary="A")
        b = make_node(graph, summary="B")
        graph.nodes.update(a.id, {"scores": {"weight": 0.9}})
        graph.nodes.delete(b.id)

        status = deltas.status()
        assert status["pending"] == {"adds": 2, "modifies": 1, "deletes": 1, "total": 4}
        assert not status["clean"]
        assert deltas.has_pending()
        assert deltas.pending_count() == 4

        head = deltas.commit("mixed")
        status = deltas.status()
        assert status["head"] == head
        assert status["clean"]

    def test_prune_history_keeps_newest(self, deltas, graph, storage):
        hashes = []
        for i in range(5):
            make_node(graph, summary=f"Node {i}")
            hashes.append(deltas.commit(f"commit {i}"))

        assert deltas.prune_history(keep=2) == 3

        assert [d.hash for d in deltas.get_history(limit=None)] == [hashes[4], hashes[3]]
        assert storage.get_meta().delta_count == 2
        assert deltas.get(hashes[0]) is None
        assert not storage.get_path(f"deltas.objects.{hashes[0]}").exists()
        # The oldest survivor still names its parent
        assert deltas.get(hashes[3]).parent == hashes[2]

    def test_prune_history_nothing_to_drop(self, deltas, graph, storage):
        make_node(graph)
        deltas.commit("only")
        assert deltas.prune_history(keep=5) == 0
        assert storage.get_meta().delta_count == 1

    def test_prune_history_rejects_zero(self, deltas):
        with pytest.raises(ValueError):
            deltas.prune_history(keep=0)

    def test_reset_empties_graph(self, deltas, graph, storage):
        a = make_node(graph, summary="A")
        b = make_node(graph, summary="B", context={"file": "src/app.py"})
        graph.edges.create(a.id, b.id, "semantic")
        deltas.commit("seed")
        make_node(graph, summary="Uncommitted")

        deltas.reset()

        meta = storage.get_meta()
        assert (meta.head, meta.node_count, meta.edge_count, meta.delta_count) == (None, 0, 0, 0)
        assert graph.nodes.count() == 0
        assert graph.nodes.get(a.id) is None
        assert storage.get_graph()["edges"] == {}
        assert storage.get_index("by_file") == {}
        assert deltas.status()["clean"]
        assert deltas.get_history() == []
        on_disk = json.loads(storage.get_path("meta").read_text())
        assert on_disk["head"] is None

    def test_format_and_log(self, deltas, graph):
        a = make_node(graph, summary="A")
        first = deltas.commit("first")
        graph.nodes.update(a.id, {"scores": {"weight": 0.9}})
        second = deltas.commit("second")

        lines = DeltaManager.format(deltas.get(second))
        assert lines[0] == f"commit {second}"
        assert lines[1].startswith("Date:   ")
        assert lines[2] == f"Parent: {first}"
        assert lines[4] == "    second"
        assert lines[6] == " 0 additions, 1 modifications, 0 deletions"

        log = deltas.log()
        assert log[0] == f"commit {second}"
        assert f"commit {first}" in log
        assert "Parent: (none)" in log
        assert log[-1] == ""
        assert deltas.log(limit=1) == lines + [""]
