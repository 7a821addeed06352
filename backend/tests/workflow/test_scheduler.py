"""Unit tests for the topological scheduler

Tests cover:
- Sequence is a permutation of the node ids on acyclic graphs
- Every edge's source precedes its target
- Ties resolve by node-list order
- Cycles are excluded from the sequence
- Edges with unknown endpoints are ignored
"""

import itertools

import pytest

from flowcore.engine.graph import WorkflowEdge, WorkflowGraph, WorkflowNode
from flowcore.engine.scheduler import find_unscheduled, schedule, schedule_graph


def _nodes(*ids):
    return [{"id": i, "type": "code", "data": {}} for i in ids]


def _edges(*pairs):
    return [{"source": s, "target": t} for s, t in pairs]


class TestScheduleOrdering:
    """Ordering guarantees on acyclic graphs."""

    def test_single_node(self):
        assert schedule(_nodes("1"), []) == ["1"]

    def test_empty_graph(self):
        assert schedule([], []) == []

    def test_chain(self):
        assert schedule(_nodes("a", "b", "c"), _edges(("a", "b"), ("b", "c"))) == ["a", "b", "c"]

    def test_chain_declared_in_reverse(self):
        """Edges, not list position, decide order when they conflict."""
        assert schedule(_nodes("c", "b", "a"), _edges(("a", "b"), ("b", "c"))) == ["a", "b", "c"]

    def test_no_edges_keeps_node_order(self):
        assert schedule(_nodes("z", "y", "x"), []) == ["z", "y", "x"]

    @pytest.mark.parametrize(
        "order, expected",
        [
            (["A", "B", "C"], ["A", "B", "C"]),
            (["A", "C", "B"], ["A", "C", "B"]),
            (["B", "C", "A"], ["A", "B", "C"]),
            (["C", "B", "A"], ["A", "C", "B"]),
        ],
    )
    def test_fan_out_ties_follow_node_order(self, order, expected):
        """A->B, A->C: B and C order depends only on the node list."""
        edges = _edges(("A", "B"), ("A", "C"))
        assert schedule(_nodes(*order), edges) == expected

    def test_fan_out_edges_declared_against_node_order(self):
        """Edge declaration order does not decide sibling order."""
        edges = _edges(("A", "C"), ("A", "D"), ("A", "B"))
        assert schedule(_nodes("A", "B", "C", "D"), edges) == ["A", "B", "C", "D"]
        assert schedule(_nodes("A", "D", "B", "C"), edges) == ["A", "D", "B", "C"]

    def test_fan_out_is_deterministic(self):
        nodes, edges = _nodes("A", "B", "C"), _edges(("A", "B"), ("A", "C"))
        assert all(schedule(nodes, edges) == ["A", "B", "C"] for _ in range(5))

    def test_diamond(self):
        nodes = _nodes("a", "b", "c", "d")
        edges = _edges(("a", "b"), ("a", "c"), ("b", "d"), ("c", "d"))
        assert schedule(nodes, edges) == ["a", "b", "c", "d"]

    def test_every_edge_respected_across_permutations(self):
        ids = ["a", "b", "c", "d", "e"]
        pairs = [("a", "c"), ("b", "c"), ("c", "d"), ("b", "e"), ("e", "d")]
        for perm in itertools.permutations(ids):
            sequence = schedule(_nodes(*perm), _edges(*pairs))
            assert sorted(sequence) == sorted(ids)
            for source, target in pairs:
                assert sequence.index(source) < sequence.index(target)

    def test_accepts_model_objects(self):
        nodes = [WorkflowNode(id="x", type="code"), WorkflowNode(id="y", type="code")]
        edges = [WorkflowEdge(source="y", target="x")]
        assert schedule(nodes, edges) == ["y", "x"]


class TestScheduleEdgeCases:
    """Cycles, dangling edges and duplicates."""

    def test_two_node_cycle_excluded(self):
        assert schedule(_nodes("a", "b"), _edges(("a", "b"), ("b", "a"))) == []

    def test_cycle_and_downstream_excluded(self):
        nodes = _nodes("start", "x", "y", "after", "free")
        edges = _edges(("start", "x"), ("x", "y"), ("y", "x"), ("y", "after"))
        sequence = schedule(nodes, edges)
        assert sequence == ["start", "free"]
        assert find_unscheduled(nodes, sequence) == ["x", "y", "after"]

    def test_self_loop_excluded(self):
        assert schedule(_nodes("a", "b"), _edges(("a", "a"))) == ["b"]

    def test_edges_to_unknown_nodes_ignored(self):
        nodes = _nodes("a", "b")
        edges = _edges(("ghost", "a"), ("a", "b"), ("b", "missing"))
        assert schedule(nodes, edges) == ["a", "b"]

    def test_duplicate_edges_count_twice_and_release_together(self):
        nodes = _nodes("a", "b")
        assert schedule(nodes, _edges(("a", "b"), ("a", "b"))) == ["a", "b"]

    def test_duplicate_node_ids_scheduled_once(self):
        nodes = _nodes("a", "a", "b")
        assert schedule(nodes, []) == ["a", "b"]

    def test_find_unscheduled_empty_when_acyclic(self):
        nodes = _nodes("a", "b")
        assert find_unscheduled(nodes, schedule(nodes, _edges(("a", "b")))) == []

    def test_schedule_graph_matches_schedule(self):
        nodes, edges = _nodes("a", "b", "c"), _edges(("c", "a"))
        assert schedule_graph(WorkflowGraph(nodes, edges)) == schedule(nodes, edges)


class TestWorkflowGraph:
    """Graph model basics."""

    def test_from_dict_ignores_layout_keys(self):
        graph = WorkflowGraph.from_dict({
            "nodes": [{"id": "1", "type": "code", "position": {"x": 0, "y": 0}, "data": {"label": "L"}}],
            "edges": [{"id": "e1", "source": "1", "target": "1", "animated": True}],
        })
        assert graph.get_node("1").label == "L"
        assert graph.to_dict()["edges"] == [{"source": "1", "target": "1", "id": "e1"}]

    def test_empty_node_id_rejected(self):
        with pytest.raises(ValueError, match="node id cannot be empty"):
            WorkflowNode(id="", type="code")

    def test_label_missing_or_blank(self):
        assert WorkflowNode(id="1", type="code").label is None
        assert WorkflowNode(id="1", type="code", data={"label": ""}).label is None

    def test_contains_and_len(self):
        graph = WorkflowGraph(_nodes("a", "b"), [])
        assert "a" in graph
        assert "zzz" not in graph
        assert len(graph) == 2
