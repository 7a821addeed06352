"""Unit tests for the execution context builder"""

import logging

from flowcore.engine.context import build_context, build_label_index
from flowcore.engine.graph import WorkflowNode


def _node(node_id, label=None):
    data = {"label": label} if label else {}
    return WorkflowNode(id=node_id, type="code", data=data)


class TestBuildLabelIndex:

    def test_maps_labels_to_ids(self):
        index = build_label_index([_node("1", "Fetch"), _node("2", "Parse"), _node("3")])
        assert index == {"Fetch": "1", "Parse": "2"}

    def test_first_duplicate_wins(self, caplog):
        with caplog.at_level(logging.WARNING):
            index = build_label_index([_node("1", "Same"), _node("2", "Same")])
        assert index == {"Same": "1"}
        assert "Duplicate label" in caplog.text


class TestBuildContext:

    def test_resolved_label(self):
        context = build_context({"Fetch"}, {"Fetch": "1"}, {"1": {"x": 5}})
        assert context == {"Fetch": {"data": {"x": 5}}}

    def test_unknown_label_omitted(self, caplog):
        with caplog.at_level(logging.INFO, logger="flowcore.engine.context"):
            context = build_context({"Nope"}, {"Fetch": "1"}, {"1": 1})
        assert context == {}
        assert "UnresolvedDependency" in caplog.text

    def test_label_without_result_omitted(self):
        assert build_context({"Later"}, {"Later": "9"}, {}) == {}

    def test_none_result_is_still_a_result(self):
        assert build_context({"A"}, {"A": "1"}, {"1": None}) == {"A": {"data": None}}

    def test_idempotent_and_store_untouched(self):
        store = {"1": {"items": [1, 2]}}
        first = build_context({"A"}, {"A": "1"}, store)
        second = build_context({"A"}, {"A": "1"}, store)
        assert first == second

        first["A"]["data"]["items"].append(3)
        assert store == {"1": {"items": [1, 2]}}
        assert second["A"]["data"]["items"] == [1, 2]
