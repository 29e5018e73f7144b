"""Tests for the causal graph model."""
import logging

import pytest

from beliefprobe.causal_graph import (
    CausalEdge,
    CausalGraph,
    CausalNode,
    GraphValidationError,
)
from conftest import edge, node


class TestCausalNodeAndEdge:
    """Test wire-format conversion of nodes and edges."""

    def test_node_roundtrip(self):
        d = {"id": "rates", "description": "Interest rates", "role": "factor"}
        assert CausalNode.from_dict(d).to_dict() == d

    def test_unknown_role_becomes_factor(self):
        n = CausalNode.from_dict({"id": "x", "role": "mediator"})
        assert n.role == "factor"

    def test_missing_description_defaults_empty(self):
        assert CausalNode.from_dict({"id": "x"}).description == ""

    def test_edge_uses_from_to_keys(self):
        e = CausalEdge.from_dict({"from": "a", "to": "b", "mechanism": "m"})
        assert e.source == "a"
        assert e.target == "b"
        assert e.to_dict() == {"from": "a", "to": "b", "mechanism": "m"}

    def test_edge_id(self):
        assert CausalEdge("a", "b").edge_id == "a->b"


class TestValidation:
    """Malformed graphs raise GraphValidationError."""

    def test_dangling_target(self):
        with pytest.raises(GraphValidationError, match="unknown target"):
            CausalGraph.from_dicts([node("a"), node("y", "outcome")], [edge("a", "missing")])

    def test_dangling_source(self):
        with pytest.raises(GraphValidationError, match="unknown source"):
            CausalGraph.from_dicts([node("a"), node("y", "outcome")], [edge("ghost", "y")])

    def test_duplicate_id(self):
        with pytest.raises(GraphValidationError, match="Duplicate"):
            CausalGraph.from_dicts([node("a"), node("a", "outcome")], [])

    def test_self_loop(self):
        with pytest.raises(GraphValidationError, match="Self-loop"):
            CausalGraph.from_dicts([node("a"), node("y", "outcome")], [edge("a", "a")])

    def test_empty_graph(self):
        graph = CausalGraph.from_dicts([], [])
        assert graph.n_nodes == 0
        assert graph.n_edges == 0
        assert graph.outcome is None
        assert graph.outcome_id is None

    def test_node_without_id(self):
        with pytest.raises(GraphValidationError, match="Malformed"):
            CausalGraph.from_dicts([{"description": "no id"}], [])

    def test_edge_without_endpoint(self):
        with pytest.raises(GraphValidationError, match="Malformed"):
            CausalGraph.from_dicts([node("a"), node("y", "outcome")], [{"from": "a"}])

    def test_validation_error_is_value_error(self):
        assert issubclass(GraphValidationError, ValueError)


class TestOutcome:
    """Outcome selection and its fallbacks."""

    def test_marked_outcome(self, scenario_graph):
        assert scenario_graph.outcome_id == "outcome"
        assert scenario_graph.outcome == 3

    def test_fallback_to_last_node(self, caplog):
        with caplog.at_level(logging.WARNING, logger="beliefprobe.causal_graph"):
            g = CausalGraph.from_dicts([node("a"), node("b")], [edge("a", "b")])
        assert g.outcome_id == "b"
        assert "falling back" in caplog.text

    def test_multiple_outcomes_first_wins(self, caplog):
        with caplog.at_level(logging.WARNING, logger="beliefprobe.causal_graph"):
            g = CausalGraph.from_dicts(
                [node("a"), node("y1", "outcome"), node("y2", "outcome")],
                [edge("a", "y1"), edge("a", "y2")],
            )
        assert g.outcome_id == "y1"
        assert "2 nodes marked as outcome" in caplog.text


class TestAdjacency:
    """Index arena and adjacency maps."""

    def test_indices_follow_input_order(self, scenario_graph):
        assert scenario_graph.index == {"factor1": 0, "factor2": 1, "factor3": 2, "outcome": 3}
        assert scenario_graph.node_ids == ["factor1", "factor2", "factor3", "outcome"]

    def test_adjacency(self, scenario_graph):
        assert scenario_graph.adjacency() == {
            "factor1": ["factor2"],
            "factor2": ["outcome"],
            "factor3": ["outcome"],
            "outcome": [],
        }

    def test_reverse_adjacency(self, scenario_graph):
        rev = scenario_graph.reverse_adjacency()
        assert rev["outcome"] == ["factor2", "factor3"]
        assert rev["factor1"] == []

    def test_parallel_edges_kept(self):
        g = CausalGraph.from_dicts(
            [node("a"), node("y", "outcome")],
            [edge("a", "y", "first"), edge("a", "y", "second")],
        )
        assert g.n_edges == 2
        assert g.adjacency()["a"] == ["y", "y"]

    def test_has_edge(self, scenario_graph):
        assert scenario_graph.has_edge("factor1", "factor2")
        assert not scenario_graph.has_edge("factor2", "factor1")
        assert not scenario_graph.has_edge("nope", "outcome")

    def test_to_dict_roundtrip(self, scenario_graph):
        d = scenario_graph.to_dict()
        rebuilt = CausalGraph.from_dicts(d["nodes"], d["edges"])
        assert rebuilt.to_dict() == d
