"""Tests for probe target selection."""
import pytest

from beliefprobe.causal_graph import CausalGraph, CausalNode
from beliefprobe.network_analyzer import analyze_causal_graph
from beliefprobe.probe_targets import (
    ALL_PROBE_TYPES,
    IRRELEVANT_TARGET_ID,
    MISSING_NODE_TARGET_ID,
    ProbeTarget,
    probe_category,
    select_probe_targets,
    structural_targets,
)


def _types(targets):
    return [t.probe_type for t in targets]


class TestProbeCategory:
    """Category is derived from the probe type prefix."""

    @pytest.mark.parametrize("probe_type,expected", [
        ("node_negate_high", "node"),
        ("node_strengthen", "node"),
        ("edge_negate_critical", "edge"),
        ("edge_fabricate", "edge"),
        ("missing_node", "structural"),
        ("irrelevant", "structural"),
        ("custom", "structural"),
    ])
    def test_prefix(self, probe_type, expected):
        assert probe_category(probe_type) == expected

    def test_target_category_property(self):
        t = structural_targets()[0]
        assert t.category == "structural"


class TestScenarioSlate:
    """Slate for the four-node scenario."""

    def test_slate_shape(self, scenario_graph):
        targets = analyze_causal_graph(scenario_graph).probe_targets
        assert _types(targets) == [
            "node_negate_high",
            "node_negate_high",
            "node_negate_medium",
            "node_negate_low",
            "node_strengthen",
            "node_strengthen",
            "edge_negate_critical",
            "edge_negate_critical",
            "missing_node",
            "irrelevant",
        ]

    def test_node_targets_and_ranks(self, scenario_graph):
        targets = analyze_causal_graph(scenario_graph).probe_targets
        nodes = [(t.probe_type, t.target_id, t.centrality_rank) for t in targets if t.target_type == "node"]
        assert nodes == [
            ("node_negate_high", "factor2", 1),
            ("node_negate_high", "factor1", 2),
            ("node_negate_medium", "factor1", 2),
            ("node_negate_low", "factor3", 3),
            ("node_strengthen", "factor2", 1),
            ("node_strengthen", "factor1", 2),
        ]

    def test_outcome_never_targeted(self, scenario_graph):
        targets = analyze_causal_graph(scenario_graph).probe_targets
        assert all(t.target_id != "outcome" for t in targets)

    def test_node_critical_flag_from_path_relevance(self, scenario_graph):
        targets = analyze_causal_graph(scenario_graph).probe_targets
        high = [t for t in targets if t.probe_type == "node_negate_high"]
        assert high[0].on_critical_path is True
        assert high[1].on_critical_path is False

    def test_low_target_never_on_critical_path(self, scenario_graph):
        targets = analyze_causal_graph(scenario_graph).probe_targets
        low = [t for t in targets if t.probe_type == "node_negate_low"]
        assert low[0].on_critical_path is False

    def test_critical_edges_in_input_order(self, scenario_graph):
        targets = analyze_causal_graph(scenario_graph).probe_targets
        edges = [t for t in targets if t.probe_type == "edge_negate_critical"]
        assert [t.target_id for t in edges] == ["factor1->factor2", "factor2->outcome"]
        assert [t.centrality_rank for t in edges] == [1, 2]
        assert all(t.on_critical_path for t in edges)

    def test_importance_copied(self, scenario_graph):
        analysis = analyze_causal_graph(scenario_graph)
        by_id = {nm.node_id: nm for nm in analysis.node_metrics}
        first = analysis.probe_targets[0]
        assert first.importance == by_id[first.target_id].composite_importance

    def test_category_consistent(self, scenario_graph):
        for t in analyze_causal_graph(scenario_graph).probe_targets:
            assert t.category == probe_category(t.probe_type)
            assert t.probe_type in ALL_PROBE_TYPES


class TestPeripheralEdge:
    """First non-critical edge becomes the peripheral probe."""

    def test_peripheral_edge(self, diamond_graph):
        targets = analyze_causal_graph(diamond_graph).probe_targets
        peripheral = [t for t in targets if t.probe_type == "edge_negate_peripheral"]
        assert len(peripheral) == 1
        assert peripheral[0].target_id == "a->b"
        assert peripheral[0].centrality_rank == 3
        assert peripheral[0].on_critical_path is False


class TestSmallGraphs:
    """Fewer factors emit fewer node probes."""

    def test_two_factors_no_low_probe(self, edgeless_graph):
        targets = analyze_causal_graph(edgeless_graph).probe_targets
        assert _types(targets) == [
            "node_negate_high",
            "node_negate_high",
            "node_negate_medium",
            "node_strengthen",
            "node_strengthen",
            "missing_node",
            "irrelevant",
        ]

    def test_single_node_only_structural(self):
        g = CausalGraph([CausalNode("y", role="outcome")], [])
        targets = analyze_causal_graph(g).probe_targets
        assert _types(targets) == ["missing_node", "irrelevant"]


class TestStructuralTargets:
    """The fixed structural probes."""

    def test_ids(self):
        ids = [t.target_id for t in structural_targets()]
        assert ids == [MISSING_NODE_TARGET_ID, IRRELEVANT_TARGET_ID]

    def test_zero_importance(self):
        for t in structural_targets():
            assert t.importance == 0.0
            assert t.centrality_rank == 0
            assert t.on_critical_path is False
            assert t.target_type == "structural"


class TestFabricatedEdge:
    """Optional edge_fabricate probe."""

    def test_off_by_default(self, scenario_graph):
        targets = analyze_causal_graph(scenario_graph).probe_targets
        assert "edge_fabricate" not in _types(targets)

    def test_lowest_ranked_unlinked_factor(self, scenario_graph):
        analysis = analyze_causal_graph(scenario_graph, include_fabricated_edge=True)
        fabricated = [t for t in analysis.probe_targets if t.probe_type == "edge_fabricate"]
        assert len(fabricated) == 1
        assert fabricated[0].target_id == "factor1->outcome"
        assert fabricated[0].target_type == "missing_edge"
        assert _types(analysis.probe_targets)[-3:] == ["edge_fabricate", "missing_node", "irrelevant"]

    def test_none_when_every_factor_linked(self):
        g = CausalGraph.from_dicts(
            [{"id": "a"}, {"id": "b"}, {"id": "y", "role": "outcome"}],
            [{"from": "a", "to": "y"}, {"from": "b", "to": "y"}],
        )
        analysis = analyze_causal_graph(g, include_fabricated_edge=True)
        assert "edge_fabricate" not in _types(analysis.probe_targets)

    def test_reselect_is_deterministic(self, scenario_graph):
        analysis = analyze_causal_graph(scenario_graph)
        assert select_probe_targets(analysis) == analysis.probe_targets


class TestProbeTargetSerialization:
    """Wire form of a probe target."""

    def test_roundtrip(self, scenario_graph):
        for t in analyze_causal_graph(scenario_graph).probe_targets:
            assert ProbeTarget.from_dict(t.to_dict()) == t

    def test_keys(self):
        d = structural_targets()[0].to_dict()
        assert list(d) == [
            "target_type", "target_id", "description", "importance",
            "centrality_rank", "on_critical_path", "probe_type",
        ]
