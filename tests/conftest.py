"""Shared test fixtures for the belief sensitivity toolkit test suite.

Provides toy causal graphs and a scripted forecaster:

    scenario graph: factor1 -> factor2 -> outcome, factor3 -> outcome
        Four nodes. factor2 and factor3 sit one hop from the outcome,
        factor1 two hops. Every edge is on the critical path.

    chain graph: a -> b -> c (outcome)
        Both edges are on the critical path.

    cycle graph: a -> b -> c -> a, c is the outcome
        Not a DAG.

    diamond graph: a -> b -> y, a -> y
        a -> b is a peripheral (non-critical) edge because a reaches
        y directly.

    ScriptedForecaster: deterministic Forecaster
        Returns a fixed graph and baseline, writes canned probe text,
        and moves the probability by a fixed amount per probe type.
        Can be told to fail on chosen targets or on the initial forecast.
"""

import threading

import pytest

from beliefprobe.base import ForecastError
from beliefprobe.causal_graph import CausalGraph


def node(node_id, role="factor", description=None):
    return {"id": node_id, "description": description or node_id.replace("_", " "), "role": role}


def edge(source, target, mechanism=""):
    return {"from": source, "to": target, "mechanism": mechanism or f"{source} drives {target}"}


SCENARIO_NODES = [
    node("factor1"),
    node("factor2"),
    node("factor3"),
    node("outcome", role="outcome"),
]
SCENARIO_EDGES = [
    edge("factor1", "factor2"),
    edge("factor2", "outcome"),
    edge("factor3", "outcome"),
]

# Shift applied by ScriptedForecaster for each probe type.
DEFAULT_SHIFTS = {
    "node_negate_high": 0.2,
    "node_negate_medium": 0.1,
    "node_negate_low": 0.05,
    "node_strengthen": 0.2,
    "edge_negate_critical": 0.2,
    "edge_negate_peripheral": 0.05,
    "edge_fabricate": 0.1,
    "missing_node": 0.0,
    "irrelevant": 0.0,
}


class ScriptedForecaster:
    """Deterministic Forecaster for pipeline and executor tests.

    Args:
        nodes: Node dicts returned by forecast().
        edges: Edge dicts returned by forecast().
        probability: Baseline probability.
        shifts: probe_type -> amount the update lowers the probability.
        fail_targets: target ids whose update raises ForecastError.
        fail_forecast: If True, forecast() raises ForecastError.
    """

    def __init__(
        self,
        nodes=None,
        edges=None,
        probability=0.6,
        shifts=None,
        fail_targets=(),
        fail_forecast=False,
    ):
        self.nodes = list(nodes if nodes is not None else SCENARIO_NODES)
        self.edges = list(edges if edges is not None else SCENARIO_EDGES)
        self.probability = probability
        self.shifts = dict(DEFAULT_SHIFTS if shifts is None else shifts)
        self.fail_targets = set(fail_targets)
        self.fail_forecast = fail_forecast
        self.generate_calls = []
        self.update_calls = []
        self.targets_by_evidence = {}
        self._lock = threading.Lock()

    def forecast(self, question, background=None):
        if self.fail_forecast:
            raise ForecastError("forecast backend unavailable")
        return {
            "probability": self.probability,
            "reasoning": "Scripted reasoning.",
            "nodes": list(self.nodes),
            "edges": list(self.edges),
        }

    def generate_probe(self, question, nodes, target):
        text = f"Evidence aimed at {target['target_id']} ({target['probe_type']})."
        with self._lock:
            self.generate_calls.append(target)
            self.targets_by_evidence[text] = target
        return text

    def update_forecast(self, question, prior, evidence, target=None):
        with self._lock:
            self.update_calls.append((evidence, target))
            # generated evidence arrives without its target
            target = target or self.targets_by_evidence.get(evidence)
        if target is not None and target.get("target_id") in self.fail_targets:
            raise ForecastError(f"malformed response for {target['target_id']}")
        probe_type = target.get("probe_type") if target else None
        shift = self.shifts.get(probe_type, 0.0)
        return {
            "updated_probability": prior["probability"] - shift,
            "reasoning": f"Moved by {shift}.",
        }


# ---- Pytest fixtures ----

@pytest.fixture
def scenario_graph():
    """Four-node graph with three critical edges."""
    return CausalGraph.from_dicts(SCENARIO_NODES, SCENARIO_EDGES)


@pytest.fixture
def chain_graph():
    """a -> b -> c with c as the outcome."""
    return CausalGraph.from_dicts(
        [node("a"), node("b"), node("c", role="outcome")],
        [edge("a", "b"), edge("b", "c")],
    )


@pytest.fixture
def cycle_graph():
    """a -> b -> c -> a with c as the outcome."""
    return CausalGraph.from_dicts(
        [node("a"), node("b"), node("c", role="outcome")],
        [edge("a", "b"), edge("b", "c"), edge("c", "a")],
    )


@pytest.fixture
def diamond_graph():
    """a -> b -> y plus a direct a -> y shortcut."""
    return CausalGraph.from_dicts(
        [node("a"), node("b"), node("y", role="outcome")],
        [edge("a", "b"), edge("b", "y"), edge("a", "y")],
    )


@pytest.fixture
def edgeless_graph():
    """Three nodes, no edges."""
    return CausalGraph.from_dicts(
        [node("p"), node("q"), node("r", role="outcome")],
        [],
    )


@pytest.fixture
def scripted_forecaster():
    return ScriptedForecaster()
