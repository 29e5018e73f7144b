"""Probe target selection: which graph elements to challenge.

A deterministic policy over the analyzer's importance ranking and the
critical/peripheral edge partition. It always produces the same slate
shape, because the aggregate metrics classify probes by ``probe_type``
membership in fixed groups:

    node_negate_high        ranks 1 and 2
    node_negate_medium      the node at index floor(count / 2)
    node_negate_low         the last-ranked node (only when >= 3 factors)
    node_strengthen         ranks 1 and 2 again, with "even more true" semantics
    edge_negate_critical    up to two critical-path edges, in input order
    edge_negate_peripheral  the first non-critical edge, if any
    missing_node            one synthetic structural probe
    irrelevant              one synthetic structural probe

Structural probes target nothing in the graph. A well-grounded
forecaster should barely move on them; they measure false acceptance.

An optional ``edge_fabricate`` probe asserts a causal link the graph
does not contain (from the lowest-ranked factor without a direct edge
to the outcome). It is off by default so the default slate keeps its
fixed shape.
"""

from __future__ import annotations

from dataclasses import dataclass

NODE_NEGATE_HIGH = "node_negate_high"
NODE_NEGATE_MEDIUM = "node_negate_medium"
NODE_NEGATE_LOW = "node_negate_low"
NODE_STRENGTHEN = "node_strengthen"
EDGE_NEGATE_CRITICAL = "edge_negate_critical"
EDGE_NEGATE_PERIPHERAL = "edge_negate_peripheral"
EDGE_FABRICATE = "edge_fabricate"
MISSING_NODE = "missing_node"
IRRELEVANT = "irrelevant"

ALL_PROBE_TYPES = [
    NODE_NEGATE_HIGH,
    NODE_NEGATE_MEDIUM,
    NODE_NEGATE_LOW,
    NODE_STRENGTHEN,
    EDGE_NEGATE_CRITICAL,
    EDGE_NEGATE_PERIPHERAL,
    EDGE_FABRICATE,
    MISSING_NODE,
    IRRELEVANT,
]

MISSING_NODE_TARGET_ID = "missing_node_1"
IRRELEVANT_TARGET_ID = "irrelevant_1"


def probe_category(probe_type: str) -> str:
    """Classify a probe type as "node", "edge" or "structural" by prefix."""
    if probe_type.startswith("node"):
        return "node"
    if probe_type.startswith("edge"):
        return "edge"
    return "structural"


@dataclass(frozen=True)
class ProbeTarget:
    """One graph element (or structural slot) selected for probing."""

    target_type: str
    target_id: str
    description: str
    importance: float
    centrality_rank: int
    on_critical_path: bool
    probe_type: str

    @property
    def category(self) -> str:
        return probe_category(self.probe_type)

    @classmethod
    def from_dict(cls, d: dict) -> "ProbeTarget":
        return cls(
            target_type=d["target_type"],
            target_id=d["target_id"],
            description=d.get("description", ""),
            importance=float(d.get("importance", 0.0)),
            centrality_rank=int(d.get("centrality_rank", 0)),
            on_critical_path=bool(d.get("on_critical_path", False)),
            probe_type=d["probe_type"],
        )

    def to_dict(self) -> dict:
        return {
            "target_type": self.target_type,
            "target_id": self.target_id,
            "description": self.description,
            "importance": self.importance,
            "centrality_rank": self.centrality_rank,
            "on_critical_path": self.on_critical_path,
            "probe_type": self.probe_type,
        }


def _node_target(nm, rank: int, probe_type: str, on_critical_path: bool | None = None) -> ProbeTarget:
    if on_critical_path is None:
        on_critical_path = nm.path_relevance > 0
    return ProbeTarget(
        target_type="node",
        target_id=nm.node_id,
        description=nm.description,
        importance=nm.composite_importance,
        centrality_rank=rank,
        on_critical_path=on_critical_path,
        probe_type=probe_type,
    )


def _edge_target(em, rank: int, probe_type: str) -> ProbeTarget:
    return ProbeTarget(
        target_type="edge",
        target_id=em.edge_id,
        description=em.mechanism,
        importance=em.edge_betweenness,
        centrality_rank=rank,
        on_critical_path=em.on_critical_path,
        probe_type=probe_type,
    )


def _fabricated_edge_target(analysis, ranked: list) -> ProbeTarget | None:
    """A plausible but absent factor -> outcome link, or None."""
    outcome = analysis.outcome_node
    linked = {em.source for em in analysis.edge_metrics if em.target == outcome}
    for nm in reversed(ranked):
        if nm.node_id not in linked:
            return ProbeTarget(
                target_type="missing_edge",
                target_id=f"{nm.node_id}->{outcome}",
                description=f"A direct causal link from {nm.node_id} to {outcome} "
                            "that is absent from the network",
                importance=0.0,
                centrality_rank=0,
                on_critical_path=False,
                probe_type=EDGE_FABRICATE,
            )
    return None


def structural_targets() -> list[ProbeTarget]:
    """The fixed missing-node and irrelevant-information probes."""
    return [
        ProbeTarget(
            target_type="structural",
            target_id=MISSING_NODE_TARGET_ID,
            description="A plausible factor not in the current network",
            importance=0.0,
            centrality_rank=0,
            on_critical_path=False,
            probe_type=MISSING_NODE,
        ),
        ProbeTarget(
            target_type="structural",
            target_id=IRRELEVANT_TARGET_ID,
            description="Topically related but causally irrelevant information",
            importance=0.0,
            centrality_rank=0,
            on_critical_path=False,
            probe_type=IRRELEVANT,
        ),
    ]


def select_probe_targets(analysis, include_fabricated_edge: bool = False) -> list[ProbeTarget]:
    """Select the probe slate for an analyzed graph.

    Args:
        analysis: NetworkAnalysis from the network analyzer.
        include_fabricated_edge: If True, add one ``edge_fabricate``
            probe after the edge probes (when a factor without a direct
            link to the outcome exists).

    Returns:
        List of ProbeTarget in slate order: high negations, medium,
        low, strengthen, critical edges, peripheral edge, optional
        fabricated edge, then the two structural probes.
    """
    ranked = analysis.ranked_nodes()
    count = len(ranked)
    targets: list[ProbeTarget] = []

    for i in range(min(2, count)):
        targets.append(_node_target(ranked[i], i + 1, NODE_NEGATE_HIGH))

    mid = count // 2
    if count > mid:
        targets.append(_node_target(ranked[mid], mid + 1, NODE_NEGATE_MEDIUM))

    if count > 2:
        targets.append(_node_target(ranked[-1], count, NODE_NEGATE_LOW, on_critical_path=False))

    for i in range(min(2, count)):
        targets.append(_node_target(ranked[i], i + 1, NODE_STRENGTHEN))

    critical = analysis.critical_edges()
    for i, em in enumerate(critical[:2]):
        targets.append(_edge_target(em, i + 1, EDGE_NEGATE_CRITICAL))

    peripheral = analysis.peripheral_edges()
    if peripheral:
        targets.append(_edge_target(peripheral[0], len(analysis.edge_metrics), EDGE_NEGATE_PERIPHERAL))

    if include_fabricated_edge:
        fabricated = _fabricated_edge_target(analysis, ranked)
        if fabricated is not None:
            targets.append(fabricated)

    targets.extend(structural_targets())
    return targets
