"""Network analysis of an elicited causal graph.

Given the causal graph a forecaster used to justify its probability,
this module measures how structurally important each factor and each
mechanism is to the outcome. Importance is what the probe selector uses
to decide which graph elements to challenge, and what the aggregate
metrics later compare against observed sensitivity.

Everything is derived from one shared computation, the all-pairs
shortest-path matrix ``dist`` (unweighted BFS from every node, ``inf``
where unreachable). From it:

    **Betweenness**: node m is counted for every ordered pair (s, t)
    with ``dist[s][m] + dist[m][t] == dist[s][t]``. A node on *some*
    shortest path counts once per pair, so graphs with several equal
    shortest paths are overcounted relative to Brandes betweenness.
    Counts are divided by the largest count (or 1).

    **Path relevance**: the fraction of nodes that can reach the
    outcome whose shortest distance to it is realised through m. The
    outcome itself scores 0.

    **PageRank**: power iteration, damping 0.85, 20 fixed iterations,
    uniform start. A node with no outgoing edges keeps its mass (no
    dangling-node redistribution). A graph with no edges keeps the
    uniform start.

    **Closeness**: reachable-count over summed distance, divided by
    ``max(largest value, 1)``.

    **Composite importance**: weighted sum of betweenness, PageRank,
    normalised out-degree and path relevance (ImportanceWeights).

    **Edge betweenness**: edge (u, v) is counted for every ordered pair
    (s, t) with ``dist[s][u] + 1 + dist[v][t] == dist[s][t]``, then
    divided by the largest count (or 1). Every edge is a shortest path
    between its own endpoints, so every edge scores above zero.

    **Critical path**: edge (u, v) is on the critical path iff both
    endpoints reach the outcome and ``dist[u][O] == 1 + dist[v][O]``,
    i.e. it is the first hop of a shortest path from u to the outcome.

Graphs are small (about 5-10 nodes), so all metrics are recomputed from
scratch in O(n^3). Degenerate graphs (no nodes, one node, no edges, disconnected
components) never raise: unreachable pairs are skipped and every
average is guarded.

References:
    Brandes, U. (2001). "A faster algorithm for betweenness centrality."
        Journal of Mathematical Sociology, 25(2), 163-177.
    Page, L., Brin, S., Motwani, R., & Winograd, T. (1999). "The
        PageRank citation ranking: Bringing order to the web."
        Stanford InfoLab Technical Report.
    Newman, M.E.J. (2010). *Networks: An Introduction.* Oxford
        University Press.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field

import numpy as np

from beliefprobe.causal_graph import (
    CausalEdge,
    CausalGraph,
    CausalNode,
    GraphValidationError,
)

logger = logging.getLogger(__name__)

PAGERANK_DAMPING = 0.85
PAGERANK_ITERATIONS = 20


@dataclass(frozen=True)
class ImportanceWeights:
    """Weights of the composite importance score."""

    betweenness: float = 0.3
    pagerank: float = 0.2
    out_degree: float = 0.2
    path_relevance: float = 0.3


@dataclass
class NodeMetrics:
    """Structural metrics of one node."""

    node_id: str
    description: str
    role: str
    in_degree: int
    out_degree: int
    betweenness: float
    closeness: float
    pagerank: float
    path_relevance: float
    composite_importance: float

    def to_dict(self) -> dict:
        return {
            "node_id": self.node_id,
            "description": self.description,
            "role": self.role,
            "in_degree": self.in_degree,
            "out_degree": self.out_degree,
            "betweenness": self.betweenness,
            "closeness": self.closeness,
            "pagerank": self.pagerank,
            "path_relevance": self.path_relevance,
            "composite_importance": self.composite_importance,
        }


@dataclass
class EdgeMetrics:
    """Structural metrics of one edge."""

    source: str
    target: str
    mechanism: str
    edge_betweenness: float
    on_critical_path: bool

    @property
    def edge_id(self) -> str:
        return f"{self.source}->{self.target}"

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "target": self.target,
            "mechanism": self.mechanism,
            "edge_betweenness": self.edge_betweenness,
            "on_critical_path": self.on_critical_path,
        }


@dataclass
class NetworkAnalysis:
    """Full analysis of one causal graph, plus the selected probe targets."""

    n_nodes: int
    n_edges: int
    density: float
    is_dag: bool
    n_weakly_connected: int
    n_strongly_connected: int
    outcome_node: str | None
    node_metrics: list[NodeMetrics]
    edge_metrics: list[EdgeMetrics]
    probe_targets: list = field(default_factory=list)
    distances: np.ndarray | None = None

    def ranked_nodes(self) -> list[NodeMetrics]:
        """Non-outcome nodes by descending composite importance.

        The sort is stable, so ties keep input order.
        """
        candidates = [nm for nm in self.node_metrics if nm.node_id != self.outcome_node]
        return sorted(candidates, key=lambda nm: -nm.composite_importance)

    def critical_edges(self) -> list[EdgeMetrics]:
        return [em for em in self.edge_metrics if em.on_critical_path]

    def peripheral_edges(self) -> list[EdgeMetrics]:
        return [em for em in self.edge_metrics if not em.on_critical_path]

    @property
    def stats(self) -> dict:
        """Global statistics of the graph."""
        return {
            "n_nodes": self.n_nodes,
            "n_edges": self.n_edges,
            "density": self.density,
            "is_dag": self.is_dag,
            "n_weakly_connected": self.n_weakly_connected,
            "n_strongly_connected": self.n_strongly_connected,
            "outcome_node": self.outcome_node,
        }

    def to_dict(self, include_distances: bool = False) -> dict:
        """Wire form. Density is rounded to four decimals.

        With ``include_distances`` the hop-distance matrix is added as a
        numpy array (``-1`` where unreachable); serialize it with
        ``beliefprobe.output_schema.to_json``.
        """
        d = {
            "n_nodes": self.n_nodes,
            "n_edges": self.n_edges,
            "density": round(self.density, 4),
            "is_dag": self.is_dag,
            "n_weakly_connected": self.n_weakly_connected,
            "n_strongly_connected": self.n_strongly_connected,
            "outcome_node": self.outcome_node,
            "node_metrics": [nm.to_dict() for nm in self.node_metrics],
            "edge_metrics": [em.to_dict() for em in self.edge_metrics],
            "probe_targets": [t.to_dict() for t in self.probe_targets],
        }
        if include_distances and self.distances is not None:
            d["distances"] = np.where(np.isinf(self.distances), -1.0, self.distances)
        return d


class NetworkAnalyzer:
    """Computes structural importance metrics for a causal graph.

    The all-pairs distance matrix is computed once at construction and
    shared by every metric.

    Args:
        graph: A validated CausalGraph.
        weights: Composite importance weights. Defaults to
            ImportanceWeights().

    Example:
        analyzer = NetworkAnalyzer(graph)
        analysis = analyzer.analyze()
        print(analysis.ranked_nodes()[0].node_id)
    """

    def __init__(self, graph: CausalGraph, weights: ImportanceWeights | None = None):
        self.graph = graph
        self.weights = weights or ImportanceWeights()
        self.dist = self.shortest_paths()

    def _bfs(self, start: int) -> np.ndarray:
        """Hop distances from ``start``; ``inf`` where unreachable."""
        dist = np.full(self.graph.n_nodes, np.inf)
        dist[start] = 0.0
        queue = deque([start])
        while queue:
            cur = queue.popleft()
            for nxt in self.graph.succ[cur]:
                if np.isinf(dist[nxt]):
                    dist[nxt] = dist[cur] + 1.0
                    queue.append(nxt)
        return dist

    def shortest_paths(self) -> np.ndarray:
        """All-pairs unweighted shortest path lengths, shape (n, n)."""
        n = self.graph.n_nodes
        dist = np.full((n, n), np.inf)
        for s in range(n):
            dist[s] = self._bfs(s)
        return dist

    def betweenness(self) -> np.ndarray:
        """Shortest-path betweenness, normalised by the largest count."""
        n = self.graph.n_nodes
        dist = self.dist
        counts = np.zeros(n)
        for s in range(n):
            for t in range(n):
                if s == t or np.isinf(dist[s, t]):
                    continue
                on_path = dist[s, :] + dist[:, t] == dist[s, t]
                on_path[s] = False
                on_path[t] = False
                counts += on_path
        return counts / max(float(counts.max(initial=0.0)), 1.0)

    def path_relevance(self) -> np.ndarray:
        """Fraction of outcome-reaching sources whose shortest path passes each node."""
        n = self.graph.n_nodes
        o = self.graph.outcome
        if o is None:
            return np.zeros(n)
        dist = self.dist
        sources = [s for s in range(n) if s != o and np.isfinite(dist[s, o])]
        relevance = np.zeros(n)
        if not sources:
            return relevance

        for m in range(n):
            if m == o:
                continue
            on_path = 0
            for s in sources:
                if s == m:
                    continue
                if dist[s, m] + dist[m, o] == dist[s, o]:
                    on_path += 1
            relevance[m] = on_path / len(sources)
        return relevance

    def pagerank(
        self,
        damping: float = PAGERANK_DAMPING,
        iterations: int = PAGERANK_ITERATIONS,
    ) -> np.ndarray:
        """Fixed-iteration PageRank over the directed edges.

        Mass flows from each predecessor split evenly over its
        out-edges. Nodes without out-edges are not redistributed.
        """
        n = self.graph.n_nodes
        if n == 0:
            return np.zeros(0)
        rank = np.full(n, 1.0 / n)
        if not self.graph.edge_index:
            return rank

        out_degree = np.array([len(s) for s in self.graph.succ], dtype=float)
        transition = np.zeros((n, n))
        for u, v in self.graph.edge_index:
            transition[v, u] += 1.0 / out_degree[u]

        for _ in range(iterations):
            rank = (1.0 - damping) / n + damping * (transition @ rank)
        return rank

    def closeness(self) -> np.ndarray:
        """Reachable-count over total distance, divided by max(largest, 1)."""
        n = self.graph.n_nodes
        values = np.zeros(n)
        for s in range(n):
            row = self.dist[s]
            reachable = row[np.isfinite(row) & (row > 0)]
            total = float(reachable.sum())
            values[s] = len(reachable) / total if total > 0 else 0.0
        return values / max(float(values.max(initial=0.0)), 1.0)

    def edge_betweenness(self) -> np.ndarray:
        """Shortest-path edge betweenness, normalised by the largest count."""
        dist = self.dist
        n = self.graph.n_nodes
        reachable = np.isfinite(dist) & ~np.eye(n, dtype=bool)
        counts = np.zeros(len(self.graph.edge_index))
        for k, (u, v) in enumerate(self.graph.edge_index):
            through = dist[:, u][:, None] + 1.0 + dist[v, :][None, :]
            counts[k] = np.count_nonzero(reachable & (through == dist))
        return counts / max(float(counts.max(initial=0.0)), 1.0)

    def critical_path_flags(self) -> list[bool]:
        """Whether each edge is the first hop of a shortest path to the outcome."""
        o = self.graph.outcome
        if o is None:
            return [False] * self.graph.n_edges
        flags = []
        for u, v in self.graph.edge_index:
            du, dv = self.dist[u, o], self.dist[v, o]
            flags.append(bool(np.isfinite(du) and np.isfinite(dv) and du == 1.0 + dv))
        return flags

    def is_dag(self) -> bool:
        """Three-colour DFS cycle detection."""
        white, gray, black = 0, 1, 2
        color = [white] * self.graph.n_nodes

        def visit(u: int) -> bool:
            color[u] = gray
            for v in self.graph.succ[u]:
                if color[v] == gray:
                    return False
                if color[v] == white and not visit(v):
                    return False
            color[u] = black
            return True

        for u in range(self.graph.n_nodes):
            if color[u] == white and not visit(u):
                return False
        return True

    def density(self) -> float:
        n = self.graph.n_nodes
        if n <= 1:
            return 0.0
        return self.graph.n_edges / (n * (n - 1))

    def n_weakly_connected(self) -> int:
        """Connected components of the graph with edge directions ignored."""
        parent = list(range(self.graph.n_nodes))

        def find(x: int) -> int:
            while parent[x] != x:
                parent[x] = parent[parent[x]]
                x = parent[x]
            return x

        for u, v in self.graph.edge_index:
            ru, rv = find(u), find(v)
            if ru != rv:
                parent[ru] = rv
        return len({find(x) for x in range(self.graph.n_nodes)})

    def n_strongly_connected(self) -> int:
        """Classes of mutually reachable nodes."""
        reach = np.isfinite(self.dist)
        mutual = reach & reach.T
        assigned = np.zeros(self.graph.n_nodes, dtype=bool)
        n_components = 0
        for u in range(self.graph.n_nodes):
            if assigned[u]:
                continue
            assigned |= mutual[u]
            n_components += 1
        return n_components

    def node_metrics(self) -> list[NodeMetrics]:
        """Per-node metrics in input order."""
        g = self.graph
        bet = self.betweenness()
        rel = self.path_relevance()
        pr = self.pagerank()
        clo = self.closeness()
        out_deg = [len(s) for s in g.succ]
        in_deg = [len(p) for p in g.pred]
        max_out = max(max(out_deg, default=0), 1)
        w = self.weights

        metrics = []
        for i, node in enumerate(g.nodes):
            composite = (
                w.betweenness * bet[i]
                + w.pagerank * pr[i]
                + w.out_degree * (out_deg[i] / max_out)
                + w.path_relevance * rel[i]
            )
            metrics.append(NodeMetrics(
                node_id=node.id,
                description=node.description,
                role=node.role,
                in_degree=in_deg[i],
                out_degree=out_deg[i],
                betweenness=float(bet[i]),
                closeness=float(clo[i]),
                pagerank=float(pr[i]),
                path_relevance=float(rel[i]),
                composite_importance=float(composite),
            ))
        return metrics

    def edge_metrics(self) -> list[EdgeMetrics]:
        """Per-edge metrics in input order."""
        eb = self.edge_betweenness()
        flags = self.critical_path_flags()
        return [
            EdgeMetrics(
                source=edge.source,
                target=edge.target,
                mechanism=edge.mechanism,
                edge_betweenness=float(eb[k]),
                on_critical_path=flags[k],
            )
            for k, edge in enumerate(self.graph.edges)
        ]

    def analyze(self, select_targets: bool = True, **selector_kwargs) -> NetworkAnalysis:
        """Run every metric and, by default, select probe targets.

        Args:
            select_targets: If True, fill ``probe_targets`` using
                select_probe_targets().
            **selector_kwargs: Passed through to select_probe_targets().

        Returns:
            NetworkAnalysis for the graph.
        """
        analysis = NetworkAnalysis(
            n_nodes=self.graph.n_nodes,
            n_edges=self.graph.n_edges,
            density=self.density(),
            is_dag=self.is_dag(),
            n_weakly_connected=self.n_weakly_connected(),
            n_strongly_connected=self.n_strongly_connected(),
            outcome_node=self.graph.outcome_id,
            node_metrics=self.node_metrics(),
            edge_metrics=self.edge_metrics(),
            distances=self.dist.copy(),
        )
        if select_targets:
            from beliefprobe.probe_targets import select_probe_targets

            analysis.probe_targets = select_probe_targets(analysis, **selector_kwargs)

        logger.debug(
            "Analyzed graph: %d nodes, %d edges, outcome=%s, dag=%s, %d targets",
            analysis.n_nodes,
            analysis.n_edges,
            analysis.outcome_node,
            analysis.is_dag,
            len(analysis.probe_targets),
        )
        return analysis


def analyze_causal_graph(
    graph: CausalGraph,
    weights: ImportanceWeights | None = None,
    **selector_kwargs,
) -> NetworkAnalysis:
    """Analyze a validated CausalGraph and select its probe targets."""
    return NetworkAnalyzer(graph, weights=weights).analyze(**selector_kwargs)


def analyze_graph(
    nodes: list,
    edges: list,
    weights: ImportanceWeights | None = None,
    **selector_kwargs,
) -> NetworkAnalysis:
    """Validate and analyze a causal graph given as nodes and edges.

    Args:
        nodes: CausalNode objects or wire dicts (id, description, role).
        edges: CausalEdge objects or wire dicts (from, to, mechanism).
        weights: Composite importance weights.
        **selector_kwargs: Passed through to select_probe_targets().

    Returns:
        NetworkAnalysis with node metrics, edge metrics, global stats
        and probe targets.

    Raises:
        GraphValidationError: if the graph is malformed.
    """
    try:
        parsed_nodes = [n if isinstance(n, CausalNode) else CausalNode.from_dict(n) for n in nodes]
        parsed_edges = [e if isinstance(e, CausalEdge) else CausalEdge.from_dict(e) for e in edges]
    except (KeyError, TypeError) as e:
        raise GraphValidationError(f"Malformed node or edge record: {e}") from e
    graph = CausalGraph(parsed_nodes, parsed_edges)
    return analyze_causal_graph(graph, weights=weights, **selector_kwargs)
