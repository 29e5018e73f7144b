"""Causal graph model: the factors and mechanisms a forecaster states.

A forecaster asked for a probability also returns an explicit causal
graph: factor nodes, exactly one outcome node, and directed edges, each
labelled with the mechanism by which the source influences the target.
This module holds that graph as plain data, validates it, and exposes
the adjacency structure the network analyzer works on.

Nodes are stored in an arena: each node id gets a stable integer index
in input order when the graph is built, and every internal algorithm
operates on those indices. Ids only appear at the public boundary
(adjacency maps, metrics, probe targets).

Validation rules:
    - node ids are unique
    - every edge endpoint names an existing node
    - no self-loops (they carry no meaning for the metrics)

Violations raise GraphValidationError. The error is fatal for the
question and is never retried.

Outcome selection: the first node whose role is "outcome". If the
forecaster marked none, the last node in input order is used; this is a
policy, not an error. An empty graph is valid and has no outcome
(``outcome`` and ``outcome_id`` are None).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

FACTOR = "factor"
OUTCOME = "outcome"


class GraphValidationError(ValueError):
    """Raised when an elicited causal graph is structurally malformed."""


@dataclass(frozen=True)
class CausalNode:
    """A factor or the outcome in an elicited causal graph."""

    id: str
    description: str = ""
    role: str = FACTOR

    @classmethod
    def from_dict(cls, d: dict) -> "CausalNode":
        role = d.get("role", FACTOR)
        if role not in (FACTOR, OUTCOME):
            role = FACTOR
        return cls(id=str(d["id"]), description=str(d.get("description", "")), role=role)

    def to_dict(self) -> dict:
        return {"id": self.id, "description": self.description, "role": self.role}


@dataclass(frozen=True)
class CausalEdge:
    """A directed causal link. Serialized with ``from``/``to`` keys."""

    source: str
    target: str
    mechanism: str = ""

    @property
    def edge_id(self) -> str:
        """Identifier used by probe targets and result lookups."""
        return f"{self.source}->{self.target}"

    @classmethod
    def from_dict(cls, d: dict) -> "CausalEdge":
        return cls(
            source=str(d["from"]),
            target=str(d["to"]),
            mechanism=str(d.get("mechanism", "")),
        )

    def to_dict(self) -> dict:
        return {"from": self.source, "to": self.target, "mechanism": self.mechanism}


class CausalGraph:
    """Validated, immutable causal graph with index-based adjacency.

    Args:
        nodes: CausalNode list in the order the forecaster produced it.
            Order matters: it fixes node indices, the outcome fallback,
            and tie-breaking in importance rankings.
        edges: CausalEdge list. Parallel edges between the same ordered
            pair are kept and treated independently.

    Raises:
        GraphValidationError: on a duplicate node id, a dangling edge
            endpoint, or a self-loop.

    Example:
        graph = CausalGraph.from_dicts(
            [{"id": "a", "description": "A", "role": "factor"},
             {"id": "y", "description": "Y", "role": "outcome"}],
            [{"from": "a", "to": "y", "mechanism": "a drives y"}],
        )
        graph.outcome_id          # "y"
        graph.adjacency()         # {"a": ["y"], "y": []}
    """

    def __init__(self, nodes: list[CausalNode], edges: list[CausalEdge]):
        self.nodes = tuple(nodes)
        self.edges = tuple(edges)
        self.index: dict[str, int] = {}
        for i, node in enumerate(self.nodes):
            if node.id in self.index:
                raise GraphValidationError(f"Duplicate node id: {node.id!r}")
            self.index[node.id] = i

        n = len(self.nodes)
        self.succ: list[list[int]] = [[] for _ in range(n)]
        self.pred: list[list[int]] = [[] for _ in range(n)]
        self.edge_index: list[tuple[int, int]] = []
        for edge in self.edges:
            if edge.source not in self.index:
                raise GraphValidationError(
                    f"Edge {edge.edge_id} references unknown source node {edge.source!r}"
                )
            if edge.target not in self.index:
                raise GraphValidationError(
                    f"Edge {edge.edge_id} references unknown target node {edge.target!r}"
                )
            if edge.source == edge.target:
                raise GraphValidationError(f"Self-loop on node {edge.source!r}")
            u, v = self.index[edge.source], self.index[edge.target]
            self.succ[u].append(v)
            self.pred[v].append(u)
            self.edge_index.append((u, v))

        self.outcome = self._find_outcome()

    @classmethod
    def from_dicts(cls, nodes: list[dict], edges: list[dict]) -> "CausalGraph":
        """Build a graph from wire-format node and edge dicts.

        Raises:
            GraphValidationError: if a node lacks an id or an edge lacks
                an endpoint, or on any structural violation.
        """
        try:
            parsed_nodes = [CausalNode.from_dict(d) for d in nodes or []]
            parsed_edges = [CausalEdge.from_dict(d) for d in edges or []]
        except (KeyError, TypeError) as e:
            raise GraphValidationError(f"Malformed node or edge record: {e}") from e
        return cls(parsed_nodes, parsed_edges)

    def _find_outcome(self) -> int | None:
        if not self.nodes:
            return None
        outcomes = [i for i, node in enumerate(self.nodes) if node.role == OUTCOME]
        if not outcomes:
            logger.warning(
                "No node marked as outcome; falling back to last node %r",
                self.nodes[-1].id,
            )
            return len(self.nodes) - 1
        if len(outcomes) > 1:
            logger.warning(
                "%d nodes marked as outcome; using the first, %r",
                len(outcomes),
                self.nodes[outcomes[0]].id,
            )
        return outcomes[0]

    @property
    def n_nodes(self) -> int:
        return len(self.nodes)

    @property
    def n_edges(self) -> int:
        return len(self.edges)

    @property
    def outcome_id(self) -> str | None:
        if self.outcome is None:
            return None
        return self.nodes[self.outcome].id

    @property
    def node_ids(self) -> list[str]:
        return [node.id for node in self.nodes]

    def adjacency(self) -> dict[str, list[str]]:
        """Map each node id to its successor ids (one entry per edge)."""
        return {
            node.id: [self.nodes[j].id for j in self.succ[i]]
            for i, node in enumerate(self.nodes)
        }

    def reverse_adjacency(self) -> dict[str, list[str]]:
        """Map each node id to its predecessor ids (one entry per edge)."""
        return {
            node.id: [self.nodes[j].id for j in self.pred[i]]
            for i, node in enumerate(self.nodes)
        }

    def has_edge(self, source: str, target: str) -> bool:
        u = self.index.get(source)
        v = self.index.get(target)
        if u is None or v is None:
            return False
        return v in self.succ[u]

    def to_dict(self) -> dict:
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
        }
