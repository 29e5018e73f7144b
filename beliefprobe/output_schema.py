"""Shared JSON document for per-question sensitivity results.

Every question run produces one document. Field names and nesting are
the interchange format with previously stored results, so they are kept
exactly::

    {
        "question_id", "question_text", "source", "condition",
        "initial_probability", "reasoning",
        "nodes": [{id, description, role}],
        "edges": [{from, to, mechanism}],
        "network_analysis": {n_nodes, n_edges, density, is_dag,
                             n_weakly_connected, n_strongly_connected,
                             outcome_node, node_metrics, edge_metrics,
                             probe_targets, [distances]},
        "probe_targets": [...],
        "probes": [...],
        "probe_results": [...],
        "summary": {question_id, question_text, source, condition,
                    initial_probability, n_probes, n_successful,
                    mean_absolute_shift, max_absolute_shift},
        "aggregate_metrics": {...},
    }

Across questions, summarize_questions() folds a list of documents into
a cross-question index with averages. It is a pure function of its
input: no running totals are threaded between files.

Usage::

    from beliefprobe.output_schema import to_json, validate_question_detail

    errors = validate_question_detail(detail)
    text = to_json(detail, indent=2)
"""
from __future__ import annotations

import json
from functools import reduce

import numpy as np

from beliefprobe.aggregate_metrics import compute_aggregate_metrics, successful_results
from beliefprobe.probe_targets import probe_category

REQUIRED_KEYS = [
    "question_id",
    "question_text",
    "source",
    "initial_probability",
    "nodes",
    "edges",
    "network_analysis",
    "probe_targets",
    "probe_results",
    "summary",
]

NETWORK_KEYS = [
    "n_nodes",
    "n_edges",
    "density",
    "is_dag",
    "outcome_node",
    "node_metrics",
    "edge_metrics",
]

PROBE_RESULT_KEYS = [
    "probe_type",
    "success",
    "absolute_shift",
    "updated_probability",
    "target_id",
    "target_type",
    "target_importance",
    "target_on_critical_path",
]


class NumpyEncoder(json.JSONEncoder):
    """JSON encoder that handles numpy types."""

    def default(self, obj):
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, (np.integer,)):
            return int(obj)
        if isinstance(obj, (np.floating,)):
            return float(obj)
        if isinstance(obj, (np.bool_,)):
            return bool(obj)
        return super().default(obj)


def to_json(detail: dict, **kwargs) -> str:
    """Serialize a question document to a JSON string."""
    return json.dumps(detail, cls=NumpyEncoder, **kwargs)


def build_question_summary(
    question_id: str,
    question_text: str,
    source: str,
    condition: str,
    initial_probability: float,
    probe_results: list,
) -> dict:
    """Per-question summary block.

    ``mean_absolute_shift`` and ``max_absolute_shift`` are None when no
    probe succeeded. Successful probes that all left the forecast where
    it was give 0.0, not None.
    """
    shifts = [float(r["absolute_shift"]) for r in successful_results(probe_results)]
    return {
        "question_id": question_id,
        "question_text": question_text,
        "source": source,
        "condition": condition,
        "initial_probability": initial_probability,
        "n_probes": len(probe_results),
        "n_successful": len(shifts),
        "mean_absolute_shift": float(np.mean(shifts)) if shifts else None,
        "max_absolute_shift": float(max(shifts)) if shifts else None,
    }


def validate_question_detail(d: dict) -> list[str]:
    """Validate a question document.

    Returns a list of error messages. Empty list = valid.
    """
    errors = []

    for key in REQUIRED_KEYS:
        if key not in d:
            errors.append(f"Missing required key: {key}")
    if errors:
        return errors  # can't validate further

    network = d["network_analysis"]
    for key in NETWORK_KEYS:
        if key not in network:
            errors.append(f"Missing network_analysis.{key}")

    node_ids = {n.get("id") for n in d["nodes"]}
    if "node_metrics" in network:
        metric_ids = {m.get("node_id") for m in network["node_metrics"]}
        if metric_ids != node_ids:
            errors.append(
                f"node_metrics ids {sorted(metric_ids)} do not match nodes {sorted(node_ids)}"
            )
    if "n_nodes" in network and network["n_nodes"] != len(d["nodes"]):
        errors.append(
            f"n_nodes mismatch: network_analysis says {network['n_nodes']}, "
            f"document has {len(d['nodes'])} nodes"
        )
    # an empty graph has no outcome
    if "outcome_node" in network and node_ids and network["outcome_node"] not in node_ids:
        errors.append(f"outcome_node {network['outcome_node']!r} is not a node")

    edge_ids = {f"{e.get('from')}->{e.get('to')}" for e in d["edges"]}
    for i, target in enumerate(d["probe_targets"]):
        if target.get("target_type") == "edge" and target.get("target_id") not in edge_ids:
            errors.append(f"probe_targets[{i}] names unknown edge {target.get('target_id')!r}")
        if target.get("target_type") == "node" and target.get("target_id") not in node_ids:
            errors.append(f"probe_targets[{i}] names unknown node {target.get('target_id')!r}")

    for i, result in enumerate(d["probe_results"]):
        missing = [k for k in PROBE_RESULT_KEYS if k not in result]
        if missing:
            errors.append(f"probe_results[{i}] missing keys: {missing}")
            continue
        if result["success"] and result["absolute_shift"] is None:
            errors.append(f"probe_results[{i}] succeeded without an absolute_shift")
        if not result["success"] and result["absolute_shift"] is not None:
            errors.append(f"probe_results[{i}] failed but carries an absolute_shift")
        category = result.get("probe_category")
        if category is not None and category != probe_category(result["probe_type"]):
            errors.append(
                f"probe_results[{i}] category {category!r} does not match "
                f"probe_type {result['probe_type']!r}"
            )

    return errors


def build_index_entry(detail: dict, metrics: dict | None = None) -> dict:
    """Cross-question index row for one question document.

    Aggregate metrics are recomputed from the probe results unless
    passed in.
    """
    if metrics is None:
        metrics = compute_aggregate_metrics(detail["probe_results"])
    network = detail.get("network_analysis") or {}
    summary = detail.get("summary") or {}
    return {
        "question_id": detail["question_id"],
        "question_text": detail["question_text"],
        "source": detail.get("source", ""),
        "initial_probability": detail["initial_probability"],
        "n_nodes": network.get("n_nodes", len(detail.get("nodes", []))),
        "n_edges": network.get("n_edges", len(detail.get("edges", []))),
        "mean_absolute_shift": summary.get("mean_absolute_shift"),
        "max_absolute_shift": summary.get("max_absolute_shift"),
        "ssr": metrics["ssr"],
    }


def _fold_entry(acc: dict, entry: dict) -> dict:
    ssr = entry["ssr"]
    shift = entry["mean_absolute_shift"]
    return {
        "ssr_total": acc["ssr_total"] + (ssr if ssr is not None else 0.0),
        "ssr_count": acc["ssr_count"] + (ssr is not None),
        "shift_total": acc["shift_total"] + (shift if shift is not None else 0.0),
        "shift_count": acc["shift_count"] + (shift is not None),
        "nodes_total": acc["nodes_total"] + entry["n_nodes"],
        "edges_total": acc["edges_total"] + entry["n_edges"],
    }


def summarize_questions(details: list[dict], model: str = "unknown", condition: str = "one-turn") -> dict:
    """Fold question documents into a cross-question summary.

    Documents without probe results are skipped.

    Args:
        details: Question documents (already loaded).
        model: Model label for the summary.
        condition: Condition label (e.g. "one-turn", "multi-turn").

    Returns:
        Dict with:
            "total_questions": int,
            "model": str,
            "condition": str,
            "avg_ssr": float or None (over questions with a defined SSR),
            "avg_mean_shift": float (0.0 when no question has one),
            "avg_nodes": float,
            "avg_edges": float,
            "questions": list of index rows (see build_index_entry),
    """
    index = [build_index_entry(d) for d in details if d.get("probe_results")]
    start = {
        "ssr_total": 0.0,
        "ssr_count": 0,
        "shift_total": 0.0,
        "shift_count": 0,
        "nodes_total": 0,
        "edges_total": 0,
    }
    acc = reduce(_fold_entry, index, start)
    n = len(index)
    return {
        "total_questions": n,
        "model": model,
        "condition": condition,
        "avg_ssr": acc["ssr_total"] / acc["ssr_count"] if acc["ssr_count"] else None,
        "avg_mean_shift": acc["shift_total"] / acc["shift_count"] if acc["shift_count"] else 0.0,
        "avg_nodes": acc["nodes_total"] / n if n else 0.0,
        "avg_edges": acc["edges_total"] / n if n else 0.0,
        "questions": index,
    }
