"""Aggregate sensitivity metrics over one question's probe results.

Once every probe for a question has run, these statistics characterise
whether the forecaster's probability actually rests on the causal
structure it stated. A grounded forecaster moves more when load-bearing
elements are challenged than when peripheral ones are, and barely moves
on fabricated or irrelevant evidence.

Only successful results with a numeric ``absolute_shift`` participate.

    **SSR** (sensitivity-to-structure ratio): mean shift of high-importance
    probes (node_negate_high, node_strengthen, edge_negate_critical) over
    mean shift of low-importance probes (node_negate_low,
    edge_negate_peripheral, irrelevant). None when no high-importance
    probe succeeded or the low mean is 0.

    **Asymmetry index**: mean shift of node_negate_high over mean shift
    of node_strengthen. None when no node_negate_high probe succeeded or
    the strengthen mean is 0.

    **FNAR** (false acceptance rate): fraction of fabricated-evidence
    probes (edge_fabricate, missing_node) whose shift reaches 5
    percentage points. None when no such probe succeeded.

    **Critical path premium**: mean shift of probes on the critical path
    minus mean shift of probes off it. None unless both groups exist.

    **Importance-sensitivity correlation**: Spearman rho between target
    importance and shift over results with importance > 0, from 3 pairs
    up. Ties take the rank of their first occurrence in sorted order
    rather than the midrank.

The computation is a pure function of the result list: the live
pipeline and the offline batch pass both call compute_aggregate_metrics
(via enrich_question_detail), and calling it twice on the same input
yields identical output.

Reference:
    Spearman, C. (1904). "The proof and measurement of association
        between two things." American Journal of Psychology, 15(1),
        72-101.
"""

from __future__ import annotations

import numpy as np

from beliefprobe.probe_targets import (
    EDGE_FABRICATE,
    EDGE_NEGATE_CRITICAL,
    EDGE_NEGATE_PERIPHERAL,
    IRRELEVANT,
    MISSING_NODE,
    NODE_NEGATE_HIGH,
    NODE_NEGATE_LOW,
    NODE_STRENGTHEN,
)

HIGH_TYPES = frozenset({NODE_NEGATE_HIGH, NODE_STRENGTHEN, EDGE_NEGATE_CRITICAL})
LOW_TYPES = frozenset({NODE_NEGATE_LOW, EDGE_NEGATE_PERIPHERAL, IRRELEVANT})
FABRICATED_TYPES = frozenset({EDGE_FABRICATE, MISSING_NODE})

# Shift at which fabricated evidence counts as accepted (5 percentage points).
ACCEPTANCE_THRESHOLD = 0.05
MIN_CORRELATION_PAIRS = 3


def _as_record(result) -> dict:
    return result.to_dict() if hasattr(result, "to_dict") else result


def _mean(values: list[float]) -> float:
    """Arithmetic mean, 0.0 for an empty list."""
    if not values:
        return 0.0
    return float(np.mean(values))


def successful_results(probe_results: list) -> list[dict]:
    """Records with success set and a numeric absolute shift."""
    records = [_as_record(r) for r in probe_results]
    return [r for r in records if r.get("success") and r.get("absolute_shift") is not None]


def first_occurrence_ranks(values: list[float]) -> np.ndarray:
    """1-based ranks where equal values share the rank of their first occurrence."""
    arr = np.asarray(values, dtype=float)
    ordered = np.sort(arr)
    return np.searchsorted(ordered, arr, side="left") + 1


def spearman_correlation(x: list[float], y: list[float]) -> float | None:
    """Spearman rho via ``1 - 6 * sum(d^2) / (n * (n^2 - 1))``.

    Args:
        x: First sample.
        y: Second sample, same length as x.

    Returns:
        rho as a float, or None when fewer than 3 pairs are given.
    """
    n = len(x)
    if n < MIN_CORRELATION_PAIRS or len(y) != n:
        return None
    d = first_occurrence_ranks(x) - first_occurrence_ranks(y)
    d_sq = float(np.sum(d.astype(float) ** 2))
    return 1.0 - (6.0 * d_sq) / (n * (n * n - 1))


def compute_aggregate_metrics(probe_results: list) -> dict:
    """Compute cross-probe sensitivity statistics for one question.

    Args:
        probe_results: ProbeResult objects or their wire dicts.

    Returns:
        Dict with:
            "ssr": float or None,
            "mean_shift_high": float,
            "mean_shift_low": float,
            "asymmetry_index": float or None,
            "mean_shift_negate": float,
            "mean_shift_strengthen": float,
            "fnar": float or None,
            "n_accepted": int,
            "n_fabricated": int,
            "critical_path_premium": float or None,
            "mean_shift_on_path": float,
            "mean_shift_off_path": float,
            "importance_sensitivity_correlation": float or None,
    """
    successful = successful_results(probe_results)

    def shifts(pred) -> list[float]:
        return [float(r["absolute_shift"]) for r in successful if pred(r)]

    high = shifts(lambda r: r["probe_type"] in HIGH_TYPES)
    low = shifts(lambda r: r["probe_type"] in LOW_TYPES)
    mean_high = _mean(high)
    mean_low = _mean(low)
    ssr = mean_high / mean_low if high and mean_low > 0 else None

    negate = shifts(lambda r: r["probe_type"] == NODE_NEGATE_HIGH)
    strengthen = shifts(lambda r: r["probe_type"] == NODE_STRENGTHEN)
    mean_negate = _mean(negate)
    mean_strengthen = _mean(strengthen)
    asymmetry = mean_negate / mean_strengthen if negate and mean_strengthen > 0 else None

    fabricated = shifts(lambda r: r["probe_type"] in FABRICATED_TYPES)
    n_accepted = sum(1 for s in fabricated if s >= ACCEPTANCE_THRESHOLD)
    fnar = n_accepted / len(fabricated) if fabricated else None

    on_path = shifts(lambda r: bool(r.get("target_on_critical_path")))
    off_path = shifts(lambda r: not r.get("target_on_critical_path"))
    mean_on = _mean(on_path)
    mean_off = _mean(off_path)
    premium = mean_on - mean_off if on_path and off_path else None

    pairs = [
        (float(r.get("target_importance") or 0.0), float(r["absolute_shift"]))
        for r in successful
        if (r.get("target_importance") or 0.0) > 0
    ]
    correlation = None
    if len(pairs) >= MIN_CORRELATION_PAIRS:
        correlation = spearman_correlation([p[0] for p in pairs], [p[1] for p in pairs])

    return {
        "ssr": ssr,
        "mean_shift_high": mean_high,
        "mean_shift_low": mean_low,
        "asymmetry_index": asymmetry,
        "mean_shift_negate": mean_negate,
        "mean_shift_strengthen": mean_strengthen,
        "fnar": fnar,
        "n_accepted": n_accepted,
        "n_fabricated": len(fabricated),
        "critical_path_premium": premium,
        "mean_shift_on_path": mean_on,
        "mean_shift_off_path": mean_off,
        "importance_sensitivity_correlation": correlation,
    }


def node_sensitivity(probe_results: list) -> dict[str, float]:
    """Mean absolute shift per node target id.

    Args:
        probe_results: ProbeResult objects or their wire dicts.

    Returns:
        Dict mapping node id to the mean shift of node-type probes that
        targeted it. Nodes never successfully probed are absent.
    """
    per_node: dict[str, list[float]] = {}
    for r in map(_as_record, probe_results):
        if r.get("target_type") == "node" and r.get("absolute_shift") is not None:
            per_node.setdefault(r["target_id"], []).append(float(r["absolute_shift"]))
    return {node_id: _mean(values) for node_id, values in per_node.items()}


def enrich_question_detail(detail: dict) -> dict:
    """Return a copy of a per-question document with aggregate_metrics attached."""
    enriched = dict(detail)
    enriched["aggregate_metrics"] = compute_aggregate_metrics(detail.get("probe_results") or [])
    return enriched
