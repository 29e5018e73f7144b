"""End-to-end sensitivity run for one forecasting question.

    1. forecast    -- elicit probability + causal graph from the forecaster
    2. validate    -- build a CausalGraph (malformed graphs abort here)
    3. analyze     -- structural metrics and probe target selection
    4. probe       -- run every target through the ProbeExecutor
    5. aggregate   -- summary block and aggregate sensitivity metrics

A failure in step 1 or 2 is fatal to the question and propagates.
Failures inside step 4 are confined to their own ProbeResult. The
returned document follows beliefprobe.output_schema.
"""

from __future__ import annotations

import logging
import threading
import time

from beliefprobe.aggregate_metrics import enrich_question_detail
from beliefprobe.base import ForecastError, clamp_probability
from beliefprobe.causal_graph import CausalGraph
from beliefprobe.network_analyzer import ImportanceWeights, analyze_causal_graph
from beliefprobe.output_schema import build_question_summary
from beliefprobe.probe_executor import (
    DEFAULT_MAX_WORKERS,
    DEFAULT_SHIFT_TOLERANCE,
    Probe,
    ProbeExecutor,
)

logger = logging.getLogger(__name__)


class CausalSensitivityPipeline:
    """Runs the full forecast -> analyze -> probe -> aggregate sequence.

    Args:
        forecaster: Any Forecaster-compatible object.
        max_workers: Concurrency bound for probe execution.
        shift_tolerance: Moves smaller than this are "unchanged".
        weights: Composite importance weights for the analyzer.
        include_fabricated_edge: Add an edge_fabricate probe to the slate.

    Example:
        pipeline = CausalSensitivityPipeline(OpenRouterForecaster(api_key))
        detail = pipeline.run("Will the Fed cut rates in June 2027?")
        print(detail["aggregate_metrics"]["ssr"])
    """

    def __init__(
        self,
        forecaster,
        max_workers: int = DEFAULT_MAX_WORKERS,
        shift_tolerance: float = DEFAULT_SHIFT_TOLERANCE,
        weights: ImportanceWeights | None = None,
        include_fabricated_edge: bool = False,
    ):
        self.forecaster = forecaster
        self.weights = weights
        self.include_fabricated_edge = include_fabricated_edge
        self.executor = ProbeExecutor(
            forecaster, max_workers=max_workers, shift_tolerance=shift_tolerance
        )

    @classmethod
    def from_settings(cls, settings, forecaster=None, **kwargs) -> "CausalSensitivityPipeline":
        """Build from a Settings instance, creating an HTTP forecaster if none is given."""
        if forecaster is None:
            from beliefprobe.llm_client import OpenRouterForecaster

            forecaster = OpenRouterForecaster.from_settings(settings)
        return cls(
            forecaster,
            max_workers=settings.max_workers,
            shift_tolerance=settings.shift_tolerance,
            **kwargs,
        )

    def cancel(self) -> None:
        """Stop issuing further probes for the runs now in progress.

        Later calls to run() start with a clear flag.
        """
        self.executor.cancel()

    def elicit(self, question: str, background: str | None = None) -> dict:
        """Step 1: baseline forecast with a clamped probability.

        Raises:
            ForecastError: if the forecaster fails or returns no probability.
        """
        forecast = self.forecaster.forecast(question, background)
        if not isinstance(forecast, dict) or "probability" not in forecast:
            raise ForecastError("Forecast response lacks a probability")
        forecast = dict(forecast)
        forecast["probability"] = clamp_probability(forecast["probability"])
        forecast.setdefault("reasoning", "")
        forecast.setdefault("nodes", [])
        forecast.setdefault("edges", [])
        return forecast

    def run(
        self,
        question: str,
        background: str | None = None,
        question_id: str | None = None,
        source: str = "live",
        condition: str = "live",
        cancel_event: threading.Event | None = None,
    ) -> dict:
        """Run one question end to end.

        Args:
            question: The binary forecasting question.
            background: Optional background text.
            question_id: Identifier; defaults to ``live_<epoch ms>``.
            source: Source label stored in the document.
            condition: Condition label stored in the document.
            cancel_event: Optional flag that cancels this run only.

        Returns:
            The per-question document (see beliefprobe.output_schema).

        Raises:
            ForecastError: if the initial forecast fails.
            GraphValidationError: if the elicited graph is malformed.
        """
        if question_id is None:
            question_id = f"live_{int(time.time() * 1000)}"

        forecast = self.elicit(question, background)
        graph = CausalGraph.from_dicts(forecast["nodes"], forecast["edges"])
        analysis = analyze_causal_graph(
            graph,
            weights=self.weights,
            include_fabricated_edge=self.include_fabricated_edge,
        )
        logger.info(
            "%s: baseline %.2f, %d nodes, %d edges, %d probe targets",
            question_id,
            forecast["probability"],
            analysis.n_nodes,
            analysis.n_edges,
            len(analysis.probe_targets),
        )

        results = self.executor.run_probes(
            question, forecast, analysis.probe_targets, cancel_event=cancel_event
        )
        probes = [
            Probe.for_target(target, result.probe_text, generated=result.probe_generated)
            for target, result in zip(analysis.probe_targets, results)
        ]
        result_dicts = [r.to_dict() for r in results]

        detail = {
            "question_id": question_id,
            "question_text": question,
            "source": source,
            "initial_probability": forecast["probability"],
            "nodes": [n.to_dict() for n in graph.nodes],
            "edges": [e.to_dict() for e in graph.edges],
            "reasoning": forecast["reasoning"],
            "network_analysis": analysis.to_dict(),
            "probe_targets": [t.to_dict() for t in analysis.probe_targets],
            "probes": [p.to_dict() for p in probes],
            "condition": condition,
            "probe_results": result_dicts,
            "summary": build_question_summary(
                question_id,
                question,
                source,
                condition,
                forecast["probability"],
                result_dicts,
            ),
        }
        return enrich_question_detail(detail)
