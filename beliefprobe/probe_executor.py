"""Probe execution: challenge the forecaster and record how far it moves.

Each probe target goes through a two-stage pipeline:

    1. generate: the forecaster writes counterfactual evidence aimed at
       the target (negating a factor, strengthening it, denying a
       mechanism, inventing a missing factor, or adding irrelevant
       information).
    2. update: the forecaster is resubmitted with its baseline estimate,
       its causal model and the new evidence, and reports an updated
       probability.

The intermediate state between the stages is an explicit Probe record.
Targets are independent, so they run concurrently on a bounded thread
pool to respect upstream rate limits. A failure inside one probe
(transport error, malformed response) is caught at the probe boundary
and recorded as a failed ProbeResult; sibling probes carry on.

Shift direction is derived from the numeric shift with a small
tolerance instead of trusting the forecaster's own label.

Cancellation is scoped to one run_probes() call: each run gets its own
threading.Event, so cancelling one question never leaks into the next.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from beliefprobe.base import ForecastError, clamp_probability
from beliefprobe.probe_targets import ProbeTarget, probe_category

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4
DEFAULT_SHIFT_TOLERANCE = 0.005

INCREASED = "increased"
DECREASED = "decreased"
UNCHANGED = "unchanged"


def shift_direction(baseline: float, updated: float, tolerance: float = DEFAULT_SHIFT_TOLERANCE) -> str:
    """Classify a probability move as increased, decreased or unchanged."""
    delta = updated - baseline
    if abs(delta) < tolerance:
        return UNCHANGED
    return INCREASED if delta > 0 else DECREASED


@dataclass(frozen=True)
class Probe:
    """Generated counterfactual evidence for one target."""

    probe_text: str
    probe_type: str
    target_id: str
    generated: bool
    target_type: str
    importance: float
    centrality_rank: int
    on_critical_path: bool
    description: str

    @classmethod
    def for_target(cls, target: ProbeTarget, probe_text: str, generated: bool = True) -> "Probe":
        return cls(
            probe_text=probe_text,
            probe_type=target.probe_type,
            target_id=target.target_id,
            generated=generated,
            target_type=target.target_type,
            importance=target.importance,
            centrality_rank=target.centrality_rank,
            on_critical_path=target.on_critical_path,
            description=target.description,
        )

    def to_dict(self) -> dict:
        return {
            "probe_text": self.probe_text,
            "probe_type": self.probe_type,
            "target_id": self.target_id,
            "generated": self.generated,
            "target_type": self.target_type,
            "importance": self.importance,
            "centrality_rank": self.centrality_rank,
            "on_critical_path": self.on_critical_path,
            "description": self.description,
        }


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one probe, with a snapshot of its target."""

    probe_type: str
    probe_text: str
    probe_generated: bool
    success: bool
    updated_probability: float | None
    absolute_shift: float | None
    shift_direction: str
    reasoning: str
    raw_response: str
    target_id: str
    target_type: str
    target_importance: float
    target_centrality_rank: int
    target_on_critical_path: bool
    target_reason_id: str | None = None

    @property
    def probe_category(self) -> str:
        return probe_category(self.probe_type)

    @classmethod
    def succeeded(
        cls,
        target: ProbeTarget,
        probe_text: str,
        baseline: float,
        updated: float,
        reasoning: str = "",
        raw_response: str = "",
        generated: bool = True,
        tolerance: float = DEFAULT_SHIFT_TOLERANCE,
    ) -> "ProbeResult":
        return cls(
            probe_type=target.probe_type,
            probe_text=probe_text,
            probe_generated=generated,
            success=True,
            updated_probability=updated,
            absolute_shift=abs(updated - baseline),
            shift_direction=shift_direction(baseline, updated, tolerance),
            reasoning=reasoning,
            raw_response=raw_response,
            target_id=target.target_id,
            target_type=target.target_type,
            target_importance=target.importance,
            target_centrality_rank=target.centrality_rank,
            target_on_critical_path=target.on_critical_path,
        )

    @classmethod
    def failed(cls, target: ProbeTarget, error: str, probe_text: str = "") -> "ProbeResult":
        return cls(
            probe_type=target.probe_type,
            probe_text=probe_text,
            probe_generated=bool(probe_text),
            success=False,
            updated_probability=None,
            absolute_shift=None,
            shift_direction=UNCHANGED,
            reasoning=f"Error: {error}",
            raw_response="",
            target_id=target.target_id,
            target_type=target.target_type,
            target_importance=target.importance,
            target_centrality_rank=target.centrality_rank,
            target_on_critical_path=target.on_critical_path,
        )

    def to_dict(self) -> dict:
        return {
            "probe_type": self.probe_type,
            "target_reason_id": self.target_reason_id,
            "probe_text": self.probe_text,
            "probe_generated": self.probe_generated,
            "success": self.success,
            "updated_probability": self.updated_probability,
            "absolute_shift": self.absolute_shift,
            "shift_direction": self.shift_direction,
            "reasoning": self.reasoning,
            "raw_response": self.raw_response,
            "target_id": self.target_id,
            "target_type": self.target_type,
            "target_importance": self.target_importance,
            "target_centrality_rank": self.target_centrality_rank,
            "target_on_critical_path": self.target_on_critical_path,
            "probe_category": self.probe_category,
        }


class ProbeExecutor:
    """Runs probe targets against a forecaster.

    Args:
        forecaster: Any Forecaster-compatible object.
        max_workers: Upper bound on concurrently running probes.
        shift_tolerance: Moves smaller than this are "unchanged".

    Example:
        executor = ProbeExecutor(my_forecaster, max_workers=4)
        results = executor.run_probes(question, forecast, analysis.probe_targets)
        print(sum(r.success for r in results), "probes succeeded")
    """

    def __init__(
        self,
        forecaster,
        max_workers: int = DEFAULT_MAX_WORKERS,
        shift_tolerance: float = DEFAULT_SHIFT_TOLERANCE,
    ):
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.forecaster = forecaster
        self.max_workers = max_workers
        self.shift_tolerance = shift_tolerance
        self._active_runs: set[threading.Event] = set()
        self._runs_lock = threading.Lock()

    def cancel(self) -> None:
        """Stop starting new probes in every run now in progress.

        Probes already running complete. Runs started afterwards are not
        affected; to cancel a single run, pass it a ``cancel_event``.
        """
        with self._runs_lock:
            for event in self._active_runs:
                event.set()

    def generate_probe(self, question: str, forecast: dict, target: ProbeTarget) -> Probe:
        """Stage 1: have the forecaster write evidence for ``target``."""
        text = self.forecaster.generate_probe(question, forecast.get("nodes", []), target.to_dict())
        if not isinstance(text, str) or not text.strip():
            raise ForecastError(f"Empty probe text for target {target.target_id}")
        return Probe.for_target(target, text.strip())

    def update_forecast(
        self,
        question: str,
        forecast: dict,
        probe: Probe,
        target: ProbeTarget,
        name_target: bool = False,
    ) -> ProbeResult:
        """Stage 2: resubmit with the probe text and measure the shift.

        The forecaster is only told which element the evidence targets
        when ``name_target`` is set. Generated probes never name it, so
        structural probes stay indistinguishable from real evidence.
        """
        response = self.forecaster.update_forecast(
            question,
            forecast,
            probe.probe_text,
            target.to_dict() if name_target else None,
        )
        if not isinstance(response, dict) or "updated_probability" not in response:
            raise ForecastError(f"Update response lacks updated_probability: {response!r}")
        baseline = float(forecast["probability"])
        updated = clamp_probability(response["updated_probability"])
        return ProbeResult.succeeded(
            target,
            probe.probe_text,
            baseline,
            updated,
            reasoning=str(response.get("reasoning", "")),
            raw_response=str(response.get("raw_response", "")),
            generated=probe.generated,
            tolerance=self.shift_tolerance,
        )

    def run_probe(
        self,
        question: str,
        forecast: dict,
        target: ProbeTarget,
        cancel_event: threading.Event | None = None,
    ) -> ProbeResult:
        """Generate and apply one probe. Never raises for collaborator errors."""
        if cancel_event is not None and cancel_event.is_set():
            return ProbeResult.failed(target, "cancelled")

        probe = None
        try:
            probe = self.generate_probe(question, forecast, target)
            result = self.update_forecast(question, forecast, probe, target)
        except Exception as e:
            logger.warning("Probe %s on %s failed: %s", target.probe_type, target.target_id, e)
            return ProbeResult.failed(target, str(e), probe_text=probe.probe_text if probe else "")

        logger.debug(
            "Probe %s on %s: %.2f -> %.2f (%s)",
            target.probe_type,
            target.target_id,
            forecast["probability"],
            result.updated_probability,
            result.shift_direction,
        )
        return result

    def run_probes(
        self,
        question: str,
        forecast: dict,
        targets: list[ProbeTarget],
        cancel_event: threading.Event | None = None,
    ) -> list[ProbeResult]:
        """Run every target on the bounded pool.

        Args:
            question: The forecasting question.
            forecast: The baseline forecast dict.
            targets: Probe targets, in slate order.
            cancel_event: Optional per-run flag. Once set, targets not yet
                started are recorded as failed with "cancelled". A fresh
                flag is used when omitted.

        Returns:
            One ProbeResult per target, in target order.
        """
        if not targets:
            return []
        event = cancel_event if cancel_event is not None else threading.Event()
        with self._runs_lock:
            self._active_runs.add(event)
        try:
            workers = min(self.max_workers, len(targets))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [pool.submit(self.run_probe, question, forecast, t, event) for t in targets]
                results = [f.result() for f in futures]
        finally:
            with self._runs_lock:
                self._active_runs.discard(event)

        n_ok = sum(1 for r in results if r.success)
        logger.info("Ran %d probes (%d succeeded)", len(results), n_ok)
        return results

    def run_custom_probe(
        self,
        question: str,
        forecast: dict,
        probe_text: str,
        target_id: str | None = None,
        target_type: str | None = None,
    ) -> ProbeResult:
        """Apply user-written evidence, skipping the generation stage.

        Args:
            question: The forecasting question.
            forecast: The baseline forecast dict.
            probe_text: Evidence text to resubmit with.
            target_id: Optional id of the element the text challenges.
                When given, the resubmission prompt names it.
            target_type: Optional target type ("node", "edge", ...).

        Returns:
            ProbeResult with probe_type "custom" and probe_generated False.

        Raises:
            ValueError: if probe_text is empty.
        """
        if not probe_text or not probe_text.strip():
            raise ValueError("probe_text is required")
        target = ProbeTarget(
            target_type=target_type or "structural",
            target_id=target_id or "custom",
            description="User-supplied evidence",
            importance=0.0,
            centrality_rank=0,
            on_critical_path=False,
            probe_type="custom",
        )
        probe = Probe.for_target(target, probe_text.strip(), generated=False)
        try:
            return self.update_forecast(
                question, forecast, probe, target, name_target=target_id is not None
            )
        except Exception as e:
            logger.warning("Custom probe on %s failed: %s", target.target_id, e)
            return ProbeResult.failed(target, str(e), probe_text=probe.probe_text)
