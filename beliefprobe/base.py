"""Base types and protocols for the belief sensitivity toolkit.

Defines the Forecaster protocol that any model backend must satisfy to be
probed by the toolkit's executor and pipeline.

The protocol requires three methods:
    forecast(question, background) -> dict
        Elicit a probability estimate together with the causal graph
        (factor nodes, one outcome node, directed mechanisms) that
        purportedly explains it.

    generate_probe(question, nodes, target) -> str
        Write a short piece of counterfactual evidence aimed at one
        probe target (a node, an edge, or a structural slot).

    update_forecast(question, prior, evidence, target) -> dict
        Resubmit the forecaster with the new evidence and return the
        updated probability.

Any object that provides these methods -- an HTTP client for a hosted
chat-completion model, a scripted fake in a test, or a local model --
can be used with ProbeExecutor and CausalSensitivityPipeline.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


class ForecastError(RuntimeError):
    """Raised when the forecaster fails to produce a usable response.

    Covers transport failures and unparseable model output. During the
    initial forecast it is fatal to the question; during a probe it is
    caught at the probe boundary and recorded as a failed result.
    """


@runtime_checkable
class Forecaster(Protocol):
    """Protocol for any model backend that can be probed by the toolkit.

    Example:
        class MyForecaster:
            def forecast(self, question, background=None):
                return {
                    "probability": 0.4,
                    "reasoning": "...",
                    "nodes": [{"id": "rates", "description": "...", "role": "factor"},
                              {"id": "outcome", "description": "...", "role": "outcome"}],
                    "edges": [{"from": "rates", "to": "outcome", "mechanism": "..."}],
                }

            def generate_probe(self, question, nodes, target):
                return "New data shows rates will not move this year."

            def update_forecast(self, question, prior, evidence, target=None):
                return {"updated_probability": 0.3, "reasoning": "..."}

        assert isinstance(MyForecaster(), Forecaster)  # True at runtime
    """

    def forecast(self, question: str, background: str | None = None) -> dict:
        """Elicit a baseline forecast and its causal graph.

        Args:
            question: The binary forecasting question.
            background: Optional background text to include.

        Returns:
            Dict with "probability" (float), "reasoning" (str),
            "nodes" (list of node dicts with id/description/role) and
            "edges" (list of edge dicts with from/to/mechanism).
        """
        ...

    def generate_probe(self, question: str, nodes: list[dict], target: dict) -> str:
        """Generate counterfactual evidence targeting one graph element.

        Args:
            question: The forecasting question.
            nodes: Node dicts of the elicited causal graph.
            target: Probe target dict (target_type, target_id,
                description, probe_type, ...).

        Returns:
            The probe text (a few sentences of evidence or argument).
        """
        ...

    def update_forecast(
        self,
        question: str,
        prior: dict,
        evidence: str,
        target: dict | None = None,
    ) -> dict:
        """Resubmit the forecast with new evidence.

        Args:
            question: The forecasting question.
            prior: The baseline forecast dict (probability, reasoning,
                nodes, edges).
            evidence: The probe text to consider.
            target: Optional probe target dict the evidence challenges.

        Returns:
            Dict with "updated_probability" (float) and "reasoning"
            (str). May carry "shift_direction" and "raw_response".
        """
        ...


class ForecasterWrapper:
    """Wraps plain callables into a Forecaster-compatible object.

    This is a convenience class for cases where you have standalone
    functions rather than a client class.

    Example:
        fc = ForecasterWrapper(
            forecast_fn=lambda q, bg: {...},
            generate_fn=lambda q, nodes, target: "evidence ...",
            update_fn=lambda q, prior, evidence, target: {"updated_probability": 0.5},
        )
        fc.forecast("Will X happen by 2027?")
    """

    def __init__(self, forecast_fn: callable, generate_fn: callable, update_fn: callable):
        """Initialize the wrapper.

        Args:
            forecast_fn: Callable (question, background) -> forecast dict.
            generate_fn: Callable (question, nodes, target) -> probe text.
            update_fn: Callable (question, prior, evidence, target) ->
                update dict.
        """
        self._forecast = forecast_fn
        self._generate = generate_fn
        self._update = update_fn

    def forecast(self, question: str, background: str | None = None) -> dict:
        """Call the wrapped forecast function."""
        return self._forecast(question, background)

    def generate_probe(self, question: str, nodes: list[dict], target: dict) -> str:
        """Call the wrapped probe generation function."""
        return self._generate(question, nodes, target)

    def update_forecast(
        self,
        question: str,
        prior: dict,
        evidence: str,
        target: dict | None = None,
    ) -> dict:
        """Call the wrapped update function."""
        return self._update(question, prior, evidence, target)


PROBABILITY_FLOOR = 0.01
PROBABILITY_CEILING = 0.99


def clamp_probability(value) -> float:
    """Coerce a model-reported probability into [0.01, 0.99].

    Raises:
        ForecastError: if the value is missing or not numeric.
    """
    try:
        p = float(value)
    except (TypeError, ValueError) as e:
        raise ForecastError(f"Probability is not numeric: {value!r}") from e
    if p != p:
        raise ForecastError("Probability is NaN")
    return min(PROBABILITY_CEILING, max(PROBABILITY_FLOOR, p))
