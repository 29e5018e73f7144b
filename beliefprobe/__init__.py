"""Belief Sensitivity Toolkit.

Tests whether a forecaster's stated reasoning is the reasoning it
actually uses. A forecaster (usually an LLM) is asked for a probability
together with an explicit causal graph of the factors and mechanisms
behind it. The toolkit measures how structurally important each graph
element is, challenges a deterministic slate of elements with
counterfactual evidence, and checks whether the probability moves more
when load-bearing elements are attacked than when peripheral or
irrelevant ones are.

Any object that satisfies the Forecaster protocol -- forecast(),
generate_probe(), update_forecast() -- can be probed.

Modules:
    base              -- Forecaster protocol, wrapper and probability clamp
    causal_graph      -- Validated causal graph (nodes, edges, outcome)
    network_analyzer  -- Betweenness, PageRank, path relevance, critical path
    probe_targets     -- Deterministic probe slate selection
    probe_executor    -- Concurrent two-stage probe execution
    aggregate_metrics -- SSR, asymmetry, FNAR, critical path premium, Spearman
    prompts           -- Chat prompts for forecasting and probing
    llm_client        -- OpenRouter-compatible chat-completion forecaster
    pipeline          -- End-to-end run for one question
    output_schema     -- Per-question JSON document and cross-question index
    settings          -- Environment configuration (pydantic-settings)
    logging_config    -- Root logger setup for entry points
"""

from beliefprobe.base import Forecaster, ForecasterWrapper, ForecastError, clamp_probability
from beliefprobe.causal_graph import CausalEdge, CausalGraph, CausalNode, GraphValidationError
from beliefprobe.network_analyzer import (
    ImportanceWeights,
    NetworkAnalysis,
    NetworkAnalyzer,
    analyze_causal_graph,
    analyze_graph,
)
from beliefprobe.probe_targets import ProbeTarget, select_probe_targets
from beliefprobe.probe_executor import Probe, ProbeExecutor, ProbeResult
from beliefprobe.aggregate_metrics import (
    compute_aggregate_metrics,
    enrich_question_detail,
    node_sensitivity,
    spearman_correlation,
)
from beliefprobe.prompts import PromptBuilder
from beliefprobe.llm_client import OpenRouterForecaster, parse_json_response
from beliefprobe.pipeline import CausalSensitivityPipeline
from beliefprobe.output_schema import (
    NumpyEncoder,
    build_question_summary,
    summarize_questions,
    to_json,
    validate_question_detail,
)
from beliefprobe.settings import Settings, get_settings
from beliefprobe.logging_config import configure_logging

__version__ = "0.1.0"

__all__ = [
    "Forecaster",
    "ForecasterWrapper",
    "ForecastError",
    "clamp_probability",
    "CausalNode",
    "CausalEdge",
    "CausalGraph",
    "GraphValidationError",
    "ImportanceWeights",
    "NetworkAnalysis",
    "NetworkAnalyzer",
    "analyze_causal_graph",
    "analyze_graph",
    "ProbeTarget",
    "select_probe_targets",
    "Probe",
    "ProbeExecutor",
    "ProbeResult",
    "compute_aggregate_metrics",
    "enrich_question_detail",
    "node_sensitivity",
    "spearman_correlation",
    "PromptBuilder",
    "OpenRouterForecaster",
    "parse_json_response",
    "CausalSensitivityPipeline",
    "NumpyEncoder",
    "build_question_summary",
    "summarize_questions",
    "to_json",
    "validate_question_detail",
    "Settings",
    "get_settings",
    "configure_logging",
]
