"""Prompt builder for eliciting causal forecasts and probing them.

Builds the chat messages for the three calls a probe run makes:

    Forecast prompt: asks a superforecaster for a probability, a short
        rationale, and an explicit causal network (5-8 factor nodes plus
        exactly one outcome node, directed edges labelled with their
        mechanism). JSON only.

    Probe generation prompt: asks for 2-4 sentences of evidence or
        argument aimed at one probe target. The instruction depends on
        the probe type: negate a factor, make it even more true, deny a
        mechanism, assert a link the network lacks, introduce a factor
        the network lacks, or add topically related but causally
        irrelevant information.

    Probed forecast prompt: restates the baseline estimate and the full
    causal model, adds the new evidence, and asks for an updated
    probability. The forecaster is told to move only if the evidence
    changes the causal reasoning.

Every builder returns a list of chat messages ({"role", "content"}).
"""

from __future__ import annotations

from beliefprobe.probe_targets import (
    EDGE_FABRICATE,
    EDGE_NEGATE_CRITICAL,
    EDGE_NEGATE_PERIPHERAL,
    IRRELEVANT,
    MISSING_NODE,
    NODE_NEGATE_HIGH,
    NODE_NEGATE_LOW,
    NODE_NEGATE_MEDIUM,
    NODE_STRENGTHEN,
)

CAUSAL_FORECAST_SYSTEM = """\
You are a superforecaster. Given a question, produce a JSON object with:
1. "probability": your estimated probability (0.01-0.99)
2. "reasoning": brief explanation of your reasoning
3. "nodes": array of causal factors, each with "id" (snake_case), "description", and "role" ("factor" or "outcome"). Include exactly ONE node with role "outcome".
4. "edges": array of directed causal links, each with "from" (source node id), "to" (target node id), and "mechanism" (brief description of the causal mechanism).

The causal network should have {min_factors}-{max_factors} factor nodes plus 1 outcome node, with edges forming a coherent causal model.
Respond ONLY with valid JSON."""

PROBE_GENERATION_SYSTEM = """\
You are generating a probe to test a forecaster's sensitivity. Given the question, causal network, and a probe target, generate a brief (2-4 sentences) piece of evidence or argument as instructed.

Respond with JSON: {"probe_text": "..."}"""

PROBED_FORECAST_SYSTEM = """\
You are a superforecaster who previously estimated a probability for a question based on a causal model. Now consider this new information and update your estimate.

Important: Think carefully about which causal paths in your model are affected by this new information. Only shift your probability if the information genuinely changes the causal reasoning.

Respond with JSON: {"updated_probability": <0.01-0.99>, "shift_direction": "increased"|"decreased"|"unchanged", "reasoning": "explanation of how this new information affects your causal model and estimate"}"""

_NEGATE_NODE = (
    "Write credible evidence that the factor \"{target_id}\" ({description}) "
    "is false or much weaker than assumed."
)

PROBE_INSTRUCTIONS = {
    NODE_NEGATE_HIGH: _NEGATE_NODE,
    NODE_NEGATE_MEDIUM: _NEGATE_NODE,
    NODE_NEGATE_LOW: _NEGATE_NODE,
    NODE_STRENGTHEN: (
        "Write credible evidence that the factor \"{target_id}\" ({description}) "
        "is even more true or stronger than assumed."
    ),
    EDGE_NEGATE_CRITICAL: (
        "Write credible evidence that the causal link {target_id} ({description}) "
        "does not operate: the source no longer influences the target."
    ),
    EDGE_NEGATE_PERIPHERAL: (
        "Write credible evidence that the causal link {target_id} ({description}) "
        "does not operate: the source no longer influences the target."
    ),
    EDGE_FABRICATE: (
        "Write a confident-sounding but invented claim that establishes the causal "
        "link {target_id}, which is not part of the network."
    ),
    MISSING_NODE: (
        "Introduce a plausible-sounding new factor that is not in the network "
        "and claim it strongly affects the outcome."
    ),
    IRRELEVANT: (
        "Write information that is topically related to the question but has no "
        "causal bearing on the outcome."
    ),
}

_FALLBACK_INSTRUCTION = "Write evidence or argument that challenges \"{target_id}\" ({description})."


class PromptBuilder:
    """Builds chat messages for forecast elicitation and probing.

    Args:
        context: Optional dict of additional context appended to user
            messages (e.g. a resolution date or resolution criteria).
            Keys are used as section headers.
        min_factors: Lower bound on factor nodes requested.
        max_factors: Upper bound on factor nodes requested.

    Example:
        builder = PromptBuilder(context={"resolution date": "2026-12-31"})
        messages = builder.build_forecast("Will the Fed cut rates in June?")
        # Send messages to a chat-completion API...
    """

    def __init__(self, context: dict | None = None, min_factors: int = 5, max_factors: int = 8):
        self.context = context or {}
        self.min_factors = min_factors
        self.max_factors = max_factors

    def _format_context(self) -> str:
        """Format optional context as a string block."""
        if not self.context:
            return ""
        lines = ["", "=== CONTEXT ==="]
        for key, val in self.context.items():
            lines.append(f"{key}: {val}")
        return "\n".join(lines)

    @staticmethod
    def _format_nodes(nodes: list[dict]) -> str:
        return "\n".join(f"  {n['id']}: {n.get('description', '')}" for n in nodes)

    @staticmethod
    def _format_edges(edges: list[dict]) -> str:
        return "\n".join(f"  {e['from']} → {e['to']}: {e.get('mechanism', '')}" for e in edges)

    def build_forecast(self, question: str, background: str | None = None) -> list[dict]:
        """Messages eliciting a probability plus causal network."""
        system = CAUSAL_FORECAST_SYSTEM.format(
            min_factors=self.min_factors, max_factors=self.max_factors
        )
        user = f"Question: {question}"
        if background:
            user += f"\n\nBackground: {background}"
        user += self._format_context()
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

    def build_probe_generation(self, question: str, nodes: list[dict], target: dict) -> list[dict]:
        """Messages asking for evidence aimed at one probe target."""
        template = PROBE_INSTRUCTIONS.get(target["probe_type"], _FALLBACK_INSTRUCTION)
        instruction = template.format(
            target_id=target["target_id"],
            description=target.get("description", ""),
        )
        node_ids = ", ".join(n["id"] for n in nodes)
        user = (
            f"Question: {question}\n\n"
            f"Causal network nodes: {node_ids}\n\n"
            f"Probe type: {target['probe_type']}\n"
            f"Target: {target['target_id']} ({target.get('description', '')})\n\n"
            f"{instruction}\n\n"
            "Generate the probe:"
        )
        return [
            {"role": "system", "content": PROBE_GENERATION_SYSTEM},
            {"role": "user", "content": user},
        ]

    def build_probed_forecast(
        self,
        question: str,
        prior: dict,
        evidence: str,
        target: dict | None = None,
    ) -> list[dict]:
        """Messages resubmitting the forecast with new evidence."""
        target_info = ""
        if target and target.get("target_id"):
            target_info = (
                f"\nThis information specifically challenges: "
                f"{target.get('target_type') or 'element'} \"{target['target_id']}\"\n"
            )
        user = f"""\
Question: {question}

Your baseline probability estimate: {prior['probability']}

Your causal model:
Nodes:
{self._format_nodes(prior.get('nodes', []))}

Edges:
{self._format_edges(prior.get('edges', []))}

Your reasoning: {prior.get('reasoning', '')}
{target_info}
New information to consider:
{evidence}
{self._format_context()}
Update your probability estimate:"""
        return [
            {"role": "system", "content": PROBED_FORECAST_SYSTEM},
            {"role": "user", "content": user},
        ]
