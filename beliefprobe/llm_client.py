"""Chat-completion forecaster: the HTTP side of the Forecaster protocol.

OpenRouterForecaster sends the PromptBuilder's messages to an
OpenAI-compatible chat-completion endpoint (OpenRouter by default) in
JSON mode and parses the replies. Models do not always honour JSON
mode, so parse_json_response() tries, in order: the raw text, a fenced
```json block, and the outermost brace span.

Transport errors, non-2xx responses and unparseable replies all raise
ForecastError, which the probe executor turns into a failed probe and
the pipeline treats as fatal only for the initial forecast.
"""

from __future__ import annotations

import json
import logging
import re

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from beliefprobe.base import ForecastError, clamp_probability
from beliefprobe.prompts import PromptBuilder

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "meta-llama/llama-3.3-70b-instruct"
DEFAULT_BASE_URL = "https://openrouter.ai/api/v1/chat/completions"

FORECAST_TEMPERATURE = 0.3
PROBE_TEMPERATURE = 0.5
UPDATE_TEMPERATURE = 0.3
FORECAST_MAX_TOKENS = 2048
PROBE_MAX_TOKENS = 512
UPDATE_MAX_TOKENS = 1024

_CODE_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_BRACES = re.compile(r"\{[\s\S]*\}")


class ResponseParseError(ForecastError):
    """Raised when a model reply contains no parseable JSON object."""


def parse_json_response(raw: str) -> dict:
    """Extract a JSON object from a model reply.

    Args:
        raw: Reply text, possibly wrapped in markdown or prose.

    Returns:
        The parsed dict.

    Raises:
        ResponseParseError: if no candidate parses to a JSON object.
    """
    candidates = [raw]
    match = _CODE_BLOCK.search(raw)
    if match:
        candidates.append(match.group(1).strip())
    match = _BRACES.search(raw)
    if match:
        candidates.append(match.group(0))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except (json.JSONDecodeError, TypeError):
            continue
        if isinstance(parsed, dict):
            return parsed

    raise ResponseParseError(f"Failed to parse JSON from response: {raw[:200]}")


def _build_session(max_retries: int) -> requests.Session:
    retry = Retry(
        total=max_retries,
        allowed_methods=["POST"],
        backoff_factor=1,
        status_forcelist=[429, 502, 503, 504],
    )
    session = requests.Session()
    session.mount("https://", HTTPAdapter(max_retries=retry))
    session.mount("http://", HTTPAdapter(max_retries=retry))
    return session


class OpenRouterForecaster:
    """Forecaster backed by a hosted chat-completion model.

    Args:
        api_key: Bearer token for the endpoint.
        model: Model identifier.
        base_url: Chat-completion endpoint URL.
        timeout: Per-request timeout in seconds.
        max_retries: Retries on 429/5xx and connection errors.
        prompt_builder: PromptBuilder to use. Defaults to PromptBuilder().
        session: Optional preconfigured requests.Session.

    Example:
        settings = get_settings()
        fc = OpenRouterForecaster.from_settings(settings)
        forecast = fc.forecast("Will the Fed cut rates in June?")
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        max_retries: int = 2,
        prompt_builder: PromptBuilder | None = None,
        session: requests.Session | None = None,
    ):
        if not api_key:
            raise ValueError("api_key is required")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.timeout = timeout
        self.prompts = prompt_builder or PromptBuilder()
        self.session = session or _build_session(max_retries)

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "OpenRouterForecaster":
        """Build from a Settings instance."""
        return cls(
            api_key=settings.api_key,
            model=settings.model,
            base_url=settings.base_url,
            timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            **kwargs,
        )

    def chat(self, messages: list[dict], temperature: float = 0.3, max_tokens: int = 2048) -> str:
        """POST one chat completion in JSON mode and return the reply text.

        Raises:
            ForecastError: on transport failure or a non-2xx status.
        """
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "response_format": {"type": "json_object"},
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            "X-Title": "Belief Sensitivity Explorer",
        }
        try:
            resp = self.session.post(self.base_url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise ForecastError(f"Chat completion request failed: {e}") from e

        if not resp.ok:
            raise ForecastError(f"Chat completion API error {resp.status_code}: {resp.text[:500]}")

        try:
            data = resp.json()
            return data["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ResponseParseError(f"Unexpected completion payload: {e}") from e

    def forecast(self, question: str, background: str | None = None) -> dict:
        messages = self.prompts.build_forecast(question, background)
        raw = self.chat(messages, FORECAST_TEMPERATURE, FORECAST_MAX_TOKENS)
        parsed = parse_json_response(raw)
        if "probability" not in parsed:
            raise ResponseParseError("Forecast response lacks a probability")
        parsed["probability"] = clamp_probability(parsed["probability"])
        parsed.setdefault("reasoning", "")
        parsed.setdefault("nodes", [])
        parsed.setdefault("edges", [])
        logger.info(
            "Forecast %.2f with %d nodes / %d edges from %s",
            parsed["probability"],
            len(parsed["nodes"]),
            len(parsed["edges"]),
            self.model,
        )
        return parsed

    def generate_probe(self, question: str, nodes: list[dict], target: dict) -> str:
        messages = self.prompts.build_probe_generation(question, nodes, target)
        raw = self.chat(messages, PROBE_TEMPERATURE, PROBE_MAX_TOKENS)
        parsed = parse_json_response(raw)
        text = parsed.get("probe_text")
        if not isinstance(text, str) or not text.strip():
            raise ResponseParseError("Probe response lacks probe_text")
        return text

    def update_forecast(
        self,
        question: str,
        prior: dict,
        evidence: str,
        target: dict | None = None,
    ) -> dict:
        messages = self.prompts.build_probed_forecast(question, prior, evidence, target)
        raw = self.chat(messages, UPDATE_TEMPERATURE, UPDATE_MAX_TOKENS)
        parsed = parse_json_response(raw)
        if "updated_probability" not in parsed:
            raise ResponseParseError("Update response lacks updated_probability")
        parsed["updated_probability"] = clamp_probability(parsed["updated_probability"])
        parsed["raw_response"] = raw
        return parsed
