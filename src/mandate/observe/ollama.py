"""
Ollama assisted extractor.

This module implements the AssistedExtractor interface using Ollama as
the backend. Ollama runs local LLMs and provides a simple HTTP API for
chat completions.

Requirements:
    - Ollama must be installed and running (`ollama serve`)
    - A model must be pulled (`ollama pull qwen2.5:0.5b`)

Usage:
    from mandate.observe.ollama import OllamaConfig, OllamaExtractor

    with OllamaExtractor(OllamaConfig(model="qwen2.5:0.5b")) as extractor:
        estimates = extractor.extract(text, signal_defs)
"""

import json
from dataclasses import dataclass
from typing import Any

import httpx
from jinja2 import Environment, StrictUndefined

from mandate.errors import (
    ExtractorConnectionError,
    ExtractorParseError,
    ExtractorTimeoutError,
)
from mandate.observe.assisted import AssistedExtractor, SignalEstimate
from mandate.observe.parsing import parse_json_safely, parse_signal_estimates
from mandate.schema import SignalDefinition


DEFAULT_SYSTEM_PROMPT = """You extract structured signal values from text.

Respond with ONLY a JSON object, no other text. Use this shape:
{"<signal name>": {"value": <value>, "confidence": <number between 0 and 1>}}

Rules:
1. Only include the signals listed below
2. Omit a signal if the text does not support a value for it
3. Numbers must be JSON numbers, booleans must be true or false
4. Enum values must be exactly one of the allowed values

Signals:
{% for signal in signals %}
- {{ signal.name }} ({{ signal.type.value }}){{ ": one of " ~ (signal.values | join(", ")) if signal.values else "" }}
{% endfor %}"""

_jinja = Environment(undefined=StrictUndefined, autoescape=False, trim_blocks=True)


@dataclass
class OllamaConfig:
    """Configuration for the Ollama extractor."""

    base_url: str = "http://localhost:11434"
    model: str = "qwen2.5:0.5b"
    timeout_seconds: float = 10.0
    temperature: float = 0.0
    max_tokens: int = 512
    system_prompt: str | None = None


class OllamaExtractor(AssistedExtractor):
    """
    Assisted extractor backed by a local Ollama model.

    Features:
        - Prompt rendered from a jinja2 template listing only candidate signals
        - JSON mode requested from the model, with tolerant parsing on top
        - Transport failures mapped to ExtractorError subclasses

    There are no retries: a failed call means "no assisted signals".
    """

    def __init__(self, config: OllamaConfig | None = None):
        """
        Initialize the Ollama extractor.

        Args:
            config: Configuration for the extractor. If None, uses defaults.
        """
        self.config = config or OllamaConfig()
        self._template = _jinja.from_string(self.config.system_prompt or DEFAULT_SYSTEM_PROMPT)
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.config.base_url,
                timeout=self.config.timeout_seconds,
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "OllamaExtractor":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def extract(
        self,
        text: str,
        signal_defs: list[SignalDefinition],
    ) -> dict[str, SignalEstimate]:
        """
        Ask the model for the given signals.

        Raises:
            ExtractorConnectionError: Cannot reach Ollama, or non-200 reply
            ExtractorTimeoutError: Request timed out
            ExtractorParseError: Reply is not usable JSON
        """
        if not signal_defs:
            return {}

        messages = self._build_messages(text, signal_defs)
        content = self._call_ollama(messages)

        parsed, error = parse_json_safely(content)
        if error:
            raise ExtractorParseError(
                extractor="ollama",
                model=self.config.model,
                raw_response=content[:500],
                parse_error=error,
            )

        return parse_signal_estimates(parsed, {s.name for s in signal_defs})

    def _build_messages(
        self,
        text: str,
        signal_defs: list[SignalDefinition],
    ) -> list[dict[str, str]]:
        system_content = self._template.render(signals=signal_defs)
        return [
            {"role": "system", "content": system_content},
            {"role": "user", "content": text},
        ]

    def _call_ollama(self, messages: list[dict[str, str]]) -> str:
        """Make a single call to the Ollama chat API."""
        client = self._get_client()

        payload = {
            "model": self.config.model,
            "messages": messages,
            "stream": False,
            "format": "json",
            "options": {
                "temperature": self.config.temperature,
                "num_predict": self.config.max_tokens,
            },
        }

        try:
            response = client.post("/api/chat", json=payload)
        except httpx.ConnectError as e:
            raise ExtractorConnectionError(
                extractor="ollama",
                model=self.config.model,
                url=self.config.base_url,
                underlying_error=str(e),
            ) from e
        except httpx.TimeoutException as e:
            raise ExtractorTimeoutError(
                extractor="ollama",
                model=self.config.model,
                timeout_seconds=self.config.timeout_seconds,
            ) from e

        if response.status_code != 200:
            raise ExtractorConnectionError(
                extractor="ollama",
                model=self.config.model,
                url=self.config.base_url,
                underlying_error=f"HTTP {response.status_code}: {response.text}",
            )

        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise ExtractorParseError(
                extractor="ollama",
                model=self.config.model,
                raw_response=response.text[:500],
                parse_error=f"Invalid JSON from Ollama: {e}",
            ) from e

        content: str = data.get("message", {}).get("content", "")
        if not content:
            raise ExtractorParseError(
                extractor="ollama",
                model=self.config.model,
                raw_response=str(data)[:500],
                parse_error="Empty response from model",
            )

        return content

    def get_name(self) -> str:
        """Return extractor name."""
        return f"OllamaExtractor({self.config.model})"

    def get_config(self) -> dict[str, Any]:
        """Return extractor configuration."""
        return {
            "backend": "ollama",
            "base_url": self.config.base_url,
            "model": self.config.model,
            "timeout_seconds": self.config.timeout_seconds,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }
