"""
Tests for the Ollama assisted extractor.

Tests:
    - OllamaConfig defaults
    - Prompt rendering lists only candidate signals
    - extract with mocked HTTP
    - Error handling (connection, timeout, HTTP status, parse errors)
    - Recovery through the populator
"""

import json
from unittest.mock import MagicMock, patch

import httpx
import pytest

from mandate.errors import (
    ExtractorConnectionError,
    ExtractorParseError,
    ExtractorTimeoutError,
)
from mandate.observe import PopulationConfig, populate_signals
from mandate.observe.ollama import OllamaConfig, OllamaExtractor
from mandate.schema import DecisionEvent, SignalDefinition, SignalType


@pytest.fixture
def signal_defs() -> list[SignalDefinition]:
    return [
        SignalDefinition(name="vendor", type=SignalType.STRING),
        SignalDefinition(name="priority", type=SignalType.ENUM, values=["low", "high"]),
    ]


def chat_response(content: str, status_code: int = 200) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = {"message": {"role": "assistant", "content": content}}
    response.text = json.dumps({"message": {"content": content}})
    return response


class TestOllamaConfig:
    """Tests for OllamaConfig dataclass."""

    def test_default_config(self) -> None:
        config = OllamaConfig()
        assert config.base_url == "http://localhost:11434"
        assert config.model == "qwen2.5:0.5b"
        assert config.timeout_seconds == 10.0
        assert config.temperature == 0.0
        assert config.system_prompt is None


class TestOllamaExtractorBasics:
    """Initialization and metadata."""

    def test_init_with_default_config(self) -> None:
        extractor = OllamaExtractor()
        assert extractor.config.model == "qwen2.5:0.5b"

    def test_context_manager_closes_client(self) -> None:
        with OllamaExtractor() as extractor:
            extractor._get_client()
            assert extractor._client is not None
        assert extractor._client is None

    def test_get_name(self) -> None:
        assert OllamaExtractor(OllamaConfig(model="llama3")).get_name() == "OllamaExtractor(llama3)"

    def test_get_config(self) -> None:
        config = OllamaExtractor().get_config()
        assert config["backend"] == "ollama"
        assert config["max_tokens"] == 512

    def test_prompt_lists_candidate_signals(self, signal_defs) -> None:
        messages = OllamaExtractor()._build_messages("invoice text", signal_defs)
        system = messages[0]["content"]
        assert "- vendor (string)" in system
        assert "- priority (enum): one of low, high" in system
        assert messages[1] == {"role": "user", "content": "invoice text"}

    def test_custom_prompt_template(self, signal_defs) -> None:
        extractor = OllamaExtractor(OllamaConfig(system_prompt="Find {{ signals | length }} values."))
        assert extractor._build_messages("t", signal_defs)[0]["content"] == "Find 2 values."


class TestOllamaExtract:
    """extract() against a mocked chat API."""

    @patch.object(httpx.Client, "post")
    def test_returns_estimates(self, mock_post, signal_defs) -> None:
        mock_post.return_value = chat_response(
            '{"vendor": {"value": "Initech", "confidence": 0.9}, "priority": {"value": "high", "confidence": 0.7}}'
        )
        estimates = OllamaExtractor().extract("Invoice from Initech", signal_defs)
        assert estimates["vendor"].value == "Initech"
        assert estimates["priority"].confidence == 0.7

        payload = mock_post.call_args.kwargs["json"]
        assert payload["format"] == "json"
        assert payload["stream"] is False
        assert payload["options"]["temperature"] == 0.0

    @patch.object(httpx.Client, "post")
    def test_unrequested_signals_dropped(self, mock_post, signal_defs) -> None:
        mock_post.return_value = chat_response('{"risk": {"value": "high", "confidence": 1.0}}')
        assert OllamaExtractor().extract("text", signal_defs) == {}

    @patch.object(httpx.Client, "post")
    def test_repairs_fenced_reply(self, mock_post, signal_defs) -> None:
        mock_post.return_value = chat_response("```json\n{'vendor': {'value': 'Acme', 'confidence': 0.95},}\n```")
        assert OllamaExtractor().extract("text", signal_defs)["vendor"].value == "Acme"

    def test_no_signals_no_call(self) -> None:
        extractor = OllamaExtractor()
        assert extractor.extract("text", []) == {}
        assert extractor._client is None

    @patch.object(httpx.Client, "post")
    def test_connection_error(self, mock_post, signal_defs) -> None:
        mock_post.side_effect = httpx.ConnectError("Connection refused")
        with pytest.raises(ExtractorConnectionError) as exc_info:
            OllamaExtractor().extract("text", signal_defs)
        assert "Connection refused" in exc_info.value.underlying_error

    @patch.object(httpx.Client, "post")
    def test_timeout_error(self, mock_post, signal_defs) -> None:
        mock_post.side_effect = httpx.ReadTimeout("timed out")
        with pytest.raises(ExtractorTimeoutError) as exc_info:
            OllamaExtractor(OllamaConfig(timeout_seconds=2.0)).extract("text", signal_defs)
        assert exc_info.value.timeout_seconds == 2.0

    @patch.object(httpx.Client, "post")
    def test_http_error(self, mock_post, signal_defs) -> None:
        mock_post.return_value = MagicMock(status_code=500, text="Internal error")
        with pytest.raises(ExtractorConnectionError, match="HTTP 500"):
            OllamaExtractor().extract("text", signal_defs)

    @patch.object(httpx.Client, "post")
    def test_invalid_json_body(self, mock_post, signal_defs) -> None:
        response = MagicMock(status_code=200, text="<html>")
        response.json.side_effect = json.JSONDecodeError("Expecting value", "<html>", 0)
        mock_post.return_value = response
        with pytest.raises(ExtractorParseError):
            OllamaExtractor().extract("text", signal_defs)

    @patch.object(httpx.Client, "post")
    def test_empty_content(self, mock_post, signal_defs) -> None:
        mock_post.return_value = chat_response("")
        with pytest.raises(ExtractorParseError, match="Empty response"):
            OllamaExtractor().extract("text", signal_defs)

    @patch.object(httpx.Client, "post")
    def test_unparseable_content(self, mock_post, signal_defs) -> None:
        mock_post.return_value = chat_response("I am not sure.")
        with pytest.raises(ExtractorParseError) as exc_info:
            OllamaExtractor().extract("text", signal_defs)
        assert exc_info.value.raw_response == "I am not sure."


class TestOllamaThroughPopulator:
    """The populator absorbs backend failures."""

    @patch.object(httpx.Client, "post")
    def test_unreachable_backend_yields_no_signals(self, mock_post, decision: DecisionEvent, signal_defs) -> None:
        mock_post.side_effect = httpx.ConnectError("Connection refused")
        config = PopulationConfig(enable_assisted_extraction=True, extractor=OllamaExtractor())
        signals = populate_signals(decision, signal_defs, "some text", config)
        assert signals == {}

    @patch.object(httpx.Client, "post")
    def test_confident_backend_answer_used(self, mock_post, decision: DecisionEvent, signal_defs) -> None:
        mock_post.return_value = chat_response('{"vendor": {"value": "Initech", "confidence": 0.9}}')
        config = PopulationConfig(enable_assisted_extraction=True, extractor=OllamaExtractor())
        assert populate_signals(decision, signal_defs, "some text", config) == {"vendor": "Initech"}
