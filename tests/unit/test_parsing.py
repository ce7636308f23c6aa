"""
Tests for tolerant JSON parsing of model replies.

Tests:
    - extract_json from prose and code fences
    - repair_json for common model mistakes
    - parse_json_safely end to end
    - parse_signal_estimates shape filtering
"""

from mandate.observe.parsing import (
    extract_json,
    parse_json_safely,
    parse_signal_estimates,
    repair_json,
)


class TestExtractJson:
    """Tests for extract_json."""

    def test_plain_object(self) -> None:
        assert extract_json('{"a": 1}') == '{"a": 1}'

    def test_code_fence(self) -> None:
        text = 'Here you go:\n```json\n{"a": 1}\n```\nDone.'
        assert extract_json(text) == '{"a": 1}'

    def test_object_in_prose(self) -> None:
        assert extract_json('Sure! {"a": {"b": 2}} hope that helps') == '{"a": {"b": 2}}'

    def test_braces_inside_strings(self) -> None:
        assert extract_json('x {"a": "}"} y') == '{"a": "}"}'

    def test_no_object(self) -> None:
        assert extract_json("no json here") is None
        assert extract_json("") is None


class TestRepairJson:
    """Tests for repair_json."""

    def test_valid_json_unchanged(self) -> None:
        assert repair_json('{"a": 1}') == '{"a": 1}'

    def test_trailing_comma(self) -> None:
        assert repair_json('{"a": 1,}') == '{"a": 1}'

    def test_single_quotes(self) -> None:
        assert repair_json("{'a': 'b'}") == '{"a": "b"}'

    def test_unquoted_keys_and_python_literals(self) -> None:
        assert repair_json("{a: True, b: None}") == '{"a": true,"b": null}'

    def test_hopeless(self) -> None:
        assert repair_json("{{{") is None


class TestParseJsonSafely:
    """Tests for parse_json_safely."""

    def test_valid(self) -> None:
        assert parse_json_safely('{"a": 1}') == ({"a": 1}, None)

    def test_fenced_and_broken(self) -> None:
        data, error = parse_json_safely("```json\n{'a': 1,}\n```")
        assert error is None
        assert data == {"a": 1}

    def test_empty(self) -> None:
        assert parse_json_safely("  ") == (None, "Empty input")

    def test_garbage(self) -> None:
        data, error = parse_json_safely("I cannot help with that")
        assert data is None
        assert error == "No valid JSON found in response"


class TestParseSignalEstimates:
    """Tests for parse_signal_estimates."""

    def test_keeps_requested_signals(self) -> None:
        estimates = parse_signal_estimates(
            {"amount": {"value": 12, "confidence": 0.9}},
            {"amount"},
        )
        assert estimates["amount"].value == 12
        assert estimates["amount"].confidence == 0.9

    def test_drops_unrequested_signals(self) -> None:
        assert parse_signal_estimates({"risk": {"value": "high", "confidence": 1}}, {"amount"}) == {}

    def test_drops_malformed_entries(self) -> None:
        data = {
            "a": 5,
            "b": {"value": None, "confidence": 0.9},
            "c": {"value": "x", "confidence": 1.5},
            "d": {"value": {"nested": 1}, "confidence": 0.9},
            "e": {"value": "ok", "confidence": 0.85, "reason": "stated"},
        }
        estimates = parse_signal_estimates(data, {"a", "b", "c", "d", "e"})
        assert list(estimates) == ["e"]

    def test_non_dict_reply(self) -> None:
        assert parse_signal_estimates(["amount"], {"amount"}) == {}
