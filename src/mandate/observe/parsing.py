"""
Tolerant JSON parsing for model replies.

Small language models often wrap JSON in prose or code fences, or emit
slightly malformed JSON:
- Trailing commas
- Missing quotes around keys
- Single quotes instead of double quotes
- Python literals (True/False/None)

Design Principles:
    - Best effort repair with bounded attempts
    - Return an error string rather than guess
    - Estimates that do not fit the expected shape are dropped, not coerced
"""

import json
import re
from typing import Any

from pydantic import ValidationError

from mandate.observe.assisted import SignalEstimate

# Maximum number of repair attempts
MAX_REPAIR_ATTEMPTS = 3

_CODE_BLOCK_PATTERNS = (
    r"```json\s*([\s\S]*?)\s*```",
    r"```\s*([\s\S]*?)\s*```",
)


def extract_json(text: str) -> str | None:
    """
    Extract the first JSON object from mixed text.

    Args:
        text: Model output potentially containing JSON

    Returns:
        Extracted JSON string, or None if not found
    """
    if not text or not text.strip():
        return None

    text = text.strip()

    for pattern in _CODE_BLOCK_PATTERNS:
        match = re.search(pattern, text)
        if match:
            candidate = match.group(1).strip()
            if candidate.startswith("{"):
                return candidate

    start_idx = text.find("{")
    if start_idx == -1:
        return None

    # Match braces outside of string literals
    depth = 0
    in_string = False
    escape_next = False
    for i, char in enumerate(text[start_idx:], start_idx):
        if escape_next:
            escape_next = False
            continue
        if char == "\\":
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start_idx : i + 1]

    return None


def _apply_repairs(text: str) -> str:
    text = re.sub(r",\s*([}\]])", r"\1", text)

    # Only swap quotes when there are no double quotes to break
    if '"' not in text and "'" in text:
        text = text.replace("'", '"')

    text = re.sub(r"([{,])\s*([a-zA-Z_][a-zA-Z0-9_]*)\s*:", r'\1"\2":', text)

    text = re.sub(r"\bTrue\b", "true", text)
    text = re.sub(r"\bFalse\b", "false", text)
    text = re.sub(r"\bNone\b", "null", text)

    return text


def repair_json(text: str) -> str | None:
    """
    Attempt to repair malformed JSON.

    Returns:
        Repaired JSON string, or None if repair failed
    """
    if not text:
        return None

    for _ in range(MAX_REPAIR_ATTEMPTS):
        try:
            json.loads(text)
            return text
        except json.JSONDecodeError:
            pass

        repaired = _apply_repairs(text)
        if repaired == text:
            break
        text = repaired

    try:
        json.loads(text)
        return text
    except json.JSONDecodeError:
        return None


def parse_json_safely(text: str) -> tuple[Any, str | None]:
    """
    Parse JSON with automatic extraction and repair.

    Returns:
        Tuple of (parsed_object, error_message); exactly one is None

    Example:
        result, error = parse_json_safely(reply)
        if error:
            raise ExtractorParseError(...)
    """
    if not text or not text.strip():
        return None, "Empty input"

    try:
        return json.loads(text), None
    except json.JSONDecodeError:
        pass

    candidate = extract_json(text) or text
    repaired = repair_json(candidate)
    if repaired is None:
        return None, "No valid JSON found in response"
    return json.loads(repaired), None


def parse_signal_estimates(data: Any, names: set[str]) -> dict[str, SignalEstimate]:
    """
    Turn a parsed reply into estimates.

    Expected shape: {"<signal>": {"value": ..., "confidence": 0.9}, ...}.
    Entries for names outside `names`, or that fail validation, are dropped.

    Args:
        data: Parsed JSON reply
        names: Signal names that were asked for

    Returns:
        Estimates keyed by signal name
    """
    if not isinstance(data, dict):
        return {}

    estimates: dict[str, SignalEstimate] = {}
    for name, raw in data.items():
        if name not in names or not isinstance(raw, dict):
            continue
        if raw.get("value") is None:
            continue
        try:
            estimates[name] = SignalEstimate.model_validate(raw)
        except ValidationError:
            continue
    return estimates
