"""
Deterministic signal extractors.

Each signal type has an ordered list of (name, extractor) pairs. The
first extractor that returns a value wins. Extractors are pure and
authoritative: the same text always yields the same signals.

Known limitations:
    - Negative numbers are not recognized ("-5" extracts as 5 or not at all)
    - Boolean true-words are checked before false-words, so text holding
      both resolves to True
"""

import re
from collections.abc import Callable
from dataclasses import dataclass

from mandate.schema import SignalDefinition, SignalSource, SignalType, SignalValue


# (text, definition) -> value or None
Extractor = Callable[[str, SignalDefinition], SignalValue | None]

NUMBER = r"([0-9]+(?:\.[0-9]+)?)"

TRUE_WORDS = ("yes", "true", "enabled", "allow", "approved", "ok", "accept")
FALSE_WORDS = ("no", "false", "disabled", "block", "denied", "reject", "decline")
FIELD_TRUE_WORDS = ("yes", "true", "enabled", "allow")
FIELD_FALSE_WORDS = ("no", "false", "disabled", "block")

COMMON_QUALIFIERS = ("critical", "high", "medium", "low", "urgent", "normal", "routine")


@dataclass(frozen=True)
class ExtractedSignal:
    """
    A signal value derived from unstructured text.

    Attributes:
        name: Signal name
        value: Derived value
        method: "deterministic" or "assisted"
        extractor: Name of the extractor or backend that produced it
        confidence: Backend confidence (assisted results only)
    """

    name: str
    value: SignalValue
    method: str = "deterministic"
    extractor: str = ""
    confidence: float | None = None


# =============================================================================
# Helpers
# =============================================================================


def _to_number(raw: str) -> int | float:
    return float(raw) if "." in raw else int(raw)


def _word_pattern(word: str) -> re.Pattern[str]:
    return re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE)


def _first_word_match(text: str, words: tuple[str, ...] | list[str]) -> str | None:
    for word in words:
        if _word_pattern(word).search(text):
            return word
    return None


def _field_pattern(field: str, value_pattern: str) -> re.Pattern[str]:
    return re.compile(rf"{re.escape(field)}\s*[:\-=]\s*{value_pattern}", re.IGNORECASE)


# =============================================================================
# Number Extractors
# =============================================================================


def number_after_field(text: str, definition: SignalDefinition) -> int | float | None:
    """Match "amount: 150", "amount=150" or "amount - 150.5"."""
    match = _field_pattern(definition.name, NUMBER).search(text)
    return _to_number(match.group(1)) if match else None


def number_before_field(text: str, definition: SignalDefinition) -> int | float | None:
    """Match "3 nights" for a signal named "nights"."""
    match = re.search(rf"{NUMBER}\s+{re.escape(definition.name)}", text, re.IGNORECASE)
    return _to_number(match.group(1)) if match else None


def currency_amount(text: str, definition: SignalDefinition) -> int | float | None:
    """Match the first currency-prefixed amount ($, €, £, ¥)."""
    match = re.search(rf"[\$€£¥]\s*{NUMBER}", text)
    return _to_number(match.group(1)) if match else None


# =============================================================================
# Enum / String Extractors
# =============================================================================


def declared_value(text: str, definition: SignalDefinition) -> str | None:
    """First declared value found as a whole word, in declaration order."""
    if not definition.values:
        return None
    return _first_word_match(text, definition.values)


def common_qualifier(text: str, definition: SignalDefinition) -> str | None:
    """First generic qualifier (critical, high, ...) found as a whole word."""
    return _first_word_match(text, COMMON_QUALIFIERS)


# =============================================================================
# Boolean Extractors
# =============================================================================


def true_word(text: str, definition: SignalDefinition) -> bool | None:
    if _first_word_match(text, TRUE_WORDS):
        return True
    return None


def field_true(text: str, definition: SignalDefinition) -> bool | None:
    pattern = _field_pattern(definition.name, f"({'|'.join(FIELD_TRUE_WORDS)})")
    return True if pattern.search(text) else None


def false_word(text: str, definition: SignalDefinition) -> bool | None:
    if _first_word_match(text, FALSE_WORDS):
        return False
    return None


def field_false(text: str, definition: SignalDefinition) -> bool | None:
    pattern = _field_pattern(definition.name, f"({'|'.join(FIELD_FALSE_WORDS)})")
    return False if pattern.search(text) else None


# =============================================================================
# Registry
# =============================================================================

EXTRACTORS: dict[SignalType, tuple[tuple[str, Extractor], ...]] = {
    SignalType.NUMBER: (
        ("number_after_field", number_after_field),
        ("number_before_field", number_before_field),
        ("currency_amount", currency_amount),
    ),
    SignalType.ENUM: (
        ("declared_value", declared_value),
    ),
    SignalType.BOOLEAN: (
        ("true_word", true_word),
        ("field_true", field_true),
        ("false_word", false_word),
        ("field_false", field_false),
    ),
    SignalType.STRING: (
        ("declared_value", declared_value),
        ("common_qualifier", common_qualifier),
    ),
}


def extract_signal(text: str, definition: SignalDefinition) -> ExtractedSignal | None:
    """
    Run the extractors for one signal's type, first match wins.

    Returns:
        The extracted signal, or None if no extractor matched
    """
    for name, extractor in EXTRACTORS[definition.type]:
        value = extractor(text, definition)
        if value is not None:
            return ExtractedSignal(name=definition.name, value=value, extractor=name)
    return None


def extract_deterministic(
    text: str,
    signal_defs: list[SignalDefinition],
) -> list[ExtractedSignal]:
    """
    Extract every context-sourced signal the text mentions.

    Scope- and timestamp-sourced signals are skipped: their values come
    from the decision itself.
    """
    results: list[ExtractedSignal] = []
    for definition in signal_defs:
        if definition.source != SignalSource.CONTEXT:
            continue
        extracted = extract_signal(text, definition)
        if extracted is not None:
            results.append(extracted)
    return results
