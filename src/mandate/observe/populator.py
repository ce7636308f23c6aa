"""
Signal populator for the Observe phase.

Derives values for a spec's declared signals from unstructured text,
without touching the decision it enriches.

How it works:
    1. Copy scope- and timestamp-sourced signals from the decision
    2. Run the deterministic extractors over context-sourced signals
    3. If enabled, ask the assisted extractor for context signals still
       missing, keeping only confident, well-typed answers

The text itself is never stored or returned; only derived values leave
this module.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from mandate.observe.assisted import AssistedExtractor, SignalEstimate
from mandate.observe.extractors import ExtractedSignal, extract_deterministic
from mandate.schema import DecisionEvent, SignalDefinition, SignalSource, SignalValue
from mandate.validation import scope_value, signal_value_fits


logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_THRESHOLD = 0.8


class PopulationConfig(BaseModel):
    """
    Configuration for signal population.

    Attributes:
        enable_assisted_extraction: Consult the assisted extractor at all
        confidence_threshold: Minimum confidence for an assisted result
        extractor: AssistedExtractor or plain callable (text, signal_defs) -> estimates
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    enable_assisted_extraction: bool = Field(
        default=False,
        description="Consult the assisted extractor",
    )
    confidence_threshold: float = Field(
        default=DEFAULT_CONFIDENCE_THRESHOLD,
        description="Minimum confidence for assisted results",
        ge=0.0,
        le=1.0,
    )
    extractor: Callable[..., Any] | None = Field(
        default=None,
        description="Assisted extractor",
    )


def _as_estimate(raw: Any) -> SignalEstimate | None:
    if isinstance(raw, SignalEstimate):
        return raw
    if isinstance(raw, (tuple, list)) and len(raw) == 2:
        raw = {"value": raw[0], "confidence": raw[1]}
    try:
        return SignalEstimate.model_validate(raw)
    except ValidationError:
        return None


def extract_assisted(
    text: str,
    candidates: list[SignalDefinition],
    extractor: Callable[..., Any],
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
) -> list[ExtractedSignal]:
    """
    Ask an assisted extractor for the candidate signals.

    Any exception from the extractor is logged and treated as "no results".
    Estimates below the threshold, for names outside the candidates, or
    whose value does not fit the declared type are dropped.
    """
    if not candidates:
        return []

    if isinstance(extractor, AssistedExtractor):
        name = extractor.get_name()
    else:
        name = getattr(extractor, "__name__", type(extractor).__name__)

    try:
        raw_results = extractor(text, candidates)
    except Exception as e:
        logger.warning("Assisted extraction failed (%s): %s", name, e)
        return []

    if not isinstance(raw_results, Mapping):
        logger.warning("Assisted extractor %s returned %s, expected a mapping", name, type(raw_results).__name__)
        return []

    results: list[ExtractedSignal] = []
    for definition in candidates:
        estimate = _as_estimate(raw_results.get(definition.name))
        if estimate is None:
            continue
        if estimate.confidence < confidence_threshold:
            logger.debug(
                "Dropped %s: confidence %.2f below %.2f",
                definition.name, estimate.confidence, confidence_threshold,
            )
            continue
        if not signal_value_fits(definition, estimate.value):
            logger.debug("Dropped %s: %r does not fit %s", definition.name, estimate.value, definition.type.value)
            continue
        results.append(ExtractedSignal(
            name=definition.name,
            value=estimate.value,
            method="assisted",
            extractor=name,
            confidence=estimate.confidence,
        ))
    return results


def populate_signals(
    decision: DecisionEvent,
    signal_defs: list[SignalDefinition],
    text: str,
    config: PopulationConfig | None = None,
) -> dict[str, SignalValue]:
    """
    Derive signal values for a decision.

    Args:
        decision: The decision being enriched (not modified)
        signal_defs: Signals declared by the resolved spec
        text: Unstructured text (e.g., an agent's response)
        config: Population settings; deterministic only when None

    Returns:
        Signal values keyed by name; unmatched signals are absent
    """
    config = config or PopulationConfig()
    results: dict[str, SignalValue] = {}

    for definition in signal_defs:
        if definition.source == SignalSource.SCOPE:
            value = scope_value(decision, definition.name)
            if value is not None:
                results[definition.name] = value
        elif definition.source == SignalSource.TIMESTAMP:
            results[definition.name] = decision.timestamp

    deterministic = extract_deterministic(text or "", signal_defs)
    for extracted in deterministic:
        results[extracted.name] = extracted.value

    if config.enable_assisted_extraction and config.extractor is not None:
        found = {e.name for e in deterministic}
        candidates = [
            d for d in signal_defs
            if d.source == SignalSource.CONTEXT and d.name not in found
        ]
        for extracted in extract_assisted(text, candidates, config.extractor, config.confidence_threshold):
            results[extracted.name] = extracted.value

    logger.debug("Populated signals %s for decision %s", sorted(results), decision.decision_id)
    return results


def merge_signals_into_decision(
    decision: DecisionEvent,
    signals: Mapping[str, SignalValue],
) -> DecisionEvent:
    """Return a copy of the decision with the signals merged into its context."""
    return decision.model_copy(update={"context": {**decision.context, **signals}})
