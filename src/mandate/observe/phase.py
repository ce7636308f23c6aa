"""
Observe phase hook.

Runs signal population for a decision under its resolved spec and
returns the enriched decision. The phase never infers intent, domain or
stage, and never produces a verdict.
"""

from collections.abc import Callable

from mandate.observe.populator import (
    PopulationConfig,
    merge_signals_into_decision,
    populate_signals,
)
from mandate.schema import DecisionEvent, DecisionSpec


ObservePhaseExecutor = Callable[[DecisionEvent, DecisionSpec, str | None], DecisionEvent]


def execute_observe_phase(
    decision: DecisionEvent,
    spec: DecisionSpec,
    text: str | None,
    config: PopulationConfig | None = None,
) -> DecisionEvent:
    """
    Enrich a decision with signals derived from unstructured text.

    Returns the decision unchanged when the spec declares no signals or
    the text is empty; otherwise a copy with the populated context.
    """
    if not spec.signals:
        return decision
    if not text or not text.strip():
        return decision

    signals = populate_signals(decision, spec.signals, text, config)
    return merge_signals_into_decision(decision, signals)


def create_observe_phase_executor(config: PopulationConfig | None = None) -> ObservePhaseExecutor:
    """Bind a population config, for injection into the submission service."""

    def executor(decision: DecisionEvent, spec: DecisionSpec, text: str | None) -> DecisionEvent:
        return execute_observe_phase(decision, spec, text, config)

    return executor
