"""
Observe phase for Mandate.

Turns unstructured text (for example an agent's response) into values
for signals a spec already declares, before the decision is evaluated.

Key concepts:
    - Deterministic extractors: authoritative, pattern based, run first
    - Assisted extractor: optional, pluggable, non-authoritative fallback
    - PopulationConfig: switches assisted extraction on and sets its threshold
"""

from mandate.observe.assisted import AssistedExtractor, SignalEstimate
from mandate.observe.extractors import ExtractedSignal, extract_deterministic
from mandate.observe.ollama import OllamaConfig, OllamaExtractor
from mandate.observe.phase import create_observe_phase_executor, execute_observe_phase
from mandate.observe.populator import (
    PopulationConfig,
    merge_signals_into_decision,
    populate_signals,
)

__all__ = [
    "AssistedExtractor",
    "ExtractedSignal",
    "OllamaConfig",
    "OllamaExtractor",
    "PopulationConfig",
    "SignalEstimate",
    "create_observe_phase_executor",
    "execute_observe_phase",
    "extract_deterministic",
    "merge_signals_into_decision",
    "populate_signals",
]
