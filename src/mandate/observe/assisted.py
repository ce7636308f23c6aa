"""
Base classes for assisted signal extractors.

An assisted extractor estimates signal values that the deterministic
extractors could not find, usually by asking a language model.

Design Principles:
    - Non-authoritative: only consulted for signals still missing after
      deterministic extraction
    - Untrusted: results are gated by confidence and checked against the
      declared signal type before use
    - Pluggable: injected through PopulationConfig, never a global
    - Failures are recovered by the populator, never surfaced to callers
"""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from mandate.schema import SignalDefinition, SignalValue


class SignalEstimate(BaseModel):
    """
    A value proposed by an assisted extractor.

    Attributes:
        value: Proposed signal value
        confidence: Extractor's confidence, from 0 to 1
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    value: SignalValue = Field(..., description="Proposed signal value")
    confidence: float = Field(..., description="Confidence from 0 to 1", ge=0.0, le=1.0)


class AssistedExtractor(ABC):
    """
    Abstract base class for assisted extractors.

    Implementations:
        - OllamaExtractor: Uses a local Ollama model

    Any plain callable with the same signature as extract() is accepted
    wherever an AssistedExtractor is; instances are callable too.

    Example Implementation:
        class FixedExtractor(AssistedExtractor):
            def extract(self, text, signal_defs):
                return {"priority": SignalEstimate(value="high", confidence=0.9)}
    """

    @abstractmethod
    def extract(
        self,
        text: str,
        signal_defs: list[SignalDefinition],
    ) -> dict[str, SignalEstimate]:
        """
        Estimate values for the given signals.

        Args:
            text: Unstructured text to read
            signal_defs: Candidate signals (context-sourced, not yet populated)

        Returns:
            Estimates keyed by signal name; signals it cannot estimate are omitted

        Raises:
            ExtractorError: If the backend fails
        """
        ...

    def __call__(
        self,
        text: str,
        signal_defs: list[SignalDefinition],
    ) -> dict[str, SignalEstimate]:
        return self.extract(text, signal_defs)

    def get_name(self) -> str:
        """Return the extractor's name for logging."""
        return self.__class__.__name__

    def get_config(self) -> dict[str, Any]:
        """Return extractor configuration for debugging."""
        return {}
