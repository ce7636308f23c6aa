"""
Configuration for Mandate.

Settings are read from a YAML file; every key is optional and a missing
file means defaults. Example:

    db_path: ./mandate.db
    log_level: INFO
    observe:
      enable_assisted_extraction: true
      confidence_threshold: 0.85
      extractor:
        backend: ollama
        model: qwen2.5:0.5b
"""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from mandate.observe.assisted import AssistedExtractor
from mandate.observe.ollama import OllamaConfig, OllamaExtractor
from mandate.observe.populator import DEFAULT_CONFIDENCE_THRESHOLD, PopulationConfig

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ExtractorSettings(BaseModel):
    """
    Settings for the assisted extractor backend.

    Attributes:
        backend: Extractor backend (only "ollama" is bundled)
        base_url: Backend URL
        model: Model name
        timeout_seconds: Request timeout
        temperature: Sampling temperature
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    backend: Literal["ollama"] = Field(default="ollama", description="Extractor backend")
    base_url: str = Field(default="http://localhost:11434", description="Backend URL")
    model: str = Field(default="qwen2.5:0.5b", description="Model name")
    timeout_seconds: float = Field(default=10.0, description="Request timeout", gt=0, le=300)
    temperature: float = Field(default=0.0, description="Sampling temperature", ge=0.0, le=2.0)


class ObserveSettings(BaseModel):
    """Settings for the Observe phase."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enable_assisted_extraction: bool = Field(
        default=False,
        description="Consult the assisted extractor for signals left unmatched",
    )
    confidence_threshold: float = Field(
        default=DEFAULT_CONFIDENCE_THRESHOLD,
        description="Minimum confidence for assisted results",
        ge=0.0,
        le=1.0,
    )
    extractor: ExtractorSettings = Field(
        default_factory=ExtractorSettings,
        description="Assisted extractor backend",
    )


class MandateConfig(BaseModel):
    """
    Top-level configuration.

    Attributes:
        db_path: SQLite audit database
        log_level: Logging level for the mandate logger
        observe: Observe phase settings
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    db_path: Path = Field(default=Path("mandate.db"), description="SQLite audit database")
    log_level: str = Field(default="WARNING", description="Logging level")
    observe: ObserveSettings = Field(default_factory=ObserveSettings, description="Observe phase")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and check the log level name."""
        level = v.upper()
        if level not in LOG_LEVELS:
            msg = f"Invalid log level: {v} (expected one of {', '.join(LOG_LEVELS)})"
            raise ValueError(msg)
        return level


def load_config(path: Path | str | None) -> MandateConfig:
    """
    Load configuration from a YAML file.

    Args:
        path: Path to the YAML file; None or a missing file gives defaults

    Returns:
        Validated MandateConfig

    Raises:
        ValidationError: If the YAML doesn't match the schema
    """
    if path is None:
        return MandateConfig()
    path = Path(path)
    if not path.exists():
        return MandateConfig()
    with path.open() as f:
        data = yaml.safe_load(f)
    return MandateConfig.model_validate(data or {})


def load_config_from_string(content: str) -> MandateConfig:
    """Load configuration from a YAML string."""
    data = yaml.safe_load(content)
    return MandateConfig.model_validate(data or {})


def build_population_config(
    config: MandateConfig,
    extractor: AssistedExtractor | None = None,
) -> PopulationConfig:
    """
    Turn settings into a PopulationConfig.

    When assisted extraction is enabled and no extractor is given, one is
    built from the extractor settings.
    """
    observe = config.observe
    if observe.enable_assisted_extraction and extractor is None:
        settings = observe.extractor
        extractor = OllamaExtractor(OllamaConfig(
            base_url=settings.base_url,
            model=settings.model,
            timeout_seconds=settings.timeout_seconds,
            temperature=settings.temperature,
        ))

    return PopulationConfig(
        enable_assisted_extraction=observe.enable_assisted_extraction,
        confidence_threshold=observe.confidence_threshold,
        extractor=extractor,
    )
