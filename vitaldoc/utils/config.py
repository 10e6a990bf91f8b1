"""Configuration management for the vital-event document pipeline.

Loads YAML configuration, applies environment overrides for feature flags
and model credentials, and validates everything into frozen pydantic models.
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

# Quotes, backslashes and whitespace are left out because pytesseract splits
# the config string with shlex.
DEFAULT_ENG_WHITELIST = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"
    ".,;:!?()[]{}-/|@#$%^&*+=<>~"
)


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class FeatureFlags(_FrozenModel):
    """Feature switches gating which engines the registry starts."""

    enabled: bool = False
    recognition: bool = False
    document_analysis: bool = False
    fraud_detection: bool = False
    classification: bool = False
    validation: bool = False


class PreprocessingConfig(_FrozenModel):
    """Image cleanup applied before recognition."""

    enabled: bool = True
    denoise_enabled: bool = True
    binarize_enabled: bool = True
    binarize_method: str = "otsu"
    adaptive_block_size: int = 31
    adaptive_c: int = 10


class OCRConfig(_FrozenModel):
    """Configuration for the Tesseract recognition engine."""

    tesseract_cmd: str | None = None
    default_lang: str = "eng"
    supported_languages: tuple[str, ...] = ("eng", "amh")
    psm: int = 3
    oem: int = 1
    char_whitelist: dict[str, str] = Field(
        default_factory=lambda: {"eng": DEFAULT_ENG_WHITELIST}
    )
    low_confidence_threshold: float = 60.0
    pdf_dpi: int = 300
    templates_path: str = "configs/templates.yaml"


class LLMConfig(_FrozenModel):
    """Credentials and call settings for the generative model backend."""

    api_key: str | None = None
    base_url: str | None = None
    model_name: str = "gpt-4"
    max_tokens: int = 4000
    analysis_temperature: float = 0.7
    timeout_s: float = 60.0
    json_mode: bool = False


class StorageConfig(_FrozenModel):
    """Where analysis history is appended. ``None`` keeps it in memory."""

    history_path: str | None = None


class PipelineConfig(_FrozenModel):
    """Orchestrator tuning."""

    batch_concurrency: int = Field(default=1, ge=1)


class AppConfig(_FrozenModel):
    """Top-level application configuration."""

    features: FeatureFlags = Field(default_factory=FeatureFlags)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    preprocessing: PreprocessingConfig = Field(default_factory=PreprocessingConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    log_level: str = "INFO"


# env var -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "ENABLE_AI_FEATURES": ("features", "enabled"),
    "ENABLE_OCR_PROCESSING": ("features", "recognition"),
    "ENABLE_DOCUMENT_ANALYSIS": ("features", "document_analysis"),
    "ENABLE_FRAUD_DETECTION": ("features", "fraud_detection"),
    "ENABLE_AUTOMATIC_CLASSIFICATION": ("features", "classification"),
    "ENABLE_AI_VALIDATION": ("features", "validation"),
    "OPENAI_API_KEY": ("llm", "api_key"),
    "OPENAI_BASE_URL": ("llm", "base_url"),
    "AI_MODEL_NAME": ("llm", "model_name"),
    "AI_MAX_TOKENS": ("llm", "max_tokens"),
    "AI_TEMPERATURE": ("llm", "analysis_temperature"),
}


def apply_env_overrides(
    raw: dict[str, Any], environ: dict[str, str] | None = None
) -> dict[str, Any]:
    """Overlay environment variables onto a raw configuration mapping.

    Values are left as strings; pydantic coerces them during validation.

    Args:
        raw: Configuration mapping as read from YAML.
        environ: Environment to read. Defaults to ``os.environ``.

    Returns:
        A new mapping with overrides applied.
    """
    environ = os.environ if environ is None else environ
    merged: dict[str, Any] = dict(raw)

    for var, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value is None or value == "":
            continue
        merged[section] = {**(merged.get(section) or {}), key: value}
        logger.debug("Config %s.%s overridden from %s", section, key, var)
    return merged


def load_config(
    path: Path | None = None, environ: dict[str, str] | None = None
) -> AppConfig:
    """Load configuration from a YAML file plus environment overrides.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.
        environ: Environment mapping for overrides. Defaults to ``os.environ``.

    Returns:
        Validated, frozen application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    raw: dict[str, Any] = {}
    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    else:
        logger.info("No config file found at %s, using defaults", path)

    return AppConfig(**apply_env_overrides(raw, environ))
