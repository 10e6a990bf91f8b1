"""Lifecycle and feature gating for the recognition and generative engines.

A :class:`ServiceRegistry` is built once at startup, initialized from the
application config, and handed to whoever needs engines. Feature flags decide
which engines start; an engine that fails to start takes its features down
with it while everything else keeps working.
"""

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from vitaldoc.analysis.llm_engine import GenerativeAnalysisEngine
from vitaldoc.errors import (
    FeatureDisabledError,
    NotInitializedError,
    RegistryStateError,
)
from vitaldoc.ocr.tesseract_engine import TesseractEngine
from vitaldoc.utils.config import AppConfig
from vitaldoc.utils.logger import get_logger
from vitaldoc.utils.timing import utc_timestamp

logger = get_logger(__name__)


class Feature(StrEnum):
    """Capabilities that can be switched on and off independently."""

    RECOGNITION = "recognition"
    DOCUMENT_ANALYSIS = "document_analysis"
    FRAUD_DETECTION = "fraud_detection"
    CLASSIFICATION = "classification"
    VALIDATION = "validation"


class EngineKind(StrEnum):
    RECOGNITION = "recognition"
    GENERATIVE = "generative"


FEATURE_ENGINES: dict[Feature, EngineKind] = {
    Feature.RECOGNITION: EngineKind.RECOGNITION,
    Feature.DOCUMENT_ANALYSIS: EngineKind.GENERATIVE,
    Feature.FRAUD_DETECTION: EngineKind.GENERATIVE,
    Feature.CLASSIFICATION: EngineKind.GENERATIVE,
    Feature.VALIDATION: EngineKind.GENERATIVE,
}

FEATURE_LABELS: dict[Feature, str] = {
    Feature.RECOGNITION: "OCR",
    Feature.DOCUMENT_ANALYSIS: "Document analysis",
    Feature.FRAUD_DETECTION: "Fraud detection",
    Feature.CLASSIFICATION: "Classification",
    Feature.VALIDATION: "Validation",
}


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DISABLED = "disabled"
    DEGRADED = "degraded"


@dataclass(frozen=True)
class EngineHealth:
    status: HealthStatus
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"status": self.status.value}
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass(frozen=True)
class ServiceHealth:
    """Probe results per engine plus the aggregate.

    The aggregate is ``degraded`` when any started engine is unhealthy;
    disabled engines never count against it.
    """

    status: HealthStatus
    engines: dict[str, EngineHealth]
    timestamp: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "services": {name: h.to_dict() for name, h in self.engines.items()},
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ServiceStatus:
    features: dict[str, bool]
    overall: bool

    def to_dict(self) -> dict[str, Any]:
        return {**self.features, "overall": self.overall}


def _default_recognition(config: AppConfig) -> TesseractEngine:
    return TesseractEngine(config.ocr, config.preprocessing)


def _default_generative(config: AppConfig) -> GenerativeAnalysisEngine:
    return GenerativeAnalysisEngine(config.llm)


class ServiceRegistry:
    """Holds the running engines and answers feature queries.

    Args:
        recognition_factory: Builds the recognition engine from the config.
        generative_factory: Builds the generative engine from the config.

    Example:
        >>> registry = ServiceRegistry()
        >>> registry.is_enabled(Feature.RECOGNITION)
        False
    """

    def __init__(
        self,
        recognition_factory: Callable[[AppConfig], Any] | None = None,
        generative_factory: Callable[[AppConfig], Any] | None = None,
    ) -> None:
        self._factories: dict[EngineKind, Callable[[AppConfig], Any]] = {
            EngineKind.RECOGNITION: recognition_factory or _default_recognition,
            EngineKind.GENERATIVE: generative_factory or _default_generative,
        }
        self._lock = threading.Lock()
        self._engines: dict[EngineKind, Any] = {}
        self._enabled: set[Feature] = set()
        self._initialized = False
        self._overall = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self, config: AppConfig) -> None:
        """Start the engines the feature flags ask for.

        A start failure is logged and disables that engine's features; it
        does not abort initialization.

        Raises:
            RegistryStateError: If called a second time.
        """
        with self._lock:
            if self._initialized:
                raise RegistryStateError("Service registry already initialized")
            self._initialized = True

            flags = config.features
            self._overall = flags.enabled
            if not flags.enabled:
                logger.info("AI features are disabled")
                return

            requested = {f for f in Feature if getattr(flags, f.value)}
            for kind in EngineKind:
                features = {f for f in requested if FEATURE_ENGINES[f] is kind}
                if not features:
                    continue
                engine = self._start(kind, config)
                if engine is None:
                    logger.warning(
                        "Disabling %s: %s engine unavailable",
                        ", ".join(sorted(features)),
                        kind,
                    )
                    continue
                self._engines[kind] = engine
                self._enabled |= features

            logger.info(
                "Service registry ready (enabled: %s)",
                ", ".join(sorted(self._enabled)) or "none",
            )

    def is_enabled(self, feature: Feature | str) -> bool:
        """Whether ``feature`` is usable; unknown names are never enabled."""
        try:
            return Feature(feature) in self._enabled
        except ValueError:
            return False

    def require(self, feature: Feature | str) -> None:
        """Raise :class:`FeatureDisabledError` unless ``feature`` is usable."""
        feature = Feature(feature)
        if feature not in self._enabled:
            raise FeatureDisabledError(FEATURE_LABELS[feature])

    def get(self, kind: EngineKind | str) -> Any:
        """Return a started engine.

        Raises:
            NotInitializedError: If the engine was never started.
        """
        kind = EngineKind(kind)
        engine = self._engines.get(kind)
        if engine is None:
            raise NotInitializedError(f"{kind} engine not initialized")
        return engine

    @property
    def recognition_engine(self) -> TesseractEngine:
        return self.get(EngineKind.RECOGNITION)

    @property
    def generative_engine(self) -> GenerativeAnalysisEngine:
        return self.get(EngineKind.GENERATIVE)

    def status(self) -> ServiceStatus:
        return ServiceStatus(
            features={f.value: f in self._enabled for f in Feature},
            overall=self._overall,
        )

    def health_check(self) -> ServiceHealth:
        """Probe every started engine; one failing probe never hides another."""
        engines: dict[str, EngineHealth] = {}
        for kind in EngineKind:
            engine = self._engines.get(kind)
            if engine is None:
                engines[kind.value] = EngineHealth(HealthStatus.DISABLED)
                continue
            try:
                healthy = bool(engine.health_check())
            except Exception as exc:
                logger.warning("%s health probe raised: %s", kind, exc)
                engines[kind.value] = EngineHealth(HealthStatus.UNHEALTHY, str(exc))
                continue
            engines[kind.value] = EngineHealth(
                HealthStatus.HEALTHY if healthy else HealthStatus.UNHEALTHY
            )

        degraded = any(h.status is HealthStatus.UNHEALTHY for h in engines.values())
        return ServiceHealth(
            status=HealthStatus.DEGRADED if degraded else HealthStatus.HEALTHY,
            engines=engines,
        )

    def shutdown(self) -> None:
        """Release every engine. Safe to call more than once."""
        with self._lock:
            engines = list(self._engines.items())
            self._engines.clear()
            self._enabled.clear()

        for kind, engine in engines:
            try:
                engine.cleanup()
            except Exception:
                logger.exception("Cleanup of %s engine failed", kind)
        if engines:
            logger.info("Service registry shut down")

    def _start(self, kind: EngineKind, config: AppConfig) -> Any | None:
        try:
            engine = self._factories[kind](config)
            engine.initialize()
        except Exception as exc:
            logger.error("Failed to start %s engine: %s", kind, exc)
            return None
        logger.info("%s engine initialized", kind)
        return engine
