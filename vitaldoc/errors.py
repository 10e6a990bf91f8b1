"""Error taxonomy shared by the engines, registry and orchestrator.

Caller-correctable problems and unavailable features are turned into
failure envelopes at the orchestrator; ordering and configuration mistakes
are raised. A model answer that cannot be parsed is not an exception at all,
only an ``ErrorKind.PARSE_FAILURE`` tag on a normal result.
"""

from enum import StrEnum


class ErrorKind(StrEnum):
    """Tag attached to failure envelopes."""

    FEATURE_DISABLED = "feature_disabled"
    NOT_INITIALIZED = "not_initialized"
    INPUT_INVALID = "input_invalid"
    ENGINE_FAILURE = "engine_failure"
    PARSE_FAILURE = "parse_failure"


class VitalDocError(Exception):
    """Base class for pipeline errors."""

    kind: ErrorKind = ErrorKind.ENGINE_FAILURE


class ConfigurationError(VitalDocError):
    """Configuration is malformed or lacks a required value."""


class RegistryStateError(VitalDocError):
    """Registry used in an unsupported order, e.g. initialized twice."""

    kind = ErrorKind.NOT_INITIALIZED


class NotInitializedError(VitalDocError):
    """An engine was requested that never started."""

    kind = ErrorKind.NOT_INITIALIZED


class FeatureDisabledError(VitalDocError):
    """The requested capability is switched off or failed to start."""

    kind = ErrorKind.FEATURE_DISABLED

    def __init__(self, feature: str) -> None:
        super().__init__(f"{feature} service is not enabled")
        self.feature = feature


class InputInvalidError(VitalDocError):
    """The caller supplied missing or unusable input."""

    kind = ErrorKind.INPUT_INVALID


class InputNotFoundError(InputInvalidError):
    """A referenced file does not exist."""

    def __init__(self, path: object) -> None:
        super().__init__(f"Input not found: {path}")
        self.path = path


class UnsupportedLanguageError(InputInvalidError):
    """A recognition language outside the supported set."""

    def __init__(self, language: str, supported: tuple[str, ...]) -> None:
        super().__init__(
            f"Language {language!r} not supported (supported: {', '.join(supported)})"
        )
        self.language = language
        self.supported = supported


class EngineFailureError(VitalDocError):
    """The recognition engine or model backend failed at runtime."""

    kind = ErrorKind.ENGINE_FAILURE
