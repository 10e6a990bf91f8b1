"""Expected response shapes for each analysis task.

Every task kind has a pydantic model the model's JSON answer must satisfy
before it counts as a successful analysis. Unknown extra keys are kept.
"""

from enum import StrEnum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class TaskKind(StrEnum):
    """The four generative analysis operations."""

    DOCUMENT_ANALYSIS = "document_analysis"
    FRAUD_DETECTION = "fraud_detection"
    CLASSIFICATION = "classification"
    VALIDATION = "validation"


def _lowercase(value: Any) -> Any:
    return value.strip().lower() if isinstance(value, str) else value


class _Payload(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)


class ExtractedData(_Payload):
    names: list[Any] = Field(default_factory=list)
    dates: list[Any] = Field(default_factory=list)
    locations: list[Any] = Field(default_factory=list)
    numbers: list[Any] = Field(default_factory=list)
    other: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("other", "other_relevant_info"),
    )


class DocumentAnalysis(_Payload):
    """Entities pulled from a certificate plus a quality judgement."""

    extracted_data: ExtractedData
    confidence: float = 0.0
    quality_score: float = 0.0
    notes: str | None = None
    recommendations: list[Any] = Field(default_factory=list)


class FraudAssessment(_Payload):
    """Fraud risk comparing document contents with the registry record."""

    fraud_risk_level: Literal["low", "medium", "high"]
    fraud_indicators: list[Any] = Field(default_factory=list)
    inconsistencies: list[Any] = Field(default_factory=list)
    confidence: float = 0.0
    recommendations: list[Any] = Field(default_factory=list)
    requires_review: bool

    @field_validator("fraud_risk_level", mode="before")
    @classmethod
    def _normalize_level(cls, value: Any) -> Any:
        return _lowercase(value)


class RecordClassification(_Payload):
    """Vital-event type and handling priority."""

    event_type: Literal["birth", "death", "marriage", "divorce", "adoption"]
    categories: list[Any] = Field(default_factory=list)
    priority: Literal["low", "medium", "high", "urgent"]
    processing_steps: list[Any] = Field(default_factory=list)
    confidence: float = 0.0

    @field_validator("event_type", "priority", mode="before")
    @classmethod
    def _normalize_choice(cls, value: Any) -> Any:
        return _lowercase(value)


class DataValidation(_Payload):
    """Completeness and accuracy verdict for submitted record data."""

    is_valid: bool
    validation_errors: list[Any] = Field(default_factory=list)
    warnings: list[Any] = Field(default_factory=list)
    completeness_score: float = 0.0
    accuracy_score: float = 0.0
    recommendations: list[Any] = Field(default_factory=list)


AnalysisPayload = (
    DocumentAnalysis | FraudAssessment | RecordClassification | DataValidation
)

SCHEMAS: dict[TaskKind, type[_Payload]] = {
    TaskKind.DOCUMENT_ANALYSIS: DocumentAnalysis,
    TaskKind.FRAUD_DETECTION: FraudAssessment,
    TaskKind.CLASSIFICATION: RecordClassification,
    TaskKind.VALIDATION: DataValidation,
}
