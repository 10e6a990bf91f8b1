"""Result envelope returned by every generative analysis call."""

from dataclasses import dataclass, field
from typing import Any

from vitaldoc.analysis.schemas import AnalysisPayload, DataValidation, TaskKind
from vitaldoc.errors import ErrorKind
from vitaldoc.utils.timing import utc_timestamp


@dataclass(frozen=True)
class AnalysisResult:
    """Parsed model answer or a typed failure.

    Exactly one of ``data`` and ``error`` is set. ``raw_response`` keeps the
    model's text whenever there was one, on success and failure alike.
    """

    success: bool
    task_kind: TaskKind
    data: AnalysisPayload | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    raw_response: str | None = None
    document_type: str | None = None
    model: str | None = None
    timestamp: str = field(default_factory=utc_timestamp)

    def __post_init__(self) -> None:
        if (self.data is None) == (self.error is None):
            raise ValueError("AnalysisResult needs exactly one of data or error")
        if self.success != (self.data is not None):
            raise ValueError("AnalysisResult success flag contradicts data")

    @classmethod
    def failure(
        cls,
        task_kind: TaskKind,
        error: str,
        kind: ErrorKind,
        raw_response: str | None = None,
        document_type: str | None = None,
        model: str | None = None,
    ) -> "AnalysisResult":
        return cls(
            success=False,
            task_kind=task_kind,
            error=error,
            error_kind=kind,
            raw_response=raw_response,
            document_type=document_type,
            model=model,
        )

    @property
    def confidence(self) -> float:
        """Headline score: ``accuracy_score`` for validation, else ``confidence``."""
        if self.data is None:
            return 0.0
        if isinstance(self.data, DataValidation):
            return float(self.data.accuracy_score)
        return float(getattr(self.data, "confidence", 0.0))

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "task_kind": self.task_kind.value,
            "data": self.data.model_dump(mode="json") if self.data else None,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "raw_response": self.raw_response,
            "document_type": self.document_type,
            "model": self.model,
            "timestamp": self.timestamp,
        }
