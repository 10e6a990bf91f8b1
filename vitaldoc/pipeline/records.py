"""Analysis history and document access used by the orchestrator.

The pipeline does not own a database. It talks to a :class:`RecordStore`
for the append-only analysis history and a :class:`FileStore` for reading
saved uploads. In-memory and JSON-lines stores are provided so the pipeline
runs on its own.
"""

import json
import threading
import uuid
from dataclasses import asdict, dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any, Protocol

from vitaldoc.errors import InputNotFoundError
from vitaldoc.utils.logger import get_logger
from vitaldoc.utils.timing import utc_timestamp

logger = get_logger(__name__)


class PipelineTask(StrEnum):
    """Recognition plus the four generative task kinds."""

    OCR = "ocr"
    DOCUMENT_ANALYSIS = "document_analysis"
    FRAUD_DETECTION = "fraud_detection"
    CLASSIFICATION = "classification"
    VALIDATION = "validation"


class RecordStatus(StrEnum):
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class AnalysisRecord:
    """One persisted pipeline outcome for a registry record."""

    record_ref: str
    task: PipelineTask
    status: RecordStatus
    model_used: str | None = None
    input_snapshot: dict[str, Any] = field(default_factory=dict)
    output_snapshot: dict[str, Any] | None = None
    confidence: float | None = None
    processing_time_ms: float = 0.0
    error_message: str | None = None
    created_at: str = field(default_factory=utc_timestamp)
    record_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["task"] = self.task.value
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AnalysisRecord":
        return cls(
            **{
                **data,
                "task": PipelineTask(data["task"]),
                "status": RecordStatus(data["status"]),
            }
        )


class RecordStore(Protocol):
    def insert_analysis_record(self, record: AnalysisRecord) -> None: ...

    def query_analysis_records(
        self, record_ref: str, limit: int, offset: int
    ) -> tuple[list[AnalysisRecord], int]: ...


class FileStore(Protocol):
    def exists(self, path: str | Path) -> bool: ...

    def read_text(self, path: str | Path) -> str: ...

    def read_bytes(self, path: str | Path) -> bytes: ...


def _newest_first(records: list[AnalysisRecord]) -> list[AnalysisRecord]:
    # Ties on created_at keep the later insert first.
    return sorted(reversed(records), key=lambda r: r.created_at, reverse=True)


class InMemoryRecordStore:
    """Thread-safe history kept for the lifetime of the process."""

    def __init__(self) -> None:
        self._records: list[AnalysisRecord] = []
        self._lock = threading.Lock()

    def insert_analysis_record(self, record: AnalysisRecord) -> None:
        with self._lock:
            self._records.append(record)

    def query_analysis_records(
        self, record_ref: str, limit: int, offset: int
    ) -> tuple[list[AnalysisRecord], int]:
        with self._lock:
            matching = [r for r in self._records if r.record_ref == record_ref]
        ordered = _newest_first(matching)
        return ordered[offset : offset + limit], len(ordered)


class JsonlRecordStore:
    """Append-only history in a JSON-lines file, one record per line.

    Args:
        path: History file. Parent directories are created on first write.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def insert_analysis_record(self, record: AnalysisRecord) -> None:
        line = json.dumps(record.to_dict(), default=str, ensure_ascii=False)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        logger.debug("Stored %s record %s", record.task, record.record_id)

    def query_analysis_records(
        self, record_ref: str, limit: int, offset: int
    ) -> tuple[list[AnalysisRecord], int]:
        matching: list[AnalysisRecord] = []
        with self._lock:
            if not self.path.exists():
                return [], 0
            with open(self.path, encoding="utf-8") as f:
                for line_num, line in enumerate(f, 1):
                    if not line.strip():
                        continue
                    try:
                        record = AnalysisRecord.from_dict(json.loads(line))
                    except (ValueError, TypeError, KeyError) as exc:
                        logger.warning(
                            "Skipping bad history line %d in %s: %s",
                            line_num,
                            self.path,
                            exc,
                        )
                        continue
                    if record.record_ref == record_ref:
                        matching.append(record)

        ordered = _newest_first(matching)
        return ordered[offset : offset + limit], len(ordered)


class LocalFileStore:
    """Reads saved uploads from the local filesystem.

    Args:
        root: Base directory for relative paths. Absolute paths are used as is.
    """

    def __init__(self, root: Path | str | None = None) -> None:
        self.root = Path(root) if root is not None else None

    def resolve(self, path: str | Path) -> Path:
        path = Path(path)
        if self.root is not None and not path.is_absolute():
            return self.root / path
        return path

    def exists(self, path: str | Path) -> bool:
        return self.resolve(path).is_file()

    def read_text(self, path: str | Path) -> str:
        return self._require(path).read_text(encoding="utf-8")

    def read_bytes(self, path: str | Path) -> bytes:
        return self._require(path).read_bytes()

    def _require(self, path: str | Path) -> Path:
        resolved = self.resolve(path)
        if not resolved.is_file():
            raise InputNotFoundError(path)
        return resolved
