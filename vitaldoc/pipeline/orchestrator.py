"""Pipeline orchestration: recognition, generative analysis and history.

Each request runs recognition when the input is an image or PDF, feeds the
text to the requested analysis task, and appends one history record when a
record reference was given. Disabled features and bad input come back as
failure envelopes; engine faults are already envelopes by the time they get
here.
"""

import json
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from vitaldoc.analysis.llm_engine import GenerativeAnalysisEngine
from vitaldoc.analysis.result import AnalysisResult
from vitaldoc.analysis.schemas import TaskKind
from vitaldoc.errors import (
    ErrorKind,
    FeatureDisabledError,
    InputInvalidError,
    InputNotFoundError,
)
from vitaldoc.ocr.loader import is_recognizable
from vitaldoc.ocr.tesseract_engine import (
    FormExtractionResult,
    RecognitionResult,
    Region,
    TesseractEngine,
)
from vitaldoc.ocr.templates import FormTemplate, TemplateMatcher, extract_fields
from vitaldoc.pipeline.records import (
    AnalysisRecord,
    FileStore,
    InMemoryRecordStore,
    JsonlRecordStore,
    LocalFileStore,
    PipelineTask,
    RecordStatus,
    RecordStore,
)
from vitaldoc.registry import Feature, ServiceHealth, ServiceRegistry, ServiceStatus
from vitaldoc.utils.config import AppConfig
from vitaldoc.utils.logger import get_logger
from vitaldoc.utils.timing import elapsed_ms

logger = get_logger(__name__)

UNKNOWN_TASK_MESSAGE = "Unknown process type"

_TASK_FEATURES: dict[TaskKind, Feature] = {
    TaskKind.DOCUMENT_ANALYSIS: Feature.DOCUMENT_ANALYSIS,
    TaskKind.FRAUD_DETECTION: Feature.FRAUD_DETECTION,
    TaskKind.CLASSIFICATION: Feature.CLASSIFICATION,
    TaskKind.VALIDATION: Feature.VALIDATION,
}


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, (str, dict, list, tuple)) and not value


def _region_snapshot(regions: Sequence[Any] | None) -> list[Any] | None:
    if regions is None:
        return None
    return [r.to_dict() if isinstance(r, Region) else r for r in regions]


@dataclass(frozen=True)
class BatchItemResult:
    """Outcome for one batch input, in input order."""

    index: int
    filename: str
    success: bool
    result: dict[str, Any] | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "index": self.index,
            "filename": self.filename,
            "success": self.success,
        }
        if self.result is not None:
            data["result"] = self.result
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class BatchResult:
    results: list[BatchItemResult]
    total_files: int
    task: str

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return self.total_files - self.successful

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "total_files": self.total_files,
            "task": self.task,
            "successful": self.successful,
            "failed": self.failed,
        }


@dataclass(frozen=True)
class HistoryPage:
    """One window of a record's analysis history, newest first."""

    records: list[AnalysisRecord] = field(default_factory=list)
    total: int = 0
    limit: int = 50
    offset: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "records": [r.to_dict() for r in self.records],
            "total": self.total,
            "limit": self.limit,
            "offset": self.offset,
        }


class PipelineOrchestrator:
    """Runs recognition and analysis requests against a service registry.

    Args:
        registry: Initialized registry holding the engines.
        record_store: Destination for analysis history.
        file_store: Source of saved documents read as text.
        batch_concurrency: Worker count for :meth:`batch_process`.
        default_language: Language reported on recognition envelopes
            produced without reaching the engine.
        templates: Form templates for :meth:`extract_form`.
    """

    def __init__(
        self,
        registry: ServiceRegistry,
        record_store: RecordStore | None = None,
        file_store: FileStore | None = None,
        batch_concurrency: int = 1,
        default_language: str = "eng",
        templates: TemplateMatcher | None = None,
    ) -> None:
        if batch_concurrency < 1:
            raise ValueError("batch_concurrency must be at least 1")
        self.registry = registry
        self.record_store = record_store or InMemoryRecordStore()
        self.file_store = file_store or LocalFileStore()
        self.batch_concurrency = batch_concurrency
        self.default_language = default_language
        self.templates = templates or TemplateMatcher({})

    @classmethod
    def from_config(
        cls, config: AppConfig, registry: ServiceRegistry | None = None
    ) -> "PipelineOrchestrator":
        """Wire a registry, stores and templates from configuration.

        The registry is created and initialized unless one is passed in.
        """
        if registry is None:
            registry = ServiceRegistry()
            registry.initialize(config)

        record_store: RecordStore
        if config.storage.history_path:
            record_store = JsonlRecordStore(config.storage.history_path)
        else:
            record_store = InMemoryRecordStore()

        return cls(
            registry,
            record_store=record_store,
            file_store=LocalFileStore(),
            batch_concurrency=config.pipeline.batch_concurrency,
            default_language=config.ocr.default_lang,
            templates=TemplateMatcher.from_file(Path(config.ocr.templates_path)),
        )

    def close(self) -> None:
        self.registry.shutdown()

    # Recognition

    def recognize(
        self,
        file_path: Path | str,
        language: str | None = None,
        regions: Sequence[Any] | None = None,
        record_ref: str | None = None,
    ) -> RecognitionResult | list[RecognitionResult]:
        """Recognize a document, or each region of it when regions are given.

        Returns:
            One result, or one result per region in region order.
        """
        start = time.perf_counter()
        lang = language or self.default_language
        try:
            self.registry.require(Feature.RECOGNITION)
        except FeatureDisabledError as exc:
            logger.warning("Recognition rejected: %s", exc)
            failure = RecognitionResult.failure(str(exc), exc.kind, lang)
            return [failure for _ in regions] if regions is not None else failure

        engine: TesseractEngine = self.registry.recognition_engine
        snapshot = {
            "file_path": str(file_path),
            "options": {"language": language, "regions": _region_snapshot(regions)},
        }

        if regions is not None:
            results = engine.extract_regions(file_path, regions, language=language)
            if record_ref:
                errors = [r.error for r in results if r.error]
                total = sum(r.confidence for r in results)
                self._save(
                    AnalysisRecord(
                        record_ref=record_ref,
                        task=PipelineTask.OCR,
                        status=self._status_of(not errors),
                        model_used=engine.ENGINE_NAME,
                        input_snapshot=snapshot,
                        output_snapshot={"regions": [r.to_dict() for r in results]},
                        confidence=round(total / len(results), 2) if results else 0.0,
                        processing_time_ms=elapsed_ms(start),
                        error_message=errors[0] if errors else None,
                    )
                )
            return results

        result = engine.extract_text(file_path, language=language)
        if record_ref:
            self._save(
                AnalysisRecord(
                    record_ref=record_ref,
                    task=PipelineTask.OCR,
                    status=self._status_of(result.success),
                    model_used=engine.ENGINE_NAME,
                    input_snapshot=snapshot,
                    output_snapshot=result.to_dict(),
                    confidence=result.confidence,
                    processing_time_ms=result.processing_time_ms,
                    error_message=result.error,
                )
            )
        return result

    def extract_form(
        self,
        file_path: Path | str,
        template: str | FormTemplate | dict[str, Any] | None = None,
        language: str | None = None,
        record_ref: str | None = None,
    ) -> FormExtractionResult:
        """Recognize a form and extract its fields.

        Args:
            file_path: Saved document.
            template: Template name, template object or inline field mapping.
                When omitted, the best template is picked from the
                recognized text by identifier patterns.
            language: Recognition language for this call.
            record_ref: Registry record to append the outcome to.
        """
        start = time.perf_counter()
        name = template if isinstance(template, str) else "auto"
        try:
            self.registry.require(Feature.RECOGNITION)
            if isinstance(template, str):
                template = self.templates.get(template)
                if template is None:
                    raise InputInvalidError(f"Unknown form template: {name}")
        except (FeatureDisabledError, InputInvalidError) as exc:
            logger.warning("Form extraction rejected: %s", exc)
            return FormExtractionResult(
                success=False, template=name, error=str(exc), error_kind=exc.kind
            )

        engine: TesseractEngine = self.registry.recognition_engine
        if template is not None:
            result = engine.extract_form_fields(file_path, template, language=language)
        else:
            result = self._extract_matched_form(engine, file_path, language, start)

        if record_ref:
            self._save(
                AnalysisRecord(
                    record_ref=record_ref,
                    task=PipelineTask.OCR,
                    status=self._status_of(result.success),
                    model_used=engine.ENGINE_NAME,
                    input_snapshot={
                        "file_path": str(file_path),
                        "options": {"language": language, "template": result.template},
                    },
                    output_snapshot=result.to_dict(),
                    confidence=result.confidence,
                    processing_time_ms=result.processing_time_ms,
                    error_message=result.error,
                )
            )
        return result

    def _extract_matched_form(
        self,
        engine: TesseractEngine,
        file_path: Path | str,
        language: str | None,
        start: float,
    ) -> FormExtractionResult:
        recognized = engine.extract_text(file_path, language=language)
        if not recognized.success:
            return FormExtractionResult(
                success=False,
                template="auto",
                processing_time_ms=elapsed_ms(start),
                error=recognized.error,
                error_kind=recognized.error_kind,
            )

        text = recognized.text or ""
        match = self.templates.match_template(text)
        if match is None:
            return FormExtractionResult(
                success=False,
                template="auto",
                full_text=text,
                confidence=recognized.confidence,
                processing_time_ms=elapsed_ms(start),
                error="No matching form template",
                error_kind=ErrorKind.INPUT_INVALID,
            )

        return FormExtractionResult(
            success=True,
            template=match.template.name,
            form_data=extract_fields(text, match.template),
            full_text=text,
            confidence=recognized.confidence,
            processing_time_ms=elapsed_ms(start),
        )

    # Generative analysis

    def analyze_document(
        self,
        file_path: Path | str | None = None,
        text: str | None = None,
        document_type: str = "general",
        context: dict[str, Any] | None = None,
        record_ref: str | None = None,
    ) -> AnalysisResult:
        """Analyze a document given as a saved file or as text.

        Images and PDFs are recognized first; any other file is read as
        UTF-8 text. A recognition failure ends the request with a failed
        analysis result.
        """
        task = TaskKind.DOCUMENT_ANALYSIS
        start = time.perf_counter()
        snapshot = {
            "file_path": str(file_path) if file_path is not None else None,
            "document_type": document_type,
            "context": context or {},
        }

        try:
            self.registry.require(Feature.DOCUMENT_ANALYSIS)
            if text is None and file_path is None:
                raise InputInvalidError("No document file or text provided")
            recognized: RecognitionResult | None = None
            if text is None and is_recognizable(Path(file_path)):
                self.registry.require(Feature.RECOGNITION)
                recognized = self.registry.recognition_engine.extract_text(file_path)
            elif text is None:
                text = self._read_text(file_path)
        except (FeatureDisabledError, InputInvalidError) as exc:
            logger.warning("Document analysis rejected: %s", exc)
            return AnalysisResult.failure(
                task, str(exc), exc.kind, document_type=document_type
            )

        if recognized is not None:
            if not recognized.success:
                result = AnalysisResult.failure(
                    task,
                    f"Text recognition failed: {recognized.error}",
                    recognized.error_kind or ErrorKind.ENGINE_FAILURE,
                    document_type=document_type,
                )
                self._persist(record_ref, task, result, snapshot, start)
                return result
            text = recognized.text
            snapshot["recognition"] = {
                "confidence": recognized.confidence,
                "page_count": recognized.page_count,
            }

        if _is_missing(text):
            logger.warning("Document analysis rejected: no text to analyze")
            return AnalysisResult.failure(
                task,
                "Document contains no text",
                ErrorKind.INPUT_INVALID,
                document_type=document_type,
            )

        engine = self.registry.generative_engine
        result = engine.analyze_document(text, document_type, context)
        self._persist(record_ref, task, result, snapshot, start)
        return result

    def detect_fraud(
        self,
        document_data: Any,
        record_data: Any,
        context: dict[str, Any] | None = None,
        record_ref: str | None = None,
    ) -> AnalysisResult:
        return self._run_task(
            TaskKind.FRAUD_DETECTION,
            lambda engine: engine.detect_fraud(document_data, record_data, context),
            required={"document_data": document_data, "record_data": record_data},
            snapshot={
                "document_data": document_data,
                "record_data": record_data,
                "context": context or {},
            },
            record_ref=record_ref,
        )

    def classify_record(
        self,
        document_data: Any,
        context: dict[str, Any] | None = None,
        record_ref: str | None = None,
    ) -> AnalysisResult:
        return self._run_task(
            TaskKind.CLASSIFICATION,
            lambda engine: engine.classify_record(document_data, context),
            required={"document_data": document_data},
            snapshot={"document_data": document_data, "context": context or {}},
            record_ref=record_ref,
        )

    def validate_data(
        self,
        data: Any,
        data_type: str | None,
        context: dict[str, Any] | None = None,
        record_ref: str | None = None,
    ) -> AnalysisResult:
        return self._run_task(
            TaskKind.VALIDATION,
            lambda engine: engine.validate_data(data, data_type, context),
            required={"data": data, "data_type": data_type},
            snapshot={"data": data, "data_type": data_type, "context": context or {}},
            record_ref=record_ref,
        )

    def _run_task(
        self,
        task: TaskKind,
        call: Callable[[GenerativeAnalysisEngine], AnalysisResult],
        required: dict[str, Any],
        snapshot: dict[str, Any],
        record_ref: str | None,
    ) -> AnalysisResult:
        start = time.perf_counter()
        try:
            self.registry.require(_TASK_FEATURES[task])
            missing = [name for name, value in required.items() if _is_missing(value)]
            if missing:
                raise InputInvalidError(f"Missing required input: {', '.join(missing)}")
        except (FeatureDisabledError, InputInvalidError) as exc:
            logger.warning("%s rejected: %s", task, exc)
            return AnalysisResult.failure(task, str(exc), exc.kind)

        result = call(self.registry.generative_engine)
        self._persist(record_ref, task, result, snapshot, start)
        return result

    # Batch

    def batch_process(
        self,
        files: Sequence[Path | str],
        task: PipelineTask | str,
        options: dict[str, Any] | None = None,
    ) -> BatchResult:
        """Run one task over many files.

        Items go through a worker pool of ``batch_concurrency`` threads
        (sequential by default). Every input gets exactly one entry, in
        input order, and a failing item never stops the others.

        Args:
            files: Saved documents to process.
            task: ``ocr`` or one of the four analysis task kinds.
            options: Per-task settings shared by every item: ``language``,
                ``document_type``, ``context``, ``record_data`` (fraud
                detection) and ``data_type`` (validation).
        """
        options = options or {}
        paths = [Path(f) for f in files]
        try:
            pipeline_task: PipelineTask | None = PipelineTask(task)
        except ValueError:
            logger.warning("Unknown batch task %r", task)
            pipeline_task = None

        def run(item: tuple[int, Path]) -> BatchItemResult:
            index, path = item
            if pipeline_task is None:
                return BatchItemResult(
                    index, path.name, False, error=UNKNOWN_TASK_MESSAGE
                )
            try:
                envelope = self._run_batch_item(pipeline_task, path, options)
            except Exception as exc:
                logger.exception("Batch item %d (%s) failed", index, path.name)
                return BatchItemResult(index, path.name, False, error=str(exc))
            return BatchItemResult(
                index, path.name, envelope.success, result=envelope.to_dict()
            )

        logger.info(
            "Batch %s: %d file(s), %d worker(s)",
            task,
            len(paths),
            self.batch_concurrency,
        )
        # TODO: accept a deadline or cancel event and skip items that have
        # not started once it fires.
        with ThreadPoolExecutor(max_workers=self.batch_concurrency) as executor:
            results = list(executor.map(run, enumerate(paths)))

        batch = BatchResult(results=results, total_files=len(paths), task=str(task))
        logger.info(
            "Batch %s complete: %d succeeded, %d failed",
            task,
            batch.successful,
            batch.failed,
        )
        return batch

    def _run_batch_item(
        self, task: PipelineTask, path: Path, options: dict[str, Any]
    ) -> RecognitionResult | AnalysisResult:
        context = options.get("context")
        if task is PipelineTask.OCR:
            return self.recognize(path, language=options.get("language"))
        if task is PipelineTask.DOCUMENT_ANALYSIS:
            return self.analyze_document(
                file_path=path,
                document_type=options.get("document_type", "general"),
                context=context,
            )

        data = self._load_document_data(path, options.get("language"))
        if task is PipelineTask.CLASSIFICATION:
            return self.classify_record(data, context)
        if task is PipelineTask.FRAUD_DETECTION:
            return self.detect_fraud(data, options.get("record_data"), context)
        return self.validate_data(data, options.get("data_type"), context)

    def _load_document_data(self, path: Path, language: str | None) -> Any:
        """Structured input for a batch item: recognized text, JSON or text."""
        if is_recognizable(path):
            self.registry.require(Feature.RECOGNITION)
            recognized = self.registry.recognition_engine.extract_text(
                path, language=language
            )
            if not recognized.success:
                raise InputInvalidError(f"Text recognition failed: {recognized.error}")
            return {"text": recognized.text}

        content = self._read_text(path)
        try:
            return json.loads(content)
        except json.JSONDecodeError:
            return {"text": content}

    # History and service state

    def get_history(
        self, record_ref: str, limit: int = 50, offset: int = 0
    ) -> HistoryPage:
        """Page through a record's analysis history, most recent first.

        Raises:
            InputInvalidError: If the record reference or window is invalid.
        """
        if not record_ref:
            raise InputInvalidError("A record reference is required")
        if limit < 1 or offset < 0:
            raise InputInvalidError(
                f"Invalid history window (limit={limit}, offset={offset})"
            )
        records, total = self.record_store.query_analysis_records(
            record_ref, limit, offset
        )
        return HistoryPage(records=records, total=total, limit=limit, offset=offset)

    def status(self) -> ServiceStatus:
        return self.registry.status()

    def health_check(self) -> ServiceHealth:
        return self.registry.health_check()

    # Persistence

    def _read_text(self, file_path: Path | str) -> str:
        if not self.file_store.exists(file_path):
            raise InputNotFoundError(file_path)
        try:
            return self.file_store.read_text(file_path)
        except UnicodeDecodeError as exc:
            raise InputInvalidError(f"{file_path} is not UTF-8 text") from exc

    def _persist(
        self,
        record_ref: str | None,
        task: TaskKind,
        result: AnalysisResult,
        snapshot: dict[str, Any],
        start: float,
    ) -> None:
        if not record_ref:
            return
        self._save(
            AnalysisRecord(
                record_ref=record_ref,
                task=PipelineTask(task.value),
                status=self._status_of(result.success),
                model_used=result.model,
                input_snapshot=snapshot,
                output_snapshot=result.to_dict(),
                confidence=result.confidence,
                processing_time_ms=elapsed_ms(start),
                error_message=result.error,
            )
        )

    def _save(self, record: AnalysisRecord) -> None:
        self.record_store.insert_analysis_record(record)
        logger.info(
            "Recorded %s %s for %s", record.task, record.status, record.record_ref
        )

    @staticmethod
    def _status_of(success: bool) -> RecordStatus:
        return RecordStatus.COMPLETED if success else RecordStatus.FAILED
