"""Tesseract recognition engine for vital-event documents.

Wraps ``pytesseract`` with per-word confidence scoring, rectangle regions,
per-language character whitelists and template-driven form extraction.

Every recognition call passes its language to a fresh Tesseract process, so
concurrent requests in different languages never see each other's state.
``current_language`` is only the default for calls that do not name one and
is changed solely through :meth:`TesseractEngine.change_language`.
"""

import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any

import pytesseract
from PIL import Image

from vitaldoc.errors import (
    ConfigurationError,
    EngineFailureError,
    ErrorKind,
    InputInvalidError,
    NotInitializedError,
    UnsupportedLanguageError,
    VitalDocError,
)
from vitaldoc.ocr.confidence import EMPTY_STATS, ConfidenceStats, analyze_confidence
from vitaldoc.ocr.loader import load_pages
from vitaldoc.ocr.preprocess import prepare_for_ocr
from vitaldoc.ocr.templates import FormTemplate, extract_fields, template_from_dict
from vitaldoc.ocr.text import clean_extracted_text
from vitaldoc.utils.config import OCRConfig, PreprocessingConfig
from vitaldoc.utils.logger import get_logger
from vitaldoc.utils.timing import elapsed_ms, utc_timestamp

logger = get_logger(__name__)


@dataclass(frozen=True)
class Region:
    """Rectangle of a page to recognize, in pixels."""

    left: int
    top: int
    width: int
    height: int

    @classmethod
    def from_value(cls, value: Any) -> "Region":
        """Build a region from a Region, a mapping or a 4-item sequence.

        Raises:
            InputInvalidError: If the value is not a usable rectangle.
        """
        if isinstance(value, Region):
            return value
        try:
            if isinstance(value, dict):
                region = cls(
                    int(value["left"]),
                    int(value["top"]),
                    int(value["width"]),
                    int(value["height"]),
                )
            else:
                left, top, width, height = (int(v) for v in value)
                region = cls(left, top, width, height)
        except (KeyError, TypeError, ValueError) as exc:
            raise InputInvalidError(f"Invalid region: {value!r}") from exc

        if min(region.left, region.top) < 0 or min(region.width, region.height) <= 0:
            raise InputInvalidError(f"Invalid region: {value!r}")
        return region

    def box(self) -> tuple[int, int, int, int]:
        """PIL crop box ``(left, upper, right, lower)``."""
        return (self.left, self.top, self.left + self.width, self.top + self.height)

    def to_dict(self) -> dict[str, int]:
        return {
            "left": self.left,
            "top": self.top,
            "width": self.width,
            "height": self.height,
        }


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned bounding box for a detected word."""

    x: int
    y: int
    width: int
    height: int


@dataclass(frozen=True)
class OCRWord:
    """A single recognized word with position and 0-100 confidence."""

    text: str
    confidence: float
    bbox: BoundingBox
    page: int = 1
    line_num: int = 0


@dataclass(frozen=True)
class RecognitionResult:
    """Outcome of one recognition call.

    Exactly one of ``text`` and ``error`` is set.
    """

    success: bool
    language: str
    text: str | None = None
    confidence: float = 0.0
    stats: ConfidenceStats = EMPTY_STATS
    words: tuple[OCRWord, ...] = ()
    page_count: int = 0
    region: Region | None = None
    processing_time_ms: float = 0.0
    error: str | None = None
    error_kind: ErrorKind | None = None
    timestamp: str = field(default_factory=utc_timestamp)

    def __post_init__(self) -> None:
        if (self.text is None) == (self.error is None):
            raise ValueError("RecognitionResult needs exactly one of text or error")
        if self.success != (self.error is None):
            raise ValueError("RecognitionResult success flag contradicts error")

    @classmethod
    def failure(
        cls,
        error: str,
        kind: ErrorKind,
        language: str,
        processing_time_ms: float = 0.0,
        region: Region | None = None,
    ) -> "RecognitionResult":
        return cls(
            success=False,
            language=language,
            error=error,
            error_kind=kind,
            processing_time_ms=processing_time_ms,
            region=region,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "text": self.text,
            "confidence": self.confidence,
            "confidence_analysis": self.stats.to_dict(),
            "language": self.language,
            "page_count": self.page_count,
            "region": self.region.to_dict() if self.region else None,
            "processing_time_ms": self.processing_time_ms,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class FormExtractionResult:
    """Outcome of template-driven field extraction."""

    success: bool
    template: str
    form_data: dict[str, Any] | None = None
    full_text: str | None = None
    confidence: float = 0.0
    processing_time_ms: float = 0.0
    error: str | None = None
    error_kind: ErrorKind | None = None
    timestamp: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> dict[str, Any]:
        form_data = None
        if self.form_data is not None:
            form_data = {
                key: value.isoformat() if isinstance(value, date) else value
                for key, value in self.form_data.items()
            }
        return {
            "success": self.success,
            "template": self.template,
            "form_data": form_data,
            "full_text": self.full_text,
            "confidence": self.confidence,
            "processing_time_ms": self.processing_time_ms,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "timestamp": self.timestamp,
        }


class TesseractEngine:
    """Text recognition over saved document files.

    Args:
        config: Tesseract settings (languages, segmentation, whitelists).
        preprocessing: Image cleanup applied to every page before OCR.
    """

    ENGINE_NAME = "tesseract"

    def __init__(
        self,
        config: OCRConfig | None = None,
        preprocessing: PreprocessingConfig | None = None,
    ) -> None:
        self.config = config or OCRConfig()
        self.preprocessing = preprocessing or PreprocessingConfig()
        if self.config.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.config.tesseract_cmd
        self._lock = threading.Lock()
        self._current_language = self.config.default_lang
        self._installed: set[str] = set()
        self.version: str | None = None
        self.ready = False

    @property
    def current_language(self) -> str:
        return self._current_language

    @property
    def supported_languages(self) -> tuple[str, ...]:
        return tuple(self.config.supported_languages)

    def initialize(self) -> None:
        """Check the Tesseract binary and the default language model.

        Raises:
            EngineFailureError: If Tesseract is missing or the default
                language data is not installed.
        """
        logger.info("Initializing Tesseract engine (lang=%s)", self._current_language)
        try:
            self.version = str(pytesseract.get_tesseract_version())
            self._installed = set(pytesseract.get_languages(config=""))
        except Exception as exc:
            raise EngineFailureError(f"Tesseract unavailable: {exc}") from exc

        self._require_installed(self._current_language)
        self.ready = True
        logger.info("Tesseract %s ready", self.version)

    def extract_text(
        self,
        path: Path | str,
        language: str | None = None,
        region: Region | Sequence[int] | dict[str, int] | None = None,
    ) -> RecognitionResult:
        """Recognize text in an image or PDF.

        Args:
            path: Saved document file.
            language: Tesseract language code for this call only. Defaults
                to :attr:`current_language`.
            region: Optional rectangle restricting recognition on each page.

        Returns:
            Success with cleaned text and confidence statistics, or a failure
            result describing why. Runtime errors never propagate.
        """
        self._ensure_ready()
        start = time.perf_counter()
        lang = language or self._current_language
        crop: Region | None = None

        try:
            self._check_supported(lang)
            crop = Region.from_value(region) if region is not None else None
            pages = load_pages(Path(path), dpi=self.config.pdf_dpi)

            texts: list[str] = []
            words: list[OCRWord] = []
            for page_num, page in enumerate(pages, 1):
                if crop is not None:
                    page = page.crop(crop.box())
                page_text, page_words = self._recognize_image(page, lang, page_num)
                texts.append(page_text)
                words.extend(page_words)

        except VitalDocError as exc:
            logger.warning("Recognition of %s failed: %s", path, exc)
            return RecognitionResult.failure(
                str(exc), exc.kind, lang, elapsed_ms(start), crop
            )
        except Exception:
            logger.exception("Recognition of %s failed", path)
            return RecognitionResult.failure(
                "Text recognition failed",
                ErrorKind.ENGINE_FAILURE,
                lang,
                elapsed_ms(start),
                crop,
            )

        stats = analyze_confidence(
            ((w.text, w.confidence) for w in words),
            low_threshold=self.config.low_confidence_threshold,
        )
        text = clean_extracted_text("\n".join(texts))
        logger.info(
            "Recognized %d words from %s (avg confidence %.2f, %s)",
            stats.total_words,
            Path(path).name,
            stats.average,
            stats.quality,
        )
        return RecognitionResult(
            success=True,
            language=lang,
            text=text,
            confidence=stats.average,
            stats=stats,
            words=tuple(words),
            page_count=len(texts),
            region=crop,
            processing_time_ms=elapsed_ms(start),
        )

    def extract_regions(
        self,
        path: Path | str,
        regions: Sequence[Region | Sequence[int] | dict[str, int]],
        language: str | None = None,
    ) -> list[RecognitionResult]:
        """Recognize each region separately; one result per region.

        A region that fails produces a failure result and the remaining
        regions are still processed.
        """
        return [self.extract_text(path, language=language, region=r) for r in regions]

    def extract_form_fields(
        self,
        path: Path | str,
        template: FormTemplate | dict[str, Any],
        language: str | None = None,
    ) -> FormExtractionResult:
        """Recognize a form and pull named fields out with a template.

        Args:
            path: Saved document file.
            template: A loaded template, or an inline field mapping.
            language: Recognition language for this call.

        Returns:
            Field values keyed by name, or the recognition failure.
        """
        start = time.perf_counter()
        if isinstance(template, dict):
            try:
                template = template_from_dict("inline", template)
            except ConfigurationError as exc:
                return FormExtractionResult(
                    success=False,
                    template="inline",
                    error=str(exc),
                    error_kind=ErrorKind.INPUT_INVALID,
                )

        recognized = self.extract_text(path, language=language)
        if not recognized.success:
            return FormExtractionResult(
                success=False,
                template=template.name,
                processing_time_ms=elapsed_ms(start),
                error=recognized.error,
                error_kind=recognized.error_kind,
            )

        form_data = extract_fields(recognized.text or "", template)
        found = sum(1 for value in form_data.values() if value is not None)
        logger.info(
            "Template %s matched %d/%d fields", template.name, found, len(form_data)
        )
        return FormExtractionResult(
            success=True,
            template=template.name,
            form_data=form_data,
            full_text=recognized.text,
            confidence=recognized.confidence,
            processing_time_ms=elapsed_ms(start),
        )

    def health_check(self) -> bool:
        """Run a trivial recognition; ``False`` on any error."""
        if not self.ready:
            return False
        try:
            probe = Image.new("L", (160, 48), color=255)
            pytesseract.image_to_string(
                probe,
                lang=self._current_language,
                config=self._tesseract_config(self._current_language),
            )
            return True
        except Exception as exc:
            logger.warning("Tesseract health check failed: %s", exc)
            return False

    def change_language(self, language: str) -> None:
        """Switch the default recognition language.

        Raises:
            UnsupportedLanguageError: If outside the supported set.
            EngineFailureError: If the language data is not installed.
        """
        self._check_supported(language)
        self._require_installed(language)
        with self._lock:
            self._current_language = language
        logger.info("OCR language changed to %s", language)

    def cleanup(self) -> None:
        """Release the engine. Safe to call more than once."""
        if not self.ready:
            return
        self.ready = False
        logger.info("Tesseract engine released")

    def service_info(self) -> dict[str, Any]:
        return {
            "name": "OCR Service",
            "engine": self.ENGINE_NAME,
            "version": self.version,
            "languages": list(self.supported_languages),
            "current_language": self._current_language,
            "status": "active" if self.ready else "inactive",
        }

    def _ensure_ready(self) -> None:
        if not self.ready:
            raise NotInitializedError("OCR engine not initialized")

    def _check_supported(self, language: str) -> None:
        for part in language.split("+"):
            if part not in self.config.supported_languages:
                raise UnsupportedLanguageError(language, self.supported_languages)

    def _require_installed(self, language: str) -> None:
        if not self._installed:
            return
        missing = [p for p in language.split("+") if p not in self._installed]
        if missing:
            raise EngineFailureError(
                f"Tesseract language data not installed: {', '.join(missing)}"
            )

    def _tesseract_config(self, language: str) -> str:
        config = f"--oem {self.config.oem} --psm {self.config.psm}"
        whitelist = self.config.char_whitelist.get(language)
        if whitelist:
            config += f" -c tessedit_char_whitelist={whitelist}"
        return config

    def _recognize_image(
        self, image: Image.Image, language: str, page_num: int
    ) -> tuple[str, list[OCRWord]]:
        prepared = prepare_for_ocr(image, self.preprocessing)
        config = self._tesseract_config(language)

        text = pytesseract.image_to_string(prepared, lang=language, config=config)
        data = pytesseract.image_to_data(
            prepared,
            lang=language,
            config=config,
            output_type=pytesseract.Output.DICT,
        )

        words: list[OCRWord] = []
        for i in range(len(data["text"])):
            conf = float(data["conf"][i])
            word_text = str(data["text"][i]).strip()
            if conf < 0 or not word_text:
                continue
            words.append(
                OCRWord(
                    text=word_text,
                    confidence=conf,
                    bbox=BoundingBox(
                        x=int(data["left"][i]),
                        y=int(data["top"][i]),
                        width=int(data["width"][i]),
                        height=int(data["height"][i]),
                    ),
                    page=page_num,
                    line_num=int(data.get("line_num", [0] * len(data["text"]))[i]),
                )
            )
        return text, words
