"""Confidence statistics over per-word OCR scores.

Scores are on Tesseract's 0-100 scale. The quality bucket is a step
function of the average so callers can gate manual review on it.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum

LOW_CONFIDENCE_THRESHOLD = 60.0


class QualityBucket(StrEnum):
    """Discrete recognition quality label."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class LowConfidenceWord:
    """A recognized word scored below the low-confidence threshold."""

    text: str
    confidence: float


@dataclass(frozen=True)
class ConfidenceStats:
    """Aggregate confidence for one recognition call."""

    average: float
    min: float
    max: float
    quality: QualityBucket
    low_confidence_words: tuple[LowConfidenceWord, ...] = field(default_factory=tuple)
    total_words: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "average": self.average,
            "min": self.min,
            "max": self.max,
            "quality": self.quality.value,
            "low_confidence_words": [
                {"text": w.text, "confidence": w.confidence}
                for w in self.low_confidence_words
            ],
            "total_words": self.total_words,
        }


EMPTY_STATS = ConfidenceStats(
    average=0.0, min=0.0, max=0.0, quality=QualityBucket.UNKNOWN
)


def quality_bucket(average: float) -> QualityBucket:
    """Map an average confidence to its quality bucket.

    ``>= 80`` is excellent, ``>= 60`` good, ``>= 40`` fair, anything lower
    poor.
    """
    if average >= 80:
        return QualityBucket.EXCELLENT
    if average >= 60:
        return QualityBucket.GOOD
    if average >= 40:
        return QualityBucket.FAIR
    return QualityBucket.POOR


def analyze_confidence(
    words: Iterable[tuple[str, float]],
    low_threshold: float = LOW_CONFIDENCE_THRESHOLD,
) -> ConfidenceStats:
    """Compute confidence statistics for recognized words.

    Args:
        words: ``(text, confidence)`` pairs in reading order.
        low_threshold: Words scored strictly below this are reported.

    Returns:
        Statistics with average/min/max rounded to two decimals. The bucket
        is taken from the unrounded average.
    """
    pairs = list(words)
    if not pairs:
        return EMPTY_STATS

    scores = [float(conf) for _, conf in pairs]
    average = sum(scores) / len(scores)

    return ConfidenceStats(
        average=round(average, 2),
        min=round(min(scores), 2),
        max=round(max(scores), 2),
        quality=quality_bucket(average),
        low_confidence_words=tuple(
            LowConfidenceWord(text=text, confidence=float(conf))
            for text, conf in pairs
            if float(conf) < low_threshold
        ),
        total_words=len(pairs),
    )
