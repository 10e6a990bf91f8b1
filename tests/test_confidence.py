"""Tests for OCR confidence statistics and quality buckets."""

import pytest

from vitaldoc.ocr.confidence import (
    EMPTY_STATS,
    LowConfidenceWord,
    QualityBucket,
    analyze_confidence,
    quality_bucket,
)


class TestQualityBucket:
    """Tests for the average-to-bucket step function."""

    @pytest.mark.parametrize(
        ("average", "expected"),
        [
            (100.0, QualityBucket.EXCELLENT),
            (80.0, QualityBucket.EXCELLENT),
            (79.99, QualityBucket.GOOD),
            (60.0, QualityBucket.GOOD),
            (59.99, QualityBucket.FAIR),
            (40.0, QualityBucket.FAIR),
            (39.99, QualityBucket.POOR),
            (0.0, QualityBucket.POOR),
        ],
    )
    def test_thresholds(self, average: float, expected: QualityBucket) -> None:
        assert quality_bucket(average) is expected


class TestAnalyzeConfidence:
    """Tests for analyze_confidence."""

    def test_mixed_scores(self) -> None:
        stats = analyze_confidence([("Birth", 90), ("Addis", 40), ("Ababa", 70)])
        assert stats.average == 66.67
        assert stats.min == 40
        assert stats.max == 90
        assert stats.quality is QualityBucket.GOOD
        assert stats.low_confidence_words == (LowConfidenceWord("Addis", 40.0),)
        assert stats.total_words == 3

    def test_average_is_arithmetic_mean(self) -> None:
        scores = [12.5, 99.0, 73.25, 55.0]
        stats = analyze_confidence((str(i), s) for i, s in enumerate(scores))
        assert stats.average == round(sum(scores) / len(scores), 2)
        assert stats.min == 12.5
        assert stats.max == 99.0

    def test_bucket_uses_unrounded_average(self) -> None:
        # 79.997 is reported as 80.0 but is still below the threshold.
        stats = analyze_confidence([("a", 79.996), ("b", 79.998)])
        assert stats.average == 80.0
        assert stats.quality is QualityBucket.GOOD

    def test_exactly_eighty_is_excellent(self) -> None:
        stats = analyze_confidence([("a", 80), ("b", 80)])
        assert stats.quality is QualityBucket.EXCELLENT

    def test_threshold_is_strict(self) -> None:
        stats = analyze_confidence([("edge", 60.0), ("low", 59.9)])
        assert [w.text for w in stats.low_confidence_words] == ["low"]

    def test_custom_threshold(self) -> None:
        stats = analyze_confidence([("a", 70), ("b", 85)], low_threshold=75)
        assert [w.text for w in stats.low_confidence_words] == ["a"]

    def test_empty_is_unknown(self) -> None:
        stats = analyze_confidence([])
        assert stats is EMPTY_STATS
        assert stats.quality is QualityBucket.UNKNOWN
        assert (stats.average, stats.min, stats.max) == (0.0, 0.0, 0.0)
        assert stats.total_words == 0

    def test_to_dict(self) -> None:
        data = analyze_confidence([("x", 30)]).to_dict()
        assert data["quality"] == "poor"
        assert data["low_confidence_words"] == [{"text": "x", "confidence": 30.0}]
