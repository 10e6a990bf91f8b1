"""Tests for parsing model answers into typed analysis results."""

import json

import pytest

from vitaldoc.analysis.parsing import (
    PARSE_FAILURE_MESSAGE,
    extract_json_object,
    parse_classification,
    parse_document_analysis,
    parse_fraud_detection,
    parse_response,
    parse_validation,
)
from vitaldoc.analysis.result import AnalysisResult
from vitaldoc.analysis.schemas import (
    DataValidation,
    DocumentAnalysis,
    FraudAssessment,
    RecordClassification,
    TaskKind,
)
from vitaldoc.errors import ErrorKind

CLASSIFICATION = {
    "event_type": "birth",
    "categories": ["live birth", "hospital"],
    "priority": "medium",
    "processing_steps": ["verify parents"],
    "confidence": 0.92,
}


class TestExtractJsonObject:
    """Tests for pulling JSON out of model text."""

    def test_bare_json(self) -> None:
        assert extract_json_object('{"a": 1}') == {"a": 1}

    def test_code_fence(self) -> None:
        assert extract_json_object('```json\n{"a": 1}\n```') == {"a": 1}

    def test_surrounding_prose(self) -> None:
        text = 'Here is the result:\n{"a": {"b": 2}}\nHope this helps.'
        assert extract_json_object(text) == {"a": {"b": 2}}

    @pytest.mark.parametrize("text", ["not json", "[1, 2]", "{broken", ""])
    def test_rejects(self, text: str) -> None:
        with pytest.raises(ValueError):
            extract_json_object(text)


class TestParseResponse:
    """Tests for schema validation of model answers."""

    def test_classification_success(self) -> None:
        raw = json.dumps(CLASSIFICATION)
        result = parse_classification(raw)

        assert result.success is True
        assert isinstance(result.data, RecordClassification)
        assert result.data.event_type == "birth"
        assert result.error is None
        assert result.raw_response == raw
        assert result.confidence == 0.92

    def test_not_json(self) -> None:
        result = parse_classification("not json")

        assert result.success is False
        assert result.raw_response == "not json"
        assert result.error == PARSE_FAILURE_MESSAGE
        assert result.error_kind is ErrorKind.PARSE_FAILURE
        assert result.data is None

    def test_schema_violation_keeps_raw(self) -> None:
        raw = json.dumps({**CLASSIFICATION, "event_type": "graduation"})
        result = parse_classification(raw)
        assert result.success is False
        assert result.raw_response == raw

    def test_choice_is_case_insensitive(self) -> None:
        raw = json.dumps(
            {**CLASSIFICATION, "event_type": " Death ", "priority": "URGENT"}
        )
        result = parse_classification(raw)
        assert result.success is True
        assert result.data.event_type == "death"
        assert result.data.priority == "urgent"

    @pytest.mark.parametrize(
        "raw",
        [None, "", "   ", "[]", "null", "{", "}{", "```", "[" * 5000, "\x00\xff"],
    )
    def test_never_raises(self, raw: str | None) -> None:
        for task in TaskKind:
            result = parse_response(raw, task)
            assert result.success is False
            assert result.raw_response == raw

    def test_document_analysis(self) -> None:
        raw = (
            "```json\n"
            + json.dumps(
                {
                    "extracted_data": {
                        "names": ["Abebe Kebede"],
                        "dates": ["2020-05-12"],
                        "locations": ["Addis Ababa"],
                        "numbers": ["AA/2023-0042"],
                        "other_relevant_info": {"sex": "male"},
                    },
                    "confidence": 0.95,
                    "quality_score": 0.9,
                    "notes": "clear scan",
                }
            )
            + "\n```"
        )
        result = parse_document_analysis(raw, "birth_certificate")

        assert result.success is True
        assert isinstance(result.data, DocumentAnalysis)
        assert result.data.extracted_data.names == ["Abebe Kebede"]
        assert result.data.extracted_data.other == {"sex": "male"}
        assert result.document_type == "birth_certificate"

    def test_fraud_detection(self) -> None:
        raw = json.dumps(
            {"fraud_risk_level": "High", "requires_review": True, "confidence": 0.7}
        )
        result = parse_fraud_detection(raw)
        assert isinstance(result.data, FraudAssessment)
        assert result.data.fraud_risk_level == "high"
        assert result.data.fraud_indicators == []

    def test_fraud_detection_requires_review_flag(self) -> None:
        result = parse_fraud_detection(json.dumps({"fraud_risk_level": "low"}))
        assert result.success is False

    def test_validation_confidence_is_accuracy(self) -> None:
        raw = json.dumps(
            {
                "is_valid": False,
                "validation_errors": ["missing dob"],
                "accuracy_score": 0.4,
            }
        )
        result = parse_validation(raw)
        assert isinstance(result.data, DataValidation)
        assert result.confidence == 0.4

    def test_extra_keys_kept(self) -> None:
        raw = json.dumps({**CLASSIFICATION, "reasoning": "mentions delivery ward"})
        result = parse_classification(raw)
        assert result.to_dict()["data"]["reasoning"] == "mentions delivery ward"


class TestAnalysisResult:
    """Tests for the analysis envelope invariants."""

    def test_requires_exactly_one_of_data_or_error(self) -> None:
        with pytest.raises(ValueError):
            AnalysisResult(success=False, task_kind=TaskKind.VALIDATION)

    def test_success_flag_must_match(self) -> None:
        with pytest.raises(ValueError):
            AnalysisResult(success=True, task_kind=TaskKind.VALIDATION, error="x")

    def test_failure_to_dict(self) -> None:
        result = AnalysisResult.failure(
            TaskKind.FRAUD_DETECTION, "model call failed", ErrorKind.ENGINE_FAILURE
        )
        data = result.to_dict()
        assert data["success"] is False
        assert data["data"] is None
        assert data["task_kind"] == "fraud_detection"
        assert data["error_kind"] == "engine_failure"
        assert result.confidence == 0.0
