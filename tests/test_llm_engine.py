"""Tests for the generative analysis engine (OpenAI client mocked)."""

import json
from unittest.mock import MagicMock, patch

import pytest
from conftest import make_completion
from openai import OpenAIError

from vitaldoc.analysis.llm_engine import MODEL_FAILURE_MESSAGE, GenerativeAnalysisEngine
from vitaldoc.analysis.prompts import SYSTEM_PERSONAS
from vitaldoc.analysis.schemas import TaskKind
from vitaldoc.errors import ConfigurationError, ErrorKind, NotInitializedError
from vitaldoc.utils.config import LLMConfig

FRAUD_ANSWER = {
    "fraud_risk_level": "medium",
    "fraud_indicators": ["date of birth differs"],
    "inconsistencies": ["dob: 2020-05-12 vs 2020-05-21"],
    "confidence": 0.81,
    "recommendations": ["request hospital record"],
    "requires_review": True,
}


def _engine(client: MagicMock, **config: object) -> GenerativeAnalysisEngine:
    return GenerativeAnalysisEngine(LLMConfig(api_key="sk-test", **config), client)


class TestInitialize:
    """Tests for SDK client creation."""

    def test_requires_api_key(self) -> None:
        engine = GenerativeAnalysisEngine(LLMConfig())
        with pytest.raises(ConfigurationError, match="API key"):
            engine.initialize()
        assert engine.ready is False

    @patch("vitaldoc.analysis.llm_engine.OpenAI")
    def test_builds_client_without_retries(self, mock_openai: MagicMock) -> None:
        engine = GenerativeAnalysisEngine(
            LLMConfig(api_key="sk-test", base_url="http://llm.local/v1", timeout_s=5)
        )
        engine.initialize()

        mock_openai.assert_called_once_with(
            api_key="sk-test",
            base_url="http://llm.local/v1",
            timeout=5.0,
            max_retries=0,
        )
        assert engine.ready is True

    def test_injected_client_is_kept(self, openai_client: MagicMock) -> None:
        engine = _engine(openai_client)
        engine.initialize()
        assert engine.ready is True

    def test_call_before_initialize(self) -> None:
        engine = GenerativeAnalysisEngine(LLMConfig(api_key="sk-test"))
        with pytest.raises(NotInitializedError):
            engine.classify_record({"text": "x"})


class TestTaskCalls:
    """Tests for prompts, temperatures and parsing of each task."""

    def test_detect_fraud(self, openai_client: MagicMock) -> None:
        openai_client.chat.completions.create.return_value = make_completion(
            json.dumps(FRAUD_ANSWER)
        )
        engine = _engine(openai_client)
        result = engine.detect_fraud(
            {"dob": "2020-05-12"}, {"dob": "2020-05-21"}, {"office": "Bole"}
        )

        assert result.success is True
        assert result.task_kind is TaskKind.FRAUD_DETECTION
        assert result.data.requires_review is True
        assert result.model == "gpt-4"

        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4"
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 4000
        assert "response_format" not in kwargs
        system, user = kwargs["messages"]
        assert system == {
            "role": "system",
            "content": SYSTEM_PERSONAS[TaskKind.FRAUD_DETECTION],
        }
        assert '"2020-05-21"' in user["content"]
        assert '"office": "Bole"' in user["content"]
        assert "fraud_risk_level" in user["content"]

    @pytest.mark.parametrize(
        ("method", "args", "temperature"),
        [
            ("classify_record", ({"text": "birth"},), 0.2),
            ("validate_data", ({"name": "Abebe"}, "birth_record"), 0.1),
        ],
    )
    def test_task_temperatures(
        self,
        openai_client: MagicMock,
        method: str,
        args: tuple,
        temperature: float,
    ) -> None:
        engine = _engine(openai_client)
        getattr(engine, method)(*args)
        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["temperature"] == temperature

    def test_analyze_document_uses_configured_temperature(
        self, openai_client: MagicMock
    ) -> None:
        engine = _engine(openai_client, analysis_temperature=0.4)
        result = engine.analyze_document("Certificate of Birth", "birth_certificate")

        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["temperature"] == 0.4
        assert "Document Type: birth_certificate" in kwargs["messages"][1]["content"]
        assert "Certificate of Birth" in kwargs["messages"][1]["content"]
        # "{}" lacks extracted_data.
        assert result.success is False
        assert result.raw_response == "{}"
        assert result.document_type == "birth_certificate"

    def test_json_mode(self, openai_client: MagicMock) -> None:
        engine = _engine(openai_client, json_mode=True)
        engine.classify_record({"text": "x"})
        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}

    def test_not_json_answer(self, openai_client: MagicMock) -> None:
        openai_client.chat.completions.create.return_value = make_completion("not json")
        result = _engine(openai_client).classify_record({"text": "x"})

        assert result.success is False
        assert result.raw_response == "not json"
        assert result.error_kind is ErrorKind.PARSE_FAILURE

    def test_empty_choices(self, openai_client: MagicMock) -> None:
        response = MagicMock()
        response.choices = []
        openai_client.chat.completions.create.return_value = response
        result = _engine(openai_client).validate_data({"a": 1}, "record")

        assert result.success is False
        assert result.error_kind is ErrorKind.PARSE_FAILURE


class TestModelErrors:
    """Tests for transport and runtime failures at the engine boundary."""

    def test_sdk_error_becomes_failure(self, openai_client: MagicMock) -> None:
        openai_client.chat.completions.create.side_effect = OpenAIError("rate limited")
        result = _engine(openai_client).detect_fraud({"a": 1}, {"a": 2})

        assert result.success is False
        assert result.error == MODEL_FAILURE_MESSAGE
        assert result.error_kind is ErrorKind.ENGINE_FAILURE
        assert result.raw_response is None

    def test_unexpected_error_becomes_failure(self, openai_client: MagicMock) -> None:
        openai_client.chat.completions.create.side_effect = RuntimeError("socket")
        result = _engine(openai_client).classify_record({"a": 1})

        assert result.success is False
        assert result.error == MODEL_FAILURE_MESSAGE
        assert "socket" not in (result.error or "")


class TestHealthAndCleanup:
    """Tests for health_check, cleanup and service_info."""

    def test_healthy(self, openai_client: MagicMock) -> None:
        openai_client.chat.completions.create.return_value = make_completion("Hi!")
        engine = _engine(openai_client)
        assert engine.health_check() is True

        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"] == [{"role": "user", "content": "Hello"}]
        assert kwargs["max_tokens"] == 10
        assert kwargs["temperature"] == 0

    def test_empty_answer_is_unhealthy(self, openai_client: MagicMock) -> None:
        openai_client.chat.completions.create.return_value = make_completion("")
        assert _engine(openai_client).health_check() is False

    def test_error_is_unhealthy(self, openai_client: MagicMock) -> None:
        openai_client.chat.completions.create.side_effect = RuntimeError("down")
        assert _engine(openai_client).health_check() is False

    def test_not_initialized_is_unhealthy(self) -> None:
        engine = GenerativeAnalysisEngine(LLMConfig(api_key="sk-test"))
        assert engine.health_check() is False

    def test_cleanup_idempotent(self, openai_client: MagicMock) -> None:
        engine = _engine(openai_client)
        engine.cleanup()
        engine.cleanup()
        openai_client.close.assert_called_once()
        assert engine.ready is False

    def test_service_info(self, openai_client: MagicMock) -> None:
        info = _engine(openai_client, analysis_temperature=0.5).service_info()
        assert info["model"] == "gpt-4"
        assert info["temperatures"] == {
            "document_analysis": 0.5,
            "fraud_detection": 0.3,
            "classification": 0.2,
            "validation": 0.1,
        }
        assert info["status"] == "active"
