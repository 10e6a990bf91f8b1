"""Generative analysis engine backed by OpenAI chat completions.

Four fixed tasks share one shape: build the task prompt, call the model at
the task temperature, and parse the answer against the task schema. Model
transport and auth errors are logged and returned as failure results; they
never escape the engine. The SDK client is created with retries disabled.
"""

from typing import Any

from openai import OpenAI, OpenAIError

from vitaldoc.analysis.parsing import parse_response
from vitaldoc.analysis.prompts import (
    TASK_TEMPERATURES,
    build_classification_prompt,
    build_document_analysis_prompt,
    build_fraud_detection_prompt,
    build_messages,
    build_validation_prompt,
)
from vitaldoc.analysis.result import AnalysisResult
from vitaldoc.analysis.schemas import TaskKind
from vitaldoc.errors import ConfigurationError, ErrorKind, NotInitializedError
from vitaldoc.utils.config import LLMConfig
from vitaldoc.utils.logger import get_logger

logger = get_logger(__name__)

MODEL_FAILURE_MESSAGE = "model call failed"


def _message_content(response: Any) -> str | None:
    if not response.choices:
        return None
    return response.choices[0].message.content


class GenerativeAnalysisEngine:
    """Structured, model-backed reasoning over extracted document data.

    Args:
        config: Model name, credentials and call limits.
        client: Pre-built OpenAI client. When omitted, :meth:`initialize`
            builds one from ``config``.
    """

    ENGINE_NAME = "openai"

    def __init__(
        self, config: LLMConfig | None = None, client: OpenAI | None = None
    ) -> None:
        self.config = config or LLMConfig()
        self._client = client

    @property
    def model_name(self) -> str:
        return self.config.model_name

    @property
    def ready(self) -> bool:
        return self._client is not None

    def initialize(self) -> None:
        """Create the SDK client.

        Raises:
            ConfigurationError: If no API key is configured.
        """
        if self._client is not None:
            return
        if not self.config.api_key:
            raise ConfigurationError("OpenAI API key not provided")
        self._client = OpenAI(
            api_key=self.config.api_key,
            base_url=self.config.base_url,
            timeout=self.config.timeout_s,
            max_retries=0,
        )
        logger.info("OpenAI client ready (model=%s)", self.model_name)

    def health_check(self) -> bool:
        """Issue a tiny completion; healthy iff it returns text."""
        if self._client is None:
            return False
        try:
            response = self._client.chat.completions.create(
                model=self.model_name,
                messages=[{"role": "user", "content": "Hello"}],
                max_tokens=10,
                temperature=0,
            )
            return bool(_message_content(response))
        except Exception as exc:
            logger.warning("Model health check failed: %s", exc)
            return False

    def analyze_document(
        self,
        document_text: str,
        document_type: str = "general",
        context: dict[str, Any] | None = None,
    ) -> AnalysisResult:
        """Extract names, dates, locations and numbers from document text."""
        prompt = build_document_analysis_prompt(
            document_text, document_type, context or {}
        )
        return self._run(
            TaskKind.DOCUMENT_ANALYSIS,
            prompt,
            temperature=self.config.analysis_temperature,
            document_type=document_type,
        )

    def detect_fraud(
        self,
        document_data: Any,
        record_data: Any,
        context: dict[str, Any] | None = None,
    ) -> AnalysisResult:
        """Compare document contents against the registry record for fraud."""
        prompt = build_fraud_detection_prompt(document_data, record_data, context or {})
        return self._run(TaskKind.FRAUD_DETECTION, prompt)

    def classify_record(
        self, document_data: Any, context: dict[str, Any] | None = None
    ) -> AnalysisResult:
        """Determine event type, categories, priority and next steps."""
        prompt = build_classification_prompt(document_data, context or {})
        return self._run(TaskKind.CLASSIFICATION, prompt)

    def validate_data(
        self,
        data: Any,
        data_type: str,
        context: dict[str, Any] | None = None,
    ) -> AnalysisResult:
        """Check record data for completeness, accuracy and consistency."""
        prompt = build_validation_prompt(data, data_type, context or {})
        return self._run(TaskKind.VALIDATION, prompt)

    def cleanup(self) -> None:
        """Close the SDK client. Safe to call more than once."""
        if self._client is None:
            return
        self._client.close()
        self._client = None
        logger.info("OpenAI client closed")

    def service_info(self) -> dict[str, Any]:
        temperatures = {task.value: temp for task, temp in TASK_TEMPERATURES.items()}
        temperatures[TaskKind.DOCUMENT_ANALYSIS] = self.config.analysis_temperature
        return {
            "name": "OpenAI",
            "model": self.model_name,
            "max_tokens": self.config.max_tokens,
            "temperatures": temperatures,
            "status": "active" if self.ready else "inactive",
        }

    def _run(
        self,
        task: TaskKind,
        prompt: str,
        temperature: float | None = None,
        document_type: str | None = None,
    ) -> AnalysisResult:
        if self._client is None:
            raise NotInitializedError("OpenAI client not initialized")
        if temperature is None:
            temperature = TASK_TEMPERATURES[task]

        kwargs: dict[str, Any] = {
            "model": self.model_name,
            "messages": build_messages(task, prompt),
            "max_tokens": self.config.max_tokens,
            "temperature": temperature,
        }
        if self.config.json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = self._client.chat.completions.create(**kwargs)
            raw = _message_content(response)
        except OpenAIError as exc:
            logger.error("%s model call failed: %s", task, exc)
            return self._failure(task, document_type)
        except Exception:
            logger.exception("%s model call failed", task)
            return self._failure(task, document_type)

        return parse_response(
            raw, task, document_type=document_type, model=self.model_name
        )

    def _failure(self, task: TaskKind, document_type: str | None) -> AnalysisResult:
        return AnalysisResult.failure(
            task,
            MODEL_FAILURE_MESSAGE,
            ErrorKind.ENGINE_FAILURE,
            document_type=document_type,
            model=self.model_name,
        )
