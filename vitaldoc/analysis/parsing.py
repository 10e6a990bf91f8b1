"""Parsing of model answers into typed analysis results.

A malformed answer is an expected outcome, not a fault: the parsers here
never raise and always hand back the original text on failure.
"""

import json
import re
from typing import Any

from pydantic import ValidationError

from vitaldoc.analysis.result import AnalysisResult
from vitaldoc.analysis.schemas import SCHEMAS, TaskKind
from vitaldoc.errors import ErrorKind
from vitaldoc.utils.logger import get_logger

logger = get_logger(__name__)

PARSE_FAILURE_MESSAGE = "parse failure"

_FENCED = re.compile(r"^```[a-zA-Z]*\s*(.*?)\s*```$", re.DOTALL)
_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def extract_json_object(text: str) -> dict[str, Any]:
    """Pull a JSON object out of model output.

    Accepts bare JSON, JSON wrapped in a Markdown code fence, or JSON
    surrounded by prose (the outermost ``{...}`` span is tried).

    Raises:
        ValueError: If no JSON object can be decoded.
    """
    candidate = text.strip()
    fenced = _FENCED.match(candidate)
    if fenced:
        candidate = fenced.group(1)

    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError:
        match = _OBJECT.search(candidate)
        if not match:
            raise ValueError("No JSON object found in model output") from None
        payload = json.loads(match.group(0))

    if not isinstance(payload, dict):
        raise ValueError("Model output is not a JSON object")
    return payload


def parse_response(
    raw: str | None,
    task_kind: TaskKind,
    document_type: str | None = None,
    model: str | None = None,
) -> AnalysisResult:
    """Validate a model answer against the task schema.

    Args:
        raw: Text content returned by the model, possibly ``None``.
        task_kind: Which schema to validate against.
        document_type: Echoed onto the result for document analysis.
        model: Model name echoed onto the result.

    Returns:
        A successful result with typed data, or a parse failure carrying
        ``raw`` unchanged.
    """
    if not isinstance(raw, str) or not raw.strip():
        logger.warning("Empty %s response from model", task_kind)
        return AnalysisResult.failure(
            task_kind,
            PARSE_FAILURE_MESSAGE,
            ErrorKind.PARSE_FAILURE,
            raw_response=raw,
            document_type=document_type,
            model=model,
        )

    try:
        payload = extract_json_object(raw)
        data = SCHEMAS[task_kind].model_validate(payload)
    except (ValueError, ValidationError, RecursionError) as exc:
        logger.warning("Failed to parse %s response: %s", task_kind, exc)
        return AnalysisResult.failure(
            task_kind,
            PARSE_FAILURE_MESSAGE,
            ErrorKind.PARSE_FAILURE,
            raw_response=raw,
            document_type=document_type,
            model=model,
        )

    return AnalysisResult(
        success=True,
        task_kind=task_kind,
        data=data,
        raw_response=raw,
        document_type=document_type,
        model=model,
    )


def parse_document_analysis(raw: str | None, document_type: str) -> AnalysisResult:
    return parse_response(raw, TaskKind.DOCUMENT_ANALYSIS, document_type=document_type)


def parse_fraud_detection(raw: str | None) -> AnalysisResult:
    return parse_response(raw, TaskKind.FRAUD_DETECTION)


def parse_classification(raw: str | None) -> AnalysisResult:
    return parse_response(raw, TaskKind.CLASSIFICATION)


def parse_validation(raw: str | None) -> AnalysisResult:
    return parse_response(raw, TaskKind.VALIDATION)
