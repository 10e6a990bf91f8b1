"""Prompt construction for the generative analysis tasks.

Each task gets a fixed system persona and a user message that embeds the
serialized inputs, the caller context, and the exact JSON shape expected
back. Sampling temperature is fixed per task: open document analysis runs
warm, while fraud, classification and validation feed compliance decisions
and run cold.
"""

import json
from typing import Any

from vitaldoc.analysis.schemas import TaskKind

SYSTEM_PERSONAS: dict[TaskKind, str] = {
    TaskKind.DOCUMENT_ANALYSIS: (
        "You are an expert document analyzer for vital events registration. "
        "Analyze the provided document and extract relevant information accurately."
    ),
    TaskKind.FRAUD_DETECTION: (
        "You are a fraud detection expert for vital events registration. "
        "Analyze the provided data for potential fraud indicators and inconsistencies."
    ),
    TaskKind.CLASSIFICATION: (
        "You are an expert classifier for vital events. Determine the type of "
        "event and relevant categories based on the document content."
    ),
    TaskKind.VALIDATION: (
        "You are a data validation expert for vital events registration. "
        "Validate the provided data for accuracy, completeness, and consistency."
    ),
}

TASK_TEMPERATURES: dict[TaskKind, float] = {
    TaskKind.DOCUMENT_ANALYSIS: 0.7,
    TaskKind.FRAUD_DETECTION: 0.3,
    TaskKind.CLASSIFICATION: 0.2,
    TaskKind.VALIDATION: 0.1,
}

RESPONSE_SHAPES: dict[TaskKind, dict[str, Any]] = {
    TaskKind.DOCUMENT_ANALYSIS: {
        "extracted_data": {
            "names": [],
            "dates": [],
            "locations": [],
            "numbers": [],
            "other": {},
        },
        "confidence": 0.95,
        "quality_score": 0.9,
        "notes": "",
        "recommendations": [],
    },
    TaskKind.FRAUD_DETECTION: {
        "fraud_risk_level": "low|medium|high",
        "fraud_indicators": [],
        "inconsistencies": [],
        "confidence": 0.95,
        "recommendations": [],
        "requires_review": False,
    },
    TaskKind.CLASSIFICATION: {
        "event_type": "birth|death|marriage|divorce|adoption",
        "categories": [],
        "priority": "low|medium|high|urgent",
        "processing_steps": [],
        "confidence": 0.95,
    },
    TaskKind.VALIDATION: {
        "is_valid": True,
        "validation_errors": [],
        "warnings": [],
        "completeness_score": 0.95,
        "accuracy_score": 0.9,
        "recommendations": [],
    },
}


def to_json(value: Any) -> str:
    """Serialize prompt inputs; dates and other objects fall back to ``str``."""
    return json.dumps(value, default=str, ensure_ascii=False)


def _response_instruction(task: TaskKind) -> str:
    shape = json.dumps(RESPONSE_SHAPES[task], indent=2)
    return (
        "Respond with a single JSON object only, no prose and no code fences, "
        f"in exactly this format:\n{shape}"
    )


def build_document_analysis_prompt(
    document_text: str, document_type: str, context: dict[str, Any]
) -> str:
    return "\n\n".join(
        [
            f"Document Type: {document_type}\nContext: {to_json(context)}",
            "Please analyze the following document and extract relevant information:",
            document_text,
            _response_instruction(TaskKind.DOCUMENT_ANALYSIS),
        ]
    )


def build_fraud_detection_prompt(
    document_data: Any, record_data: Any, context: dict[str, Any]
) -> str:
    return "\n\n".join(
        [
            f"Context: {to_json(context)}",
            f"Document Data: {to_json(document_data)}\n"
            f"Record Data: {to_json(record_data)}",
            "Analyze this data for potential fraud indicators:\n"
            "- Inconsistencies between document and record data\n"
            "- Suspicious patterns or anomalies\n"
            "- Missing or incomplete information\n"
            "- Unusual timing or location data",
            _response_instruction(TaskKind.FRAUD_DETECTION),
        ]
    )


def build_classification_prompt(document_data: Any, context: dict[str, Any]) -> str:
    return "\n\n".join(
        [
            f"Context: {to_json(context)}",
            f"Document Data: {to_json(document_data)}",
            "Classify this document and determine:\n"
            "- Event type (birth, death, marriage, divorce, adoption)\n"
            "- Relevant categories and subcategories\n"
            "- Priority level\n"
            "- Required processing steps",
            _response_instruction(TaskKind.CLASSIFICATION),
        ]
    )


def build_validation_prompt(data: Any, data_type: str, context: dict[str, Any]) -> str:
    return "\n\n".join(
        [
            f"Data Type: {data_type}\nContext: {to_json(context)}",
            f"Data to Validate: {to_json(data)}",
            "Validate this data for:\n"
            "- Completeness\n"
            "- Accuracy\n"
            "- Consistency\n"
            "- Format compliance\n"
            "- Business logic validation",
            _response_instruction(TaskKind.VALIDATION),
        ]
    )


def build_messages(task: TaskKind, user_prompt: str) -> list[dict[str, str]]:
    """Chat messages for a task: persona first, then the user prompt."""
    return [
        {"role": "system", "content": SYSTEM_PERSONAS[task]},
        {"role": "user", "content": user_prompt},
    ]
