"""Normalization of raw OCR output."""

import re

_HORIZONTAL_WS = re.compile(r"[^\S\n]+")


def clean_extracted_text(text: str | None) -> str:
    """Collapse whitespace and drop blank lines from recognized text.

    Runs of spaces, tabs and other non-newline whitespace become one space,
    every line is stripped, empty lines are removed and the result is
    trimmed. Line breaks between non-empty lines are kept so line-anchored
    template patterns still work. Applying it twice gives the same string.

    Args:
        text: Raw text from the recognition engine.

    Returns:
        Cleaned text, or an empty string for ``None``.
    """
    if not text:
        return ""

    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = (_HORIZONTAL_WS.sub(" ", line).strip() for line in normalized.split("\n"))
    return "\n".join(line for line in lines if line)
