"""Form templates for vital-event certificates.

A template maps field names to a regex ``pattern`` (applied to recognized
text), an optional ``type`` coercion, and optionally a ``region``. Templates
are defined in YAML together with identifier patterns used to pick the
right template for a document.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any

import yaml

from vitaldoc.errors import ConfigurationError
from vitaldoc.utils.logger import get_logger

logger = get_logger(__name__)

DATE_FORMATS: list[str] = [
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%m/%d/%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
]

_LEADING_NUMBER = re.compile(r"^\s*[-+]?(\d[\d,]*)?(\.\d+)?")


@dataclass(frozen=True)
class FieldSpec:
    """How to locate and type one form field."""

    pattern: str | None = None
    type: str | None = None
    region: tuple[int, int, int, int] | None = None

    def __post_init__(self) -> None:
        if self.pattern is not None:
            if not isinstance(self.pattern, str):
                raise ConfigurationError("pattern must be a string")
            try:
                re.compile(self.pattern)
            except re.error as exc:
                raise ConfigurationError(f"invalid pattern: {exc}") from exc
        if self.region is not None:
            region = self.region
            if (
                not isinstance(region, (list, tuple))
                or len(region) != 4
                or not all(type(v) is int for v in region)
            ):
                raise ConfigurationError(
                    "region must be four integers [left, top, width, height]"
                )
            object.__setattr__(self, "region", tuple(region))


@dataclass(frozen=True)
class FormTemplate:
    """A named set of field specs plus identifiers for matching."""

    name: str
    fields: dict[str, FieldSpec]
    identifiers: tuple[str, ...] = ()
    min_confidence: float = 0.5
    description: str = ""


@dataclass
class TemplateMatch:
    """Result of matching a document against known templates."""

    template: FormTemplate
    confidence: float
    matched_identifiers: list[str] = field(default_factory=list)


def _parse_field(name: str, raw: Any) -> FieldSpec:
    if isinstance(raw, str):
        raw = {"pattern": raw}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Field {name!r} must be a mapping or a pattern")
    try:
        return FieldSpec(
            pattern=raw.get("pattern"),
            type=raw.get("type"),
            region=raw.get("region") or None,
        )
    except ConfigurationError as exc:
        raise ConfigurationError(f"Field {name!r}: {exc}") from exc


def template_from_dict(name: str, raw: dict[str, Any]) -> FormTemplate:
    """Build a template from its YAML/JSON mapping.

    Accepts either ``{"fields": {...}, "identifiers": [...]}`` or a bare
    field mapping.
    """
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Template {name!r} must be a mapping")
    meta = raw if "fields" in raw else {}
    fields_raw = raw.get("fields", raw)
    if not isinstance(fields_raw, dict):
        raise ConfigurationError(f"Template {name!r} has no field mapping")
    return FormTemplate(
        name=name,
        fields={key: _parse_field(key, value) for key, value in fields_raw.items()},
        identifiers=tuple(meta.get("identifiers", ())),
        min_confidence=float(meta.get("min_confidence", 0.5)),
        description=str(meta.get("description", "")),
    )


def coerce_value(value: str, type_name: str | None) -> Any:
    """Convert an extracted string to the declared field type.

    ``number`` and ``integer`` read the leading numeric prefix and fall back
    to 0; ``date`` tries the known formats and gives ``None`` when none fit;
    ``boolean`` is true for "true"/"yes" in any case. Unknown or missing
    types return the string unchanged.
    """
    if type_name in ("number", "integer"):
        match = _LEADING_NUMBER.match(value)
        digits = (match.group(0) if match else "").replace(",", "").strip()
        try:
            number = float(digits)
        except ValueError:
            number = 0.0
        return int(number) if type_name == "integer" else number
    if type_name == "date":
        return parse_date(value)
    if type_name == "boolean":
        return value.strip().lower() in ("true", "yes")
    return value


def parse_date(value: str) -> date | None:
    """Parse a date in any of :data:`DATE_FORMATS`."""
    text = value.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    logger.debug("Unparseable date value %r", value)
    return None


def extract_fields(text: str, template: FormTemplate) -> dict[str, Any]:
    """Pull field values out of recognized text with a template.

    Args:
        text: Cleaned full-page text.
        template: Field definitions.

    Returns:
        Mapping of every template field to its coerced value, or ``None``
        when the pattern did not match or the field is region-only.
    """
    data: dict[str, Any] = {}
    for name, spec in template.fields.items():
        value: Any = None
        if spec.pattern:
            match = re.search(spec.pattern, text, re.IGNORECASE)
            if match:
                # first capture group when it took part, else the whole match
                value = (match.group(1) if match.groups() else None) or match.group(0)
                value = value.strip()
        elif spec.region:
            # Region-scoped field extraction is not implemented.
            logger.debug("Field %s is region-only, leaving empty", name)

        if value and spec.type:
            value = coerce_value(value, spec.type)
        data[name] = value
    return data


def load_templates(path: Path) -> dict[str, FormTemplate]:
    """Load template definitions from a YAML file.

    Args:
        path: Path to the templates YAML file.

    Returns:
        Templates keyed by name; empty when the file is missing.
    """
    if not path.exists():
        logger.debug("No templates file at %s, using empty templates", path)
        return {}
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    templates = {name: template_from_dict(name, raw) for name, raw in data.items()}
    logger.info("Loaded %d form templates from %s", len(templates), path)
    return templates


class TemplateMatcher:
    """Picks the best template for a document by identifier patterns.

    Args:
        templates: Templates to choose from.
    """

    def __init__(self, templates: dict[str, FormTemplate]) -> None:
        self.templates = templates

    @classmethod
    def from_file(cls, path: Path) -> "TemplateMatcher":
        return cls(load_templates(path))

    def get(self, name: str) -> FormTemplate | None:
        return self.templates.get(name)

    def match_template(self, text: str) -> TemplateMatch | None:
        """Find the best matching template for the given text.

        Returns:
            Best match whose score exceeds the template's minimum, or
            ``None``.
        """
        best: TemplateMatch | None = None
        for template in self.templates.values():
            if not template.identifiers:
                continue
            matched = [
                ident
                for ident in template.identifiers
                if re.search(ident, text, re.IGNORECASE)
            ]
            score = len(matched) / len(template.identifiers)
            if score <= template.min_confidence:
                continue
            if best is None or score > best.confidence:
                best = TemplateMatch(template, score, matched)

        if best:
            logger.info(
                "Matched template '%s' (confidence=%.2f)",
                best.template.name,
                best.confidence,
            )
        return best
