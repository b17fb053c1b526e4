"""Parsing of free-text model responses into validated records."""

import json
import re
from typing import Any, Dict, Optional

from portfolio_pipeline.core.exceptions import AnalysisError
from portfolio_pipeline.models.photo import (
    FALLBACK_CATEGORY,
    VALID_CATEGORIES,
    VALID_FILTERS,
    Caption,
    Classification,
    ClassificationOutcome,
)

HASHTAG_PATTERN = re.compile(r'(?<!\w)#[\w-]+')
MIN_CAPTION_LENGTH = 10


def extract_json_object(text: Optional[str]) -> Optional[str]:
    """Return the first balanced ``{...}`` substring of ``text``.

    Braces inside JSON strings are ignored. If an opening brace is never
    closed, scanning resumes at the next one.
    """
    if not text:
        return None

    start = text.find('{')
    while start != -1:
        depth = 0
        in_string = False
        escaped = False

        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == '\\':
                    escaped = True
                elif char == '"':
                    in_string = False
                continue

            if char == '"':
                in_string = True
            elif char == '{':
                depth += 1
            elif char == '}':
                depth -= 1
                if depth == 0:
                    return text[start:index + 1]

        start = text.find('{', start + 1)

    return None


def load_json_object(text: Optional[str]) -> Dict[str, Any]:
    """Extract and decode the first JSON object, raising AnalysisError otherwise."""
    candidate = extract_json_object(text)
    if candidate is None:
        raise AnalysisError("No JSON found in response")

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise AnalysisError(f"Invalid JSON in response: {e.msg}") from e

    if not isinstance(data, dict):
        raise AnalysisError("Response JSON is not an object")
    return data


def clean_text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip() and value.strip().lower() != "null":
        return value.strip()
    return None


def normalize_classification(data: Dict[str, Any]) -> Classification:
    """Validate category and filter against the fixed enumerations."""
    category = data.get("category")
    if category not in VALID_CATEGORIES:
        category = FALLBACK_CATEGORY

    filter_value = data.get("filter")
    if category != "landscapes" or filter_value not in VALID_FILTERS:
        filter_value = None

    return Classification(
        category=category,
        filter=filter_value,
        species=clean_text(data.get("species")),
        location=clean_text(data.get("location")),
    )


def parse_classification(text: Optional[str]) -> ClassificationOutcome:
    """Parse a classifier response; never raises."""
    try:
        data = load_json_object(text)
    except AnalysisError as e:
        return ClassificationOutcome.fallback(str(e))
    return ClassificationOutcome.parsed(normalize_classification(data))


def parse_caption(text: Optional[str]) -> Caption:
    """Parse a caption response; raises AnalysisError when title or description is missing."""
    data = load_json_object(text)

    title = clean_text(data.get("title"))
    description = clean_text(data.get("description"))
    if not title or not description:
        raise AnalysisError("Missing title or description in response")

    return Caption(title=title, description=description)


def has_meaningful_caption(caption: Optional[str]) -> bool:
    return bool(caption) and len(caption.strip()) > MIN_CAPTION_LENGTH


def strip_hashtags(caption: Optional[str]) -> str:
    """Remove ``#tags`` and collapse the whitespace left behind."""
    if not caption:
        return ""
    cleaned = HASHTAG_PATTERN.sub('', caption)
    cleaned = re.sub(r'\s+', ' ', cleaned).strip()
    return re.sub(r'\s+([.,!?;:])', r'\1', cleaned)
