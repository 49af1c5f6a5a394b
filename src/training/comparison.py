"""Field-by-field comparison of regex and AI extraction results."""

import re
from typing import Any

from src.extraction.normalizer import parse_time_string
from src.extraction.schemas import COMPARED_FIELDS, FIELD_PATTERN_TYPES, ExtractionResult
from src.training.schemas import ComparisonReport, FieldComparison
from src.venues.matching import normalize_venue_name


def normalize_field_value(field_name: str, value: Any) -> Any:
    """Comparable form of a field value; None for empty values."""
    if value is None or value == "":
        return None
    if field_name == "event_time":
        return parse_time_string(str(value))
    if field_name == "venue_name":
        return normalize_venue_name(str(value)) or None
    if field_name == "price":
        try:
            return round(float(value), 2)
        except (TypeError, ValueError):
            return None
    if field_name == "signup_url":
        url = re.sub(r"^https?://(?:www\.)?", "", str(value).strip().lower())
        return url.rstrip("/") or None
    return str(value).strip()


def compare_results(regex_result: ExtractionResult, ai_result: ExtractionResult) -> ComparisonReport:
    """
    Compare the pattern extractor's result with the accepted AI result.

    Fields neither side found are left out of the report.
    """
    comparisons: list[FieldComparison] = []
    for field_name in COMPARED_FIELDS:
        regex_value = getattr(regex_result, field_name)
        ai_value = getattr(ai_result, field_name)
        regex_norm = normalize_field_value(field_name, regex_value)
        ai_norm = normalize_field_value(field_name, ai_value)
        if regex_norm is None and ai_norm is None:
            continue

        if regex_norm is not None and ai_norm is not None:
            source = "both" if regex_norm == ai_norm else "ai"
        elif regex_norm is not None:
            source = "regex"
        else:
            source = "ai"

        pattern_type = FIELD_PATTERN_TYPES[field_name]
        comparisons.append(
            FieldComparison(
                field_name=field_name,
                regex_value=regex_value if regex_norm is not None else None,
                ai_value=ai_value if ai_norm is not None else None,
                source=source,
                pattern_id=regex_result.pattern_ids.get(pattern_type) if regex_norm is not None else None,
            )
        )
    return ComparisonReport(fields=tuple(comparisons))
