"""Pattern suggestions from AI-corrected fields.

When the accepted AI result holds a value the pattern extractor missed or
got wrong, the caption is searched for the text span that carries that
value. The span is generalized into a candidate regex (digits become
named capture groups, month and weekday names become alternations) and
the candidate is only proposed if a throwaway extractor holding nothing
but that pattern reproduces the AI value from the caption.
"""

import logging
import re
from datetime import date
from typing import Any, Callable

from src.extraction.config import ExtractionConfig
from src.extraction.normalizer import (
    MONTH_ALTERNATION,
    DateNormalizer,
    month_number,
    pre_normalize_text,
)
from src.extraction.patterns import FieldMatch, PatternExtractor
from src.extraction.schemas import FIELD_PATTERN_TYPES, Pattern
from src.extraction.store import PatternCompileError, PatternStore, compile_pattern
from src.training.comparison import normalize_field_value
from src.training.schemas import PatternSuggestion

logger = logging.getLogger(__name__)

WEEKDAY_ALTERNATION = (
    r"mon(?:day)?|tue(?:s(?:day)?)?|wed(?:nesday)?|thu(?:rs?(?:day)?)?|"
    r"fri(?:day)?|sat(?:urday)?|sun(?:day)?"
)

_MONTH_WORD = re.compile(rf"(?:{MONTH_ALTERNATION})", re.IGNORECASE)
_WEEKDAY_WORD = re.compile(rf"(?:{WEEKDAY_ALTERNATION})", re.IGNORECASE)
_ORDINAL_WORD = re.compile(r"st|nd|rd|th", re.IGNORECASE)
_MERIDIEM_WORD = re.compile(r"[ap]\.?m\.?", re.IGNORECASE)

# Loose span finders per pattern type. Broader than the default patterns
# so they find the shapes those patterns miss.
CANDIDATE_SHAPES: dict[str, re.Pattern[str]] = {
    "date": re.compile(
        rf"(?:\b(?:{WEEKDAY_ALTERNATION})\.?,?\s*)?"
        rf"(?:\b(?:{MONTH_ALTERNATION})\.?\s*\d{{1,2}}(?:st|nd|rd|th)?(?:,?\s*\d{{4}})?"
        rf"|\b\d{{1,2}}(?:st|nd|rd|th)?\s*(?:of\s+)?(?:{MONTH_ALTERNATION})\b\.?(?:,?\s*\d{{4}})?"
        r"|(?<![\d.])\d{1,4}[./-]\d{1,2}(?:[./-]\d{2,4})?(?![\d.]))",
        re.IGNORECASE,
    ),
    "time": re.compile(
        r"(?<![\d:/.])\d{1,2}(?:\s*[:.h]\s*\d{2})?\s*(?:[ap]\.?m\b\.?|hrs?\b|nn\b)?",
        re.IGNORECASE,
    ),
    "price": re.compile(
        r"(?:\b(?:entrance|fee|tickets?|admission|cover|rate|price)\s*[:\-]?\s*)?"
        r"(?:₱|\bphp\b|\bp(?=\d)|\brs\.?)?\s*\d[\d,]*(?:\.\d{1,2})?(?:\s*(?:php|pesos?|/-))?",
        re.IGNORECASE,
    ),
}

_TOKENS: dict[str, re.Pattern[str]] = {
    "date": re.compile(r"\d+|[^\W\d_]+|\s+|.", re.IGNORECASE),
    "time": re.compile(r"[ap]\.?m\b\.?|\d+|[^\W\d_]+|\s+|.", re.IGNORECASE),
    "price": re.compile(r"\d[\d,]*(?:\.\d+)?|[^\W\d_]+|\s+|.", re.IGNORECASE),
}

_MATCHERS: dict[str, Callable[[PatternExtractor, str], FieldMatch | None]] = {
    "date": PatternExtractor.match_dates,
    "time": PatternExtractor.match_times,
    "venue": PatternExtractor.match_venue,
    "price": PatternExtractor.match_price,
    "signup_url": PatternExtractor.match_signup_url,
}

_PATTERN_FIELDS: dict[str, str] = {v: k for k, v in FIELD_PATTERN_TYPES.items()}


def _bounded(span: str, body: str) -> str:
    prefix = r"(?<!\w)" if re.match(r"\w", span) else ""
    suffix = r"(?!\w)" if re.search(r"\w$", span) else ""
    return f"(?i){prefix}{body}{suffix}"


def _literal(token: str) -> str:
    if token.isspace():
        return r"\s*"
    return re.escape(token.lower())


def generalize_date_span(span: str, expected: str) -> str | None:
    """Turn a date span into a regex with day/month/year groups matching ``expected``."""
    try:
        target = date.fromisoformat(expected)
    except ValueError:
        return None

    parts: list[str] = []
    used: set[str] = set()
    previous_digit = False
    for token in _TOKENS["date"].findall(span):
        if token.isdigit():
            value = int(token)
            if len(token) == 4 and value == target.year and "year" not in used:
                role, body = "year", r"\d{4}"
            elif (
                len(token) == 2 and token == f"{target.year % 100:02d}"
                and {"day", "month"} <= used and "year" not in used
            ):
                role, body = "year", r"\d{2}"
            elif value == target.month and "month" not in used and value != target.day:
                role, body = "month_num", r"\d{1,2}"
            elif value == target.day and "day" not in used:
                role, body = "day", r"\d{1,2}"
            elif value == target.month and "month" not in used:
                role, body = "month_num", r"\d{1,2}"
            else:
                return None
            used.add("month" if role == "month_num" else role)
            parts.append(f"(?P<{role}>{body})")
            previous_digit = True
            continue

        if token.isalpha():
            if previous_digit and _ORDINAL_WORD.fullmatch(token):
                parts.append(r"(?:st|nd|rd|th)?")
            elif _MONTH_WORD.fullmatch(token):
                if month_number(token) != target.month or "month" in used:
                    return None
                used.add("month")
                parts.append(rf"(?P<month>{MONTH_ALTERNATION})")
            elif _WEEKDAY_WORD.fullmatch(token):
                parts.append(rf"(?:{WEEKDAY_ALTERNATION})")
            else:
                parts.append(_literal(token))
        else:
            parts.append(_literal(token))
        previous_digit = False

    if not {"day", "month"} <= used:
        return None
    return _bounded(span, "".join(parts))


def generalize_time_span(span: str) -> str | None:
    """Turn a time span into a regex with hour/minute/meridiem groups."""
    parts: list[str] = []
    digits = 0
    has_marker = False
    for token in _TOKENS["time"].findall(span):
        if token.isdigit():
            if digits == 0 and len(token) <= 2:
                parts.append(r"(?P<hour>\d{1,2})")
            elif digits == 1 and len(token) == 2:
                parts.append(r"(?P<minute>\d{2})")
            else:
                return None
            digits += 1
        elif _MERIDIEM_WORD.fullmatch(token):
            parts.append(r"(?P<meridiem>[ap]\.?m\.?)")
            has_marker = True
        else:
            if not token.isspace():
                has_marker = True
            parts.append(_literal(token))
    if digits == 0 or not has_marker:
        return None
    return _bounded(span.strip(), "".join(parts).strip())


def generalize_price_span(span: str) -> str | None:
    """Turn a price span into a regex with an amount group."""
    parts: list[str] = []
    amounts = 0
    has_marker = False
    for token in _TOKENS["price"].findall(span.strip()):
        if token[0].isdigit():
            if amounts:
                return None
            parts.append(r"(?P<amount>\d[\d,]*(?:\.\d{1,2})?)")
            amounts += 1
        else:
            if not token.isspace():
                has_marker = True
            parts.append(_literal(token))
    if not amounts or not has_marker:
        return None
    return _bounded(span.strip(), "".join(parts))


def venue_shape(text: str, venue: str) -> tuple[str, str] | None:
    """
    Regex for a venue introduced by a marker the patterns do not know.

    Uses up to two tokens before the venue on the same line as a literal
    prefix. Venues at the start of a line are not generalized.
    """
    index = text.lower().find(venue.lower())
    if index <= 0:
        return None
    line_start = text.rfind("\n", 0, index) + 1
    before = text[line_start:index]
    tokens = before.split()
    if not tokens:
        return None
    prefix = " ".join(tokens[-2:])
    prefix_re = r"\s+".join(re.escape(t.lower()) for t in tokens[-2:])
    boundary = r"(?<!\w)" if re.match(r"\w", prefix) else ""
    regex = rf"(?im){boundary}{prefix_re}\s*(?P<venue>[^\n,|]+?)\s*(?:[,|]\s*(?P<address>[^\n]+?))?\s*$"
    return regex, f"{prefix} {text[index:index + len(venue)]}"


def url_shape(text: str, url: str) -> tuple[str, str] | None:
    """Regex for links on the AI-found URL's domain."""
    host = re.sub(r"^https?://(?:www\.)?", "", url.strip(), flags=re.IGNORECASE).split("/", 1)[0]
    if not host or "." not in host:
        return None
    match = re.search(rf"(?:https?://)?(?:www\.)?{re.escape(host)}/[^\s)>\]]*", text, re.IGNORECASE)
    if not match:
        return None
    regex = rf"(?i)(?P<url>(?:https?://)?(?:www\.)?{re.escape(host.lower())}/[^\s)>\]]+)"
    return regex, match.group(0)


class SuggestionBuilder:
    """
    Builds verified pattern suggestions for AI-corrected fields.

    Args:
        normalizer: Date normalizer with the same reference date as the
            extractor that produced the result.
        config: Extraction configuration for the verification extractor.
        max_sample_length: Samples are truncated to this length.
    """

    def __init__(
        self,
        normalizer: DateNormalizer | None = None,
        config: ExtractionConfig | None = None,
        max_sample_length: int = 200,
    ) -> None:
        self._normalizer = normalizer or DateNormalizer()
        self._config = config or ExtractionConfig()
        self._max_sample_length = max_sample_length

    def build(
        self,
        pattern_type: str,
        caption: str,
        ai_value: Any,
        store: PatternStore,
        post_id: str | None = None,
    ) -> PatternSuggestion | None:
        """
        Propose a pattern of ``pattern_type`` that extracts ``ai_value``.

        Returns None when no span carrying the value is found, the
        generalized regex already exists in the store, or the regex does
        not reproduce the value.
        """
        if pattern_type not in _MATCHERS or ai_value is None:
            return None
        field_name = _PATTERN_FIELDS[pattern_type]
        expected = normalize_field_value(field_name, ai_value)
        if expected is None:
            return None
        text = pre_normalize_text(caption)

        for regex, sample in self._candidates(pattern_type, text, ai_value):
            if store.has_regex(pattern_type, regex):
                continue
            if not self._reproduces(pattern_type, regex, text, field_name, expected):
                continue
            return PatternSuggestion(
                pattern_type=pattern_type,
                suggested_regex=regex,
                sample_text=sample[: self._max_sample_length],
                correct_value=str(ai_value),
                post_id=post_id,
            )
        return None

    def _candidates(self, pattern_type: str, text: str, ai_value: Any) -> list[tuple[str, str]]:
        if pattern_type == "venue":
            shape = venue_shape(text, str(ai_value))
            return [shape] if shape else []
        if pattern_type == "signup_url":
            shape = url_shape(text, str(ai_value))
            return [shape] if shape else []

        finder = CANDIDATE_SHAPES[pattern_type]
        results: list[tuple[str, str]] = []
        for match in finder.finditer(text):
            span = match.group(0).strip()
            if not span:
                continue
            if pattern_type == "date":
                regex = generalize_date_span(span, str(ai_value))
            elif pattern_type == "time":
                regex = generalize_time_span(span)
            else:
                regex = generalize_price_span(span)
            if regex is not None:
                results.append((regex, span))
        return results

    def _reproduces(
        self,
        pattern_type: str,
        regex: str,
        text: str,
        field_name: str,
        expected: Any,
    ) -> bool:
        candidate = Pattern(pattern_type=pattern_type, pattern_regex=regex, source="ai_learned")
        try:
            compile_pattern(candidate)
        except PatternCompileError:
            return False
        extractor = PatternExtractor(PatternStore([candidate]), self._config, self._normalizer)
        found = _MATCHERS[pattern_type](extractor, text)
        if found is None:
            return False
        return normalize_field_value(field_name, found.values.get(field_name)) == expected
