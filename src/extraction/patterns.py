"""Pattern-based field extraction for event captions.

Applies the typed patterns held in a PatternStore to normalized caption
text. For each field family the active patterns are tried in order and
the first match wins; the id of the matching pattern is recorded on the
result so the trainer can later score it. Named capture groups carry
the field values; a pattern without the expected groups falls back to
parsing its whole match.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from src.extraction.config import ExtractionConfig
from src.extraction.normalizer import (
    MONTH_ALTERNATION,
    DateNormalizer,
    month_number,
    parse_time_string,
    pre_normalize_text,
    to_24_hour,
)
from src.extraction.prefilter import (
    detect_availability,
    detect_event_status,
    detect_location_status,
    has_event_keyword,
    has_temporal_event_indicators,
    infer_category,
    is_possibly_vendor_post,
    is_recurring_schedule_post,
    is_vendor_post_strict,
    matches_exclusion,
    mentions_anniversary,
)
from src.extraction.schemas import (
    REJECT_EXCLUDED,
    REJECT_NO_SIGNALS,
    REJECT_RECURRING,
    REJECT_VENDOR,
    ExtractionResult,
    Pattern,
)
from src.extraction.store import PatternStore

logger = logging.getLogger(__name__)

_MONTHS = rf"(?:{MONTH_ALTERNATION})"
_ORDINAL = r"(?:st|nd|rd|th)?"
_MERIDIEM = r"[ap]\.?m\.?"
_AMOUNT = r"\d{1,3}(?:,\d{3})+(?:\.\d{2})?|\d+(?:\.\d{2})?"

# (pattern_id, type, regex, priority, confidence, description)
_DEFAULT_PATTERN_SPECS: list[tuple[str, str, str, int, float, str]] = [
    # Dates
    (
        "default_date_month_first", "date",
        rf"(?i)\b(?P<month>{_MONTHS})\.?\s*(?P<day>\d{{1,2}}){_ORDINAL}"
        rf"(?:\s*(?:-|to|until)\s*(?:(?P<end_month>{_MONTHS})\.?\s*)?(?P<end_day>\d{{1,2}}){_ORDINAL}(?!\s*{_MERIDIEM}|\d|:))?"
        r"(?:,?\s*(?P<year>\d{4}))?(?![\d:])",
        130, 0.9, "Month-first dates with optional range and year (Dec 5, Dec 5-7, 2025)",
    ),
    (
        "default_date_day_first", "date",
        rf"(?i)\b(?P<day>\d{{1,2}}){_ORDINAL}(?:\s*(?:-|to)\s*(?P<end_day>\d{{1,2}}){_ORDINAL})?"
        rf"\s*(?:of\s+)?(?P<month>{_MONTHS})\b\.?(?:,?\s*(?P<year>\d{{4}}))?",
        125, 0.75, "Day-first dates (7 Dec, 7th of December)",
    ),
    (
        "default_date_slash", "date",
        r"(?<![\d/])(?P<month_num>1[0-2]|0?[1-9])/(?P<day>3[01]|[12]\d|0?[1-9])(?:/(?P<year>\d{4}|\d{2}))?(?![\d/])",
        110, 0.7, "Numeric MM/DD[/YYYY]",
    ),
    (
        "default_date_dash", "date",
        r"(?<![\d-])(?P<day>3[01]|[12]\d|0?[1-9])-(?P<month_num>1[0-2]|0?[1-9])-(?P<year>\d{4}|\d{2})(?![\d-])",
        105, 0.65, "Numeric DD-MM-YYYY",
    ),
    (
        "default_date_relative", "date",
        r"(?i)\b(?P<relative>today|tonight|tomorrow|this\s+weekend|(?:this|next|on)\s+(?:mon|tues|wednes|thurs|fri|satur|sun)day)\b",
        90, 0.6, "Relative dates (tonight, tomorrow, this weekend, this Friday)",
    ),
    # Times
    (
        "default_time_meridiem", "time",
        rf"(?i)(?<![\d:-])(?<!-\s)(?P<hour>1[0-2]|0?[1-9])(?:[:.](?P<minute>[0-5]\d))?\s*(?P<meridiem>{_MERIDIEM})"
        rf"(?:\s*(?:-|to|until|'?til)\s*(?P<end_hour>1[0-2]|0?[1-9])(?:[:.](?P<end_minute>[0-5]\d))?\s*(?P<end_meridiem>{_MERIDIEM})?)?(?![a-z])",
        130, 0.9, "12-hour times with optional end (7PM, 7:30 pm - 11pm)",
    ),
    (
        "default_time_range_shared_meridiem", "time",
        rf"(?i)(?<![\d:/])(?P<hour>1[0-2]|0?[1-9])(?:[:.](?P<minute>[0-5]\d))?\s*(?:-|to|until)\s*"
        rf"(?P<end_hour>1[0-2]|0?[1-9])(?:[:.](?P<end_minute>[0-5]\d))?\s*(?P<end_meridiem>{_MERIDIEM})(?![a-z])",
        125, 0.8, "Ranges sharing one meridiem (9-11PM)",
    ),
    (
        "default_time_24h", "time",
        r"(?i)(?<![\d:/])(?P<hour>[01]?\d|2[0-3])[:h](?P<minute>[0-5]\d)"
        r"(?:\s*(?:-|to)\s*(?P<end_hour>[01]?\d|2[0-3])[:h](?P<end_minute>[0-5]\d))?(?!\d)(?!\s*[ap]\.?m)",
        110, 0.75, "24-hour times (19:00, 19h00 - 23h00)",
    ),
    (
        "default_time_words", "time",
        r"(?i)\b(?P<word>noon|midnight)\b",
        100, 0.7, "Noon and midnight",
    ),
    # Prices
    (
        "default_price_free", "price",
        r"(?i)\b(?P<free>free\s+(?:entry|entrance|admission|event|of\s+charge)|no\s+cover(?:\s+charge)?|admission\s+is\s+free|libreng?\s+(?:entrance|pasok))\b",
        160, 0.9, "Free entry wording",
    ),
    (
        "default_price_peso_sign", "price",
        rf"₱\s*(?P<amount>{_AMOUNT})(?:\s*-\s*₱?\s*(?P<amount_max>{_AMOUNT}))?",
        140, 0.95, "Peso sign with optional range (₱500, ₱300-500)",
    ),
    (
        "default_price_php", "price",
        rf"(?i)\bphp\s*(?P<amount>{_AMOUNT})(?:\s*-\s*(?:php\s*)?(?P<amount_max>{_AMOUNT}))?|(?P<amount_suffix>{_AMOUNT})\s*php\b",
        135, 0.9, "PHP prefix or suffix",
    ),
    (
        "default_price_p_prefix", "price",
        rf"\bP(?P<amount>{_AMOUNT})\b",
        130, 0.85, "P prefix (P500)",
    ),
    (
        "default_price_pesos_word", "price",
        rf"(?i)(?P<amount>{_AMOUNT})\s*pesos?\b",
        120, 0.8, "Amount followed by pesos",
    ),
    # Signup links
    (
        "default_url_shortener", "signup_url",
        r"(?i)(?P<url>(?:https?://)?(?:bit\.ly|tinyurl\.com|forms\.gle|lu\.ma|linktr\.ee|eventbrite\.com|tix\.ph|ticket2me\.net|smtickets\.com)/[^\s)>\]]+)",
        130, 0.9, "Registration and ticketing links",
    ),
    (
        "default_url_full", "signup_url",
        r"(?i)(?P<url>https?://[^\s)>\]]+)",
        110, 0.7, "Any full URL",
    ),
    # Venues
    (
        "default_venue_pin", "venue",
        r"(?m)📍\s*(?P<venue>[^\n,|]+?)\s*(?:[,|]\s*(?P<address>[^\n]+?))?\s*$",
        150, 0.9, "Pin emoji followed by venue and optional address",
    ),
    (
        "default_venue_label", "venue",
        r"(?im)\b(?:venue|location|where)\s*[:\-]\s*(?P<venue>[^\n,|]+?)\s*(?:[,|]\s*(?P<address>[^\n]+?))?\s*$",
        140, 0.85, "Labelled venue line (Venue: ..., Where: ...)",
    ),
    (
        "default_venue_at_name", "venue",
        r"(?i:\bat)\s+(?P<venue>(?:The\s+)?[A-Z][\w'&.-]*(?:\s+(?:[A-Z][\w'&.-]*|of|de|&))*(?<=[\w']))",
        100, 0.7, "Capitalized name after 'at' (at The Victor)",
    ),
    # Vendor rules
    (
        "default_vendor_accepting_orders", "vendor",
        r"(?i)\bnow\s+accepting\s+(?:pre-?)?orders\b",
        100, 0.8, "Order-taking announcements",
    ),
    (
        "default_vendor_checkout_marketplace", "vendor",
        r"(?i)\bcheck\s*out\s+(?:via|on|at|thru)\s+(?:shopee|lazada|tiktok\s+shop)\b",
        100, 0.8, "Marketplace checkout links",
    ),
]


def default_patterns() -> list[Pattern]:
    """Built-in seed patterns, used when the repository has none."""
    return [
        Pattern(
            pattern_id=pattern_id,
            pattern_type=pattern_type,
            pattern_regex=regex,
            priority=priority,
            confidence_score=confidence,
            description=description,
            source="default",
        )
        for pattern_id, pattern_type, regex, priority, confidence, description in _DEFAULT_PATTERN_SPECS
    ]


@dataclass
class FieldMatch:
    """Interpreted value of one field family plus the pattern that produced it."""

    pattern_id: str
    values: dict[str, Any] = field(default_factory=dict)


def _group(match: re.Match[str], name: str) -> str | None:
    """Named group value, or None when the pattern lacks the group."""
    try:
        value = match.group(name)
    except IndexError:
        return None
    return value.strip() if value else None


def _clean_phrase(value: str | None) -> str | None:
    if not value:
        return None
    cleaned = re.sub(r"\s+", " ", value).strip(" \t-:|")
    cleaned = cleaned.rstrip(".!?;")
    return cleaned or None


def _to_amount(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return float(value.replace(",", ""))
    except ValueError:
        return None


def needs_ai_extraction(result: ExtractionResult, messy_length: int = 100) -> bool:
    """
    Whether the regex result should be sent to the AI fallback.

    True when date, time or venue is missing, or the venue or title is
    longer than ``messy_length`` characters.
    """
    if not result.event_date or not result.event_time or not result.venue_name:
        return True
    if len(result.venue_name) > messy_length:
        return True
    return bool(result.title and len(result.title) > messy_length)


def fallback_title(category: str | None, venue_name: str | None) -> str | None:
    """Build "{Category} at {Venue}" when no title is available."""
    if not category and not venue_name:
        return None
    label = category.replace("_", " ").capitalize() if category else "Event"
    if venue_name:
        return f"{label} at {venue_name}"
    return label


class PatternExtractor:
    """
    Extracts event fields from a caption with a PatternStore.

    Deterministic and side-effect free: identical caption, pattern set
    and reference date always give an identical ExtractionResult.

    Args:
        store: Pattern store to match against.
        config: Extraction configuration.
        normalizer: Date normalizer carrying the reference date.
    """

    def __init__(
        self,
        store: PatternStore,
        config: ExtractionConfig | None = None,
        normalizer: DateNormalizer | None = None,
    ) -> None:
        self._store = store
        self._config = config or ExtractionConfig()
        self._dates = normalizer or DateNormalizer()

    @property
    def store(self) -> PatternStore:
        return self._store

    @property
    def normalizer(self) -> DateNormalizer:
        return self._dates

    @property
    def config(self) -> ExtractionConfig:
        return self._config

    def extract(self, caption: str | None, location_hint: str | None = None) -> ExtractionResult:
        """
        Run pre-filtering and pattern extraction over one caption.

        Hard rejects (vendor, recurring schedule, excluded content, no
        event signals) return a result with ``is_event=False``, no
        review flag and a ``reject_reason``.
        """
        text = pre_normalize_text(caption)
        if not text:
            return ExtractionResult.rejected(REJECT_NO_SIGNALS)

        if is_vendor_post_strict(text):
            return ExtractionResult.rejected(REJECT_VENDOR)
        vendor = self._match_vendor(text)
        if vendor is not None:
            return ExtractionResult.rejected(REJECT_VENDOR).evolve(
                pattern_ids={"vendor": vendor.pattern_id}
            )
        if is_recurring_schedule_post(text):
            return ExtractionResult.rejected(REJECT_RECURRING)

        if matches_exclusion(text):
            # Anniversaries with a concrete date and place are still events
            if not mentions_anniversary(text):
                return ExtractionResult.rejected(REJECT_EXCLUDED)
            date_match = self.match_dates(text)
            venue_match = self.match_venue(text)
            if date_match is None or (venue_match is None and not location_hint):
                return ExtractionResult.rejected(REJECT_EXCLUDED)

        keyword = has_event_keyword(text)
        temporal = has_temporal_event_indicators(text)
        if not keyword and not temporal:
            return ExtractionResult.rejected(REJECT_NO_SIGNALS)

        return self._extract_fields(text, location_hint, keyword, temporal)

    def _extract_fields(
        self,
        text: str,
        location_hint: str | None,
        keyword: bool,
        temporal: bool,
    ) -> ExtractionResult:
        pattern_ids: dict[str, str] = {}
        values: dict[str, Any] = {}

        for name, matcher in (
            ("date", self.match_dates),
            ("time", self.match_times),
            ("venue", self.match_venue),
            ("price", self.match_price),
            ("signup_url", self.match_signup_url),
        ):
            found = matcher(text)
            if found is not None:
                pattern_ids[name] = found.pattern_id
                values.update(found.values)

        if not values.get("venue_name") and location_hint and location_hint.strip():
            values["venue_name"] = location_hint.strip()

        has_minimum = bool(values.get("venue_name") or values.get("event_date"))
        maybe_vendor = is_possibly_vendor_post(text)
        looks_like_event = (keyword or temporal) and has_minimum

        if looks_like_event:
            is_event, needs_review = True, maybe_vendor
        elif temporal:
            is_event, needs_review = True, True
        else:
            is_event, needs_review = False, False

        lines = [line.strip() for line in text.split("\n") if line.strip()]
        title = lines[0][: self._config.title_max_length] if lines else None
        category = infer_category(text)
        if not title:
            title = fallback_title(category, values.get("venue_name"))

        return ExtractionResult(
            title=title,
            event_date=values.get("event_date"),
            event_end_date=values.get("event_end_date"),
            event_time=values.get("event_time"),
            end_time=values.get("end_time"),
            venue_name=values.get("venue_name"),
            venue_address=values.get("venue_address"),
            price=values.get("price"),
            price_min=values.get("price_min"),
            price_max=values.get("price_max"),
            is_free=values.get("is_free"),
            signup_url=values.get("signup_url"),
            category=category,
            is_event=is_event,
            needs_review=needs_review,
            confidence=self._confidence(values),
            extraction_method="regex",
            event_status=detect_event_status(text),
            availability_status=detect_availability(text),
            location_status=detect_location_status(text, bool(values.get("venue_name"))),
            pattern_ids=pattern_ids,
        )

    def _confidence(self, values: dict[str, Any]) -> float:
        score = self._config.base_confidence
        if values.get("event_date"):
            score += 0.15
        if values.get("event_time"):
            score += 0.1
        if values.get("venue_name"):
            score += 0.15
        if values.get("price") is not None or values.get("is_free") is not None:
            score += 0.05
        if values.get("signup_url"):
            score += 0.05
        return round(min(score, 0.95), 2)

    # Field matchers. Each returns the first interpretable match in pattern order.

    def _first(self, pattern_type: str, text: str, interpret: Any) -> FieldMatch | None:
        for pattern, regex in self._store.active(pattern_type):
            for match in regex.finditer(text):
                values = interpret(match)
                if values:
                    return FieldMatch(pattern_id=pattern.pattern_id, values=values)
        return None

    def match_dates(self, text: str) -> FieldMatch | None:
        return self._first("date", text, self._interpret_date)

    def match_times(self, text: str) -> FieldMatch | None:
        return self._first("time", text, self._interpret_time)

    def match_venue(self, text: str) -> FieldMatch | None:
        return self._first("venue", text, self._interpret_venue)

    def match_price(self, text: str) -> FieldMatch | None:
        return self._first("price", text, self._interpret_price)

    def match_signup_url(self, text: str) -> FieldMatch | None:
        return self._first("signup_url", text, self._interpret_url)

    def _match_vendor(self, text: str) -> Pattern | None:
        for pattern, regex in self._store.active("vendor"):
            if regex.search(text):
                return pattern
        return None

    def _interpret_date(self, match: re.Match[str]) -> dict[str, Any]:
        relative = _group(match, "relative")
        if relative:
            resolved = self._dates.resolve_relative(relative)
            return {"event_date": resolved} if resolved else {}

        month_name = _group(match, "month")
        month = month_number(month_name) if month_name else None
        if month is None and _group(match, "month_num"):
            month = int(_group(match, "month_num"))  # type: ignore[arg-type]
        day = _group(match, "day")
        if month is None or day is None:
            parsed = self._dates.parse(match.group(0))
            return {"event_date": parsed} if parsed else {}

        year_text = _group(match, "year")
        year = int(year_text) if year_text else None
        start = self._dates.resolve_month_day(month, int(day), year)
        if start is None:
            return {}
        values: dict[str, Any] = {"event_date": start}

        end_day = _group(match, "end_day")
        if end_day:
            end_month_name = _group(match, "end_month")
            end_month = month_number(end_month_name) if end_month_name else month
            start_year = int(start[:4])
            end = self._dates.resolve_month_day(end_month or month, int(end_day), start_year)
            if end is not None and end < start:
                end = self._dates.resolve_month_day(end_month or month, int(end_day), start_year + 1)
            if end is not None and end != start:
                values["event_end_date"] = end
        return values

    def _interpret_time(self, match: re.Match[str]) -> dict[str, Any]:
        word = _group(match, "word")
        if word:
            parsed = parse_time_string(word)
            return {"event_time": parsed} if parsed else {}

        hour = _group(match, "hour")
        if hour is None:
            parsed = parse_time_string(match.group(0))
            return {"event_time": parsed} if parsed else {}

        meridiem = _group(match, "meridiem")
        end_meridiem = _group(match, "end_meridiem")
        start = to_24_hour(int(hour), int(_group(match, "minute") or 0), meridiem or end_meridiem)
        if start is None:
            return {}
        values: dict[str, Any] = {"event_time": start}

        end_hour = _group(match, "end_hour")
        if end_hour:
            end = to_24_hour(
                int(end_hour),
                int(_group(match, "end_minute") or 0),
                end_meridiem or meridiem,
            )
            if end is not None:
                values["end_time"] = end
        return values

    def _interpret_venue(self, match: re.Match[str]) -> dict[str, Any]:
        venue = _clean_phrase(_group(match, "venue") or match.group(0))
        if not venue:
            return {}
        values: dict[str, Any] = {"venue_name": venue}
        address = _clean_phrase(_group(match, "address"))
        if address:
            values["venue_address"] = address
        return values

    def _interpret_price(self, match: re.Match[str]) -> dict[str, Any]:
        if _group(match, "free"):
            return {"is_free": True, "price": None}
        amount = _to_amount(_group(match, "amount") or _group(match, "amount_suffix"))
        if amount is None:
            digits = re.search(r"\d[\d,]*(?:\.\d+)?", match.group(0))
            amount = _to_amount(digits.group(0)) if digits else None
        if amount is None:
            return {}
        values: dict[str, Any] = {"price": amount, "is_free": amount == 0}
        amount_max = _to_amount(_group(match, "amount_max"))
        if amount_max is not None and amount_max > amount:
            values["price_min"] = amount
            values["price_max"] = amount_max
        return values

    def _interpret_url(self, match: re.Match[str]) -> dict[str, Any]:
        url = (_group(match, "url") or match.group(0)).rstrip(".,!?;:'\"")
        if not url:
            return {}
        if not url.lower().startswith(("http://", "https://")):
            url = f"https://{url}"
        return {"signup_url": url}
