"""Field-level sanity rules, completeness scoring and duplicate comparison.

Validation never raises: implausible values are corrected or dropped and
each finding is reported as a named warning. Warnings feed the review
tier assigner.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta

from src.extraction.normalizer import parse_time_string
from src.extraction.schemas import VALID_CATEGORIES, ExtractionResult
from src.validation.config import ValidationConfig

logger = logging.getLogger(__name__)

# Warning names
WARN_INVALID_TIME = "invalid_time"
WARN_INVALID_END_TIME = "invalid_end_time"
WARN_END_BEFORE_START = "end_time_before_start"
WARN_UNUSUAL_START = "unusual_start_time"
WARN_NEGATIVE_PRICE = "negative_price"
WARN_IMPLAUSIBLE_PRICE = "implausible_price"
WARN_PRICE_RANGE_SWAPPED = "price_range_swapped"
WARN_FREE_WITH_PRICE = "free_with_price"
WARN_INVALID_DATE = "invalid_date"
WARN_DATE_IN_PAST = "date_in_past"
WARN_DATE_FAR_FUTURE = "date_far_future"
WARN_END_DATE_BEFORE_START = "end_date_before_start"
WARN_LONG_DATE_RANGE = "long_date_range"
WARN_INVALID_CATEGORY = "invalid_category"
WARN_CATEGORY_TIME_MISMATCH = "category_time_mismatch"
WARN_MESSY_VENUE = "messy_venue_name"

# Completeness weights, summing to 100
COMPLETENESS_WEIGHTS: dict[str, int] = {
    "title": 15,
    "date": 25,
    "time": 15,
    "venue": 20,
    "price": 10,
    "coordinates": 15,
}

# Daytime starts are implausible for nightlife
_NIGHTLIFE_EARLIEST_HOUR = 17
_NIGHTLIFE_LATEST_EARLY_HOUR = 6
# Past-midnight end times are treated as the next day up to this hour
_OVERNIGHT_END_HOUR = 6


@dataclass(frozen=True)
class ValidationResult:
    """Corrected data plus the warnings found while correcting it."""

    corrected: ExtractionResult
    warnings: list[str] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not self.warnings


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def _hour(value: str) -> int:
    return int(value.split(":", 1)[0])


def validate_extracted_data(
    result: ExtractionResult,
    today: date,
    config: ValidationConfig | None = None,
) -> ValidationResult:
    """
    Apply sanity rules to an extraction result.

    Rules cover time format and ordering, price sign and range, date
    plausibility relative to ``today``, category validity and
    category/time plausibility.

    Returns:
        ValidationResult with the corrected result and named warnings.
    """
    config = config or ValidationConfig()
    warnings: list[str] = []
    changes: dict[str, object] = {}

    # Times
    event_time = result.event_time
    if event_time is not None:
        parsed = parse_time_string(event_time)
        if parsed is None:
            warnings.append(WARN_INVALID_TIME)
            event_time = None
        else:
            event_time = parsed
        changes["event_time"] = event_time

    end_time = result.end_time
    if end_time is not None:
        parsed = parse_time_string(end_time)
        if parsed is None:
            warnings.append(WARN_INVALID_END_TIME)
            end_time = None
        elif event_time and parsed <= event_time and _hour(parsed) >= _OVERNIGHT_END_HOUR:
            warnings.append(WARN_END_BEFORE_START)
            end_time = None
        else:
            end_time = parsed
        changes["end_time"] = end_time

    if event_time and 2 <= _hour(event_time) < _NIGHTLIFE_LATEST_EARLY_HOUR:
        warnings.append(WARN_UNUSUAL_START)

    # Prices
    price, price_min, price_max = result.price, result.price_min, result.price_max
    if price is not None and price < 0:
        warnings.append(WARN_NEGATIVE_PRICE)
        price = None
    if price_min is not None and price_min < 0:
        price_min = None
    if price_max is not None and price_max < 0:
        price_max = None
    if price is not None and price > config.max_price:
        warnings.append(WARN_IMPLAUSIBLE_PRICE)
    if price_min is not None and price_max is not None and price_min > price_max:
        warnings.append(WARN_PRICE_RANGE_SWAPPED)
        price_min, price_max = price_max, price_min
    is_free = result.is_free
    if is_free and price is not None and price > 0:
        warnings.append(WARN_FREE_WITH_PRICE)
        is_free = False
    changes.update(price=price, price_min=price_min, price_max=price_max, is_free=is_free)

    # Dates
    event_date = result.event_date
    start = _parse_date(event_date)
    if event_date and start is None:
        warnings.append(WARN_INVALID_DATE)
        event_date = None
    elif start is not None:
        if start < today - timedelta(days=1):
            warnings.append(WARN_DATE_IN_PAST)
        elif start > today + timedelta(days=config.max_days_ahead):
            warnings.append(WARN_DATE_FAR_FUTURE)

    event_end_date = result.event_end_date
    end = _parse_date(event_end_date)
    if event_end_date and (end is None or start is None or end < start):
        warnings.append(WARN_END_DATE_BEFORE_START)
        event_end_date = None
    elif end is not None and start is not None and (end - start).days > config.max_range_days:
        warnings.append(WARN_LONG_DATE_RANGE)
    changes.update(event_date=event_date, event_end_date=event_end_date)

    # Category
    category = result.category
    if category is not None and category not in VALID_CATEGORIES:
        warnings.append(WARN_INVALID_CATEGORY)
        category = "other"
    if category == "nightlife" and event_time:
        hour = _hour(event_time)
        if _NIGHTLIFE_LATEST_EARLY_HOUR <= hour < _NIGHTLIFE_EARLIEST_HOUR:
            warnings.append(WARN_CATEGORY_TIME_MISMATCH)
    changes["category"] = category

    if result.venue_name and len(result.venue_name) > 100:
        warnings.append(WARN_MESSY_VENUE)

    if warnings:
        logger.debug(f"Validation warnings for {result.title!r}: {warnings}")
    return ValidationResult(corrected=result.evolve(**changes), warnings=warnings)


def completeness_score(result: ExtractionResult, has_coordinates: bool) -> int:
    """
    Weighted field coverage, 0-100.

    Title 15, date 25, time 15, venue 20, price (or free) 10, coordinates 15.
    """
    has_price = result.price is not None or result.is_free is not None or result.price_min is not None
    present = {
        "title": bool(result.title),
        "date": bool(result.event_date),
        "time": bool(result.event_time),
        "venue": bool(result.venue_name),
        "price": has_price,
        "coordinates": has_coordinates,
    }
    return sum(weight for name, weight in COMPLETENESS_WEIGHTS.items() if present[name])


@dataclass(frozen=True)
class DuplicateCheck:
    """Outcome of comparing an incoming record with an existing one."""

    is_duplicate: bool
    should_replace_existing: bool
    new_completeness: int
    existing_completeness: int
    similarity: float


def check_for_duplicate(
    new_completeness: int,
    existing_completeness: int,
    similarity: float,
    threshold: float = 0.3,
) -> DuplicateCheck:
    """
    Decide whether two same venue/date records are one event and which
    should be primary.

    The incoming record replaces the existing primary only when it is
    strictly more complete.
    """
    is_duplicate = similarity >= threshold
    return DuplicateCheck(
        is_duplicate=is_duplicate,
        should_replace_existing=is_duplicate and new_completeness > existing_completeness,
        new_completeness=new_completeness,
        existing_completeness=existing_completeness,
        similarity=similarity,
    )
