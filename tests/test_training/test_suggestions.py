"""Tests for pattern suggestion generation."""

import re
from datetime import date

import pytest

from src.extraction.normalizer import DateNormalizer
from src.extraction.patterns import default_patterns
from src.extraction.schemas import Pattern
from src.extraction.store import PatternStore
from src.training.suggestions import (
    SuggestionBuilder,
    generalize_date_span,
    generalize_price_span,
    generalize_time_span,
    url_shape,
    venue_shape,
)

DOTTED_CAPTION = "Album launch on 22.03.2025 at Route 196"


@pytest.fixture
def builder() -> SuggestionBuilder:
    return SuggestionBuilder(normalizer=DateNormalizer(reference_date=date(2025, 3, 10)))


class TestGeneralizers:
    """Tests for span generalization."""

    def test_dotted_date(self):
        regex = generalize_date_span("22.03.2025", "2025-03-22")

        match = re.search(regex, "Gig on 05.04.2026!")
        assert match.group("day") == "05"
        assert match.group("month_num") == "04"
        assert match.group("year") == "2026"

    def test_date_span_with_wrong_month(self):
        assert generalize_date_span("March 22", "2025-04-22") is None

    def test_date_span_needs_day_and_month(self):
        assert generalize_date_span("2025", "2025-03-22") is None

    def test_time_span(self):
        regex = generalize_time_span("8 pm")

        match = re.search(regex, "doors 9 PM")
        assert match.group("hour") == "9"
        assert match.group("meridiem") == "PM"

    def test_bare_number_is_not_a_time(self):
        assert generalize_time_span("8") is None

    def test_price_span(self):
        regex = generalize_price_span("Rate: 350")
        assert re.search(regex, "rate: 1,200").group("amount") == "1,200"

    def test_bare_amount_is_not_a_price(self):
        assert generalize_price_span("350") is None

    def test_venue_shape_uses_line_prefix(self):
        shape = venue_shape("Catch us live\nhosted by Route 196, Katipunan", "Route 196")

        regex, sample = shape
        assert sample == "hosted by Route 196"
        assert re.search(regex, "Hosted by The Victor").group("venue") == "The Victor"

    def test_venue_at_line_start_is_skipped(self):
        assert venue_shape("Route 196 tonight", "Route 196") is None

    def test_url_shape(self):
        regex, sample = url_shape(
            "Tickets: https://www.ticketnet.ph/gig/123 now", "https://ticketnet.ph/gig/123"
        )

        assert sample == "https://www.ticketnet.ph/gig/123"
        assert re.search(regex, "ticketnet.ph/other/9").group("url") == "ticketnet.ph/other/9"


class TestSuggestionBuilder:
    """Tests for SuggestionBuilder.build."""

    def test_builds_verified_date_suggestion(self, builder):
        store = PatternStore(default_patterns())

        suggestion = builder.build("date", DOTTED_CAPTION, "2025-03-22", store, post_id="3301")

        assert suggestion is not None
        assert suggestion.pattern_type == "date"
        assert suggestion.sample_text == "22.03.2025"
        assert suggestion.correct_value == "2025-03-22"
        assert suggestion.post_id == "3301"
        assert suggestion.status == "pending"

    def test_existing_regex_is_not_suggested_again(self, builder):
        store = PatternStore(default_patterns())
        first = builder.build("date", DOTTED_CAPTION, "2025-03-22", store)
        store.add(Pattern(pattern_type="date", pattern_regex=first.suggested_regex, source="ai_learned"))

        assert builder.build("date", DOTTED_CAPTION, "2025-03-22", store) is None

    def test_value_not_in_caption(self, builder):
        store = PatternStore(default_patterns())
        assert builder.build("date", DOTTED_CAPTION, "2025-07-01", store) is None

    def test_unknown_type_or_missing_value(self, builder):
        store = PatternStore(default_patterns())

        assert builder.build("vendor", DOTTED_CAPTION, "x", store) is None
        assert builder.build("date", DOTTED_CAPTION, None, store) is None

    def test_sample_is_truncated(self):
        builder = SuggestionBuilder(
            normalizer=DateNormalizer(reference_date=date(2025, 3, 10)),
            max_sample_length=5,
        )

        suggestion = builder.build("date", DOTTED_CAPTION, "2025-03-22", PatternStore(default_patterns()))

        assert suggestion.sample_text == "22.03"
