"""Tests for pattern-based caption extraction."""

from datetime import date

import pytest

from src.extraction.normalizer import DateNormalizer
from src.extraction.patterns import (
    PatternExtractor,
    default_patterns,
    fallback_title,
    needs_ai_extraction,
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

JAZZ_CAPTION = "Join us this Friday, Dec 5 at 7PM at The Victor for Live Jazz! Free entry."


@pytest.fixture
def december_extractor() -> PatternExtractor:
    """Extractor whose 'today' is Monday 2025-12-01."""
    return PatternExtractor(
        PatternStore(default_patterns()),
        normalizer=DateNormalizer(reference_date=date(2025, 12, 1)),
    )


class TestDefaultPatterns:
    """Sanity checks on the built-in pattern set."""

    def test_ids_are_unique_and_regexes_compile(self):
        patterns = default_patterns()
        store = PatternStore(patterns)

        assert len({p.pattern_id for p in patterns}) == len(patterns)
        for pattern_type in ("date", "time", "venue", "price", "signup_url", "vendor"):
            store.active(pattern_type)
        assert store.drain_invalid() == []


class TestPatternExtractor:
    """Tests for PatternExtractor.extract."""

    def test_complete_caption_needs_no_ai(self, december_extractor):
        result = december_extractor.extract(JAZZ_CAPTION)

        assert result.is_event
        assert not result.needs_review
        assert result.event_date == "2025-12-05"
        assert result.event_time == "19:00"
        assert result.venue_name == "The Victor"
        assert result.is_free is True
        assert result.price is None
        assert result.category == "music"
        assert result.extraction_method == "regex"
        assert result.pattern_ids["date"] == "default_date_month_first"
        assert result.pattern_ids["price"] == "default_price_free"
        assert not needs_ai_extraction(result)

    def test_extraction_is_deterministic(self, december_extractor):
        assert december_extractor.extract(JAZZ_CAPTION) == december_extractor.extract(JAZZ_CAPTION)

    def test_full_post(self, extractor, sample_post):
        result = extractor.extract(sample_post.caption, sample_post.location_hint)

        assert result.title == "Sunset Sessions Vol. 3"
        assert result.event_date == "2025-03-15"
        assert result.event_time == "20:00"
        assert result.venue_name == "The Victor"
        assert result.venue_address == "Bridgetowne"
        assert result.price == 500.0
        assert result.is_free is False
        assert result.signup_url == "https://bit.ly/sunset3"
        assert result.location_status == "confirmed"
        assert result.confidence == 0.95

    def test_date_and_time_ranges(self, extractor):
        result = extractor.extract("Holiday Bazaar Dec 5-7, 10am - 6pm at Greenfield District")

        assert result.event_date == "2025-12-05"
        assert result.event_end_date == "2025-12-07"
        assert result.event_time == "10:00"
        assert result.end_time == "18:00"
        assert result.venue_name == "Greenfield District"
        assert result.category == "markets"

    def test_shared_meridiem_range(self, extractor):
        result = extractor.extract("DJ set on March 20, 9-11PM. Venue: Poblacion Social Club")

        assert result.event_time == "21:00"
        assert result.end_time == "23:00"
        assert result.venue_name == "Poblacion Social Club"

    def test_price_range(self, extractor):
        result = extractor.extract("Gig on March 22 at Route 196. Tickets ₱300-500")

        assert result.price == 300.0
        assert result.price_min == 300.0
        assert result.price_max == 500.0

    def test_location_hint_fills_missing_venue(self, extractor):
        result = extractor.extract("Gig on March 22, 8PM! See you", location_hint="  Route 196  ")

        assert result.venue_name == "Route 196"
        assert "venue" not in result.pattern_ids

    def test_missing_venue_needs_ai(self, extractor):
        result = extractor.extract("Party on March 22, 9PM")

        assert result.is_event
        assert result.venue_name is None
        assert result.location_status == "tba"
        assert needs_ai_extraction(result)

    def test_soft_vendor_signal_routes_to_review(self, extractor):
        result = extractor.extract("Launch party March 22 at The Victor! 20% off all merch")

        assert result.is_event
        assert result.needs_review

    def test_date_range_with_expo_wording_is_event(self, extractor):
        result = extractor.extract("Design Expo Dec 5-7")

        assert result.is_event
        assert result.reject_reason is None
        assert result.event_date == "2025-12-05"
        assert result.event_end_date == "2025-12-07"

    def test_manual_pattern_outranks_defaults(self, extractor):
        extractor.store.add(
            Pattern(
                pattern_id="manual_venue_hashtag",
                pattern_type="venue",
                pattern_regex=r"#at(?P<venue>[A-Za-z]+)",
                priority=999,
                source="manual",
            )
        )

        result = extractor.extract("Gig on March 22 at The Victor #atRoute196")

        assert result.venue_name == "Route"
        assert result.pattern_ids["venue"] == "manual_venue_hashtag"


class TestHardRejects:
    """Captions the pre-filter rejects before field extraction."""

    def test_vendor_post(self, extractor, vendor_post):
        result = extractor.extract(vendor_post.caption)

        assert result.reject_reason == REJECT_VENDOR
        assert result.is_event is False
        assert result.needs_review is False

    def test_vendor_pattern_records_its_id(self, extractor):
        result = extractor.extract("Now accepting pre-orders for our March 22 drop!")

        assert result.reject_reason == REJECT_VENDOR
        assert result.pattern_ids == {"vendor": "default_vendor_accepting_orders"}

    def test_recurring_schedule(self, extractor):
        result = extractor.extract("We're open daily from 10AM to 9PM. Come by!")
        assert result.reject_reason == REJECT_RECURRING

    def test_excluded_content(self, extractor):
        result = extractor.extract("Happy birthday to our founder! Thank you for everything.")
        assert result.reject_reason == REJECT_EXCLUDED

    def test_anniversary_with_date_and_venue_is_kept(self, extractor):
        result = extractor.extract("Thank you for 5 years! Join our anniversary party on March 22 at The Victor.")

        assert result.reject_reason is None
        assert result.event_date == "2025-03-22"
        assert result.venue_name == "The Victor"

    def test_anniversary_without_details_is_excluded(self, extractor):
        result = extractor.extract("Thank you for 5 amazing years! Happy anniversary to us.")
        assert result.reject_reason == REJECT_EXCLUDED

    @pytest.mark.parametrize("caption", [None, "", "Loving this weather lately"])
    def test_no_event_signals(self, extractor, caption):
        result = extractor.extract(caption)
        assert result.reject_reason == REJECT_NO_SIGNALS


class TestHelpers:
    """Tests for needs_ai_extraction and fallback_title."""

    def test_messy_venue_needs_ai(self):
        result = ExtractionResult(
            title="Gig", event_date="2025-03-22", event_time="20:00", venue_name="V" * 101
        )
        assert needs_ai_extraction(result)
        assert not needs_ai_extraction(result, messy_length=200)

    def test_long_title_needs_ai(self):
        result = ExtractionResult(
            title="T" * 150, event_date="2025-03-22", event_time="20:00", venue_name="The Victor"
        )
        assert needs_ai_extraction(result)

    def test_fallback_title(self):
        assert fallback_title("art_culture", "The Victor") == "Art culture at The Victor"
        assert fallback_title(None, "The Victor") == "Event at The Victor"
        assert fallback_title("markets", None) == "Markets"
        assert fallback_title(None, None) is None
