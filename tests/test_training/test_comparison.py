"""Tests for regex/AI result comparison."""

import pytest

from src.extraction.schemas import ExtractionResult, FieldConflict
from src.training.comparison import compare_results, normalize_field_value


class TestNormalizeFieldValue:
    """Tests for normalize_field_value."""

    @pytest.mark.parametrize(
        "field_name,value,expected",
        [
            ("event_time", "8:00 PM", "20:00"),
            ("venue_name", "The Victor!", "victor"),
            ("price", "500", 500.0),
            ("price", "free", None),
            ("signup_url", "HTTPS://www.Bit.ly/x/", "bit.ly/x"),
            ("event_date", " 2025-03-15 ", "2025-03-15"),
            ("event_date", "", None),
            ("venue_name", None, None),
        ],
    )
    def test_values(self, field_name, value, expected):
        assert normalize_field_value(field_name, value) == expected


class TestCompareResults:
    """Tests for compare_results."""

    def test_sources_and_pattern_scoring(self):
        regex = ExtractionResult(
            event_date="2025-03-15",
            event_time="20:00",
            venue_name="The Victor",
            price=500.0,
            pattern_ids={"date": "d1", "time": "t1", "venue": "v1", "price": "p1"},
        )
        ai = ExtractionResult(
            event_date="2025-03-15",
            event_time="8:00 PM",
            venue_name="the victor",
            price=450.0,
            signup_url="https://bit.ly/x",
            extraction_method="ai",
        )

        report = compare_results(regex, ai)

        assert report.sources == {
            "event_date": "both",
            "event_time": "both",
            "venue_name": "both",
            "price": "ai",
            "signup_url": "ai",
        }
        assert report.agreeing_pattern_ids == ["d1", "t1", "v1"]
        assert report.contradicted_pattern_ids == ["p1"]
        assert report.conflicts == (FieldConflict("price", 500.0, 450.0),)

        url = next(f for f in report.fields if f.field_name == "signup_url")
        assert url.regex_missed
        assert url.pattern_id is None

    def test_regex_only_field(self):
        regex = ExtractionResult(venue_name="Route 196", pattern_ids={"venue": "v1"})

        report = compare_results(regex, ExtractionResult())

        assert report.sources == {"venue_name": "regex"}
        assert report.conflicts == ()
        assert report.agreeing_pattern_ids == []

    def test_fields_neither_found_are_left_out(self):
        assert compare_results(ExtractionResult(), ExtractionResult()).fields == ()
