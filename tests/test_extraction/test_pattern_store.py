"""Tests for the in-memory pattern store."""

import pytest

from src.extraction.schemas import Pattern
from src.extraction.store import PatternCompileError, PatternStore, compile_pattern


def _pattern(pattern_id: str, priority: int = 100, confidence: float = 0.5, **kwargs) -> Pattern:
    return Pattern(
        pattern_id=pattern_id,
        pattern_type=kwargs.pop("pattern_type", "date"),
        pattern_regex=kwargs.pop("pattern_regex", r"\d+"),
        priority=priority,
        confidence_score=confidence,
        **kwargs,
    )


class TestPattern:
    """Validation on the Pattern dataclass."""

    def test_rejects_unknown_type(self):
        with pytest.raises(ValueError, match="pattern_type"):
            Pattern(pattern_type="colour", pattern_regex="x")

    def test_rejects_confidence_out_of_range(self):
        with pytest.raises(ValueError, match="confidence_score"):
            Pattern(pattern_type="date", pattern_regex="x", confidence_score=1.5)

    def test_success_rate(self):
        assert Pattern(pattern_type="date", pattern_regex="x").success_rate is None
        assert Pattern(pattern_type="date", pattern_regex="x", success_count=3, failure_count=1).success_rate == 0.75


class TestPatternStore:
    """Tests for PatternStore ordering and invalid handling."""

    def test_orders_by_priority_confidence_then_id(self):
        store = PatternStore([
            _pattern("c", priority=100, confidence=0.9),
            _pattern("b", priority=100, confidence=0.9),
            _pattern("a", priority=100, confidence=0.4),
            _pattern("z", priority=200, confidence=0.1),
        ])

        assert [p.pattern_id for p, _ in store.active("date")] == ["z", "b", "c", "a"]

    def test_filters_by_type_and_activity(self):
        store = PatternStore([
            _pattern("d1"),
            _pattern("t1", pattern_type="time"),
            _pattern("d2", is_active=False),
        ])

        assert [p.pattern_id for p, _ in store.active("date")] == ["d1"]
        assert [p.pattern_id for p, _ in store.active("time")] == ["t1"]

    def test_invalid_regex_is_flagged_not_removed(self):
        broken = _pattern("broken", pattern_regex="(unclosed", priority=500)
        store = PatternStore([broken, _pattern("ok")])

        assert [p.pattern_id for p, _ in store.active("date")] == ["ok"]
        assert broken.is_valid is False
        assert store.get("broken") is broken
        assert len(store) == 2

    def test_drain_invalid_returns_each_id_once(self):
        store = PatternStore([_pattern("broken", pattern_regex="[")])
        store.active("date")
        store.active("date")

        assert store.drain_invalid() == ["broken"]
        assert store.drain_invalid() == []

    def test_add_replaces_by_id_and_recompiles(self):
        store = PatternStore([_pattern("p", pattern_regex=r"\d+")])
        store.active("date")
        store.add(_pattern("p", pattern_regex=r"[a-z]+"))

        (_, regex), = store.active("date")
        assert regex.pattern == r"[a-z]+"

    def test_has_regex(self):
        store = PatternStore([_pattern("p", pattern_regex=r"\d+"), _pattern("q", pattern_regex="x", is_active=False)])

        assert store.has_regex("date", r"\d+")
        assert not store.has_regex("time", r"\d+")
        assert not store.has_regex("date", "x")

    def test_compile_pattern_raises(self):
        with pytest.raises(PatternCompileError) as exc_info:
            compile_pattern(_pattern("bad", pattern_regex="(?P<x"))
        assert exc_info.value.pattern_id == "bad"
