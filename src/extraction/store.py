"""In-memory pattern store used by the pattern extractor.

Holds the active pattern set for one run, orders it for matching and
caches compiled regexes. A pattern whose regex fails to compile is
flagged invalid and excluded from matching; it is never removed.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from src.extraction.schemas import Pattern

logger = logging.getLogger(__name__)


class PatternCompileError(Exception):
    """Raised when a pattern's regex cannot be compiled."""

    def __init__(self, pattern_id: str, message: str):
        super().__init__(f"Pattern {pattern_id} failed to compile: {message}")
        self.pattern_id = pattern_id


def compile_pattern(pattern: Pattern) -> re.Pattern[str]:
    """
    Compile a pattern's regex.

    Raises:
        PatternCompileError: If the regex is invalid.
    """
    try:
        return re.compile(pattern.pattern_regex)
    except re.error as e:
        raise PatternCompileError(pattern.pattern_id, str(e)) from e


class PatternStore:
    """
    Ordered, mutable collection of extraction patterns.

    Matching order within a type is descending priority, then descending
    confidence, then pattern id so equal-ranked patterns always run in
    the same order.

    Args:
        patterns: Initial patterns, typically loaded from the repository
            at run start.
    """

    def __init__(self, patterns: Iterable[Pattern] = ()) -> None:
        self._patterns: dict[str, Pattern] = {}
        self._compiled: dict[str, re.Pattern[str]] = {}
        self._newly_invalid: list[str] = []
        for pattern in patterns:
            self.add(pattern)

    def __len__(self) -> int:
        return len(self._patterns)

    def add(self, pattern: Pattern) -> None:
        """Insert or replace a pattern by id."""
        self._patterns[pattern.pattern_id] = pattern
        self._compiled.pop(pattern.pattern_id, None)

    def get(self, pattern_id: str) -> Pattern | None:
        return self._patterns.get(pattern_id)

    def all(self) -> list[Pattern]:
        return sorted(self._patterns.values(), key=lambda p: p.pattern_id)

    def has_regex(self, pattern_type: str, pattern_regex: str) -> bool:
        """Whether an active, valid pattern with this exact regex exists."""
        return any(
            p.pattern_type == pattern_type
            and p.pattern_regex == pattern_regex
            and p.is_active
            and p.is_valid
            for p in self._patterns.values()
        )

    def active(self, pattern_type: str) -> list[tuple[Pattern, re.Pattern[str]]]:
        """
        Active, valid patterns of one type with their compiled regexes,
        in matching order.

        Patterns that fail to compile are flagged invalid here and left
        out of the result.
        """
        candidates = [
            p
            for p in self._patterns.values()
            if p.pattern_type == pattern_type and p.is_active and p.is_valid
        ]
        candidates.sort(key=lambda p: (-p.priority, -p.confidence_score, p.pattern_id))

        ordered: list[tuple[Pattern, re.Pattern[str]]] = []
        for pattern in candidates:
            compiled = self._compiled.get(pattern.pattern_id)
            if compiled is None:
                try:
                    compiled = compile_pattern(pattern)
                except PatternCompileError as e:
                    logger.warning(str(e))
                    pattern.is_valid = False
                    self._newly_invalid.append(pattern.pattern_id)
                    continue
                self._compiled[pattern.pattern_id] = compiled
            ordered.append((pattern, compiled))
        return ordered

    def drain_invalid(self) -> list[str]:
        """Ids flagged invalid since the last call, for persisting the flag."""
        drained, self._newly_invalid = self._newly_invalid, []
        return drained
