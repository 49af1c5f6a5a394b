"""
Caption extraction for event posts.

Normalizes caption text, hard-rejects vendor and recurring-schedule
posts, extracts event fields with a prioritized and mutable regex
pattern store, and falls back to an AI collaborator when the pattern
result is incomplete or messy.

Components:
- DateNormalizer / pre_normalize_text: text, date and time normalization
- PatternStore / PatternExtractor: ordered pattern matching per field
- PatternRepository: persistence and atomic health counters
- AIExtractionClient / AIFallbackExtractor: AI collaborator and merge policy
"""

from src.extraction.ai_client import AIExtractionClient, AIExtractionError, AIExtractionRequest
from src.extraction.config import ExtractionConfig
from src.extraction.fallback import (
    AIFallbackExtractor,
    FallbackOutcome,
    merge_ai_result,
    should_extract_from_image,
)
from src.extraction.normalizer import DateNormalizer, parse_time_string, pre_normalize_text
from src.extraction.patterns import PatternExtractor, default_patterns, needs_ai_extraction
from src.extraction.prefilter import historical_reject_reason, is_event_in_past
from src.extraction.repository import PatternRepository
from src.extraction.schemas import AIExtraction, ExtractionResult, FieldConflict, Pattern
from src.extraction.store import PatternCompileError, PatternStore

__all__ = [
    "AIExtraction",
    "AIExtractionClient",
    "AIExtractionError",
    "AIExtractionRequest",
    "AIFallbackExtractor",
    "DateNormalizer",
    "ExtractionConfig",
    "ExtractionResult",
    "FallbackOutcome",
    "FieldConflict",
    "Pattern",
    "PatternCompileError",
    "PatternExtractor",
    "PatternRepository",
    "PatternStore",
    "default_patterns",
    "historical_reject_reason",
    "is_event_in_past",
    "merge_ai_result",
    "needs_ai_extraction",
    "parse_time_string",
    "pre_normalize_text",
    "should_extract_from_image",
]
