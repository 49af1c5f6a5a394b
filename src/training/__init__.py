"""
Pattern training from accepted AI results.

Compares the pattern extractor with accepted AI extractions, records
ground truth, adjusts pattern health counters (deactivating patterns
that keep losing) and proposes new patterns for human review.

Components:
- compare_results: field-by-field regex/AI comparison
- SuggestionBuilder: derives and verifies candidate regexes
- TrainingRepository: ground truth and suggestion persistence
- PatternTrainer: orchestrates one training pass and suggestion review
"""

from src.training.comparison import compare_results, normalize_field_value
from src.training.config import TrainingConfig
from src.training.repository import TrainingRepository
from src.training.schemas import (
    ComparisonReport,
    FieldComparison,
    GroundTruthRecord,
    PatternSuggestion,
    TrainingReport,
)
from src.training.suggestions import SuggestionBuilder
from src.training.trainer import PatternTrainer

__all__ = [
    "ComparisonReport",
    "FieldComparison",
    "GroundTruthRecord",
    "PatternSuggestion",
    "PatternTrainer",
    "SuggestionBuilder",
    "TrainingConfig",
    "TrainingReport",
    "TrainingRepository",
    "compare_results",
    "normalize_field_value",
]
