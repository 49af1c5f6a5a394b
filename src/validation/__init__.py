"""
Validation and review tiering for extracted events.

Components:
- validate_extracted_data: field sanity rules producing named warnings
- completeness_score / check_for_duplicate: record richness comparison
- assign_review_tier / urgency_score: deterministic tier and queue order
"""

from src.validation.config import ValidationConfig
from src.validation.tiers import REVIEW_TIERS, TierAssignment, assign_review_tier, urgency_score
from src.validation.validator import (
    DuplicateCheck,
    ValidationResult,
    check_for_duplicate,
    completeness_score,
    validate_extracted_data,
)

__all__ = [
    "REVIEW_TIERS",
    "DuplicateCheck",
    "TierAssignment",
    "ValidationConfig",
    "ValidationResult",
    "assign_review_tier",
    "check_for_duplicate",
    "completeness_score",
    "urgency_score",
    "validate_extracted_data",
]
