"""Pattern trainer.

After an AI result is accepted with high enough confidence, the pattern
extractor is re-run over the same caption purely for comparison. Its
output is never stored as the post's data; it only scores the patterns:

- fields where both agree: success for the pattern that matched
- fields where they disagree: failure (and possible deactivation)
- fields the AI found and the patterns missed or got wrong: a pattern
  suggestion, when a verifiable regex can be derived
"""

import logging

from src.extraction.patterns import PatternExtractor
from src.extraction.repository import PatternRepository
from src.extraction.schemas import COMPARED_FIELDS, FIELD_PATTERN_TYPES, ExtractionResult, Pattern
from src.extraction.store import compile_pattern
from src.ingestion.schemas import RawPostRecord
from src.observability.metrics import get_metrics
from src.training.comparison import compare_results
from src.training.config import TrainingConfig
from src.training.repository import TrainingRepository
from src.training.schemas import GroundTruthRecord, TrainingReport
from src.training.suggestions import SuggestionBuilder

logger = logging.getLogger(__name__)

AI_METHODS = frozenset({"ai", "ai_corrected", "ocr_ai"})


def ai_supplied_fields(final_result: ExtractionResult) -> ExtractionResult:
    """
    The accepted result reduced to the compared fields the AI itself returned.

    Merged results carry regex values wherever the AI answer had none;
    those fields must not count as agreement.
    """
    ai = final_result.ai_reference
    if ai is None:
        return final_result
    missing = {
        name: None
        for name in COMPARED_FIELDS
        if getattr(ai, name, None) is None or getattr(ai, name, None) == ""
    }
    return final_result.evolve(**missing) if missing else final_result


class PatternTrainer:
    """
    Feeds accepted AI results back into pattern health and suggestions.

    Args:
        pattern_repository: Pattern persistence with atomic counters.
        training_repository: Ground truth and suggestion persistence.
        extractor: Pattern extractor used for the comparison re-run; its
            store receives patterns created from approved suggestions.
        config: Training configuration.
        min_ai_confidence: Accepted AI results below this are not used.
    """

    def __init__(
        self,
        pattern_repository: PatternRepository,
        training_repository: TrainingRepository,
        extractor: PatternExtractor,
        config: TrainingConfig | None = None,
        min_ai_confidence: float = 0.7,
    ) -> None:
        self._patterns = pattern_repository
        self._training = training_repository
        self._extractor = extractor
        self._config = config or TrainingConfig()
        self._min_ai_confidence = min_ai_confidence
        self._builder = SuggestionBuilder(
            normalizer=extractor.normalizer,
            config=extractor.config,
            max_sample_length=self._config.max_sample_length,
        )

    def should_train(self, final_result: ExtractionResult) -> str | None:
        """Reason to skip training for this result, or None to train."""
        if not self._config.enabled:
            return "disabled"
        if final_result.extraction_method not in AI_METHODS:
            return "not_ai"
        if final_result.confidence < self._min_ai_confidence:
            return "low_confidence"
        return None

    async def train(self, post: RawPostRecord, final_result: ExtractionResult) -> TrainingReport:
        """
        Compare, persist ground truth and update pattern counters.

        Args:
            post: The post the result was extracted from.
            final_result: The accepted (AI-primary) result.
        """
        skip = self.should_train(final_result)
        if skip is not None:
            return TrainingReport(post_id=post.post_id, skipped_reason=skip)

        regex_result = self._extractor.extract(post.caption, post.location_hint)
        report = compare_results(regex_result, ai_supplied_fields(final_result))

        ai_payload = (
            final_result.ai_reference.model_dump(mode="json")
            if final_result.ai_reference is not None
            else {}
        )
        await self._training.save_ground_truth(
            GroundTruthRecord(
                post_id=post.post_id,
                caption=post.caption,
                regex_result=regex_result.to_dict(),
                ai_result=ai_payload,
                final_result=final_result.to_dict(),
                sources=report.sources,
                conflicts=[c.to_dict() for c in report.conflicts],
                ai_confidence=final_result.confidence,
            )
        )

        successes = report.agreeing_pattern_ids
        failures = report.contradicted_pattern_ids
        await self._patterns.increment_success(successes)
        deactivated = await self._patterns.increment_failure(
            failures,
            min_samples=self._config.min_samples,
            min_success_rate=self._config.min_success_rate,
        )

        suggestion_ids: list[str] = []
        if self._config.suggestions_enabled:
            for comparison in report.fields:
                if comparison.source != "ai":
                    continue
                suggestion = self._builder.build(
                    FIELD_PATTERN_TYPES[comparison.field_name],
                    post.caption,
                    comparison.ai_value,
                    self._extractor.store,
                    post_id=post.post_id,
                )
                if suggestion is None:
                    continue
                saved = await self._training.upsert_suggestion(suggestion)
                suggestion_ids.append(saved.suggestion_id)

        metrics = get_metrics()
        metrics.record_pattern_training("success", len(successes))
        metrics.record_pattern_training("failure", len(failures))
        metrics.record_pattern_training("deactivated", len(deactivated))
        metrics.record_pattern_training("suggestion", len(suggestion_ids))

        logger.info(
            f"Trained on {post.post_id}: {len(successes)} agreements, "
            f"{len(failures)} conflicts, {len(suggestion_ids)} suggestions"
        )
        return TrainingReport(
            post_id=post.post_id,
            trained=True,
            sources=report.sources,
            conflicts=report.conflicts,
            successes=tuple(successes),
            failures=tuple(failures),
            deactivated=tuple(deactivated),
            suggestions=tuple(suggestion_ids),
        )

    async def approve_suggestion(self, suggestion_id: str) -> Pattern | None:
        """
        Turn a pending suggestion into an active ``ai_learned`` pattern.

        The pattern is added to the live store so later posts in this
        process use it right away.

        Raises:
            PatternCompileError: If the suggested regex does not compile.
        """
        suggestion = await self._training.get_suggestion(suggestion_id)
        if suggestion is None or suggestion.status != "pending":
            return None

        pattern = Pattern(
            pattern_type=suggestion.pattern_type,
            pattern_regex=suggestion.suggested_regex,
            description=f"Learned from: {suggestion.sample_text}",
            priority=self._config.suggestion_priority,
            source="ai_learned",
        )
        compile_pattern(pattern)
        saved = await self._patterns.upsert(pattern)
        updated = await self._training.set_suggestion_status(
            suggestion_id, "approved", created_pattern_id=saved.pattern_id
        )
        if updated is None:
            return None
        self._extractor.store.add(saved)
        logger.info(f"Approved suggestion {suggestion_id} as pattern {saved.pattern_id}")
        return saved

    async def reject_suggestion(self, suggestion_id: str) -> bool:
        updated = await self._training.set_suggestion_status(suggestion_id, "rejected")
        return updated is not None
