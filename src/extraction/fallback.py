"""AI fallback extraction and regex/AI merge policy.

Invoked when the pattern extractor left critical fields missing or
produced messy values. Decides between text-only and image-based
extraction, calls the AI collaborator, and merges its answer with the
regex result. The fallback never raises into the pipeline: collaborator
failures leave the regex result in place.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from src.extraction.ai_client import AIExtractionClient, AIExtractionError, AIExtractionRequest
from src.extraction.config import ExtractionConfig
from src.extraction.patterns import fallback_title, needs_ai_extraction
from src.extraction.schemas import (
    VALID_CATEGORIES,
    AdditionalDate,
    AIExtraction,
    ExtractionResult,
)
from src.ingestion.schemas import RawPostRecord

logger = logging.getLogger(__name__)

_IMAGE_EVENT_KEYWORDS = re.compile(
    r"join us|see you|save the date|mark your calendar|party|event|concert|gig|market|pop.?up",
    re.IGNORECASE,
)
_EMOJI = re.compile("[\U0001F300-\U0001F9FF]")
_HASHTAG = re.compile(r"#\w+")


def should_extract_from_image(
    caption: str | None,
    result: ExtractionResult,
    config: ExtractionConfig | None = None,
) -> bool:
    """
    Whether the event details are probably in the post image.

    True for a short caption with event keywords, for a caption missing
    at least two of date/time/venue that still has event keywords, and
    for a non-empty caption that is mostly emoji and hashtags.
    """
    config = config or ExtractionConfig()
    text = caption or ""
    has_keywords = bool(_IMAGE_EVENT_KEYWORDS.search(text))
    short_caption = len(text) < config.short_caption_length
    missing_multiple = result.missing_critical_count >= 2

    remainder = _HASHTAG.sub("", _EMOJI.sub("", text)).strip()
    mostly_emoji = len(remainder) < config.emoji_text_length

    return (
        (short_caption and has_keywords)
        or (missing_multiple and has_keywords)
        or (mostly_emoji and len(text) > 0)
    )


def merge_ai_result(
    regex_result: ExtractionResult,
    ai: AIExtraction,
    config: ExtractionConfig | None = None,
    used_image: bool = False,
) -> ExtractionResult:
    """
    Merge an AI extraction into the regex result.

    At or above the accept threshold the AI result is primary: each field
    takes the AI value when present and the regex value otherwise, and the
    result is flagged for review below the review threshold. Below the
    accept threshold the regex result is kept and the AI answer is stored
    only as a reference. Image-based extractions are tagged ``ocr_ai``.
    """
    config = config or ExtractionConfig()

    if ai.confidence < config.ai_accept_confidence:
        return regex_result.evolve(ai_reference=ai, reasoning=ai.reasoning, ocr_text=ai.ocr_text)

    had_regex_data = bool(regex_result.event_date or regex_result.event_time or regex_result.venue_name)
    if used_image or ai.extraction_method == "ocr_ai":
        method = "ocr_ai"
    elif had_regex_data:
        method = "ai_corrected"
    else:
        method = "ai"

    category = ai.category if ai.category in VALID_CATEGORIES else regex_result.category
    venue_name = ai.venue_name or regex_result.venue_name
    title = ai.title or regex_result.title or fallback_title(category, venue_name)

    return ExtractionResult(
        title=title,
        event_date=ai.event_date or regex_result.event_date,
        event_end_date=ai.event_end_date or regex_result.event_end_date,
        event_time=ai.event_time or regex_result.event_time,
        end_time=ai.end_time or regex_result.end_time,
        venue_name=venue_name,
        venue_address=ai.venue_address or regex_result.venue_address,
        price=ai.price if ai.price is not None else regex_result.price,
        price_min=ai.price_min if ai.price_min is not None else regex_result.price_min,
        price_max=ai.price_max if ai.price_max is not None else regex_result.price_max,
        price_notes=ai.price_notes or regex_result.price_notes,
        is_free=ai.is_free if ai.is_free is not None else regex_result.is_free,
        signup_url=ai.signup_url or regex_result.signup_url,
        category=category,
        is_event=ai.is_event,
        needs_review=ai.confidence < config.ai_review_confidence,
        confidence=ai.confidence,
        extraction_method=method,
        event_status=ai.event_status or regex_result.event_status,
        availability_status=ai.availability_status or regex_result.availability_status,
        location_status=ai.location_status or regex_result.location_status,
        is_recurring=ai.is_recurring or regex_result.is_recurring,
        recurrence_pattern=ai.recurrence_pattern or regex_result.recurrence_pattern,
        additional_dates=tuple(
            AdditionalDate(event_date=d.date, event_time=d.time, venue_name=d.venue_name)
            for d in ai.additional_dates
        ),
        pattern_ids=dict(regex_result.pattern_ids),
        reasoning=ai.reasoning,
        ocr_text=ai.ocr_text,
        ai_reference=ai,
    )


@dataclass(frozen=True)
class FallbackOutcome:
    """What the fallback did for one post."""

    result: ExtractionResult
    attempted: bool = False
    used_image: bool = False
    ai: AIExtraction | None = None
    accepted: bool = False
    error: str | None = None


class AIFallbackExtractor:
    """
    Runs the AI collaborator for incomplete or messy regex results.

    Args:
        client: AI collaborator client; None disables the fallback.
        config: Extraction configuration.
    """

    def __init__(
        self,
        client: AIExtractionClient | None,
        config: ExtractionConfig | None = None,
    ) -> None:
        self._client = client
        self._config = config or ExtractionConfig()

    @property
    def enabled(self) -> bool:
        return self._client is not None and self._client.enabled

    async def run(self, post: RawPostRecord, regex_result: ExtractionResult) -> FallbackOutcome:
        """
        Apply the fallback to one post.

        Hard-rejected and complete results pass through untouched.
        """
        client = self._client
        if regex_result.is_rejected or client is None or not client.enabled:
            return FallbackOutcome(result=regex_result)
        if not needs_ai_extraction(regex_result, self._config.messy_field_length):
            return FallbackOutcome(result=regex_result)

        use_image = bool(post.image_url) and should_extract_from_image(
            post.caption, regex_result, self._config
        )
        request = AIExtractionRequest(
            caption=post.caption,
            post_id=post.post_id,
            location_hint=post.location_hint,
            image_url=post.image_url if use_image else None,
            use_ocr=use_image,
            posted_at=post.posted_at,
            owner_handle=post.owner_handle,
        )

        try:
            ai = await client.extract(request)
        except AIExtractionError as e:
            logger.warning(f"AI extraction skipped for {post.post_id}: {e}")
            return FallbackOutcome(
                result=regex_result, attempted=True, used_image=use_image, error=str(e)
            )

        if ai is None:
            return FallbackOutcome(result=regex_result, attempted=True, used_image=use_image)

        merged = merge_ai_result(regex_result, ai, self._config, used_image=use_image)
        accepted = ai.confidence >= self._config.ai_accept_confidence
        logger.info(
            f"AI extraction for {post.post_id}: confidence={ai.confidence:.2f} "
            f"accepted={accepted} method={merged.extraction_method}"
        )
        return FallbackOutcome(
            result=merged,
            attempted=True,
            used_image=use_image,
            ai=ai,
            accepted=accepted,
        )
