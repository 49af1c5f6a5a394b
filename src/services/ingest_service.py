"""
Ingest service - runs batches of posts through the event pipeline.

Per post, strictly in order:
    pattern extraction (with pre-filter) -> AI fallback -> historical
    and ended-event checks -> venue resolution -> validation -> image
    -> deduplication -> review tier -> persistence -> pattern training

Posts in a batch are processed sequentially: grouping a post depends on
the rows written for the posts before it. Batches of one logical run
share the run id and add to its totals atomically.

Features:
- Run lifecycle (create on first batch, complete on last batch)
- Cooperative cancellation polled every N posts
- Run timeout checked between posts that keeps partial progress
- Per-run structured log and heartbeat
- Metrics collection
"""

import time
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable
from zoneinfo import ZoneInfo

import asyncpg
import structlog

from src.config.settings import Settings, get_settings
from src.dedup.authority import source_authority
from src.dedup.grouper import EventGrouper
from src.dedup.repository import EventGroupRepository
from src.dedup.schemas import DedupOutcome, EventCandidate
from src.extraction.ai_client import AIExtractionClient
from src.extraction.config import ExtractionConfig
from src.extraction.fallback import AIFallbackExtractor, FallbackOutcome
from src.extraction.normalizer import DateNormalizer
from src.extraction.patterns import PatternExtractor, default_patterns
from src.extraction.prefilter import historical_reject_reason, is_event_in_past
from src.extraction.repository import PatternRepository
from src.extraction.schemas import REJECT_AI_NOT_EVENT, REJECT_PROCESSING_ERROR, ExtractionResult
from src.extraction.store import PatternStore
from src.ingestion.images import ImageStore
from src.ingestion.schemas import BatchRequest, RawPostRecord
from src.observability.logging import bind_context, clear_context, unbind_context
from src.observability.metrics import get_metrics
from src.runs.heartbeat import Heartbeat
from src.runs.logger import RunLogger
from src.runs.repository import LogRepository, RunRepository
from src.runs.schemas import RunProgress, ScrapeRun
from src.storage.database import Database
from src.storage.repository import PostRepository, ProcessedPost
from src.training.config import TrainingConfig
from src.training.repository import TrainingRepository
from src.training.trainer import PatternTrainer
from src.validation.config import ValidationConfig
from src.validation.tiers import assign_review_tier, urgency_score
from src.validation.validator import completeness_score, validate_extracted_data
from src.venues.config import VenueConfig
from src.venues.geocoder import GeocodingClient
from src.venues.matching import KnownVenueMatcher
from src.venues.regional_cache import RegionalVenueCache
from src.venues.repository import KnownVenueRepository
from src.venues.resolver import VenueResolver
from src.venues.schemas import VenueResolution

logger = structlog.get_logger(__name__)

SKIP_UNCHANGED = "unchanged"
SKIP_EVENT_ENDED = "event_ended"


@dataclass(frozen=True)
class PostOutcome:
    """
    What happened to one post.

    ``status`` is one of added, updated, rejected, skipped, failed.
    """

    post_id: str
    status: str
    review_tier: str | None = None
    reason: str | None = None
    dedup_role: str = "none"
    venue_source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "post_id": self.post_id,
            "status": self.status,
            "review_tier": self.review_tier,
            "reason": self.reason,
            "dedup_role": self.dedup_role,
            "venue_source": self.venue_source,
        }


@dataclass
class BatchResult:
    """
    Summary of one processed batch.

    ``status`` is completed, cancelled or timed_out; the run status is
    the run row's status after the batch was accounted.
    """

    run_id: str
    batch_index: int
    total_batches: int
    status: str = "completed"
    run_status: str = "running"
    progress: RunProgress = field(default_factory=RunProgress)
    outcomes: list[PostOutcome] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "batch_index": self.batch_index,
            "total_batches": self.total_batches,
            "status": self.status,
            "run_status": self.run_status,
            "progress": self.progress.to_dict(),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


@dataclass
class PipelineContext:
    """Lookups loaded once at the start of a batch."""

    today: date
    now: datetime
    store: PatternStore
    extractor: PatternExtractor
    resolver: VenueResolver
    venue_handles: set[str]
    trainer: PatternTrainer


class IngestService:
    """
    Orchestrates the event pipeline for batches of raw posts.

    Collaborators that talk to the outside world (AI client, geocoder,
    image store, regional cache) can be injected; by default they are
    built from configuration.

    Usage:
        service = IngestService(database)
        result = await service.process_batch(BatchRequest(posts=posts))
    """

    def __init__(
        self,
        database: Database,
        settings: Settings | None = None,
        extraction_config: ExtractionConfig | None = None,
        venue_config: VenueConfig | None = None,
        validation_config: ValidationConfig | None = None,
        training_config: TrainingConfig | None = None,
        ai_client: AIExtractionClient | None = None,
        geocoder: GeocodingClient | None = None,
        regional_cache: RegionalVenueCache | None = None,
        image_store: ImageStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._settings = settings or get_settings()
        self._extraction_config = extraction_config or ExtractionConfig()
        self._venue_config = venue_config or VenueConfig()
        self._validation_config = validation_config or ValidationConfig()
        self._training_config = training_config or TrainingConfig()
        self._metrics = get_metrics()

        self._posts = PostRepository(database)
        self._patterns = PatternRepository(database)
        self._venues = KnownVenueRepository(database)
        self._groups = EventGroupRepository(database)
        self._training = TrainingRepository(database)
        self._runs = RunRepository(database)
        self._logs = LogRepository(database)

        self._grouper = EventGrouper(self._groups, self._validation_config)
        self._fallback = AIFallbackExtractor(
            ai_client or AIExtractionClient(self._extraction_config),
            self._extraction_config,
        )
        self._geocoder = geocoder or GeocodingClient(self._venue_config)
        if regional_cache is None:
            regional_cache = RegionalVenueCache.from_json(
                self._venue_config.regional_cache_path,
                fuzzy_threshold=self._venue_config.regional_fuzzy_threshold,
            )
        self._regional = regional_cache
        if image_store is None and self._settings.image_storage_dir:
            image_store = ImageStore(
                self._settings.image_storage_dir,
                timeout=self._settings.image_fetch_timeout_seconds,
            )
        self._image_store = image_store

        tz = ZoneInfo(self._settings.timezone)
        self._clock = clock or (lambda: datetime.now(tz))

        logger.info(
            "Ingest service initialized",
            ai_enabled=self._fallback.enabled,
            geocoder_enabled=self._geocoder.enabled,
            regional_venues=len(self._regional),
            image_store=self._image_store is not None,
        )

    @property
    def runs(self) -> RunRepository:
        return self._runs

    async def process_batch(self, batch: BatchRequest, force_import: bool = False) -> BatchResult:
        """
        Process one batch of posts.

        Args:
            batch: Posts plus run metadata
            force_import: Reprocess unchanged posts and keep ended events

        Returns:
            BatchResult with per-post outcomes and the batch counters
        """
        run = await self._start_run(batch)
        result = BatchResult(
            run_id=run.run_id,
            batch_index=batch.batch_index,
            total_batches=batch.total_batches,
            run_status=run.status,
        )
        bind_context(run_id=run.run_id)
        started = time.monotonic()

        try:
            run_log = RunLogger(
                self._logs,
                run.run_id,
                queue_size=self._settings.run_log_queue_size,
                batch_size=self._settings.run_log_batch_size,
            )
            heartbeat = Heartbeat(self._runs, run.run_id, self._settings.heartbeat_interval_seconds)
            async with run_log, heartbeat:
                try:
                    context = await self._load_context()
                except (asyncpg.PostgresError, OSError) as e:
                    run_log.error("fetch", "Failed to load pipeline lookups", error=e)
                    await self._runs.mark_failed(run.run_id, f"Failed to load pipeline lookups: {e}")
                    raise

                run_log.info(
                    "fetch",
                    f"Processing batch {batch.batch_index}/{batch.total_batches} "
                    f"with {len(batch.posts)} posts",
                    data={"dataset_id": batch.dataset_id, "patterns": len(context.store)},
                )
                deadline = started + self._settings.run_timeout_seconds
                await self._process_posts(
                    batch.posts, run.run_id, context, run_log, result, force_import, deadline
                )
                if result.status == "timed_out":
                    run_log.error(
                        "save",
                        f"Batch timed out after {self._settings.run_timeout_seconds:g}s, "
                        f"{len(result.outcomes)} of {len(batch.posts)} posts processed",
                    )

                result.progress.accounts_found = len({p.owner_handle for p in batch.posts if p.owner_handle})
                result.run_status = await self._finish_run(run.run_id, batch, result)
                run_log.success(
                    "save",
                    f"Batch {batch.batch_index}/{batch.total_batches} {result.status}",
                    duration_ms=int((time.monotonic() - started) * 1000),
                    data=result.progress.to_dict(),
                )
        finally:
            clear_context()

        logger.info(
            "Batch processed",
            run_id=run.run_id,
            batch=f"{batch.batch_index}/{batch.total_batches}",
            status=result.status,
            run_status=result.run_status,
            elapsed_seconds=round(time.monotonic() - started, 2),
            **result.progress.to_dict(),
        )
        return result

    async def process_post(self, post: RawPostRecord, run_id: str | None = None) -> BatchResult:
        """Process a single incremental post as a one-post batch."""
        return await self.process_batch(BatchRequest(run_id=run_id, posts=[post]))

    async def _start_run(self, batch: BatchRequest) -> ScrapeRun:
        """Create the run on the first batch; later batches join the existing run."""
        if not batch.is_first_batch and batch.run_id:
            run = await self._runs.get(batch.run_id)
            if run is not None:
                return run
            logger.warning("Run not found for later batch, creating it", run_id=batch.run_id)
        return await self._runs.create(batch.run_id, dataset_id=batch.dataset_id)

    async def _finish_run(self, run_id: str, batch: BatchRequest, result: BatchResult) -> str:
        """Add the batch counters to the run and move it to its next status."""
        run = await self._runs.add_progress(run_id, result.progress)
        if result.status == "timed_out":
            await self._runs.mark_failed(
                run_id,
                f"Process timed out after {self._settings.run_timeout_seconds:g} seconds",
            )
            return "failed"
        if result.status == "cancelled":
            return "cancelled"
        if batch.is_last_batch and await self._runs.mark_completed(run_id):
            return "completed"
        return run.status

    async def _load_context(self) -> PipelineContext:
        now = self._clock()
        today = now.date()

        patterns = await self._patterns.list_active()
        if not patterns:
            logger.warning("No active patterns stored, using built-in defaults")
            patterns = default_patterns()
        store = PatternStore(patterns)
        extractor = PatternExtractor(store, self._extraction_config, DateNormalizer(today))

        venues = await self._venues.list_all()
        resolver = VenueResolver(
            KnownVenueMatcher(venues, self._venue_config),
            regional=self._regional,
            geocoder=self._geocoder,
        )
        venue_handles = await self._venues.venue_handles()
        trainer = PatternTrainer(
            self._patterns,
            self._training,
            extractor,
            self._training_config,
            min_ai_confidence=self._extraction_config.training_min_confidence,
        )
        return PipelineContext(
            today=today,
            now=now,
            store=store,
            extractor=extractor,
            resolver=resolver,
            venue_handles=venue_handles,
            trainer=trainer,
        )

    async def _process_posts(
        self,
        posts: list[RawPostRecord],
        run_id: str,
        context: PipelineContext,
        run_log: RunLogger,
        result: BatchResult,
        force_import: bool,
        deadline: float,
    ) -> None:
        """
        Process posts in order, recording outcomes into ``result`` as they finish.

        The run timeout is checked between posts; a post that has started
        always runs to completion so its group and row are written together.
        """
        interval = self._settings.cancellation_check_interval
        for index, post in enumerate(posts):
            if time.monotonic() >= deadline:
                result.status = "timed_out"
                logger.warning("Run timeout reached, stopping batch", processed=index)
                return

            if index % interval == 0 and await self._runs.is_cancelled(run_id):
                result.status = "cancelled"
                run_log.warn("skip", f"Run cancelled after {index} posts")
                logger.info("Run cancelled, stopping batch", processed=index)
                return

            bind_context(post_id=post.post_id)
            try:
                outcome = await self._process_one(post, run_id, context, run_log, force_import)
            except asyncpg.PostgresError as e:
                outcome = PostOutcome(post.post_id, "failed", reason=f"database_error:{e.sqlstate}")
                run_log.error("save", f"Database error: {e}", post_id=post.post_id, error=e)
                logger.error("Post persistence failed", sqlstate=e.sqlstate, error=str(e))
                self._metrics.record_error("save", type(e).__name__)
            except Exception as e:
                run_log.error("extraction", f"Post processing failed: {e}", post_id=post.post_id, error=e)
                logger.exception("Post processing failed")
                self._metrics.record_error("pipeline", type(e).__name__)
                outcome = await self._save_failed(post, run_id, run_log, e)
            finally:
                unbind_context("post_id")

            self._account(result, outcome)

            invalid = context.store.drain_invalid()
            if invalid:
                await self._patterns.mark_invalid(invalid)

    def _account(self, result: BatchResult, outcome: PostOutcome) -> None:
        progress = result.progress
        if outcome.status == "added":
            progress.posts_added += 1
        elif outcome.status == "updated":
            progress.posts_updated += 1
        elif outcome.status == "rejected":
            progress.posts_rejected += 1
        elif outcome.status == "skipped":
            progress.posts_skipped += 1
        else:
            progress.posts_failed += 1
        result.outcomes.append(outcome)
        self._metrics.record_post_outcome(outcome.status)

    async def _process_one(
        self,
        post: RawPostRecord,
        run_id: str,
        context: PipelineContext,
        run_log: RunLogger,
        force_import: bool,
    ) -> PostOutcome:
        if not force_import:
            stored_hash = await self._posts.get_caption_hash(post.post_id)
            if stored_hash == post.caption_hash:
                await self._posts.update_engagement(
                    post.post_id, post.engagement.likes, post.engagement.comments
                )
                run_log.info("skip", "Unchanged post, engagement refreshed", post_id=post.post_id)
                return PostOutcome(post.post_id, "skipped", reason=SKIP_UNCHANGED)

        # Pattern extraction with pre-filter
        started = time.monotonic()
        regex_result = context.extractor.extract(post.caption, post.location_hint)
        self._metrics.record_stage_latency("extraction", time.monotonic() - started)
        if regex_result.is_rejected:
            run_log.info(
                "pre_filter",
                f"Rejected: {regex_result.reject_reason}",
                post_id=post.post_id,
            )
            return await self._save_rejected(post, regex_result, run_id, run_log)
        run_log.info(
            "extraction",
            f"Pattern extraction confidence {regex_result.confidence:.2f}",
            post_id=post.post_id,
            duration_ms=int((time.monotonic() - started) * 1000),
            data={"pattern_ids": dict(regex_result.pattern_ids)},
        )

        # AI fallback
        started = time.monotonic()
        fallback = await self._fallback.run(post, regex_result)
        self._record_fallback(post, fallback, run_log, time.monotonic() - started)
        extracted = fallback.result
        if not extracted.is_event:
            rejected = extracted.evolve(reject_reason=extracted.reject_reason or REJECT_AI_NOT_EVENT)
            run_log.info("rejection", f"Rejected: {rejected.reject_reason}", post_id=post.post_id)
            return await self._save_rejected(post, rejected, run_id, run_log)

        # Historical and ended events
        historical = historical_reject_reason(
            extracted.event_date,
            post.posted_at,
            context.today,
            self._extraction_config.historical_post_age_days,
        )
        if historical is not None:
            run_log.info("rejection", f"Rejected: {historical}", post_id=post.post_id)
            return await self._save_rejected(
                post, ExtractionResult.rejected(historical, title=extracted.title), run_id, run_log
            )
        if not force_import and is_event_in_past(
            extracted.event_date, context.now, extracted.event_end_date, extracted.end_time
        ):
            run_log.info(
                "skip",
                "Event has ended",
                post_id=post.post_id,
                data={"event_date": extracted.event_date, "event_end_date": extracted.event_end_date},
            )
            return PostOutcome(post.post_id, "skipped", reason=SKIP_EVENT_ENDED)

        # Venue resolution
        started = time.monotonic()
        resolution = await context.resolver.resolve(
            extracted.venue_name or post.location_hint,
            extracted.venue_address,
        )
        self._metrics.record_stage_latency("venue_resolution", time.monotonic() - started)
        self._record_resolution(post, resolution, run_log)
        venue = resolution.match
        has_coordinates = venue is not None and venue.has_coordinates
        if venue is not None:
            extracted = extracted.evolve(venue_name=venue.venue_name)

        # Validation
        validation = validate_extracted_data(extracted, context.today, self._validation_config)
        final = validation.corrected
        if validation.warnings:
            run_log.warn(
                "validation",
                f"{len(validation.warnings)} validation warnings",
                post_id=post.post_id,
                data={"warnings": validation.warnings},
            )

        # Image
        stored_image = None
        if self._image_store is not None and post.image_url:
            stored_image = await self._image_store.fetch_and_store(post.post_id, post.image_url)
            if stored_image is None:
                run_log.warn("image", "Image fetch failed, continuing without it", post_id=post.post_id)

        # Deduplication
        completeness = completeness_score(final, has_coordinates)
        authority = source_authority(post.owner_handle, context.venue_handles)
        started = time.monotonic()
        dedup = await self._grouper.group(
            EventCandidate(
                post_id=post.post_id,
                title=final.title,
                venue_name=final.venue_name,
                event_date=final.event_date,
                source_authority=authority,
                engagement=post.engagement.engagement_score,
                completeness=completeness,
            )
        )
        self._metrics.record_stage_latency("dedup", time.monotonic() - started)
        if dedup.role != "none":
            self._record_dedup(post, dedup, run_log)

        # Review tier
        tier = assign_review_tier(
            confidence=final.confidence,
            warnings=validation.warnings,
            has_date=bool(final.event_date),
            has_time=bool(final.event_time),
            has_venue=bool(final.venue_name),
            has_coordinates=has_coordinates,
            is_known_venue=venue is not None and venue.is_known_venue,
            is_unresolved_duplicate=dedup.is_duplicate,
            config=self._validation_config,
        )
        event_day = date.fromisoformat(final.event_date) if final.event_date else None

        # Persistence
        started = time.monotonic()
        inserted = await self._posts.upsert(
            ProcessedPost(
                post=post,
                result=final,
                venue=venue,
                review_tier=tier.tier,
                review_reasons=tier.reasons,
                warnings=validation.warnings,
                urgency=urgency_score(event_day, context.today),
                completeness=completeness,
                source_authority=authority,
                dedup=dedup,
                stored_image=stored_image,
                run_id=run_id,
            )
        )
        if final.additional_dates:
            await self._posts.save_event_dates(post.post_id, final.additional_dates)
        self._metrics.record_stage_latency("save", time.monotonic() - started)
        self._metrics.record_review_tier(tier.tier)
        run_log.success(
            "save",
            f"Saved as {tier.tier}",
            post_id=post.post_id,
            data={"review_tier": tier.tier, "reasons": tier.reasons, "inserted": inserted},
        )

        # Pattern training
        if fallback.accepted:
            await self._train(post, fallback.result, context, run_log)

        return PostOutcome(
            post.post_id,
            "added" if inserted else "updated",
            review_tier=tier.tier,
            dedup_role=dedup.role,
            venue_source=venue.source if venue is not None else None,
        )

    async def _save_rejected(
        self,
        post: RawPostRecord,
        rejected: ExtractionResult,
        run_id: str,
        run_log: RunLogger,
    ) -> PostOutcome:
        """Store a hard-rejected post so re-ingesting it is recognized as unchanged."""
        rejected = rejected.evolve(needs_review=False)
        await self._posts.upsert(
            ProcessedPost(
                post=post,
                result=rejected,
                review_tier="rejected",
                review_reasons=[rejected.reject_reason or "not_event"],
                run_id=run_id,
            )
        )
        self._metrics.record_review_tier("rejected")
        return PostOutcome(post.post_id, "rejected", review_tier="rejected", reason=rejected.reject_reason)

    async def _save_failed(
        self,
        post: RawPostRecord,
        run_id: str,
        run_log: RunLogger,
        error: Exception,
    ) -> PostOutcome:
        """Store a post whose processing raised as a rejected row naming the error."""
        reason = f"{REJECT_PROCESSING_ERROR}:{type(error).__name__}"
        try:
            return await self._save_rejected(post, ExtractionResult.rejected(reason), run_id, run_log)
        except Exception as e:
            run_log.error("save", f"Could not store failed post: {e}", post_id=post.post_id, error=e)
            logger.error("Failed post not stored", error=str(e))
            return PostOutcome(post.post_id, "failed", reason=reason)

    async def _train(
        self,
        post: RawPostRecord,
        accepted: ExtractionResult,
        context: PipelineContext,
        run_log: RunLogger,
    ) -> None:
        """Feed an accepted AI result to the trainer; failures never fail the post."""
        try:
            report = await context.trainer.train(post, accepted)
        except asyncpg.PostgresError as e:
            run_log.warn("training", f"Pattern training failed: {e}", post_id=post.post_id, error=e)
            logger.warning("Pattern training failed", sqlstate=e.sqlstate, error=str(e))
            return
        except Exception as e:
            run_log.warn("training", f"Pattern training failed: {e}", post_id=post.post_id, error=e)
            logger.exception("Pattern training failed")
            return
        if report.trained:
            run_log.info(
                "training",
                f"{len(report.successes)} agreements, {len(report.failures)} conflicts",
                post_id=post.post_id,
                data={
                    "sources": report.sources,
                    "deactivated": list(report.deactivated),
                    "suggestions": list(report.suggestions),
                },
            )

    def _record_fallback(
        self,
        post: RawPostRecord,
        fallback: FallbackOutcome,
        run_log: RunLogger,
        elapsed: float,
    ) -> None:
        if not fallback.attempted:
            return
        self._metrics.record_stage_latency("ai_fallback", elapsed)
        if fallback.error is not None:
            outcome = "error"
            run_log.warn("ai", f"AI extraction failed: {fallback.error}", post_id=post.post_id)
        elif fallback.ai is None:
            outcome = "empty"
            run_log.warn("ai", "AI extraction returned no result", post_id=post.post_id)
        else:
            outcome = "accepted" if fallback.accepted else "reference_only"
            run_log.info(
                "ai",
                f"AI confidence {fallback.ai.confidence:.2f} ({outcome})",
                post_id=post.post_id,
                duration_ms=int(elapsed * 1000),
                data={
                    "method": fallback.result.extraction_method,
                    "used_image": fallback.used_image,
                    "reasoning": fallback.ai.reasoning,
                },
            )
        self._metrics.record_ai_extraction(outcome)

    def _record_resolution(self, post: RawPostRecord, resolution: VenueResolution, run_log: RunLogger) -> None:
        for attempt in resolution.attempts:
            run_log.info(
                "geocache",
                f"{attempt.stage_name}: {'hit' if attempt.hit else 'miss'}",
                post_id=post.post_id,
                data={
                    "query": resolution.query,
                    "stage": attempt.stage,
                    "match_type": attempt.match_type,
                    "detail": attempt.detail,
                },
            )
        source = resolution.match.source if resolution.match is not None else "unresolved"
        self._metrics.record_venue_resolution(source)

    @staticmethod
    def _record_dedup(post: RawPostRecord, dedup: DedupOutcome, run_log: RunLogger) -> None:
        message = f"Grouped as {dedup.role} (similarity {dedup.similarity:.2f})"
        if dedup.swapped:
            message += f", replaced {dedup.demoted_post_id} as primary"
        run_log.info(
            "dedup",
            message,
            post_id=post.post_id,
            data={
                "group": dedup.group.to_dict() if dedup.group is not None else None,
                "matched_post_id": dedup.matched_post_id,
            },
        )
