"""
Post repository and schema owner.

Provides the ``posts`` upsert the pipeline writes once per processed
post, plus ``create_tables`` for every table the pipeline components
use (groups, venues, patterns, suggestions, ground truth, runs, logs).
Every write is an idempotent upsert keyed by the external post id, so
re-ingesting a post rewrites its derived fields (including the review
tier) instead of adding a row.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from src.dedup.schemas import DedupOutcome
from src.extraction.schemas import REJECT_PROCESSING_ERROR, AdditionalDate, ExtractionResult
from src.ingestion.schemas import RawPostRecord
from src.storage.database import Database
from src.venues.schemas import VenueMatch

logger = logging.getLogger(__name__)


@dataclass
class ProcessedPost:
    """
    Everything the pipeline decided about one post, ready to persist.

    Attributes:
        post: The raw input record.
        result: Final (validated) extraction result.
        venue: Venue resolution outcome, if the venue resolved.
        review_tier: One of ready, quick, full, rejected.
        review_reasons: Why the tier is not better.
        warnings: Named validation warnings.
        dedup: Grouping outcome for the post.
    """

    post: RawPostRecord
    result: ExtractionResult
    venue: VenueMatch | None = None
    review_tier: str = "full"
    review_reasons: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    urgency: int = 0
    completeness: int = 0
    source_authority: int = 50
    dedup: DedupOutcome = field(default_factory=DedupOutcome)
    stored_image: str | None = None
    run_id: str | None = None

    @property
    def needs_review(self) -> bool:
        # Hard rejects only need review when the extractor flagged them
        if self.result.is_rejected or not self.result.is_event:
            return self.result.needs_review
        return self.result.needs_review or self.review_tier != "ready"


def _to_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


class PostRepository:
    """
    Repository for processed posts and the pipeline schema.

    Tables:
        - posts: one row per external post id
        - event_dates: additional dates of multi-date posts
        - event_groups, known_venues, extraction_patterns,
          pattern_suggestions, ground_truth, scrape_runs, scraper_logs
    """

    def __init__(self, database: Database):
        """
        Initialize repository.

        Args:
            database: Connected Database instance
        """
        self._db = database

    async def create_tables(self) -> None:
        """Create all pipeline tables and indexes if they don't exist."""
        create_sql = """
        -- Processed posts
        CREATE TABLE IF NOT EXISTS posts (
            post_id              TEXT PRIMARY KEY,
            owner_handle         TEXT NOT NULL DEFAULT '',
            caption              TEXT NOT NULL DEFAULT '',
            caption_hash         TEXT NOT NULL,
            post_url             TEXT,
            image_url            TEXT,
            stored_image         TEXT,
            location_hint        TEXT,
            posted_at            TIMESTAMPTZ,
            likes_count          INTEGER NOT NULL DEFAULT 0,
            comments_count       INTEGER NOT NULL DEFAULT 0,
            is_event             BOOLEAN NOT NULL DEFAULT TRUE,
            reject_reason        TEXT,
            title                TEXT,
            event_date           DATE,
            event_end_date       DATE,
            event_time           TEXT,
            end_time             TEXT,
            venue_name           TEXT,
            venue_address        TEXT,
            lat                  DOUBLE PRECISION,
            lng                  DOUBLE PRECISION,
            location_source      TEXT,
            venue_match_type     TEXT,
            venue_stage          INTEGER,
            known_venue_id       TEXT,
            price                REAL,
            price_min            REAL,
            price_max            REAL,
            price_notes          TEXT,
            is_free              BOOLEAN,
            signup_url           TEXT,
            category             TEXT,
            event_status         TEXT,
            availability_status  TEXT,
            location_status      TEXT,
            is_recurring         BOOLEAN NOT NULL DEFAULT FALSE,
            recurrence_pattern   TEXT,
            extraction_method    TEXT NOT NULL DEFAULT 'regex',
            confidence           REAL NOT NULL DEFAULT 0.0,
            field_sources        JSONB NOT NULL DEFAULT '{}',
            conflicts            JSONB NOT NULL DEFAULT '[]',
            ai_reasoning         TEXT,
            ocr_text             TEXT,
            needs_review         BOOLEAN NOT NULL DEFAULT TRUE,
            review_tier          TEXT NOT NULL DEFAULT 'full'
                CHECK (review_tier IN ('ready', 'quick', 'full', 'rejected')),
            review_reasons       TEXT[] NOT NULL DEFAULT '{}',
            validation_warnings  TEXT[] NOT NULL DEFAULT '{}',
            urgency_score        INTEGER NOT NULL DEFAULT 0,
            completeness_score   INTEGER NOT NULL DEFAULT 0,
            source_authority     INTEGER NOT NULL DEFAULT 50,
            is_duplicate         BOOLEAN NOT NULL DEFAULT FALSE,
            duplicate_of         TEXT,
            run_id               TEXT,
            created_at           TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at           TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );

        CREATE INDEX IF NOT EXISTS idx_posts_venue_date
            ON posts(lower(btrim(venue_name)), event_date)
            WHERE is_event = TRUE;
        CREATE INDEX IF NOT EXISTS idx_posts_review_queue
            ON posts(review_tier, urgency_score DESC)
            WHERE is_event = TRUE AND is_duplicate = FALSE;
        CREATE INDEX IF NOT EXISTS idx_posts_owner_handle
            ON posts(owner_handle);
        CREATE INDEX IF NOT EXISTS idx_posts_run_id
            ON posts(run_id);

        -- Additional dates of multi-date posts
        CREATE TABLE IF NOT EXISTS event_dates (
            id          SERIAL PRIMARY KEY,
            post_id     TEXT NOT NULL REFERENCES posts(post_id) ON DELETE CASCADE,
            event_date  DATE NOT NULL,
            event_time  TEXT,
            venue_name  TEXT,
            UNIQUE (post_id, event_date, event_time)
        );

        -- Near-duplicate groups
        CREATE TABLE IF NOT EXISTS event_groups (
            id               SERIAL PRIMARY KEY,
            primary_post_id  TEXT NOT NULL UNIQUE,
            merged_post_ids  TEXT[] NOT NULL DEFAULT '{}',
            created_at       TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at       TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );

        CREATE INDEX IF NOT EXISTS idx_event_groups_merged
            ON event_groups USING GIN(merged_post_ids);

        -- Curated venues
        CREATE TABLE IF NOT EXISTS known_venues (
            id                        TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
            name                      TEXT NOT NULL UNIQUE,
            aliases                   TEXT[] NOT NULL DEFAULT '{}',
            address                   TEXT,
            city                      TEXT,
            lat                       DOUBLE PRECISION,
            lng                       DOUBLE PRECISION,
            instagram_handle          TEXT,
            correction_count          INTEGER NOT NULL DEFAULT 0,
            learned_from_corrections  BOOLEAN NOT NULL DEFAULT FALSE,
            created_at                TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at                TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );

        -- Extraction patterns
        CREATE TABLE IF NOT EXISTS extraction_patterns (
            id                   TEXT PRIMARY KEY,
            pattern_type         TEXT NOT NULL
                CHECK (pattern_type IN ('date', 'time', 'venue', 'price', 'signup_url', 'vendor')),
            pattern_regex        TEXT NOT NULL,
            pattern_description  TEXT,
            priority             INTEGER NOT NULL DEFAULT 100,
            confidence_score     REAL NOT NULL DEFAULT 0.5,
            success_count        INTEGER NOT NULL DEFAULT 0,
            failure_count        INTEGER NOT NULL DEFAULT 0,
            is_active            BOOLEAN NOT NULL DEFAULT TRUE,
            is_valid             BOOLEAN NOT NULL DEFAULT TRUE,
            source               TEXT NOT NULL DEFAULT 'default'
                CHECK (source IN ('default', 'manual', 'ai_learned')),
            last_used_at         TIMESTAMPTZ,
            created_at           TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            UNIQUE (pattern_type, pattern_regex)
        );

        -- Pattern suggestions awaiting review
        CREATE TABLE IF NOT EXISTS pattern_suggestions (
            id                  TEXT PRIMARY KEY,
            pattern_type        TEXT NOT NULL,
            suggested_regex     TEXT NOT NULL,
            sample_text         TEXT NOT NULL DEFAULT '',
            correct_value       TEXT NOT NULL DEFAULT '',
            post_id             TEXT,
            occurrence_count    INTEGER NOT NULL DEFAULT 1,
            status              TEXT NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'approved', 'rejected')),
            created_pattern_id  TEXT,
            created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            last_seen_at        TIMESTAMPTZ,
            reviewed_at         TIMESTAMPTZ
        );

        CREATE UNIQUE INDEX IF NOT EXISTS idx_pattern_suggestions_pending
            ON pattern_suggestions(pattern_type, suggested_regex)
            WHERE status = 'pending';

        -- Regex vs AI ground truth
        CREATE TABLE IF NOT EXISTS ground_truth (
            id             SERIAL PRIMARY KEY,
            post_id        TEXT NOT NULL UNIQUE,
            caption        TEXT NOT NULL DEFAULT '',
            regex_result   JSONB NOT NULL DEFAULT '{}',
            ai_result      JSONB NOT NULL DEFAULT '{}',
            final_result   JSONB NOT NULL DEFAULT '{}',
            sources        JSONB NOT NULL DEFAULT '{}',
            conflicts      JSONB NOT NULL DEFAULT '[]',
            ai_confidence  REAL,
            created_at     TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at     TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );

        -- Scrape runs
        CREATE TABLE IF NOT EXISTS scrape_runs (
            id              TEXT PRIMARY KEY,
            status          TEXT NOT NULL DEFAULT 'running'
                CHECK (status IN ('running', 'completed', 'failed', 'cancelled')),
            run_type        TEXT NOT NULL DEFAULT 'automated',
            dataset_id      TEXT,
            posts_added     INTEGER NOT NULL DEFAULT 0,
            posts_updated   INTEGER NOT NULL DEFAULT 0,
            posts_skipped   INTEGER NOT NULL DEFAULT 0,
            posts_failed    INTEGER NOT NULL DEFAULT 0,
            posts_rejected  INTEGER NOT NULL DEFAULT 0,
            accounts_found  INTEGER NOT NULL DEFAULT 0,
            error_message   TEXT,
            started_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            completed_at    TIMESTAMPTZ,
            last_heartbeat  TIMESTAMPTZ
        );

        CREATE INDEX IF NOT EXISTS idx_scrape_runs_running
            ON scrape_runs(last_heartbeat)
            WHERE status = 'running';

        -- Append-only run log
        CREATE TABLE IF NOT EXISTS scraper_logs (
            id             BIGSERIAL PRIMARY KEY,
            run_id         TEXT REFERENCES scrape_runs(id) ON DELETE CASCADE,
            post_id        TEXT,
            stage          TEXT NOT NULL,
            log_level      TEXT NOT NULL
                CHECK (log_level IN ('info', 'success', 'warn', 'error')),
            message        TEXT NOT NULL,
            duration_ms    INTEGER,
            data           JSONB,
            error_details  JSONB,
            created_at     TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );

        CREATE INDEX IF NOT EXISTS idx_scraper_logs_run
            ON scraper_logs(run_id, created_at);
        """
        await self._db.execute(create_sql)
        logger.info("Database tables created/verified")

    async def upsert(self, processed: ProcessedPost) -> bool:
        """
        Insert or rewrite a processed post.

        Args:
            processed: Pipeline outcome for one post

        Returns:
            True if inserted, False if an existing row was updated
        """
        post = processed.post
        result = processed.result
        venue = processed.venue
        dedup = processed.dedup

        sql = """
        INSERT INTO posts (
            post_id, owner_handle, caption, caption_hash, post_url,
            image_url, stored_image, location_hint, posted_at,
            likes_count, comments_count,
            is_event, reject_reason, title,
            event_date, event_end_date, event_time, end_time,
            venue_name, venue_address, lat, lng,
            location_source, venue_match_type, venue_stage, known_venue_id,
            price, price_min, price_max, price_notes, is_free,
            signup_url, category,
            event_status, availability_status, location_status,
            is_recurring, recurrence_pattern,
            extraction_method, confidence, field_sources, conflicts,
            ai_reasoning, ocr_text,
            needs_review, review_tier, review_reasons, validation_warnings,
            urgency_score, completeness_score, source_authority,
            is_duplicate, duplicate_of, run_id
        ) VALUES (
            $1, $2, $3, $4, $5,
            $6, $7, $8, $9,
            $10, $11,
            $12, $13, $14,
            $15, $16, $17, $18,
            $19, $20, $21, $22,
            $23, $24, $25, $26,
            $27, $28, $29, $30, $31,
            $32, $33,
            $34, $35, $36,
            $37, $38,
            $39, $40, $41::jsonb, $42::jsonb,
            $43, $44,
            $45, $46, $47, $48,
            $49, $50, $51,
            $52, $53, $54
        )
        ON CONFLICT (post_id) DO UPDATE SET
            owner_handle = EXCLUDED.owner_handle,
            caption = EXCLUDED.caption,
            caption_hash = EXCLUDED.caption_hash,
            image_url = EXCLUDED.image_url,
            stored_image = COALESCE(EXCLUDED.stored_image, posts.stored_image),
            location_hint = EXCLUDED.location_hint,
            likes_count = EXCLUDED.likes_count,
            comments_count = EXCLUDED.comments_count,
            is_event = EXCLUDED.is_event,
            reject_reason = EXCLUDED.reject_reason,
            title = EXCLUDED.title,
            event_date = EXCLUDED.event_date,
            event_end_date = EXCLUDED.event_end_date,
            event_time = EXCLUDED.event_time,
            end_time = EXCLUDED.end_time,
            venue_name = EXCLUDED.venue_name,
            venue_address = EXCLUDED.venue_address,
            lat = EXCLUDED.lat,
            lng = EXCLUDED.lng,
            location_source = EXCLUDED.location_source,
            venue_match_type = EXCLUDED.venue_match_type,
            venue_stage = EXCLUDED.venue_stage,
            known_venue_id = EXCLUDED.known_venue_id,
            price = EXCLUDED.price,
            price_min = EXCLUDED.price_min,
            price_max = EXCLUDED.price_max,
            price_notes = EXCLUDED.price_notes,
            is_free = EXCLUDED.is_free,
            signup_url = EXCLUDED.signup_url,
            category = EXCLUDED.category,
            event_status = EXCLUDED.event_status,
            availability_status = EXCLUDED.availability_status,
            location_status = EXCLUDED.location_status,
            is_recurring = EXCLUDED.is_recurring,
            recurrence_pattern = EXCLUDED.recurrence_pattern,
            extraction_method = EXCLUDED.extraction_method,
            confidence = EXCLUDED.confidence,
            field_sources = EXCLUDED.field_sources,
            conflicts = EXCLUDED.conflicts,
            ai_reasoning = EXCLUDED.ai_reasoning,
            ocr_text = EXCLUDED.ocr_text,
            needs_review = EXCLUDED.needs_review,
            review_tier = EXCLUDED.review_tier,
            review_reasons = EXCLUDED.review_reasons,
            validation_warnings = EXCLUDED.validation_warnings,
            urgency_score = EXCLUDED.urgency_score,
            completeness_score = EXCLUDED.completeness_score,
            source_authority = EXCLUDED.source_authority,
            is_duplicate = EXCLUDED.is_duplicate,
            duplicate_of = EXCLUDED.duplicate_of,
            run_id = EXCLUDED.run_id,
            updated_at = NOW()
        RETURNING (xmax = 0) AS inserted
        """

        inserted = await self._db.fetchval(
            sql,
            post.post_id,
            post.owner_handle,
            post.caption,
            post.caption_hash,
            post.post_url,
            post.image_url,
            processed.stored_image,
            post.location_hint,
            post.posted_at,
            post.engagement.likes,
            post.engagement.comments,
            result.is_event,
            result.reject_reason,
            result.title,
            _to_date(result.event_date),
            _to_date(result.event_end_date),
            result.event_time,
            result.end_time,
            venue.venue_name if venue is not None else result.venue_name,
            result.venue_address or (venue.formatted_address if venue is not None else None),
            venue.lat if venue is not None else None,
            venue.lng if venue is not None else None,
            venue.source if venue is not None else None,
            venue.match_type if venue is not None else None,
            venue.stage if venue is not None else None,
            venue.known_venue_id if venue is not None else None,
            result.price,
            result.price_min,
            result.price_max,
            result.price_notes,
            result.is_free,
            result.signup_url,
            result.category,
            result.event_status,
            result.availability_status,
            result.location_status,
            result.is_recurring,
            result.recurrence_pattern,
            result.extraction_method,
            result.confidence,
            json.dumps(result.sources),
            json.dumps([c.to_dict() for c in result.conflicts], default=str),
            result.reasoning,
            result.ocr_text,
            processed.needs_review,
            processed.review_tier,
            list(processed.review_reasons),
            list(processed.warnings),
            processed.urgency,
            processed.completeness,
            processed.source_authority,
            dedup.is_duplicate,
            dedup.duplicate_of,
            processed.run_id,
        )
        return bool(inserted)

    async def get_by_post_id(self, post_id: str) -> dict[str, Any] | None:
        row = await self._db.fetchrow("SELECT * FROM posts WHERE post_id = $1", post_id)
        return dict(row) if row else None

    async def get_caption_hash(self, post_id: str) -> str | None:
        """
        Caption digest of a stored post, None when the post is new.

        Rows saved after a processing error report no digest so the post is
        processed again on the next ingest.
        """
        return await self._db.fetchval(
            """
            SELECT caption_hash FROM posts
            WHERE post_id = $1
              AND (reject_reason IS NULL OR reject_reason NOT LIKE $2)
            """,
            post_id,
            f"{REJECT_PROCESSING_ERROR}:%",
        )

    async def update_engagement(self, post_id: str, likes: int, comments: int) -> bool:
        """Refresh engagement counts of an unchanged re-ingested post."""
        result = await self._db.execute(
            """
            UPDATE posts SET likes_count = $2, comments_count = $3, updated_at = NOW()
            WHERE post_id = $1
            """,
            post_id,
            likes,
            comments,
        )
        return result.endswith(" 1")

    async def save_event_dates(self, post_id: str, dates: tuple[AdditionalDate, ...]) -> int:
        """
        Replace a post's additional dates.

        Returns:
            Number of dates stored
        """
        rows = []
        for extra in dates:
            parsed = _to_date(extra.event_date)
            if parsed is not None:
                rows.append((post_id, parsed, extra.event_time, extra.venue_name))
        async with self._db.transaction() as conn:
            await conn.execute("DELETE FROM event_dates WHERE post_id = $1", post_id)
            if rows:
                await conn.executemany(
                    """
                    INSERT INTO event_dates (post_id, event_date, event_time, venue_name)
                    VALUES ($1, $2, $3, $4)
                    ON CONFLICT (post_id, event_date, event_time) DO NOTHING
                    """,
                    rows,
                )
        return len(rows)

    async def tier_counts(self) -> dict[str, int]:
        """Number of non-duplicate events per review tier."""
        rows = await self._db.fetch(
            """
            SELECT review_tier, COUNT(*) AS count
            FROM posts
            WHERE is_event = TRUE AND is_duplicate = FALSE
            GROUP BY review_tier
            """
        )
        return {row["review_tier"]: row["count"] for row in rows}
