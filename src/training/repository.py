"""Training repository for ground truth and pattern suggestions.

Repeated proposals of the same pending suggestion bump its occurrence
count in one upsert against the partial unique index on pending rows.
"""

import json
import logging
from typing import Any

from src.storage.database import Database
from src.training.schemas import GroundTruthRecord, PatternSuggestion

logger = logging.getLogger(__name__)


class TrainingRepository:
    """Repository for ground_truth and pattern_suggestions."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def save_ground_truth(self, record: GroundTruthRecord) -> int:
        """Store (or refresh) the ground truth for a post, returning its row id."""
        sql = """
            INSERT INTO ground_truth (
                post_id, caption, regex_result, ai_result, final_result,
                sources, conflicts, ai_confidence
            ) VALUES ($1, $2, $3::jsonb, $4::jsonb, $5::jsonb, $6::jsonb, $7::jsonb, $8)
            ON CONFLICT (post_id) DO UPDATE SET
                caption = EXCLUDED.caption,
                regex_result = EXCLUDED.regex_result,
                ai_result = EXCLUDED.ai_result,
                final_result = EXCLUDED.final_result,
                sources = EXCLUDED.sources,
                conflicts = EXCLUDED.conflicts,
                ai_confidence = EXCLUDED.ai_confidence,
                updated_at = NOW()
            RETURNING id
        """
        return await self._db.fetchval(
            sql,
            record.post_id,
            record.caption,
            json.dumps(record.regex_result, default=str),
            json.dumps(record.ai_result, default=str),
            json.dumps(record.final_result, default=str),
            json.dumps(record.sources),
            json.dumps(record.conflicts, default=str),
            record.ai_confidence,
        )

    async def get_ground_truth(self, post_id: str) -> GroundTruthRecord | None:
        row = await self._db.fetchrow("SELECT * FROM ground_truth WHERE post_id = $1", post_id)
        return _row_to_ground_truth(row) if row else None

    async def upsert_suggestion(self, suggestion: PatternSuggestion) -> PatternSuggestion:
        """Insert a pending suggestion, or count another occurrence of it."""
        sql = """
            INSERT INTO pattern_suggestions (
                id, pattern_type, suggested_regex, sample_text, correct_value,
                post_id, occurrence_count, status, created_at, last_seen_at
            ) VALUES ($1, $2, $3, $4, $5, $6, 1, 'pending', $7, $7)
            ON CONFLICT (pattern_type, suggested_regex) WHERE status = 'pending'
            DO UPDATE SET
                occurrence_count = pattern_suggestions.occurrence_count + 1,
                last_seen_at = NOW()
            RETURNING *
        """
        row = await self._db.fetchrow(
            sql,
            suggestion.suggestion_id,
            suggestion.pattern_type,
            suggestion.suggested_regex,
            suggestion.sample_text,
            suggestion.correct_value,
            suggestion.post_id,
            suggestion.created_at,
        )
        return _row_to_suggestion(row)

    async def list_suggestions(
        self,
        status: str = "pending",
        min_occurrences: int = 1,
        limit: int = 100,
    ) -> list[PatternSuggestion]:
        rows = await self._db.fetch(
            """
            SELECT * FROM pattern_suggestions
            WHERE status = $1 AND occurrence_count >= $2
            ORDER BY occurrence_count DESC, created_at, id
            LIMIT $3
            """,
            status,
            min_occurrences,
            limit,
        )
        return [_row_to_suggestion(row) for row in rows]

    async def get_suggestion(self, suggestion_id: str) -> PatternSuggestion | None:
        row = await self._db.fetchrow("SELECT * FROM pattern_suggestions WHERE id = $1", suggestion_id)
        return _row_to_suggestion(row) if row else None

    async def set_suggestion_status(
        self,
        suggestion_id: str,
        status: str,
        created_pattern_id: str | None = None,
    ) -> PatternSuggestion | None:
        """
        Move a pending suggestion to approved or rejected.

        Returns None when the suggestion does not exist or was already
        reviewed.
        """
        row = await self._db.fetchrow(
            """
            UPDATE pattern_suggestions
            SET status = $2, created_pattern_id = $3, reviewed_at = NOW()
            WHERE id = $1 AND status = 'pending'
            RETURNING *
            """,
            suggestion_id,
            status,
            created_pattern_id,
        )
        return _row_to_suggestion(row) if row else None


def _json_field(value: Any, default: Any) -> Any:
    if value is None:
        return default
    if isinstance(value, str):
        return json.loads(value)
    return value


def _row_to_ground_truth(row: Any) -> GroundTruthRecord:
    return GroundTruthRecord(
        record_id=row.get("id"),
        post_id=row["post_id"],
        caption=row.get("caption") or "",
        regex_result=_json_field(row.get("regex_result"), {}),
        ai_result=_json_field(row.get("ai_result"), {}),
        final_result=_json_field(row.get("final_result"), {}),
        sources=_json_field(row.get("sources"), {}),
        conflicts=_json_field(row.get("conflicts"), []),
        ai_confidence=row.get("ai_confidence"),
        created_at=row.get("created_at"),
    )


def _row_to_suggestion(row: Any) -> PatternSuggestion:
    return PatternSuggestion(
        suggestion_id=row["id"],
        pattern_type=row["pattern_type"],
        suggested_regex=row["suggested_regex"],
        sample_text=row.get("sample_text") or "",
        correct_value=row.get("correct_value") or "",
        post_id=row.get("post_id"),
        occurrence_count=row.get("occurrence_count") or 1,
        status=row.get("status") or "pending",
        created_pattern_id=row.get("created_pattern_id"),
        created_at=row["created_at"],
        last_seen_at=row.get("last_seen_at"),
        reviewed_at=row.get("reviewed_at"),
    )
