"""Pattern repository for the extraction_patterns table.

Counter updates are single conditional statements so concurrent batches
of the same run never lose increments. Patterns are deactivated, never
deleted.
"""

import logging
from collections.abc import Iterable
from typing import Any

from src.extraction.schemas import Pattern
from src.storage.database import Database

logger = logging.getLogger(__name__)

# Health score recomputed on every counter update:
# Laplace-smoothed success rate so a fresh pattern starts near 0.5.
_CONFIDENCE_SQL = "ROUND(((success_count + {s} + 1)::numeric / (success_count + failure_count + {t} + 2)), 4)"


class PatternRepository:
    """Repository for extraction pattern persistence.

    Provides listing, upsert, invalid flagging, deactivation and the
    atomic success/failure counter updates used by the pattern trainer.
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    async def list_active(self) -> list[Pattern]:
        """All active, valid patterns."""
        sql = """
            SELECT * FROM extraction_patterns
            WHERE is_active = TRUE AND is_valid = TRUE
            ORDER BY pattern_type, priority DESC, confidence_score DESC, id
        """
        rows = await self._db.fetch(sql)
        return [_row_to_pattern(row) for row in rows]

    async def list_all(self, pattern_type: str | None = None) -> list[Pattern]:
        if pattern_type is None:
            rows = await self._db.fetch(
                "SELECT * FROM extraction_patterns ORDER BY pattern_type, priority DESC, id"
            )
        else:
            rows = await self._db.fetch(
                "SELECT * FROM extraction_patterns WHERE pattern_type = $1 ORDER BY priority DESC, id",
                pattern_type,
            )
        return [_row_to_pattern(row) for row in rows]

    async def upsert(self, pattern: Pattern) -> Pattern:
        """
        Insert a pattern, or refresh description and priority of the
        pattern with the same type and regex.

        Counters and health of an existing pattern are left untouched.
        """
        sql = """
            INSERT INTO extraction_patterns (
                id, pattern_type, pattern_regex, pattern_description,
                priority, confidence_score, success_count, failure_count,
                is_active, is_valid, source, created_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
            ON CONFLICT (pattern_type, pattern_regex) DO UPDATE SET
                pattern_description = COALESCE(EXCLUDED.pattern_description, extraction_patterns.pattern_description),
                priority = EXCLUDED.priority
            RETURNING *
        """
        row = await self._db.fetchrow(
            sql,
            pattern.pattern_id,
            pattern.pattern_type,
            pattern.pattern_regex,
            pattern.description,
            pattern.priority,
            pattern.confidence_score,
            pattern.success_count,
            pattern.failure_count,
            pattern.is_active,
            pattern.is_valid,
            pattern.source,
            pattern.created_at,
        )
        return _row_to_pattern(row)

    async def seed(self, patterns: Iterable[Pattern]) -> int:
        """Upsert a batch of patterns, returning how many were written."""
        count = 0
        for pattern in patterns:
            await self.upsert(pattern)
            count += 1
        return count

    async def mark_invalid(self, pattern_ids: list[str]) -> None:
        """Flag patterns whose regex failed to compile."""
        if not pattern_ids:
            return
        await self._db.execute(
            "UPDATE extraction_patterns SET is_valid = FALSE WHERE id = ANY($1::text[])",
            pattern_ids,
        )
        logger.warning(f"Flagged {len(pattern_ids)} patterns as invalid: {pattern_ids}")

    async def set_active(self, pattern_id: str, is_active: bool) -> bool:
        result = await self._db.execute(
            "UPDATE extraction_patterns SET is_active = $2 WHERE id = $1",
            pattern_id,
            is_active,
        )
        return result.endswith(" 1")

    async def increment_success(self, pattern_ids: list[str]) -> int:
        """Add one success to each pattern and recompute its health."""
        return len(await self._increment(pattern_ids, success=True))

    async def increment_failure(
        self,
        pattern_ids: list[str],
        *,
        min_samples: int = 10,
        min_success_rate: float = 0.3,
    ) -> list[str]:
        """
        Add one failure to each pattern and recompute its health.

        A pattern with at least ``min_samples`` scored uses whose success
        rate falls below ``min_success_rate`` is deactivated in the same
        statement.

        Returns:
            Ids of the patterns that are inactive after the update.
        """
        rows = await self._increment(
            pattern_ids,
            success=False,
            min_samples=min_samples,
            min_success_rate=min_success_rate,
        )
        deactivated = [row["id"] for row in rows if not row["is_active"]]
        if deactivated:
            logger.info(f"Deactivated underperforming patterns: {deactivated}")
        return deactivated

    async def _increment(
        self,
        pattern_ids: list[str],
        *,
        success: bool,
        min_samples: int = 10,
        min_success_rate: float = 0.3,
    ) -> list[Any]:
        if not pattern_ids:
            return []
        if success:
            sql = f"""
                UPDATE extraction_patterns SET
                    success_count = success_count + 1,
                    confidence_score = {_CONFIDENCE_SQL.format(s=1, t=1)},
                    last_used_at = NOW()
                WHERE id = ANY($1::text[])
                RETURNING id
            """
            rows = await self._db.fetch(sql, pattern_ids)
        else:
            sql = f"""
                UPDATE extraction_patterns SET
                    failure_count = failure_count + 1,
                    confidence_score = {_CONFIDENCE_SQL.format(s=0, t=1)},
                    last_used_at = NOW(),
                    is_active = CASE
                        WHEN success_count + failure_count + 1 >= $2
                         AND success_count::numeric / (success_count + failure_count + 1) < $3
                        THEN FALSE
                        ELSE is_active
                    END
                WHERE id = ANY($1::text[])
                RETURNING id, is_active
            """
            rows = await self._db.fetch(sql, pattern_ids, min_samples, min_success_rate)
        return list(rows)


def _row_to_pattern(row: Any) -> Pattern:
    """Convert an asyncpg Record to a Pattern."""
    return Pattern(
        pattern_id=row["id"],
        pattern_type=row["pattern_type"],
        pattern_regex=row["pattern_regex"],
        description=row.get("pattern_description"),
        priority=row.get("priority") or 100,
        confidence_score=float(row.get("confidence_score") or 0.5),
        success_count=row.get("success_count") or 0,
        failure_count=row.get("failure_count") or 0,
        is_active=row.get("is_active", True),
        is_valid=row.get("is_valid", True),
        source=row.get("source") or "default",
        last_used_at=row.get("last_used_at"),
        created_at=row["created_at"],
    )
