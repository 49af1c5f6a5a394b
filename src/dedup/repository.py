"""Event group repository.

Group membership is shared between concurrent batches of the same run,
so every membership change is a single conditional statement and the
primary swap and group folding lock the group rows inside one transaction.
"""

import logging
from datetime import date
from typing import Any

from src.dedup.schemas import EventCandidate, EventGroup
from src.storage.database import Database

logger = logging.getLogger(__name__)

_CANDIDATE_COLUMNS = """
    post_id, title, venue_name, event_date, source_authority,
    COALESCE(likes_count, 0) + COALESCE(comments_count, 0) AS engagement,
    completeness_score
"""


class EventGroupRepository:
    """Repository for dedup candidates and event groups."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def find_candidates(
        self,
        venue_name: str,
        event_date: date,
        window_days: int,
        exclude_post_id: str,
    ) -> list[EventCandidate]:
        """
        Stored events at the same venue within +/- ``window_days``.

        Venue names are compared trimmed and case-insensitively. Primaries
        come before merged duplicates, then older posts first.
        """
        sql = f"""
            SELECT {_CANDIDATE_COLUMNS}
            FROM posts
            WHERE lower(btrim(venue_name)) = lower(btrim($1))
              AND event_date BETWEEN $2::date - $3::int AND $2::date + $3::int
              AND is_event = TRUE
              AND post_id <> $4
            ORDER BY is_duplicate, posted_at NULLS LAST, post_id
        """
        rows = await self._db.fetch(sql, venue_name, event_date, window_days, exclude_post_id)
        return [_row_to_candidate(row) for row in rows]

    async def get_candidate(self, post_id: str) -> EventCandidate | None:
        row = await self._db.fetchrow(
            f"SELECT {_CANDIDATE_COLUMNS} FROM posts WHERE post_id = $1",
            post_id,
        )
        return _row_to_candidate(row) if row else None

    async def find_group(self, post_id: str) -> EventGroup | None:
        """The group a post belongs to, as primary or merged member."""
        row = await self._db.fetchrow(
            """
            SELECT * FROM event_groups
            WHERE primary_post_id = $1 OR $1 = ANY(merged_post_ids)
            ORDER BY id
            LIMIT 1
            """,
            post_id,
        )
        return _row_to_group(row) if row else None

    async def create_group(self, primary_post_id: str, merged_post_id: str) -> EventGroup:
        """
        Create a group of two, or join an existing group with the same primary.

        The merged post's row (if already stored) is marked as a duplicate
        of the primary in the same transaction.
        """
        async with self._db.transaction() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO event_groups (primary_post_id, merged_post_ids)
                VALUES ($1, ARRAY[$2]::text[])
                ON CONFLICT (primary_post_id) DO UPDATE SET
                    merged_post_ids = CASE
                        WHEN $2 = ANY(event_groups.merged_post_ids) THEN event_groups.merged_post_ids
                        ELSE array_append(event_groups.merged_post_ids, $2)
                    END,
                    updated_at = NOW()
                RETURNING *
                """,
                primary_post_id,
                merged_post_id,
            )
            await conn.execute(_MARK_DUPLICATE_SQL, merged_post_id, primary_post_id)
        group = _row_to_group(row)
        logger.info(
            f"Event group {group.group_id}: primary={primary_post_id} merged={group.merged_post_ids}"
        )
        return group

    async def add_member(self, group_id: int, post_id: str) -> EventGroup | None:
        """
        Append a post to a group's merged members.

        A single conditional update: a post already in the group (as
        primary or member) is left alone and the current group returned.
        """
        row = await self._db.fetchrow(
            """
            UPDATE event_groups
            SET merged_post_ids = array_append(merged_post_ids, $2), updated_at = NOW()
            WHERE id = $1
              AND primary_post_id <> $2
              AND NOT ($2 = ANY(merged_post_ids))
            RETURNING *
            """,
            group_id,
            post_id,
        )
        if row is None:
            row = await self._db.fetchrow("SELECT * FROM event_groups WHERE id = $1", group_id)
        return _row_to_group(row) if row else None

    async def swap_primary(
        self,
        group_id: int,
        new_primary_id: str,
        expected_primary_id: str,
    ) -> EventGroup | None:
        """
        Make a merged member the primary and demote the current primary.

        The group row is locked for the swap; if another batch changed the
        primary in the meantime, or the new primary is not a member, nothing
        is written and None is returned. The member count is unchanged: the
        old primary takes the new primary's place in the merged list.
        """
        async with self._db.transaction() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM event_groups WHERE id = $1 FOR UPDATE",
                group_id,
            )
            if row is None:
                return None
            current = _row_to_group(row)
            if current.primary_post_id != expected_primary_id:
                logger.info(f"Primary of group {group_id} changed concurrently, skipping swap")
                return None
            if new_primary_id not in current.merged_post_ids:
                return None

            merged = [
                expected_primary_id if post_id == new_primary_id else post_id
                for post_id in current.merged_post_ids
            ]
            row = await conn.fetchrow(
                """
                UPDATE event_groups
                SET primary_post_id = $2, merged_post_ids = $3::text[], updated_at = NOW()
                WHERE id = $1
                RETURNING *
                """,
                group_id,
                new_primary_id,
                merged,
            )
            await conn.execute(_MARK_DUPLICATE_SQL, expected_primary_id, new_primary_id)
            await conn.execute(
                """
                UPDATE posts SET duplicate_of = $2, updated_at = NOW()
                WHERE duplicate_of = $1 AND post_id <> $2
                """,
                expected_primary_id,
                new_primary_id,
            )
            await conn.execute(
                """
                UPDATE posts SET is_duplicate = FALSE, duplicate_of = NULL, updated_at = NOW()
                WHERE post_id = $1
                """,
                new_primary_id,
            )

        logger.info(f"Group {group_id}: {new_primary_id} replaces {expected_primary_id} as primary")
        return _row_to_group(row)

    async def merge_groups(
        self,
        primary_post_id: str,
        post_ids: list[str],
        group_ids: list[int],
    ) -> EventGroup:
        """
        Fold groups and loose posts into one group led by ``primary_post_id``.

        The listed groups are locked and replaced by a single group holding
        every member they had plus ``post_ids``. Member rows are marked as
        duplicates of the new primary and the primary's own row is cleared,
        all in one transaction.
        """
        async with self._db.transaction() as conn:
            rows = await conn.fetch(
                "SELECT * FROM event_groups WHERE id = ANY($1::bigint[]) ORDER BY id FOR UPDATE",
                group_ids,
            )
            members: list[str] = []
            for row in rows:
                folded = _row_to_group(row)
                members.append(folded.primary_post_id)
                members.extend(folded.merged_post_ids)
            members.extend(post_ids)
            merged = [post_id for post_id in dict.fromkeys(members) if post_id != primary_post_id]

            await conn.execute("DELETE FROM event_groups WHERE id = ANY($1::bigint[])", group_ids)
            row = await conn.fetchrow(
                """
                INSERT INTO event_groups (primary_post_id, merged_post_ids)
                VALUES ($1, $2::text[])
                ON CONFLICT (primary_post_id) DO UPDATE SET
                    merged_post_ids = ARRAY(
                        SELECT DISTINCT unnest(event_groups.merged_post_ids || EXCLUDED.merged_post_ids)
                    ),
                    updated_at = NOW()
                RETURNING *
                """,
                primary_post_id,
                merged,
            )
            await conn.execute(
                """
                UPDATE posts
                SET is_duplicate = TRUE, duplicate_of = $2, review_tier = 'rejected', updated_at = NOW()
                WHERE post_id = ANY($1::text[])
                """,
                merged,
                primary_post_id,
            )
            await conn.execute(
                """
                UPDATE posts SET is_duplicate = FALSE, duplicate_of = NULL, updated_at = NOW()
                WHERE post_id = $1
                """,
                primary_post_id,
            )

        group = _row_to_group(row)
        logger.info(f"Folded groups {group_ids} into {group.group_id}: primary={primary_post_id}")
        return group


_MARK_DUPLICATE_SQL = """
    UPDATE posts
    SET is_duplicate = TRUE, duplicate_of = $2, review_tier = 'rejected', updated_at = NOW()
    WHERE post_id = $1
"""


def _row_to_candidate(row: Any) -> EventCandidate:
    event_date = row.get("event_date")
    return EventCandidate(
        post_id=row["post_id"],
        title=row.get("title"),
        venue_name=row.get("venue_name"),
        event_date=event_date.isoformat() if isinstance(event_date, date) else event_date,
        source_authority=row.get("source_authority") or 50,
        engagement=row.get("engagement") or 0,
        completeness=row.get("completeness_score") or 0,
    )


def _row_to_group(row: Any) -> EventGroup:
    return EventGroup(
        group_id=row.get("id"),
        primary_post_id=row["primary_post_id"],
        merged_post_ids=list(row.get("merged_post_ids") or []),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )
