"""Async Data Access Layer for the `posts` table.

Provides PostDAL with the async operations used by the upload flow, the
scoring function and the score history helpers. Rows are read and written
through `utils.database_init.AsyncDatabaseInitializer`.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from models.post_record import PostRecord, ScoringDetails
from utils.database_init import AsyncDatabaseInitializer


def utc_timestamp(moment: Optional[datetime] = None) -> str:
    """Return `moment` (default: now) as a fixed-width UTC ISO-8601 string."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")


class PostDAL:
    """Data access layer for post records.

    The constructor accepts an `AsyncDatabaseInitializer` (or any object
    exposing an async `connection()` context manager that yields an
    `aiosqlite.Connection`).
    """

    _COLUMNS = (
        "id",
        "user_id",
        "image_url",
        "image_path",
        "health_score",
        "scoring_details",
        "created_at",
    )
    _COLUMN_LIST = ", ".join(_COLUMNS)

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def create_post(self, user_id: str, image_url: str, image_path: str) -> PostRecord:
        """Insert a new unscored post and return it.

        Args:
            user_id: Owner of the post.
            image_url: Public URL of the stored image.
            image_path: Object path of the stored image.
        """
        record = PostRecord(
            id=str(uuid.uuid4()),
            user_id=user_id,
            image_url=image_url,
            image_path=image_path,
            created_at=utc_timestamp(),
        )
        async with self._db.connection() as conn:
            await conn.execute(
                "INSERT INTO posts (id, user_id, image_url, image_path, created_at) VALUES (?, ?, ?, ?, ?)",
                (record.id, record.user_id, record.image_url, record.image_path, record.created_at),
            )
            await conn.commit()
        return record

    async def get_post(self, post_id: str) -> Optional[PostRecord]:
        """Return the post for `post_id`, or None if not found."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM posts WHERE id = ?",
                (post_id,),
            )
            row = await cur.fetchone()
            return self._row_to_record(row) if row else None

    async def list_posts_for_user(self, user_id: str, limit: int = 50, offset: int = 0) -> List[PostRecord]:
        """List a user's posts, newest first."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM posts WHERE user_id = ? "
                "ORDER BY created_at DESC LIMIT ? OFFSET ?",
                (user_id, limit, offset),
            )
            rows = await cur.fetchall()
            return [self._row_to_record(r) for r in rows]

    async def latest_unscored_post(self, user_id: str) -> Optional[PostRecord]:
        """Return the user's newest post that has no health score yet."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM posts "
                "WHERE user_id = ? AND health_score IS NULL "
                "ORDER BY created_at DESC LIMIT 1",
                (user_id,),
            )
            row = await cur.fetchone()
            return self._row_to_record(row) if row else None

    async def scored_posts_between(self, user_id: str, start: str, end: str) -> List[PostRecord]:
        """Return scored posts created in `[start, end)` (UTC ISO strings)."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM posts "
                "WHERE user_id = ? AND health_score IS NOT NULL "
                "AND created_at >= ? AND created_at < ? ORDER BY created_at",
                (user_id, start, end),
            )
            rows = await cur.fetchall()
            return [self._row_to_record(r) for r in rows]

    async def update_score(self, post_id: str, health_score: int, details: ScoringDetails) -> bool:
        """Overwrite the score and details of a post. Returns True if a row was changed.

        Repeated calls for the same post replace the previous values.
        """
        async with self._db.connection() as conn:
            await conn.execute(
                "UPDATE posts SET health_score = ?, scoring_details = ? WHERE id = ?",
                (health_score, json.dumps(details.to_dict()), post_id),
            )
            cur = await conn.execute("SELECT changes()")
            changed = await cur.fetchone()
            await conn.commit()
            return bool(changed and changed[0] > 0)

    @staticmethod
    def _row_to_record(row: Sequence[object]) -> PostRecord:
        """Convert a DB row tuple into a PostRecord."""
        details = None
        if row[5]:
            details = ScoringDetails.from_dict(json.loads(str(row[5])))
        return PostRecord(
            id=str(row[0]),
            user_id=str(row[1]),
            image_url=str(row[2]),
            image_path=str(row[3]),
            health_score=int(row[4]) if row[4] is not None else None,
            scoring_details=details,
            created_at=str(row[6]) if row[6] is not None else None,
        )
