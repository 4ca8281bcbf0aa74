import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

LOGGER = logging.getLogger(__name__)

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS profiles (
        id TEXT PRIMARY KEY,
        username TEXT UNIQUE,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS posts (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        image_url TEXT NOT NULL,
        image_path TEXT NOT NULL,
        health_score INTEGER,
        scoring_details TEXT,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_posts_user_created ON posts(user_id, created_at)",
)


class AsyncDatabaseInitializer:
    """
    Manage the async SQLite database backing posts and profiles.

    - The database file is located at: <db_dir>/app.db
    - The directory is created when missing; a RuntimeError is raised if
      the path points to a file or cannot be created.
    - On the first call to `ensure_database()` for a given instance the
      schema is created. When `reset` is true any existing database file is
      deleted first.
    - Subsequent calls to `ensure_database()` on the same instance are no-ops,
      so it is safe for `connection()` to call it.
    """

    def __init__(self, db_dir: Path | str, *, reset: bool = False) -> None:
        db_dir = Path(db_dir).expanduser()

        if db_dir.exists() and not db_dir.is_dir():
            raise RuntimeError(
                f"DATABASE_DIR={str(db_dir)!r} points to a file, not a directory. "
                "Please set DATABASE_DIR to a directory path."
            )

        try:
            db_dir.mkdir(parents=True, exist_ok=True)
        except Exception as exc:
            raise RuntimeError(
                f"Failed to create or access database directory at {db_dir}"
            ) from exc

        self.db_dir = db_dir
        self.db_path = self.db_dir / "app.db"
        self.reset = reset

        self._initialized = False
        self._init_lock = asyncio.Lock()

    async def ensure_database(self) -> None:
        """
        Ensure the SQLite database exists at `self.db_path` with the current schema.

        Subsequent calls on the same instance are no-ops.
        """
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return

            if self.reset and self.db_path.exists():
                try:
                    self.db_path.unlink()
                except Exception as exc:
                    raise RuntimeError(
                        f"Failed to delete existing database at {self.db_path}"
                    ) from exc

            max_attempts = 3
            for attempt in range(1, max_attempts + 1):
                try:
                    async with aiosqlite.connect(self.db_path) as db:
                        for statement in SCHEMA_STATEMENTS:
                            await db.execute(statement)

                        # Older databases predate the scoring columns.
                        cur = await db.execute("PRAGMA table_info(posts)")
                        col_names = {col[1] for col in await cur.fetchall()}
                        if "health_score" not in col_names:
                            await db.execute("ALTER TABLE posts ADD COLUMN health_score INTEGER")
                        if "scoring_details" not in col_names:
                            await db.execute("ALTER TABLE posts ADD COLUMN scoring_details TEXT")

                        await db.commit()
                    break
                except FileNotFoundError:
                    # On some platforms a transient missing file error may occur; retry a few times.
                    if attempt >= max_attempts:
                        raise
                    await asyncio.sleep(0.1 * attempt)

            LOGGER.info("Database ready at %s", self.db_path)
            self._initialized = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Async context manager yielding an `aiosqlite.Connection`.

        The schema is created on the first use via `ensure_database()`.
        """
        await self.ensure_database()
        conn = await aiosqlite.connect(self.db_path)
        try:
            yield conn
        finally:
            await conn.close()
