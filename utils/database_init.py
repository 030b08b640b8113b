import os
import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import aiosqlite


class AsyncDatabaseInitializer:
    """
    Manage the async SQLite database holding VIDEO_SESSION rows.

    - The database file is located at: <folder>/app.db, where <folder> is the
      `parent_folder` argument or, when omitted, the DATABASE_DIR environment
      variable. A RuntimeError is raised if neither yields a usable directory.
    - The first call to `ensure_database()` creates the file and the
      VIDEO_SESSION table if they are missing. Existing rows are kept.
    - Subsequent calls to `ensure_database()` on the same instance are no-ops,
      so it is safe for `connection()` to call it.
    """

    def __init__(self, parent_folder: Optional[Path | str] = None) -> None:
        if parent_folder is not None:
            raw_dir = str(parent_folder)
        else:
            raw_dir = os.getenv("DATABASE_DIR") or ""

        if not raw_dir.strip():
            raise RuntimeError(
                "DATABASE_DIR environment variable must be set to a writable "
                "directory path where the SQLite database file will be stored."
            )

        db_dir = Path(raw_dir).expanduser()

        if db_dir.exists() and not db_dir.is_dir():
            raise RuntimeError(
                f"DATABASE_DIR={raw_dir!r} points to a file, not a directory "
                f"({db_dir}). Please set DATABASE_DIR to a directory path."
            )

        try:
            db_dir.mkdir(parents=True, exist_ok=True)
        except Exception as exc:
            raise RuntimeError(
                f"Failed to create or access database directory at {db_dir}"
            ) from exc

        self.db_dir = db_dir
        self.db_path = self.db_dir / "app.db"
        self._initialized = False

    async def ensure_database(self) -> None:
        """
        Ensure the SQLite database and the VIDEO_SESSION table exist.

        Subsequent calls on the same instance are no-ops.
        """
        if self._initialized:
            return

        max_attempts = 3
        for attempt in range(1, max_attempts + 1):
            try:
                async with aiosqlite.connect(self.db_path) as db:
                    await db.execute(
                        """
                        CREATE TABLE IF NOT EXISTS VIDEO_SESSION (
                            id INTEGER PRIMARY KEY AUTOINCREMENT,
                            session_token TEXT NOT NULL UNIQUE,
                            tutor_id TEXT,
                            booking_id TEXT UNIQUE,
                            subject TEXT,
                            status TEXT NOT NULL DEFAULT 'ACTIVE',
                            started_at INTEGER,
                            ended_at INTEGER
                        )
                        """
                    )
                    await db.execute(
                        "CREATE INDEX IF NOT EXISTS idx_video_session_status ON VIDEO_SESSION(status, ended_at)"
                    )
                    await db.commit()
                break
            except FileNotFoundError:
                # On some platforms a transient missing file error may occur; retry a few times.
                if attempt >= max_attempts:
                    raise
                await asyncio.sleep(0.1 * attempt)

        self._initialized = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Async context manager yielding an `aiosqlite.Connection`.

        The schema is created on first use via `ensure_database()`.
        """
        await self.ensure_database()
        conn = await aiosqlite.connect(self.db_path)
        try:
            yield conn
        finally:
            await conn.close()
