"""Helpers to remove ended VIDEO_SESSION rows from the SQLite database."""

import asyncio
import logging
import time

from utils.database_init import AsyncDatabaseInitializer

LOGGER = logging.getLogger(__name__)


class DatabaseCleaner:
    """Delete ended VIDEO_SESSION rows older than the configured retention window."""

    def __init__(self, db_initializer: AsyncDatabaseInitializer, retention_seconds: int = 604_800) -> None:
        """
        Args:
            db_initializer: Shared database initializer/connection provider.
            retention_seconds: Age threshold in seconds; ended rows older than this are removed.
        """
        self._db = db_initializer
        self.retention_seconds = retention_seconds

    async def prune_ended_sessions(self) -> int:
        """Delete ended rows past the retention window and return count removed."""
        cutoff = int(time.time()) - self.retention_seconds
        async with self._db.connection() as conn:
            await conn.execute(
                "DELETE FROM VIDEO_SESSION WHERE status = 'ENDED' AND ended_at < ?",
                (cutoff,),
            )
            await conn.commit()
            cur = await conn.execute("SELECT changes()")
            deleted = await cur.fetchone()
            return int(deleted[0]) if deleted and deleted[0] is not None else 0

    async def run_periodic_cleanup(self, interval_seconds: int = 3_600) -> None:
        """
        Repeatedly prune ended sessions at the given interval until cancelled.

        Args:
            interval_seconds: Seconds to sleep between cleanup runs.
        """
        while True:
            try:
                removed = await self.prune_ended_sessions()
                if removed:
                    LOGGER.info("Pruned %d ended video sessions", removed)
                await asyncio.sleep(interval_seconds)
            except asyncio.CancelledError:
                break
            except Exception:
                LOGGER.exception("Video session cleanup failed")
                await asyncio.sleep(interval_seconds)
