"""Async Data Access Layer for the VIDEO_SESSION table.

Provides VideoSessionDAL with the async operations the lifecycle routes need,
compatible with `utils.database_init.AsyncDatabaseInitializer`.
"""

from __future__ import annotations

import time
from typing import Optional, Sequence

from models.video_session_record import STATUS_ENDED, VideoSessionRecord
from utils.database_init import AsyncDatabaseInitializer


class VideoSessionDAL:
    """Data access layer for VIDEO_SESSION records.

    The constructor accepts an `AsyncDatabaseInitializer` (or any object
    exposing an async `connection()` context manager that yields an
    `aiosqlite.Connection`).
    """

    _COLUMNS = (
        "id",
        "session_token",
        "tutor_id",
        "booking_id",
        "subject",
        "status",
        "started_at",
        "ended_at",
    )
    _COLUMN_LIST, _INSERT_COLUMNS = ", ".join(_COLUMNS), ", ".join(_COLUMNS[1:])

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def create_session(self, record: VideoSessionRecord) -> VideoSessionRecord:
        """Insert a new VIDEO_SESSION row and return it with its id populated.

        Args:
            record: VideoSessionRecord with `id=None` and fields to insert.
        """
        started_at = record.started_at or int(time.time())

        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"INSERT INTO VIDEO_SESSION ({self._INSERT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    record.session_token,
                    record.tutor_id,
                    record.booking_id,
                    record.subject,
                    record.status,
                    started_at,
                    record.ended_at,
                ),
            )
            await conn.commit()
            record.id = cur.lastrowid
        record.started_at = started_at
        return record

    async def get_by_token(self, session_token: str) -> Optional[VideoSessionRecord]:
        """Return the session for `session_token`, or None if not found."""
        return await self._fetch_one("session_token", session_token)

    async def get_by_booking(self, booking_id: str) -> Optional[VideoSessionRecord]:
        """Return the session attached to `booking_id`, or None if not found."""
        return await self._fetch_one("booking_id", booking_id)

    async def mark_ended(self, session_token: str, ended_at: Optional[int] = None) -> bool:
        """Set status ENDED on an active session. Returns True if a row was changed."""
        async with self._db.connection() as conn:
            await conn.execute(
                "UPDATE VIDEO_SESSION SET status = ?, ended_at = ? WHERE session_token = ? AND status != ?",
                (STATUS_ENDED, ended_at or int(time.time()), session_token, STATUS_ENDED),
            )
            await conn.commit()
            cur = await conn.execute("SELECT changes()")
            changed = await cur.fetchone()
            return bool(changed and changed[0] > 0)

    async def _fetch_one(self, column: str, value: str) -> Optional[VideoSessionRecord]:
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM VIDEO_SESSION WHERE {column} = ?",
                (value,),
            )
            row = await cur.fetchone()
            return self._row_to_record(row) if row else None

    @staticmethod
    def _row_to_record(row: Sequence[object]) -> VideoSessionRecord:
        """Convert a DB row tuple into a VideoSessionRecord."""
        return VideoSessionRecord(
            id=row[0],
            session_token=row[1],
            tutor_id=row[2],
            booking_id=row[3],
            subject=row[4],
            status=row[5],
            started_at=row[6],
            ended_at=row[7],
        )
