from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

STATUS_ACTIVE = "ACTIVE"
STATUS_ENDED = "ENDED"


@dataclass
class VideoSessionRecord:
    """In-memory representation of a row in the VIDEO_SESSION table.

    Attributes:
        id: Primary key (None for new records).
        session_token: Opaque token handed to clients; the relay groups connections by it.
        tutor_id: Optional user id of the tutor who started an ad-hoc live session.
        booking_id: Optional booking the session belongs to.
        subject: Optional free-text lesson subject.
        status: ACTIVE or ENDED.
        started_at: Unix timestamp (seconds) when the row was inserted.
        ended_at: Unix timestamp (seconds) when the session was ended.
    """

    id: Optional[int]
    session_token: str
    tutor_id: Optional[str] = None
    booking_id: Optional[str] = None
    subject: Optional[str] = None
    status: str = STATUS_ACTIVE
    started_at: Optional[int] = None
    ended_at: Optional[int] = None

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE
