"""Video-session lifecycle helpers behind the HTTP routes."""

from __future__ import annotations

import logging
import secrets
from typing import Any, Dict, Optional

import aiosqlite
from fastapi import HTTPException, Request

from dal.video_session_dal import VideoSessionDAL
from models.video_session_record import VideoSessionRecord
from services.realtime.ws_session import ConnectionGateway
from utils.settings import Settings

LOGGER = logging.getLogger(__name__)


def _new_session_token() -> str:
    return secrets.token_hex(32)


def _dal(request: Request) -> VideoSessionDAL:
    db_initializer = getattr(request.app.state, "db_initializer", None)
    if db_initializer is None:
        raise HTTPException(status_code=500, detail="Database not initialized.")
    return VideoSessionDAL(db_initializer)


def _settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or Settings()


async def start_live_session(request: Request, tutor_id: str, subject: Optional[str]) -> Dict[str, Any]:
    """Mint a token for an ad-hoc live session started by a tutor."""
    record = await _dal(request).create_session(
        VideoSessionRecord(id=None, session_token=_new_session_token(), tutor_id=tutor_id, subject=subject or None)
    )
    LOGGER.info("Tutor %s started live session %s", tutor_id, record.id)
    return {
        "sessionId": record.id,
        "sessionToken": record.session_token,
        "joinLink": f"{_settings(request).public_base_url}/join/{record.session_token}",
        "status": record.status,
    }


async def get_live_session(request: Request, session_token: str) -> Dict[str, Any]:
    """Return joinable session details for a token."""
    record = await _dal(request).get_by_token(session_token)
    if record is None:
        raise HTTPException(status_code=404, detail="Session not found")
    if not record.is_active:
        raise HTTPException(status_code=400, detail="Session has ended")
    gateway: Optional[ConnectionGateway] = getattr(request.app.state, "gateway", None)
    return {
        "sessionId": record.id,
        "sessionToken": record.session_token,
        "subject": record.subject,
        "tutorId": record.tutor_id,
        "startedAt": record.started_at,
        "participantCount": gateway.participant_count(record.session_token) if gateway else 0,
    }


def _may_end(record: VideoSessionRecord, user_id: str, role: str, settings: Settings) -> bool:
    # sessions with no tutor on record are admin only
    if role == settings.admin_role:
        return True
    return record.tutor_id is not None and record.tutor_id == user_id


async def _end_record(request: Request, dal: VideoSessionDAL, record: VideoSessionRecord, user_id: str) -> Dict[str, Any]:
    await dal.mark_ended(record.session_token)
    gateway: Optional[ConnectionGateway] = getattr(request.app.state, "gateway", None)
    notified = gateway.end_session(record.session_token) if gateway else 0
    LOGGER.info("Video session %s ended by %s; %d participants notified", record.id, user_id, notified)
    return {"message": "Video session ended successfully"}


async def end_live_session(request: Request, session_token: str, user_id: str, role: str) -> Dict[str, Any]:
    """Mark a session ended and close its live relay room.

    Ad-hoc sessions may only be ended by the tutor who started them; any
    session may be ended by an admin.
    """
    dal = _dal(request)
    record = await dal.get_by_token(session_token)
    if record is None:
        raise HTTPException(status_code=404, detail="Video session not found")
    if not _may_end(record, user_id, role, _settings(request)):
        raise HTTPException(status_code=403, detail="Unauthorized")
    return await _end_record(request, dal, record, user_id)


async def end_booking_session(request: Request, booking_id: str, user_id: str, role: str) -> Dict[str, Any]:
    """End the video session attached to a booking."""
    dal = _dal(request)
    record = await dal.get_by_booking(booking_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Video session not found")
    if not _may_end(record, user_id, role, _settings(request)):
        raise HTTPException(status_code=403, detail="Unauthorized")
    return await _end_record(request, dal, record, user_id)


async def get_or_create_booking_session(request: Request, booking_id: str) -> Dict[str, Any]:
    """Return the booking's video session, creating it on first request."""
    dal = _dal(request)
    record = await dal.get_by_booking(booking_id)
    if record is None:
        try:
            record = await dal.create_session(
                VideoSessionRecord(id=None, session_token=_new_session_token(), booking_id=booking_id)
            )
        except aiosqlite.IntegrityError:
            # lost a race with a concurrent request for the same booking
            record = await dal.get_by_booking(booking_id)
            if record is None:
                raise
        else:
            LOGGER.info("Created video session %s for booking %s", record.id, booking_id)
    return {"sessionToken": record.session_token, "sessionId": record.id, "status": record.status}


async def get_booking_session(request: Request, booking_id: str) -> Dict[str, Any]:
    record = await _dal(request).get_by_booking(booking_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Video session not found")
    return {
        "sessionToken": record.session_token,
        "sessionId": record.id,
        "status": record.status,
        "startedAt": record.started_at,
    }
