"""FastAPI routes for video-session lifecycle."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel, Field

from controllers.session_controller import (
    end_booking_session,
    end_live_session,
    get_booking_session,
    get_live_session,
    get_or_create_booking_session,
    start_live_session,
)
from utils.settings import Settings

router = APIRouter(prefix="/video", tags=["video"])


class Caller(BaseModel):
    user_id: str
    role: str


class StartLivePayload(BaseModel):
    subject: Optional[str] = Field(default=None, max_length=200)


class BookingSessionPayload(BaseModel):
    bookingId: str = Field(..., min_length=1)


def _require_caller(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Caller:
    """Identity asserted by the upstream auth layer."""
    if not x_user_id or not x_user_role:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return Caller(user_id=x_user_id, role=x_user_role)


def _settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or Settings()


@router.post("/live/start")
async def start_live_route(
    request: Request,
    payload: StartLivePayload,
    caller: Caller = Depends(_require_caller),
):
    if caller.role != _settings(request).privileged_role:
        raise HTTPException(status_code=403, detail="Only tutors can start live sessions")
    try:
        return await start_live_session(request, caller.user_id, payload.subject)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@router.get("/live/{session_token}")
async def get_live_route(request: Request, session_token: str):
    try:
        return await get_live_session(request, session_token)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@router.post("/live/{session_token}/end")
async def end_live_route(
    request: Request,
    session_token: str,
    caller: Caller = Depends(_require_caller),
):
    try:
        return await end_live_session(request, session_token, caller.user_id, caller.role)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@router.post("/session")
async def booking_session_route(
    request: Request,
    payload: BookingSessionPayload,
    caller: Caller = Depends(_require_caller),
):
    try:
        return await get_or_create_booking_session(request, payload.bookingId)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@router.get("/session")
async def get_booking_session_route(
    request: Request,
    bookingId: Optional[str] = None,
    caller: Caller = Depends(_require_caller),
):
    if not bookingId:
        raise HTTPException(status_code=400, detail="Booking ID is required")
    try:
        return await get_booking_session(request, bookingId)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@router.post("/session/{booking_id}/end")
async def end_booking_session_route(
    request: Request,
    booking_id: str,
    caller: Caller = Depends(_require_caller),
):
    try:
        return await end_booking_session(request, booking_id, caller.user_id, caller.role)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))
