"""Inbound websocket event payloads for the signaling relay."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _InboundEvent(BaseModel):
	model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

	session_id: str = Field(..., min_length=1)


class JoinEvent(_InboundEvent):
	user_id: str = Field(..., min_length=1)
	role: str = Field(..., min_length=1)


class LeaveEvent(_InboundEvent):
	pass


class SignalEvent(_InboundEvent):
	"""Offer, answer or ICE candidate. `payload` is forwarded untouched."""

	payload: Any
	target_connection_id: Optional[str] = None


class ControlEvent(_InboundEvent):
	target_user_id: str = Field(..., min_length=1)


class EndSessionEvent(_InboundEvent):
	pass
