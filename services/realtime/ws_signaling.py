"""Relay WebRTC negotiation messages between participants of a session."""
from __future__ import annotations

import logging
from typing import Any, Dict

from models.signaling_events import SignalEvent
from services.realtime.connection import ClientConnection, ConnectionDirectory
from services.realtime.session_registry import SessionRegistry

LOGGER = logging.getLogger(__name__)

SIGNAL_TYPES = ("offer", "answer", "iceCandidate")


class SignalingMessageHandler:
	"""Forward offers, answers and ICE candidates without looking inside them."""

	def __init__(self, registry: SessionRegistry, directory: ConnectionDirectory) -> None:
		self.registry = registry
		self.directory = directory

	def relay(self, connection: ClientConnection, message_type: str, event: SignalEvent) -> int:
		"""Deliver a signal to its target, or to every other peer when untargeted.

		Returns the number of connections the signal reached. Senders that are
		not participants of the session, and targets outside it, are ignored.
		"""
		session_id = event.session_id
		if self.registry.get_participant(session_id, connection.connection_id) is None:
			LOGGER.debug("Ignoring %s from %s: not in session %s", message_type, connection.connection_id, session_id)
			return 0
		outbound: Dict[str, Any] = {
			"type": message_type,
			"payload": event.payload,
			"senderConnectionId": connection.connection_id,
		}
		target = event.target_connection_id
		if target is None:
			return self.directory.broadcast(session_id, outbound, exclude=connection.connection_id)
		if self.registry.get_participant(session_id, target) is None:
			return 0
		outbound["targetConnectionId"] = target
		return 1 if self.directory.send_to(target, outbound) else 0
