"""Dispatch realtime websocket events to the appropriate handlers."""
from __future__ import annotations

import logging
from typing import Any, Dict

from pydantic import ValidationError

from models.signaling_events import ControlEvent, EndSessionEvent, JoinEvent, LeaveEvent, SignalEvent
from services.realtime.authorization import DEFAULT_PRIVILEGED_ROLE, AuthorizationGuard
from services.realtime.connection import ClientConnection, ConnectionDirectory
from services.realtime.session_registry import SessionRegistry
from services.realtime.ws_control import MEDIA_COMMANDS, ControlMessageHandler
from services.realtime.ws_signaling import SIGNAL_TYPES, SignalingMessageHandler

LOGGER = logging.getLogger(__name__)


class ConnectionGateway:
	"""Own the session registry and route every connection's events.

	Each inbound message is handled to completion without awaiting, so the
	registry needs no lock and participant lists reach peers in processing
	order.
	"""

	def __init__(self, registry: SessionRegistry, privileged_role: str = DEFAULT_PRIVILEGED_ROLE) -> None:
		self.registry = registry
		self.directory = ConnectionDirectory(registry)
		self.guard = AuthorizationGuard(registry, privileged_role)
		self.signaling = SignalingMessageHandler(registry, self.directory)
		self.control = ControlMessageHandler(registry, self.directory, self.guard)

	def connect(self, connection: ClientConnection) -> None:
		"""Register a freshly accepted connection and tell it its id."""
		self.directory.add(connection)
		connection.send({"type": "connected", "connectionId": connection.connection_id})
		LOGGER.info("Client connected: %s", connection.connection_id)

	def handle(self, connection: ClientConnection, payload: Dict[str, Any]) -> None:
		"""Process a single inbound websocket payload."""
		message_type = payload.get("type")
		try:
			if message_type == "join":
				self._join(connection, JoinEvent.model_validate(payload))
			elif message_type == "leave":
				self._leave(connection, LeaveEvent.model_validate(payload).session_id)
			elif message_type in SIGNAL_TYPES:
				self.signaling.relay(connection, message_type, SignalEvent.model_validate(payload))
			elif message_type in MEDIA_COMMANDS:
				self.control.media(connection, message_type, ControlEvent.model_validate(payload))
			elif message_type == "removeParticipant":
				self.control.remove(connection, ControlEvent.model_validate(payload))
			elif message_type == "approveParticipant":
				self.control.approve(connection, ControlEvent.model_validate(payload))
			elif message_type == "endSession":
				self.control.end(connection, EndSessionEvent.model_validate(payload))
			else:
				self.send_error(connection, f"Unsupported event type: {message_type!r}")
		except ValidationError:
			self.send_error(connection, f"Invalid payload for {message_type}")
		except Exception:
			LOGGER.exception("Failed to handle %s from %s", message_type, connection.connection_id)
			self.send_error(connection, f"Failed to handle {message_type}")
		self._drop_overflowed()

	def disconnect(self, connection_id: str) -> None:
		"""Clean up after a transport-level disconnect.

		Every session is scanned for the connection, since it may have dropped
		before or during a join.
		"""
		for session_id in self.registry.sessions_for_connection(connection_id):
			self._depart(session_id, connection_id)
		connection = self.directory.discard(connection_id)
		if connection is not None:
			connection.session_id = None
			connection.close()
		LOGGER.info("Client disconnected: %s", connection_id)
		self._drop_overflowed()

	def end_session(self, session_id: str) -> int:
		"""Terminate a live session from outside the websocket (e.g. the HTTP API)."""
		notified = self.control.terminate(session_id)
		self._drop_overflowed()
		return notified

	def participant_count(self, session_id: str) -> int:
		return len(self.registry.list_participants(session_id))

	def send_error(self, connection: ClientConnection, message: str) -> None:
		connection.send({"type": "error", "message": message})

	def _join(self, connection: ClientConnection, event: JoinEvent) -> None:
		previous = connection.session_id
		if previous is not None and previous != event.session_id:
			self._leave(connection, previous)
		participant = self.registry.add_participant(
			event.session_id, connection.connection_id, event.user_id, event.role
		)
		connection.session_id = event.session_id
		joined = {"type": "participantJoined", **participant.to_event()}
		self.directory.broadcast(event.session_id, joined, exclude=connection.connection_id)
		self.directory.send_participant_list(event.session_id)
		LOGGER.info("User %s (%s) joined session %s", event.user_id, event.role, event.session_id)

	def _leave(self, connection: ClientConnection, session_id: str) -> None:
		self._depart(session_id, connection.connection_id)
		if connection.session_id == session_id:
			connection.session_id = None
		LOGGER.info("Connection %s left session %s", connection.connection_id, session_id)

	def _drop_overflowed(self) -> None:
		# a client that cannot keep up is treated as disconnected
		for connection_id in self.directory.overflowed():
			if self.directory.get(connection_id) is not None:
				self.disconnect(connection_id)

	def _depart(self, session_id: str, connection_id: str) -> None:
		if self.registry.remove_participant(session_id, connection_id) is None:
			return
		self.directory.broadcast(session_id, {"type": "participantLeft", "connectionId": connection_id})
		self.directory.send_participant_list(session_id)
