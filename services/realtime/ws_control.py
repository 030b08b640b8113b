"""Tutor-only participant control over the realtime websocket."""
from __future__ import annotations

import logging
from typing import List

from models.signaling_events import ControlEvent, EndSessionEvent
from services.realtime.authorization import AuthorizationGuard
from services.realtime.connection import ClientConnection, ConnectionDirectory
from services.realtime.session_registry import SessionRegistry

LOGGER = logging.getLogger(__name__)

MEDIA_COMMANDS = ("muteAudio", "unmuteAudio", "muteVideo", "unmuteVideo")

DENIED_CONTROL = "Only the tutor may control participants"
DENIED_REMOVE = "Only the tutor may remove participants"
DENIED_APPROVE = "Only the tutor may approve participants"
DENIED_END = "Only the tutor may end the session"


class ControlMessageHandler:
	"""Apply mute, remove, approve and end-session commands issued by the tutor.

	Every command is checked with the authorization guard first. A rejected
	command produces one error for the issuer and touches nothing else.
	Commands naming a user with no live connection are dropped quietly.
	"""

	def __init__(self, registry: SessionRegistry, directory: ConnectionDirectory, guard: AuthorizationGuard) -> None:
		self.registry = registry
		self.directory = directory
		self.guard = guard

	def media(self, connection: ClientConnection, command: str, event: ControlEvent) -> List[str]:
		"""Send a mute/unmute instruction to the target user's connection(s)."""
		if not self._authorize(connection, event.session_id, command, DENIED_CONTROL):
			return []
		targets = self.registry.find_participant_by_user_id(event.session_id, event.target_user_id)
		for target in targets:
			self.directory.send_to(target, {"type": command, "targetUserId": event.target_user_id})
		return targets

	def remove(self, connection: ClientConnection, event: ControlEvent) -> List[str]:
		"""Evict the target user and resync everyone who remains."""
		if not self._authorize(connection, event.session_id, "removeParticipant", DENIED_REMOVE):
			return []
		session_id = event.session_id
		targets = self.registry.find_participant_by_user_id(session_id, event.target_user_id)
		if not targets:
			return []
		for target in targets:
			self.registry.remove_participant(session_id, target)
			removed = self.directory.get(target)
			if removed is not None and removed.session_id == session_id:
				removed.session_id = None
			self.directory.send_to(target, {"type": "removeParticipant", "targetUserId": event.target_user_id})
		self.directory.send_participant_list(session_id)
		LOGGER.info("Removed user %s from session %s", event.target_user_id, session_id)
		return targets

	def approve(self, connection: ClientConnection, event: ControlEvent) -> List[str]:
		"""Let a waiting participant past the admission screen."""
		if not self._authorize(connection, event.session_id, "approveParticipant", DENIED_APPROVE):
			return []
		targets = self.registry.find_participant_by_user_id(event.session_id, event.target_user_id)
		for target in targets:
			self.directory.send_to(target, {"type": "approveParticipant", "targetUserId": event.target_user_id})
		if targets:
			LOGGER.info("Approved user %s in session %s", event.target_user_id, event.session_id)
		return targets

	def end(self, connection: ClientConnection, event: EndSessionEvent) -> bool:
		"""Notify the whole session that it is over and forget it."""
		if not self._authorize(connection, event.session_id, "endSession", DENIED_END):
			return False
		self.terminate(event.session_id)
		LOGGER.info("Session %s ended by connection %s", event.session_id, connection.connection_id)
		return True

	def terminate(self, session_id: str) -> int:
		"""Broadcast `sessionEnded` and drop every participant record."""
		self.directory.broadcast(session_id, {"type": "sessionEnded"})
		participants = self.registry.end_session(session_id)
		for participant in participants:
			member = self.directory.get(participant.connection_id)
			if member is not None and member.session_id == session_id:
				member.session_id = None
		return len(participants)

	def _authorize(self, connection: ClientConnection, session_id: str, command: str, denial: str) -> bool:
		if self.guard.is_privileged(session_id, connection.connection_id):
			return True
		LOGGER.warning("Rejected %s from %s in session %s", command, connection.connection_id, session_id)
		connection.send({"type": "error", "message": denial})
		return False
