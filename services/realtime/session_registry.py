"""In-memory registry of who is connected to which video session."""

from __future__ import annotations

from typing import Dict, List, Optional

from models.session_models import Participant, SessionState


class SessionRegistry:
	"""Track live sessions and their participants, keyed by connection id.

	Mutations are only made from the gateway's event loop and never await
	in between, so no locking is required.
	"""

	def __init__(self) -> None:
		self._sessions: Dict[str, SessionState] = {}

	def ensure_session(self, session_id: str) -> SessionState:
		"""Return the session, creating an empty one on first use."""
		state = self._sessions.get(session_id)
		if state is None:
			state = SessionState(session_id=session_id)
			self._sessions[session_id] = state
		return state

	def add_participant(self, session_id: str, connection_id: str, user_id: str, role: str) -> Participant:
		"""Insert or overwrite the participant record for a connection."""
		state = self.ensure_session(session_id)
		participant = Participant(connection_id=connection_id, user_id=user_id, role=role)
		state.participants[connection_id] = participant
		return participant

	def remove_participant(self, session_id: str, connection_id: str) -> Optional[Participant]:
		"""Drop a participant and garbage-collect the session once it is empty."""
		state = self._sessions.get(session_id)
		if state is None:
			return None
		participant = state.participants.pop(connection_id, None)
		if not state.participants:
			del self._sessions[session_id]
		return participant

	def list_participants(self, session_id: str) -> List[Participant]:
		"""Return a snapshot of the participants currently in the session."""
		state = self._sessions.get(session_id)
		if state is None:
			return []
		return list(state.participants.values())

	def find_participant_by_user_id(self, session_id: str, user_id: str) -> List[str]:
		"""Return the connection ids held by `user_id` in the session."""
		return [p.connection_id for p in self.list_participants(session_id) if p.user_id == user_id]

	def get_participant(self, session_id: str, connection_id: str) -> Optional[Participant]:
		state = self._sessions.get(session_id)
		if state is None:
			return None
		return state.participants.get(connection_id)

	def has_session(self, session_id: str) -> bool:
		return session_id in self._sessions

	def sessions_for_connection(self, connection_id: str) -> List[str]:
		"""Scan every session for a connection id (used on disconnect)."""
		return [sid for sid, state in self._sessions.items() if connection_id in state.participants]

	def end_session(self, session_id: str) -> List[Participant]:
		"""Clear all participants and delete the session, returning who was in it."""
		state = self._sessions.pop(session_id, None)
		if state is None:
			return []
		participants = list(state.participants.values())
		state.participants.clear()
		return participants

	def __len__(self) -> int:
		return len(self._sessions)
