"""Role check applied before any participant-control command."""
from __future__ import annotations

from services.realtime.session_registry import SessionRegistry

DEFAULT_PRIVILEGED_ROLE = "TUTOR"


class AuthorizationGuard:
	"""Allow control commands only from connections joined with the privileged role."""

	def __init__(self, registry: SessionRegistry, privileged_role: str = DEFAULT_PRIVILEGED_ROLE) -> None:
		self.registry = registry
		self.privileged_role = privileged_role

	def is_privileged(self, session_id: str, connection_id: str) -> bool:
		"""Return True only if the connection's recorded role is the privileged one.

		Connections with no record in the session (not joined yet, removed, or
		the session is gone) fail closed.
		"""
		participant = self.registry.get_participant(session_id, connection_id)
		if participant is None:
			return False
		return participant.role == self.privileged_role
