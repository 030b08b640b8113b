"""Session domain models for the realtime video relay."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Dict


@dataclass
class Participant:
	"""One connected party inside one video session."""

	connection_id: str
	user_id: str
	role: str

	def to_event(self) -> Dict[str, str]:
		"""Return the wire representation used in participant broadcasts."""
		return {"connectionId": self.connection_id, "userId": self.user_id, "role": self.role}


@dataclass
class SessionState:
	"""In-memory membership tracking for a live video session."""

	session_id: str
	created_at: float = field(default_factory=lambda: time.time())
	participants: Dict[str, Participant] = field(default_factory=dict)
