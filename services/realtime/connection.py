"""Outbound side of a single relay websocket connection."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional
from uuid import uuid4

from fastapi import WebSocket

LOGGER = logging.getLogger(__name__)

OUTBOX_LIMIT = 256


class ClientConnection:
	"""Queue outbound events for one websocket and drain them from a writer task.

	`send` never awaits, so the gateway can mutate the registry and fan out
	events as one uninterrupted step on the event loop. A client that lets
	`outbox_limit` events pile up is marked `overflowed` and its socket is
	closed by the writer.
	"""

	def __init__(
		self,
		websocket: WebSocket,
		connection_id: Optional[str] = None,
		outbox_limit: int = OUTBOX_LIMIT,
	) -> None:
		self.websocket = websocket
		self.connection_id = connection_id or uuid4().hex
		self.session_id: Optional[str] = None
		self.overflowed = False
		self._outbox: "asyncio.Queue[Optional[Dict[str, Any]]]" = asyncio.Queue(maxsize=outbox_limit)
		self._closed = False

	def send(self, message: Dict[str, Any]) -> None:
		"""Enqueue a message; dropped silently once the connection is closed."""
		if self._closed:
			return
		try:
			self._outbox.put_nowait(message)
		except asyncio.QueueFull:
			LOGGER.warning("Outbound queue full for %s; dropping client", self.connection_id)
			self.overflowed = True
			self._discard_pending()
			self.close()

	def close(self) -> None:
		"""Stop accepting messages and let the writer finish what is queued."""
		if self._closed:
			return
		self._closed = True
		if self._outbox.full():
			self._discard_pending()
		self._outbox.put_nowait(None)

	def _discard_pending(self) -> None:
		while not self._outbox.empty():
			self._outbox.get_nowait()

	async def run_writer(self) -> None:
		"""Write queued messages to the websocket until closed."""
		while True:
			message = await self._outbox.get()
			if message is None:
				break
			try:
				await self.websocket.send_text(json.dumps(message))
			except Exception as exc:
				LOGGER.debug("Dropping writer for %s: %s", self.connection_id, exc)
				self._closed = True
				return
		if self.overflowed:
			try:
				await self.websocket.close(code=1008)
			except Exception as exc:
				LOGGER.debug("Closing %s after overflow failed: %s", self.connection_id, exc)


class ConnectionDirectory:
	"""Address open connections by id and fan events out to a session."""

	def __init__(self, registry) -> None:
		self.registry = registry
		self._connections: Dict[str, ClientConnection] = {}

	def add(self, connection: ClientConnection) -> None:
		self._connections[connection.connection_id] = connection

	def discard(self, connection_id: str) -> Optional[ClientConnection]:
		return self._connections.pop(connection_id, None)

	def get(self, connection_id: str) -> Optional[ClientConnection]:
		return self._connections.get(connection_id)

	def __len__(self) -> int:
		return len(self._connections)

	def send_to(self, connection_id: str, message: Dict[str, Any]) -> bool:
		"""Send to one connection; False when it is no longer open."""
		connection = self._connections.get(connection_id)
		if connection is None:
			return False
		connection.send(message)
		return True

	def broadcast(self, session_id: str, message: Dict[str, Any], exclude: Optional[str] = None) -> int:
		"""Send to every participant of the session except `exclude`."""
		sent = 0
		for participant in self.registry.list_participants(session_id):
			if participant.connection_id == exclude:
				continue
			if self.send_to(participant.connection_id, message):
				sent += 1
		return sent

	def send_participant_list(self, session_id: str) -> None:
		"""Resync the whole session with its full participant list."""
		participants = [p.to_event() for p in self.registry.list_participants(session_id)]
		self.broadcast(session_id, {"type": "participantList", "participants": participants})

	def overflowed(self) -> List[str]:
		"""Ids of open connections whose outbound queue ran over its limit."""
		return [cid for cid, connection in self._connections.items() if connection.overflowed]
