"""WebSocket endpoint for video-session signaling and participant control."""

from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter, Depends, HTTPException, WebSocket
from starlette.websockets import WebSocketDisconnect

from services.realtime.connection import ClientConnection
from services.realtime.ws_session import ConnectionGateway

router = APIRouter()


def _require_gateway(websocket: WebSocket) -> ConnectionGateway:
	gateway = getattr(websocket.app.state, "gateway", None)
	if gateway is None:
		raise HTTPException(status_code=500, detail="Signaling gateway unavailable")
	return gateway


@router.websocket("/ws")
async def signaling_socket(websocket: WebSocket, gateway: ConnectionGateway = Depends(_require_gateway)):
	"""Relay signaling and control events for one client connection."""
	await websocket.accept()
	connection = ClientConnection(websocket)
	writer = asyncio.create_task(connection.run_writer())
	gateway.connect(connection)
	try:
		while True:
			try:
				message = await websocket.receive()
			except (WebSocketDisconnect, RuntimeError):
				break
			if message["type"] == "websocket.disconnect":
				break
			raw = message.get("text")
			if raw is None:
				gateway.send_error(connection, "Invalid websocket frame")
				continue
			try:
				payload = json.loads(raw)
			except Exception:
				gateway.send_error(connection, "Payload must be JSON")
				continue
			if not isinstance(payload, dict):
				gateway.send_error(connection, "Payload must be a JSON object")
				continue
			gateway.handle(connection, payload)
	finally:
		gateway.disconnect(connection.connection_id)
		try:
			await writer
		except Exception:
			pass
	try:
		await websocket.close()
	except Exception:
		pass
