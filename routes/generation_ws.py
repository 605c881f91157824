"""WebSocket endpoint streaming generation progress."""

from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter, Depends, HTTPException, WebSocket
from starlette.websockets import WebSocketDisconnect

from services.generation_socket import GenerationSocketHandler, SnapshotChannel, snapshot_message
from services.session_store import SessionStore

router = APIRouter()


def _require_session_store(websocket: WebSocket) -> SessionStore:
	store = getattr(websocket.app.state, "session_store", None)
	if store is None:
		raise HTTPException(status_code=500, detail="Session store unavailable")
	return store


async def _pump_snapshots(websocket: WebSocket, channel: SnapshotChannel) -> None:
	while True:
		snapshot = await channel.next()
		try:
			await websocket.send_text(json.dumps(snapshot_message(snapshot)))
		except (WebSocketDisconnect, RuntimeError):
			return


@router.websocket("/ws/sessions/{session_id}")
async def generation_socket(websocket: WebSocket, session_id: str, store: SessionStore = Depends(_require_session_store)):
	"""Push session snapshots and accept start/rerun/cancel commands."""
	await websocket.accept()
	try:
		orchestrator = store.get(session_id)
	except KeyError:
		await websocket.send_text(json.dumps({"type": "error", "detail": "Session not found"}))
		await websocket.close()
		return

	channel = SnapshotChannel()
	channel.push(orchestrator.snapshot(include_image_data=False))
	unsubscribe = orchestrator.subscribe(channel.push)
	pump = asyncio.create_task(_pump_snapshots(websocket, channel))
	handler = GenerationSocketHandler(orchestrator)
	try:
		while True:
			try:
				raw = await websocket.receive_text()
			except WebSocketDisconnect:
				break
			try:
				payload = json.loads(raw)
			except json.JSONDecodeError:
				await websocket.send_text(json.dumps({"type": "error", "detail": "Payload must be JSON"}))
				continue
			if not isinstance(payload, dict):
				await websocket.send_text(json.dumps({"type": "error", "detail": "Payload must be a JSON object"}))
				continue
			await handler.handle(websocket, payload)
	finally:
		unsubscribe()
		pump.cancel()
	try:
		await websocket.close()
	except RuntimeError:
		pass
