"""Dispatch generation websocket events and push progress snapshots."""
from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Optional

from fastapi import WebSocket

from services.generation.orchestrator import PipelineOrchestrator


class SnapshotChannel:
	"""Keep only the newest snapshot so slow clients skip stale ticks."""

	def __init__(self) -> None:
		self._latest: Optional[Dict[str, Any]] = None
		self._ready = asyncio.Event()

	def push(self, snapshot: Dict[str, Any]) -> None:
		self._latest = snapshot
		self._ready.set()

	async def next(self) -> Dict[str, Any]:
		await self._ready.wait()
		self._ready.clear()
		return self._latest or {}


class GenerationSocketHandler:
	"""Route websocket messages for a single generation session."""

	def __init__(self, orchestrator: PipelineOrchestrator) -> None:
		self.orchestrator = orchestrator

	async def handle(self, websocket: WebSocket, payload: Dict[str, Any]) -> None:
		"""Process a single inbound websocket payload."""
		request_id = payload.get("request_id")
		message_type = payload.get("type")
		try:
			if message_type == "generation.start":
				result = {"type": "generation.ack", "action": "start", "started": self.orchestrator.start() is not None}
			elif message_type == "generation.rerun":
				result = {"type": "generation.ack", "action": "rerun", "started": self.orchestrator.rerun() is not None}
			elif message_type == "generation.cancel":
				self.orchestrator.cancel()
				result = {"type": "generation.ack", "action": "cancel", "started": False}
			elif message_type == "generation.snapshot":
				result = snapshot_message(self.orchestrator.snapshot(include_image_data=False))
			else:
				raise ValueError("Unsupported message type.")
			result["request_id"] = request_id
			await self._send(websocket, result)
		except Exception as exc:
			await self._send_error(websocket, request_id, str(exc))

	async def _send_error(self, websocket: WebSocket, request_id: Any, detail: str) -> None:
		await self._send(websocket, {"type": "error", "request_id": request_id, "detail": detail})

	async def _send(self, websocket: WebSocket, payload: Dict[str, Any]) -> None:
		await websocket.send_text(json.dumps(payload))


def snapshot_message(snapshot: Dict[str, Any]) -> Dict[str, Any]:
	return {"type": "generation.snapshot", **snapshot}
