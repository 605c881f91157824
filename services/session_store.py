"""Simple in-memory store for generation sessions."""

from __future__ import annotations

from typing import Callable, Dict, List
from uuid import uuid4

from services.generation.orchestrator import PipelineOrchestrator

OrchestratorFactory = Callable[[str], PipelineOrchestrator]


class SessionStore:
	"""Create, look up and close per-client pipeline orchestrators."""

	def __init__(self, factory: OrchestratorFactory) -> None:
		self._factory = factory
		self._sessions: Dict[str, PipelineOrchestrator] = {}

	def create(self) -> PipelineOrchestrator:
		"""Create a new session with an idle orchestrator."""
		session_id = uuid4().hex
		orchestrator = self._factory(session_id)
		self._sessions[session_id] = orchestrator
		return orchestrator

	def get(self, session_id: str) -> PipelineOrchestrator:
		"""Return a session or raise KeyError if missing."""
		orchestrator = self._sessions.get(session_id)
		if orchestrator is None:
			raise KeyError(f"Session {session_id} not found")
		return orchestrator

	def close(self, session_id: str) -> None:
		"""Cancel any in-flight generation and forget the session."""
		orchestrator = self.get(session_id)
		orchestrator.cancel()
		del self._sessions[session_id]

	def close_all(self) -> None:
		"""Cancel every session; used on application shutdown."""
		for session_id in list(self._sessions):
			self.close(session_id)

	def session_ids(self) -> List[str]:
		return list(self._sessions)

	def __len__(self) -> int:
		return len(self._sessions)
