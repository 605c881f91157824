"""Domain models for generation sessions."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class StepStatus(str, Enum):
	"""Lifecycle of a pipeline step as seen by a consumer."""

	PENDING = "pending"
	LOADING = "loading"
	DONE = "done"
	ERROR = "error"


@dataclass
class Step:
	"""One pipeline stage with its status and elapsed seconds (2 decimals)."""

	name: str
	status: StepStatus = StepStatus.PENDING
	time: str = "0.00"

	def as_dict(self) -> Dict[str, str]:
		return {"name": self.name, "status": self.status.value, "time": self.time}


@dataclass(frozen=True)
class ReferenceImage:
	"""An uploaded product photo passed inline to the view generator."""

	data: bytes
	mime_type: str
	filename: str = "reference"


@dataclass(frozen=True)
class GeneratedImage:
	"""A synthesized view, carried as an inline data URI."""

	view: str
	label: str
	url: str

	@property
	def mime_type(self) -> str:
		header = self.url.split(",", 1)[0]
		return header[len("data:"):].split(";", 1)[0] or "image/png"

	def as_dict(self) -> Dict[str, str]:
		return {"view": self.view, "label": self.label, "url": self.url}


@dataclass(frozen=True)
class ReconstructionJob:
	"""Handles returned by the job queue when a reconstruction is submitted."""

	status_url: str
	response_url: str
	cancel_url: Optional[str] = None


@dataclass
class PipelineState:
	"""Everything a consumer can observe about one session's pipeline.

	A freshly constructed instance is the initial-load state; cancelling a
	session restores exactly this.
	"""

	references: List[ReferenceImage] = field(default_factory=list)
	generated_images: List[GeneratedImage] = field(default_factory=list)
	model_url: Optional[str] = None
	error: Optional[str] = None
	is_busy: bool = False
	total_time: Optional[float] = None
	started_at: Optional[float] = None
	cancel_url: Optional[str] = None


@dataclass
class GenerationResult:
	"""Summary of a successful run, handed to completion hooks."""

	session_id: str
	mesh_url: str
	total_time: Optional[float]
	steps: List[Step]
	images: List[GeneratedImage]
	created_at: float = field(default_factory=lambda: time.time())

	def step_times(self) -> Dict[str, Any]:
		return {step.name: step.time for step in self.steps}
