"""Pipeline orchestration for one generation session.

The orchestrator sequences the two user-visible steps:

1. **Generate View Images** - three concurrent view syntheses.
2. **Generate 3D Model** - normalization, job submission, polling and
   result fetch against the reconstruction queue.

At most one generation is active per orchestrator. Every run captures the id
issued by its :class:`GenerationLedger` and re-checks it after each await;
once a newer run starts (``start``/``rerun``) or the session is cancelled,
late completions from the older run are dropped without touching state.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from models.generation_models import (
    GenerationResult,
    PipelineState,
    ReferenceImage,
    StepStatus,
)
from services.generation.image_normalizer import ImageNormalizer
from services.generation.ledger import GenerationLedger
from services.generation.reconstruction_client import ReconstructionClient
from services.generation.view_synthesis import ViewSynthesizer, ordered_views

LOGGER = logging.getLogger(__name__)

STEP_NAMES = ("Generate View Images", "Generate 3D Model")
SYNTHESIS_STEP = 0
RECONSTRUCTION_STEP = 1
MAX_REFERENCES = 3

SnapshotListener = Callable[[Dict[str, Any]], None]
CompletionHook = Callable[[GenerationResult], Awaitable[None]]


class PipelineOrchestrator:
    """Run, rerun and cancel the view-synthesis -> reconstruction pipeline.

    Args:
        synthesizer: Produces the front/back/left views.
        normalizer: Bounds and re-encodes views before submission.
        reconstruction: Client for the reconstruction job queue.
        session_id: Identifier reported in snapshots and completion results.
        ledger: Optional ledger; a new one is created when omitted.
        clock: Monotonic clock used for the total run time.
        on_complete: Optional coroutine called with the result of every
            successful run. Failures in the hook are logged only.
    """

    def __init__(
        self,
        synthesizer: ViewSynthesizer,
        normalizer: ImageNormalizer,
        reconstruction: ReconstructionClient,
        *,
        session_id: str = "",
        ledger: Optional[GenerationLedger] = None,
        clock: Callable[[], float] = time.perf_counter,
        on_complete: Optional[CompletionHook] = None,
    ) -> None:
        self.synthesizer = synthesizer
        self.normalizer = normalizer
        self.reconstruction = reconstruction
        self.session_id = session_id
        self.ledger = ledger or GenerationLedger(clock=clock)
        self.on_complete = on_complete
        self.state = PipelineState()
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self._listeners: List[SnapshotListener] = []
        self.ledger.subscribe(self._notify)

    # -- inputs ------------------------------------------------------------

    @property
    def is_busy(self) -> bool:
        return self.state.is_busy

    @property
    def references(self) -> List[ReferenceImage]:
        return list(self.state.references)

    def add_references(self, references: Sequence[ReferenceImage]) -> int:
        """Attach reference images up to the limit; returns how many were kept."""
        room = MAX_REFERENCES - len(self.state.references)
        accepted = list(references)[: max(room, 0)]
        self.state.references.extend(accepted)
        if accepted:
            self._notify()
        return len(accepted)

    def remove_reference(self, index: int) -> None:
        """Detach the reference image at `index`."""
        if index < 0 or index >= len(self.state.references):
            raise ValueError(f"No reference image at index {index}.")
        del self.state.references[index]
        self._notify()

    # -- lifecycle ---------------------------------------------------------

    def start(self) -> Optional[asyncio.Task]:
        """Begin a generation. Ignored without references or while busy."""
        if not self.state.references or self.state.is_busy:
            return None
        self._reset_for_generation()
        return self._launch()

    def rerun(self) -> Optional[asyncio.Task]:
        """Abandon the current run (if any) and restart both steps."""
        if not self.state.references:
            return None
        self._cancel_remote(self.state.cancel_url)
        self._reset_for_generation()
        return self._launch()

    def cancel(self) -> None:
        """Invalidate the current run and return to the initial-load state."""
        self.ledger.begin()
        self._cancel_remote(self.state.cancel_url)
        self.ledger.stop_timer()
        self.state = PipelineState()
        self._task = None
        self.ledger.clear()

    async def wait(self) -> None:
        """Wait for the most recently launched run to settle."""
        if self._task is not None:
            await self._task

    def _reset_for_generation(self) -> None:
        self.state = PipelineState(references=self.state.references, is_busy=True)
        self.ledger.reset_steps(STEP_NAMES)
        self.state.started_at = self._clock()

    def _launch(self) -> asyncio.Task:
        generation_id = self.ledger.begin()
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._perform(generation_id, list(self.state.references)))
        return self._task

    def _cancel_remote(self, cancel_url: Optional[str]) -> None:
        if cancel_url:
            self.reconstruction.cancel_in_background(cancel_url)

    # -- pipeline ----------------------------------------------------------

    async def _perform(self, generation_id: int, references: List[ReferenceImage]) -> None:
        def current() -> bool:
            return self.ledger.is_current(generation_id)

        result: Optional[GenerationResult] = None
        try:
            if not current():
                return
            self.ledger.set_step(SYNTHESIS_STEP, StepStatus.LOADING)
            views = await self.synthesizer.synthesize(references)
            if not current():
                return

            self.state.generated_images = ordered_views(views)
            self.ledger.set_step(SYNTHESIS_STEP, StepStatus.DONE)

            self.ledger.set_step(RECONSTRUCTION_STEP, StepStatus.LOADING)
            normalized = await self.normalizer.normalize_all(
                {key: image.url for key, image in views.items()}
            )
            if not current():
                return

            job = await self.reconstruction.submit(normalized["front"], normalized["back"], normalized["left"])
            if not current():
                # Superseded while the submit was in flight; nobody will poll this job.
                self._cancel_remote(job.cancel_url)
                return
            self.state.cancel_url = job.cancel_url

            completed = await self.reconstruction.wait_for_completion(job, current)
            if completed is None or not current():
                return
            mesh_url = await self.reconstruction.fetch_result(job)
            if not current():
                return

            self.ledger.set_step(RECONSTRUCTION_STEP, StepStatus.DONE)
            self.state.model_url = mesh_url
            if self.state.started_at is not None:
                self.state.total_time = self._clock() - self.state.started_at
                self.state.started_at = None
            LOGGER.info("Generation %s finished in %.2fs", generation_id, self.state.total_time or 0.0)
            result = GenerationResult(
                session_id=self.session_id,
                mesh_url=mesh_url,
                total_time=self.state.total_time,
                steps=[replace(step) for step in self.ledger.steps],
                images=list(self.state.generated_images),
            )
        except Exception as exc:
            if not current():
                return
            LOGGER.error("An error occurred during generation: %s", exc)
            self.state.error = str(exc) or "An unknown error occurred."
            self.ledger.mark_loading_as_error()
            self.state.started_at = None
        finally:
            if current():
                self.state.is_busy = False
                self.state.cancel_url = None
                self._notify()

        if result is not None and self.on_complete is not None:
            try:
                await self.on_complete(result)
            except Exception as exc:
                LOGGER.error("Completion hook failed for session %s: %s", self.session_id, exc)

    # -- consumer signals --------------------------------------------------

    def snapshot(self, include_image_data: bool = True) -> Dict[str, Any]:
        """Return everything a presentation layer renders for this session."""
        if include_image_data:
            images = [image.as_dict() for image in self.state.generated_images]
        else:
            images = [{"view": image.view, "label": image.label} for image in self.state.generated_images]
        return {
            "session_id": self.session_id,
            "generation_id": self.ledger.generation_id,
            "reference_count": len(self.state.references),
            "steps": self.ledger.steps_as_dicts(),
            "generated_images": images,
            "model_url": self.state.model_url,
            "error": self.state.error,
            "is_busy": self.state.is_busy,
            "total_time": self.state.total_time,
        }

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Push lightweight snapshots to `listener` on every change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot(include_image_data=False)
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                LOGGER.exception("Snapshot listener failed")
