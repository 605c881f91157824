"""Generation identity and per-step timing for a single session.

The ledger is the authority on whether an async result is still relevant:
every continuation captures the id returned by :meth:`GenerationLedger.begin`
and checks :meth:`GenerationLedger.is_current` before it mutates anything.

It also owns the step list shown to consumers. While a step is ``loading``
one ticker task refreshes its elapsed time every ``tick_interval`` seconds
and notifies subscribers, so a UI can render a live stopwatch. Consumers that
do not want pushes can call :meth:`GenerationLedger.elapsed` instead.

Example:
    ledger = GenerationLedger()
    ledger.reset_steps(["Generate View Images", "Generate 3D Model"])
    run_id = ledger.begin()
    ledger.set_step(0, "loading")
    ...
    if ledger.is_current(run_id):
        ledger.set_step(0, "done")
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional, Sequence

from models.generation_models import Step, StepStatus

LOGGER = logging.getLogger(__name__)

TICK_INTERVAL = 0.1

Listener = Callable[[], None]


def format_seconds(seconds: float) -> str:
    """Render elapsed seconds the way steps report them."""
    return f"{max(seconds, 0.0):.2f}"


class GenerationLedger:
    """Track the live generation id and the timed step list.

    Args:
        clock: Monotonic clock returning seconds. Injected for tests.
        tick_interval: Seconds between elapsed-time refreshes of a loading step.
    """

    def __init__(self, clock: Callable[[], float] = time.perf_counter, tick_interval: float = TICK_INTERVAL) -> None:
        self._clock = clock
        self.tick_interval = tick_interval
        self.generation_id = 0
        self.steps: List[Step] = []
        self._step_started: Optional[float] = None
        self._timed_index: Optional[int] = None
        self._ticker: Optional[asyncio.Task] = None
        self._listeners: List[Listener] = []

    # -- generation identity ---------------------------------------------

    def begin(self) -> int:
        """Start a new generation and invalidate every previously issued id."""
        self.generation_id += 1
        LOGGER.debug("Generation %s started", self.generation_id)
        return self.generation_id

    def is_current(self, generation_id: int) -> bool:
        """Return True while `generation_id` is still the live generation."""
        return generation_id == self.generation_id

    # -- steps -------------------------------------------------------------

    def reset_steps(self, names: Sequence[str]) -> None:
        """Replace the step list with fresh pending steps."""
        self.stop_timer()
        self.steps = [Step(name=name) for name in names]
        self._notify()

    def clear(self) -> None:
        """Drop all steps and stop timing."""
        self.stop_timer()
        self.steps = []
        self._notify()

    def set_step(self, index: int, status: StepStatus | str) -> None:
        """Record a transition for the step at `index`.

        ``loading`` restarts the stopwatch for that step; any other status
        freezes the elapsed time if the step was the one being timed and
        leaves another step's stopwatch running.
        """
        status = StepStatus(status)
        step = self.steps[index]

        if status is StepStatus.LOADING:
            self._cancel_ticker()
            self._step_started = self._clock()
            self._timed_index = index
            step.status = StepStatus.LOADING
            step.time = format_seconds(0.0)
            self._start_ticker(index)
        else:
            if self._timed_index == index:
                if step.status is StepStatus.LOADING and self._step_started is not None:
                    step.time = format_seconds(self._clock() - self._step_started)
                self.stop_timer()
            step.status = status

        self._notify()

    def mark_loading_as_error(self) -> None:
        """Move every step that is still loading to ``error``."""
        for index, step in enumerate(self.steps):
            if step.status is StepStatus.LOADING:
                self.set_step(index, StepStatus.ERROR)

    def elapsed(self, index: int) -> float:
        """Return the elapsed seconds for a step, live if it is being timed."""
        step = self.steps[index]
        if (
            step.status is StepStatus.LOADING
            and self._timed_index == index
            and self._step_started is not None
        ):
            return self._clock() - self._step_started
        return float(step.time)

    def stop_timer(self) -> None:
        """Stop the active stopwatch without changing any step status."""
        self._cancel_ticker()
        self._step_started = None
        self._timed_index = None

    @property
    def timer_active(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    def steps_as_dicts(self) -> List[Dict[str, str]]:
        return [step.as_dict() for step in self.steps]

    # -- notifications -----------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register `listener` for step changes; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                LOGGER.exception("Step listener failed")

    # -- ticker ------------------------------------------------------------

    def _start_ticker(self, index: int) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop: elapsed time is still available via elapsed().
            return
        self._ticker = loop.create_task(self._tick(index))

    def _cancel_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    async def _tick(self, index: int) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            if self._timed_index != index or self._step_started is None:
                return
            step = self.steps[index]
            if step.status is not StepStatus.LOADING:
                return
            step.time = format_seconds(self._clock() - self._step_started)
            self._notify()
