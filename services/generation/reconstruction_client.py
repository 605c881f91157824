"""Async client for the image-to-3D reconstruction job queue.

A reconstruction runs as a remote queued job:

1. ``submit`` posts the three normalized views and receives a status URL,
   a response URL and a cancel URL.
2. ``wait_for_completion`` polls the status URL until the job reports
   ``COMPLETED`` or ``ERROR``. Polling is strictly sequential and stops
   silently as soon as the caller's generation is no longer current.
3. ``fetch_result`` reads the final payload and returns the mesh URL.

``cancel`` is best effort: failures are logged and never raised.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Set

import httpx

from models.generation_models import ReconstructionJob
from services.generation.errors import (
    CancellationWarning,
    ReconstructionError,
    ReconstructionTimeout,
    SubmissionError,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_SUBMIT_URL = "https://queue.fal.run/fal-ai/hunyuan3d/v2/multi-view"
DEFAULT_POLL_INTERVAL = 5.0

STATUS_COMPLETED = "COMPLETED"
STATUS_ERROR = "ERROR"


def join_logs(payload: Dict[str, Any]) -> str:
    """Join the ``message`` of every log entry in a job payload."""
    logs = payload.get("logs") or []
    messages = [
        str(entry.get("message"))
        for entry in logs
        if isinstance(entry, dict) and entry.get("message")
    ]
    return "\n".join(messages)


class ReconstructionClient:
    """Submit, poll, fetch and cancel reconstruction jobs.

    Args:
        http_client: Shared ``httpx.AsyncClient``.
        api_key: Queue credential, sent as ``Authorization: Key <api_key>``.
        submit_url: Job creation endpoint.
        poll_interval: Seconds between status checks.
        max_wait: Optional polling deadline in seconds; None polls until the
            job reaches a terminal status.
        sleep: Awaitable sleep, injected for tests.
        clock: Monotonic clock used for the deadline.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        *,
        submit_url: str = DEFAULT_SUBMIT_URL,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_wait: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if http_client is None:
            raise ValueError("An httpx.AsyncClient must be provided.")
        if not api_key:
            raise ValueError("A reconstruction API key must be provided.")
        self.http = http_client
        self.api_key = api_key
        self.submit_url = submit_url
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self._sleep = sleep
        self._clock = clock
        self._background: Set[asyncio.Task] = set()

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Key {self.api_key}"}

    async def submit(self, front_url: str, back_url: str, left_url: str) -> ReconstructionJob:
        """Create a textured multi-view reconstruction job.

        Raises:
            SubmissionError: If the queue rejects the request or omits the
                job handles.
        """
        payload = {
            "front_image_url": front_url,
            "back_image_url": back_url,
            "left_image_url": left_url,
            "textured_mesh": True,
        }
        response = await self.http.post(self.submit_url, json=payload, headers=self._headers())
        if not response.is_success:
            LOGGER.error("Reconstruction submission failed with status %s", response.status_code)
            raise SubmissionError(f"Reconstruction submission failed: {response.text}")

        try:
            body = response.json()
        except ValueError as exc:
            raise SubmissionError(f"Reconstruction submission failed: {response.text}") from exc
        if not isinstance(body, dict):
            raise SubmissionError(f"Reconstruction submission failed: {response.text}")

        status_url = body.get("status_url")
        response_url = body.get("response_url")
        if not status_url or not response_url:
            raise SubmissionError(f"Reconstruction submission failed: {response.text}")

        job = ReconstructionJob(
            status_url=status_url,
            response_url=response_url,
            cancel_url=body.get("cancel_url"),
        )
        LOGGER.info("Reconstruction job submitted: %s", job.status_url)
        return job

    async def wait_for_completion(
        self,
        job: ReconstructionJob,
        still_current: Callable[[], bool] = lambda: True,
    ) -> Optional[Dict[str, Any]]:
        """Poll until the job completes.

        Returns:
            The final status payload, or None if `still_current` turned False
            (the caller's generation was superseded).

        Raises:
            ReconstructionError: If the job reports ``ERROR`` or the status
                endpoint answers with a failure.
            ReconstructionTimeout: If ``max_wait`` elapses first.
        """
        deadline = self._clock() + self.max_wait if self.max_wait else None
        attempt = 0
        while True:
            if not still_current():
                return None
            attempt += 1
            response = await self.http.get(job.status_url, headers=self._headers())
            if not still_current():
                return None

            if not response.is_success:
                raise ReconstructionError(
                    f"Status check failed ({response.status_code}): {response.text}"
                )
            body = self._json(response, "Status check")
            status = body.get("status")
            LOGGER.debug("Reconstruction poll %s: %s", attempt, status)

            if status == STATUS_COMPLETED:
                return body
            if status == STATUS_ERROR:
                raise ReconstructionError(join_logs(body) or "Polling error.")
            if deadline is not None and self._clock() >= deadline:
                raise ReconstructionTimeout(
                    f"Reconstruction did not finish within {self.max_wait:g} seconds."
                )
            await self._sleep(self.poll_interval)

    async def fetch_result(self, job: ReconstructionJob) -> str:
        """Return the mesh URL of a completed job.

        Raises:
            ReconstructionError: If the result reports an error or has no mesh.
        """
        response = await self.http.get(job.response_url, headers=self._headers())
        body = self._json(response, "Result fetch")
        mesh = body.get("model_mesh") or {}
        mesh_url = mesh.get("url") if isinstance(mesh, dict) else None
        if body.get("status") == STATUS_ERROR or not mesh_url:
            raise ReconstructionError(f"Generation failed: {join_logs(body) or 'Unknown error'}")
        return mesh_url

    async def cancel(self, cancel_url: str) -> bool:
        """Ask the queue to cancel a job. Returns False if the call failed."""
        try:
            response = await self.http.put(cancel_url, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPError as exc:
            LOGGER.warning("%s", CancellationWarning(f"Failed to cancel reconstruction request: {exc}"))
            return False
        except Exception as exc:
            LOGGER.warning(
                "%s",
                CancellationWarning(f"Failed to cancel reconstruction request: {exc}"),
                exc_info=True,
            )
            return False
        LOGGER.info("Reconstruction job cancelled: %s", cancel_url)
        return True

    def cancel_in_background(self, cancel_url: Optional[str]) -> Optional[asyncio.Task]:
        """Fire a cancel request without blocking the caller.

        The task is retained until it finishes so it is not garbage collected
        mid-flight. Returns None when there is nothing to cancel.
        """
        if not cancel_url:
            return None
        task = asyncio.get_running_loop().create_task(self.cancel(cancel_url))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> None:
        """Wait for every pending background cancel to finish.

        Must run before the shared http client is closed.
        """
        pending = list(self._background)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    @staticmethod
    def _json(response: httpx.Response, what: str) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise ReconstructionError(f"{what} returned an invalid response: {response.text[:200]}") from exc
        if not isinstance(body, dict):
            raise ReconstructionError(f"{what} returned an unexpected payload.")
        return body
