"""Shared fakes for the generation pipeline tests."""

from __future__ import annotations

import asyncio
import io
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx
import pytest
from PIL import Image

from models.generation_models import ReferenceImage
from services.generation.image_normalizer import ImageNormalizer, to_data_uri
from services.generation.orchestrator import PipelineOrchestrator
from services.generation.reconstruction_client import ReconstructionClient
from services.generation.view_synthesis import ViewSynthesizer

SUBMIT_URL = "https://queue.test/fal-ai/hunyuan3d/v2/multi-view"
STATUS_URL = "https://queue.test/requests/job-1/status"
RESPONSE_URL = "https://queue.test/requests/job-1/response"
CANCEL_URL = "https://queue.test/requests/job-1/cancel"
MESH_URL = "https://cdn.test/model.glb"


def make_png(width: int = 64, height: int = 64, color=(200, 30, 30)) -> bytes:
    out = io.BytesIO()
    Image.new("RGB", (width, height), color).save(out, format="PNG")
    return out.getvalue()


def png_uri(width: int = 64, height: int = 64) -> str:
    return to_data_uri(make_png(width, height), "image/png")


def reference(name: str = "shoe.png") -> ReferenceImage:
    return ReferenceImage(data=make_png(32, 32), mime_type="image/png", filename=name)


class FakeClock:
    """Settable clock; tests move `now` by hand."""

    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeViewGenerator:
    """View generator that returns a PNG per prompt, optionally failing or waiting."""

    def __init__(self, fail_on: Optional[str] = None, gate: Optional[asyncio.Event] = None, size=(64, 64)) -> None:
        self.fail_on = fail_on
        self.gate = gate
        self.size = size
        self.prompts: List[str] = []

    async def generate_view(self, references: Sequence[ReferenceImage], prompt: str):
        self.prompts.append(prompt)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_on and self.fail_on in prompt:
            return None
        return make_png(*self.size), "image/png"


class FakeQueue:
    """httpx.MockTransport handler emulating the reconstruction job queue.

    Args:
        statuses: Status payloads returned by successive polls; the last one
            repeats once the list is exhausted.
        result: Payload returned by the response URL.
        submit_status: HTTP status of the submission.
        submit_text: Body returned when the submission fails.
        cancel_status: HTTP status of the cancel call.

    `on_fetch` is called when the result payload is requested.
    """

    def __init__(
        self,
        statuses: Sequence[Dict[str, Any]] = ({"status": "IN_PROGRESS"}, {"status": "COMPLETED"}),
        result: Optional[Dict[str, Any]] = None,
        submit_status: int = 200,
        submit_text: str = "",
        cancel_status: int = 200,
    ) -> None:
        self.statuses = list(statuses)
        self.result = result if result is not None else {"model_mesh": {"url": MESH_URL}}
        self.submit_status = submit_status
        self.submit_text = submit_text
        self.cancel_status = cancel_status
        self.requests: List[httpx.Request] = []
        self.submitted: List[bytes] = []
        self.polls = 0
        self.cancelled: List[str] = []
        self.on_fetch: Optional[Callable[[], None]] = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if request.method == "POST" and url == SUBMIT_URL:
            self.submitted.append(request.content)
            if self.submit_status >= 400:
                return httpx.Response(self.submit_status, text=self.submit_text)
            return httpx.Response(
                self.submit_status,
                json={"status_url": STATUS_URL, "response_url": RESPONSE_URL, "cancel_url": CANCEL_URL},
            )
        if request.method == "GET" and url == STATUS_URL:
            self.polls += 1
            body = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
            return httpx.Response(200, json=body)
        if request.method == "GET" and url == RESPONSE_URL:
            if self.on_fetch is not None:
                self.on_fetch()
            return httpx.Response(200, json=self.result)
        if request.method == "PUT" and url == CANCEL_URL:
            self.cancelled.append(url)
            return httpx.Response(self.cancel_status)
        return httpx.Response(404, text="not found")


def make_client(queue: FakeQueue, **kwargs: Any) -> ReconstructionClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(queue))
    kwargs.setdefault("poll_interval", 0)
    return ReconstructionClient(http_client, "test-key", submit_url=SUBMIT_URL, **kwargs)


def make_orchestrator(
    generator: Optional[FakeViewGenerator] = None,
    queue: Optional[FakeQueue] = None,
    **kwargs: Any,
) -> PipelineOrchestrator:
    """Build an orchestrator wired to fakes. Call inside a running event loop."""
    kwargs.setdefault("session_id", "session-1")
    return PipelineOrchestrator(
        ViewSynthesizer(generator or FakeViewGenerator()),
        ImageNormalizer(),
        make_client(queue or FakeQueue()),
        **kwargs,
    )


@pytest.fixture
def fake_queue() -> FakeQueue:
    return FakeQueue()
