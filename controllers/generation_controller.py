"""Generation session helpers behind the HTTP routes."""

from __future__ import annotations

import logging
import mimetypes
from typing import Any, Dict, List

import httpx
from fastapi import HTTPException, Request, UploadFile
from fastapi.responses import Response

from services.generation.image_normalizer import decode_data_uri
from services.generation.orchestrator import MAX_REFERENCES, PipelineOrchestrator
from services.product_url import ProductImageError, ProductImageFetcher
from services.session_store import SessionStore
from utils.media_validation import read_reference_images

LOGGER = logging.getLogger(__name__)


def _store(request: Request) -> SessionStore:
	store = getattr(request.app.state, "session_store", None)
	if store is None:
		raise HTTPException(status_code=500, detail="Session store unavailable")
	return store


def _session(request: Request, session_id: str) -> PipelineOrchestrator:
	try:
		return _store(request).get(session_id)
	except KeyError as exc:
		raise HTTPException(status_code=404, detail=str(exc)) from exc


async def start_session(request: Request) -> Dict[str, Any]:
	"""Create a new generation session and return its empty snapshot."""
	orchestrator = _store(request).create()
	return orchestrator.snapshot()


async def get_session(request: Request, session_id: str) -> Dict[str, Any]:
	"""Return the full snapshot, generated view data URIs included."""
	return _session(request, session_id).snapshot()


async def close_session(request: Request, session_id: str) -> Dict[str, Any]:
	"""Cancel any running generation and drop the session."""
	_session(request, session_id)
	_store(request).close(session_id)
	return {"session_id": session_id, "closed": True}


async def add_references(request: Request, session_id: str, files: List[UploadFile]) -> Dict[str, Any]:
	"""Attach uploaded reference images, keeping at most three per session."""
	orchestrator = _session(request, session_id)
	room = MAX_REFERENCES - len(orchestrator.references)
	if room <= 0:
		raise HTTPException(status_code=400, detail=f"A session holds at most {MAX_REFERENCES} reference images.")
	references = await read_reference_images(files, room)
	added = orchestrator.add_references(references)
	return {"added": added, **orchestrator.snapshot(include_image_data=False)}


async def remove_reference(request: Request, session_id: str, index: int) -> Dict[str, Any]:
	orchestrator = _session(request, session_id)
	orchestrator.remove_reference(index)
	return orchestrator.snapshot(include_image_data=False)


async def import_reference_from_url(request: Request, session_id: str, url: str) -> Dict[str, Any]:
	"""Import a product image from a page URL.

	Import failures are reported in ``url_error`` and never touch the
	session's generation error.
	"""
	orchestrator = _session(request, session_id)
	if len(orchestrator.references) >= MAX_REFERENCES:
		return {"added": 0, "url_error": f"A session holds at most {MAX_REFERENCES} reference images."}

	fetcher: ProductImageFetcher = request.app.state.product_fetcher
	try:
		reference = await fetcher.fetch(url)
	except ProductImageError as exc:
		return {"added": 0, "url_error": str(exc)}

	added = orchestrator.add_references([reference])
	return {"added": added, "url_error": None, "filename": reference.filename}


async def start_generation(request: Request, session_id: str) -> Dict[str, Any]:
	orchestrator = _session(request, session_id)
	started = orchestrator.start() is not None
	return {"started": started, **orchestrator.snapshot(include_image_data=False)}


async def rerun_generation(request: Request, session_id: str) -> Dict[str, Any]:
	orchestrator = _session(request, session_id)
	started = orchestrator.rerun() is not None
	return {"started": started, **orchestrator.snapshot(include_image_data=False)}


async def cancel_generation(request: Request, session_id: str) -> Dict[str, Any]:
	orchestrator = _session(request, session_id)
	orchestrator.cancel()
	return orchestrator.snapshot(include_image_data=False)


async def get_view_image(request: Request, session_id: str, view: str) -> Response:
	"""Return one synthesized view as a downloadable image file."""
	orchestrator = _session(request, session_id)
	for image in orchestrator.state.generated_images:
		if image.view == view:
			extension = mimetypes.guess_extension(image.mime_type) or ".png"
			return Response(
				content=decode_data_uri(image.url),
				media_type=image.mime_type,
				headers={"Content-Disposition": f'attachment; filename="{view}{extension}"'},
			)
	raise HTTPException(status_code=404, detail=f"No generated {view} image for this session")


async def download_model(request: Request, session_id: str) -> Response:
	"""Proxy the finished mesh so the browser can save it as ``model.glb``."""
	orchestrator = _session(request, session_id)
	mesh_url = orchestrator.state.model_url
	if not mesh_url:
		raise HTTPException(status_code=404, detail="No model has been generated for this session")

	http_client: httpx.AsyncClient = request.app.state.http_client
	try:
		response = await http_client.get(mesh_url, follow_redirects=True)
		response.raise_for_status()
	except httpx.HTTPError as exc:
		LOGGER.error("Download failed: %s", exc)
		raise HTTPException(status_code=502, detail="Failed to download asset.") from exc

	return Response(
		content=response.content,
		media_type="model/gltf-binary",
		headers={"Content-Disposition": 'attachment; filename="model.glb"'},
	)
