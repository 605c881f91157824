"""FastAPI routes for generation sessions."""

from typing import List

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from pydantic import BaseModel

from controllers.generation_controller import (
	add_references,
	cancel_generation,
	close_session,
	download_model,
	get_session,
	get_view_image,
	import_reference_from_url,
	remove_reference,
	rerun_generation,
	start_generation,
	start_session,
)

router = APIRouter(prefix="/sessions", tags=["generation"])


class UrlPayload(BaseModel):
	url: str


@router.post("")
async def start_session_route(request: Request):
	try:
		return await start_session(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{session_id}")
async def get_session_route(request: Request, session_id: str):
	try:
		return await get_session(request, session_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.delete("/{session_id}")
async def close_session_route(request: Request, session_id: str):
	try:
		return await close_session(request, session_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/{session_id}/references")
async def add_references_route(request: Request, session_id: str, files: List[UploadFile] = File(...)):
	"""Upload up to three reference photos of the product."""
	try:
		return await add_references(request, session_id, files)
	except HTTPException:
		raise
	except ValueError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from exc
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.delete("/{session_id}/references/{index}")
async def remove_reference_route(request: Request, session_id: str, index: int):
	try:
		return await remove_reference(request, session_id, index)
	except HTTPException:
		raise
	except ValueError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from exc
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/{session_id}/references/url")
async def import_reference_route(request: Request, session_id: str, payload: UrlPayload):
	"""Import the main product image from a product page."""
	try:
		return await import_reference_from_url(request, session_id, payload.url)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/{session_id}/generate")
async def generate_route(request: Request, session_id: str):
	try:
		return await start_generation(request, session_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/{session_id}/rerun")
async def rerun_route(request: Request, session_id: str):
	try:
		return await rerun_generation(request, session_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/{session_id}/cancel")
async def cancel_route(request: Request, session_id: str):
	try:
		return await cancel_generation(request, session_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{session_id}/views/{view}")
async def view_image_route(request: Request, session_id: str, view: str):
	"""Download one synthesized view (front, back or left)."""
	try:
		return await get_view_image(request, session_id, view)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{session_id}/model")
async def model_download_route(request: Request, session_id: str):
	"""Download the generated textured mesh."""
	try:
		return await download_model(request, session_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
