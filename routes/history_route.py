from fastapi import APIRouter, HTTPException, Request

from controllers.history_controller import (
	delete_history,
	get_history,
	get_history_thumbnail,
	list_history,
)

router = APIRouter(prefix="/history", tags=["history"])


@router.get("")
async def list_history_route(request: Request, limit: int = 50, offset: int = 0):
	"""List finished generations, newest first."""
	try:
		return await list_history(request, limit=limit, offset=offset)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{generation_id}")
async def get_history_route(request: Request, generation_id: int):
	try:
		return await get_history(request, generation_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{generation_id}/thumbnail")
async def get_history_thumbnail_route(request: Request, generation_id: int):
	"""Return the PNG thumbnail of the generation's front view."""
	try:
		return await get_history_thumbnail(request, generation_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.delete("/{generation_id}")
async def delete_history_route(request: Request, generation_id: int):
	try:
		return await delete_history(request, generation_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
