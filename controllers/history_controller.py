"""Controllers for the persisted generation history."""

from typing import Any, Dict, List

from fastapi import HTTPException, Request
from fastapi.responses import Response

from dal.generation_dal import GenerationDAL


def _dal(request: Request) -> GenerationDAL:
    return GenerationDAL(request.app.state.db_initializer)


async def list_history(request: Request, limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
    """Return stored generations, newest first."""
    records = await _dal(request).list_generations(limit=limit, offset=offset)
    return [record.as_dict() for record in records]


async def get_history(request: Request, generation_id: int) -> Dict[str, Any]:
    record = await _dal(request).get_generation_by_id(int(generation_id))
    if record is None:
        raise HTTPException(status_code=404, detail="Generation not found")
    return record.as_dict()


async def get_history_thumbnail(request: Request, generation_id: int) -> Response:
    """Return the PNG thumbnail bytes of a stored generation's front view.

    Raises:
        HTTPException(404) if the generation or its thumbnail is not found.
    """
    record = await _dal(request).get_generation_by_id(int(generation_id))
    if record is None:
        raise HTTPException(status_code=404, detail="Generation not found")
    if not record.thumbnail:
        raise HTTPException(status_code=404, detail="Thumbnail not available for this generation")
    return Response(content=record.thumbnail, media_type="image/png")


async def delete_history(request: Request, generation_id: int) -> Dict[str, Any]:
    deleted = await _dal(request).delete_generation(int(generation_id))
    if not deleted:
        raise HTTPException(status_code=404, detail="Generation not found")
    return {"id": generation_id, "deleted": True}
