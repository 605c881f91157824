"""Validation helpers for uploaded reference images."""

from pathlib import Path
from typing import List, Optional, Sequence

from fastapi import HTTPException, UploadFile

from models.generation_models import ReferenceImage

ALLOWED_IMAGE_TYPES = {
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/gif",
    "image/bmp",
}

EXTENSION_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
}


def resolve_image_type(filename: Optional[str], content_type: Optional[str]) -> str:
    """Return the image MIME type of an upload or raise HTTP 415.

    The declared content type wins; when it is missing or generic the file
    extension is used instead.
    """
    if content_type:
        declared = content_type.lower().split(";", 1)[0].strip()
        if declared in ALLOWED_IMAGE_TYPES:
            return declared
        if declared not in ("", "application/octet-stream"):
            raise HTTPException(status_code=415, detail=f"Unsupported image content type: {content_type}")
    extension = Path(filename or "").suffix.lower()
    mime_type = EXTENSION_TYPES.get(extension)
    if mime_type is None:
        raise HTTPException(status_code=415, detail="Unsupported or missing image content type.")
    return mime_type


async def read_reference_image(image_file: UploadFile) -> ReferenceImage:
    """Read and validate one uploaded reference image."""
    mime_type = resolve_image_type(image_file.filename, image_file.content_type)
    data = await image_file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded image is empty.")
    return ReferenceImage(data=data, mime_type=mime_type, filename=image_file.filename or "reference")


async def read_reference_images(files: Sequence[UploadFile], limit: int) -> List[ReferenceImage]:
    """Read at most `limit` uploads, ignoring the rest."""
    if not files:
        raise HTTPException(status_code=400, detail="At least one image file is required.")
    return [await read_reference_image(image_file) for image_file in list(files)[: max(limit, 0)]]
