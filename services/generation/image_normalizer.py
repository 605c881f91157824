"""Image normalization for reconstruction submission.

Provides a small OOP wrapper around Pillow that bounds a synthesized view
image to a maximum dimension and re-encodes it as a compressed WEBP data URI
suitable for posting to the reconstruction job queue.

Public class: `ImageNormalizer`

Example:
    normalizer = ImageNormalizer(max_size=1024)
    uri = normalizer.normalize("data:image/png;base64,....")
    uris = await normalizer.normalize_all({"front": ..., "back": ..., "left": ...})
"""
from __future__ import annotations

import asyncio
import base64
import binascii
import io
import math
from typing import Dict, Mapping, Tuple

from PIL import Image

from services.generation.errors import ImageDecodeError

DEFAULT_MAX_SIZE = 1024
DEFAULT_QUALITY = 90


def scaled_size(width: int, height: int, max_size: int) -> Tuple[int, int]:
    """Return the size that caps the longer side at `max_size`.

    Aspect ratio is preserved and the shorter side is rounded half-up.
    Images already within bounds keep their size.
    """
    if width > height:
        if width > max_size:
            height = math.floor(height * max_size / width + 0.5)
            width = max_size
    elif height > max_size:
        width = math.floor(width * max_size / height + 0.5)
        height = max_size
    return max(width, 1), max(height, 1)


def decode_data_uri(uri: str) -> bytes:
    """Return the raw bytes of a base64 ``data:`` URI.

    Raises:
        ImageDecodeError: If the URI is not a base64 data URI.
    """
    header, sep, payload = uri.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise ImageDecodeError("Failed to load image for resizing.")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageDecodeError("Failed to load image for resizing.") from exc


def to_data_uri(data: bytes, mime_type: str) -> str:
    """Encode bytes as a base64 data URI."""
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('utf-8')}"


class ImageNormalizer:
    """Resize and re-encode images for the reconstruction stage.

    Args:
        max_size: Upper bound for the longer side, in pixels. Defaults to 1024.
        quality: WEBP quality factor (0-100). Defaults to 90.
    """

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE, quality: int = DEFAULT_QUALITY):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self.quality = quality

    def normalize(self, uri: str) -> str:
        """Bound and re-encode a single image.

        Args:
            uri: Base64 data URI of the source image.

        Returns:
            A ``data:image/webp;base64,...`` URI.

        Raises:
            ImageDecodeError: If the source cannot be decoded as an image.
        """
        raw = decode_data_uri(uri)
        try:
            src = Image.open(io.BytesIO(raw))
            src.load()
        except Exception as exc:
            raise ImageDecodeError("Failed to load image for resizing.") from exc

        if src.mode not in ("RGB", "RGBA"):
            src = src.convert("RGBA")

        size = scaled_size(src.width, src.height, self.max_size)
        if size != src.size:
            src = src.resize(size, Image.LANCZOS)

        out_io = io.BytesIO()
        src.save(out_io, format="WEBP", quality=self.quality)
        return to_data_uri(out_io.getvalue(), "image/webp")

    async def normalize_all(self, uris: Mapping[str, str]) -> Dict[str, str]:
        """Normalize several images concurrently, keyed like the input.

        Decoding and encoding are blocking, so each image runs in a worker
        thread. All conversions must succeed; the first failure propagates.
        """
        keys = list(uris)
        results = await asyncio.gather(
            *(asyncio.to_thread(self.normalize, uris[key]) for key in keys)
        )
        return dict(zip(keys, results))
