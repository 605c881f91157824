"""Thumbnail generator service.

Provides a small OOP wrapper around Pillow to create thumbnails of
synthesized views for the generation history. Input is a base64 data
URI; the result fits within 160x160 pixels and is returned as raw PNG
bytes ready for a BLOB column.

Public class: `ThumbnailGenerator`

Example:
    tg = ThumbnailGenerator(max_size=(160, 160))
    png_bytes = tg.create_thumbnail_from_data_uri("data:image/png;base64,...")
"""
from __future__ import annotations

import io
from typing import Tuple

from PIL import Image

from services.generation.image_normalizer import decode_data_uri


class ThumbnailGenerator:
    """Generate PNG thumbnails from data URIs.

    Args:
        max_size: Maximum width and height for the thumbnail. Defaults to (160, 160).
        background: Optional background color used when flattening images with alpha.
            If None, images with alpha are flattened against white.
    """

    def __init__(self, max_size: Tuple[int, int] = (160, 160), background: Tuple[int, int, int] | None = None):
        self.max_size = max_size
        self.background = background or (255, 255, 255)

    def create_thumbnail_from_data_uri(self, uri: str) -> bytes:
        """Create a thumbnail from a base64 data URI.

        Args:
            uri: ``data:<mime>;base64,<payload>`` string.

        Returns:
            PNG bytes of the thumbnail.

        Raises:
            ValueError: If the URI cannot be decoded or opened as an image.
        """
        try:
            raw = decode_data_uri(uri)
            src = Image.open(io.BytesIO(raw))
            src.load()
        except Exception as exc:
            raise ValueError("Data URI is not a supported image") from exc

        src = src.convert("RGBA")
        src.thumbnail(self.max_size, Image.LANCZOS)

        # Flatten alpha against the background color
        background = Image.new("RGB", src.size, self.background)
        background.paste(src, mask=src.split()[3])

        out_io = io.BytesIO()
        background.save(out_io, format="PNG", optimize=True)
        return out_io.getvalue()
