"""Image generation backends used by :class:`ViewSynthesizer`."""

from __future__ import annotations

import base64
import logging
from typing import Any, Optional, Sequence, Tuple

from google import genai
from google.genai import types
from openai import AsyncOpenAI

from models.generation_models import ReferenceImage

LOGGER = logging.getLogger(__name__)

DEFAULT_GEMINI_IMAGE_MODEL = "gemini-2.5-flash-image-preview"
DEFAULT_OPENAI_IMAGE_MODEL = "gpt-image-1"


def extract_inline_image(response: Any) -> Optional[Tuple[bytes, str]]:
    """Return the first inline image of a Gemini response, or None."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None
    content = getattr(candidates[0], "content", None)
    for part in getattr(content, "parts", None) or []:
        inline = getattr(part, "inline_data", None)
        if inline is not None and getattr(inline, "data", None):
            return inline.data, getattr(inline, "mime_type", None) or "image/png"
    return None


class GeminiViewGenerator:
    """Generate views with Gemini's native image output."""

    def __init__(self, client: genai.Client, model: str = DEFAULT_GEMINI_IMAGE_MODEL) -> None:
        if client is None:
            raise ValueError("Gemini client must be provided.")
        self.client = client
        self.model = model

    async def generate_view(
        self, references: Sequence[ReferenceImage], prompt: str
    ) -> Optional[Tuple[bytes, str]]:
        parts = [types.Part.from_bytes(data=ref.data, mime_type=ref.mime_type) for ref in references]
        parts.append(types.Part.from_text(text=prompt))
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=types.Content(role="user", parts=parts),
                config=types.GenerateContentConfig(response_modalities=["IMAGE"]),
            )
        except Exception as exc:
            LOGGER.error("Error during Gemini image generation: %s", exc)
            raise
        return extract_inline_image(response)


class OpenAIViewGenerator:
    """Generate views with the OpenAI image edit endpoint."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = DEFAULT_OPENAI_IMAGE_MODEL,
        size: str = "1024x1024",
    ) -> None:
        if client is None:
            raise ValueError("OpenAI client must be provided.")
        self.client = client
        self.model = model
        self.size = size

    async def generate_view(
        self, references: Sequence[ReferenceImage], prompt: str
    ) -> Optional[Tuple[bytes, str]]:
        images = [
            (ref.filename or f"reference-{index}", ref.data, ref.mime_type)
            for index, ref in enumerate(references)
        ]
        try:
            response = await self.client.images.edit(
                model=self.model,
                image=images,
                prompt=prompt,
                size=self.size,
                n=1,
            )
        except Exception as exc:
            LOGGER.error("Error during OpenAI image generation: %s", exc)
            raise
        data = getattr(response, "data", None) or []
        b64_json = getattr(data[0], "b64_json", None) if data else None
        if not b64_json:
            return None
        return base64.b64decode(b64_json), "image/png"
