"""Multi-view image synthesis: front, back and left views of a product."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from models.generation_models import GeneratedImage, ReferenceImage
from services.generation.errors import SynthesisError
from services.generation.image_normalizer import to_data_uri
from services.generation.prompts import VIEW_NAMES, build_view_prompt, view_label

LOGGER = logging.getLogger(__name__)


class ViewImageGenerator(Protocol):
    """A multimodal model that returns one image for a reference-guided prompt.

    Implementations return ``(image_bytes, mime_type)`` or None when the model
    produced no image (safety filter, empty response).
    """

    async def generate_view(
        self, references: Sequence[ReferenceImage], prompt: str
    ) -> Optional[Tuple[bytes, str]]:
        ...


def ordered_views(images: Mapping[str, GeneratedImage]) -> List[GeneratedImage]:
    """Return synthesized views in front, back, left order."""
    return [images[key] for key in VIEW_NAMES if key in images]


class ViewSynthesizer:
    """Generate the three studio views the reconstruction stage expects."""

    def __init__(self, generator: ViewImageGenerator) -> None:
        if generator is None:
            raise ValueError("A view image generator must be provided.")
        self.generator = generator

    async def synthesize(self, references: Sequence[ReferenceImage]) -> Dict[str, GeneratedImage]:
        """Request all views concurrently and return them keyed by view.

        Raises:
            ValueError: If no reference images are given.
            SynthesisError: If any view comes back without an image.
        """
        if not references:
            raise ValueError("At least one reference image is required.")
        keys = list(VIEW_NAMES)
        results = await asyncio.gather(
            *(self._generate_single(key, VIEW_NAMES[key], references) for key in keys)
        )
        return dict(zip(keys, results))

    async def _generate_single(
        self, key: str, view_name: str, references: Sequence[ReferenceImage]
    ) -> GeneratedImage:
        payload = await self.generator.generate_view(references, build_view_prompt(view_name))
        if not payload or not payload[0]:
            LOGGER.error("No image returned for the %s", view_name)
            raise SynthesisError(f"Image generation failed to produce the {view_name}.")
        data, mime_type = payload
        return GeneratedImage(view=key, label=view_label(view_name), url=to_data_uri(data, mime_type))
