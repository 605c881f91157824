"""Import a reference image from a product page URL.

Best effort: Gemini reads the page through its URL context tool and names the
main product image, a second structured-output call extracts the bare URL,
and the image is downloaded with httpx. Every failure is reported as a
`ProductImageError` and is kept apart from the generation pipeline's error
state.
"""

from __future__ import annotations

import json
import logging
from typing import Optional
from urllib.parse import urlparse

import httpx
from google import genai
from google.genai import types

from models.generation_models import ReferenceImage
from services.generation.prompts import build_extract_url_prompt, build_find_image_prompt

LOGGER = logging.getLogger(__name__)

DEFAULT_TEXT_MODEL = "gemini-2.5-flash-lite"
DEFAULT_FILENAME = "product-image.jpg"

IMAGE_URL_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "imageUrl": types.Schema(type=types.Type.STRING, description="The extracted image URL"),
    },
    required=["imageUrl"],
)


class ProductImageError(Exception):
    """The product page could not be turned into a reference image."""


def validate_product_url(url: str) -> str:
    """Return the stripped URL or raise if it is not an absolute http(s) URL."""
    candidate = (url or "").strip()
    parsed = urlparse(candidate)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ProductImageError("Please enter a valid URL.")
    return candidate


def filename_from_url(image_url: str) -> str:
    """Return the last path segment of `image_url` without its query."""
    name = image_url[image_url.rfind("/") + 1:].split("?", 1)[0]
    return name or DEFAULT_FILENAME


class ProductImageFetcher:
    """Find and download the main product image of a web page."""

    def __init__(
        self,
        client: genai.Client,
        http_client: httpx.AsyncClient,
        model: str = DEFAULT_TEXT_MODEL,
    ) -> None:
        if client is None:
            raise ValueError("Gemini client must be provided.")
        self.client = client
        self.http = http_client
        self.model = model

    async def fetch(self, product_url: str) -> ReferenceImage:
        """Return the product image found on `product_url`.

        Raises:
            ProductImageError: With a user-facing message on any failure.
        """
        url = validate_product_url(product_url)
        try:
            image_url = await self._find_image_url(url)
            if not image_url:
                raise ProductImageError("Gemini could not find an image URL on the provided page.")
            return await self._download(image_url)
        except ProductImageError:
            raise
        except Exception as exc:
            LOGGER.error("Failed to fetch image from URL: %s", exc)
            raise ProductImageError(
                str(exc) or "An unexpected error occurred while fetching the image."
            ) from exc

    async def _find_image_url(self, product_url: str) -> Optional[str]:
        page_response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=[build_find_image_prompt(product_url)],
            config=types.GenerateContentConfig(
                thinking_config=types.ThinkingConfig(thinking_budget=-1),
                tools=[types.Tool(url_context=types.UrlContext())],
            ),
        )
        json_response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=[build_extract_url_prompt(page_response.text or "")],
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=IMAGE_URL_SCHEMA,
            ),
        )
        try:
            parsed = json.loads(json_response.text or "{}")
        except json.JSONDecodeError as exc:
            raise ProductImageError("Gemini could not find an image URL on the provided page.") from exc
        image_url = parsed.get("imageUrl") if isinstance(parsed, dict) else None
        return image_url.strip() if isinstance(image_url, str) and image_url.strip() else None

    async def _download(self, image_url: str) -> ReferenceImage:
        response = await self.http.get(image_url, follow_redirects=True)
        if not response.is_success:
            raise ProductImageError(
                f"Failed to fetch the image from the extracted URL. Status: {response.status_code}"
            )
        mime_type = response.headers.get("content-type", "").split(";", 1)[0].strip() or "image/jpeg"
        if not mime_type.startswith("image/"):
            raise ProductImageError("The extracted URL did not point to an image.")
        LOGGER.info("Imported product image from %s", image_url)
        return ReferenceImage(data=response.content, mime_type=mime_type, filename=filename_from_url(image_url))
