import asyncio
from types import SimpleNamespace

import httpx
import pytest

from services.product_url import (
    ProductImageError,
    ProductImageFetcher,
    filename_from_url,
    validate_product_url,
)
from tests.conftest import make_png

IMAGE_URL = "https://shop.test/media/sneaker-main.png?w=2000"


class FakeModels:
    def __init__(self, texts):
        self.texts = list(texts)
        self.calls = []

    async def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        return SimpleNamespace(text=self.texts.pop(0))


def _fetcher(texts, handler):
    models = FakeModels(texts)
    client = SimpleNamespace(aio=SimpleNamespace(models=models))
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ProductImageFetcher(client, http_client), models


def _image_handler(request):
    return httpx.Response(200, content=make_png(), headers={"content-type": "image/png"})


@pytest.mark.parametrize("url", ["", "not a url", "ftp://shop.test/item", "https://"])
def test_validate_product_url_rejects_invalid(url):
    with pytest.raises(ProductImageError, match="Please enter a valid URL."):
        validate_product_url(url)


def test_validate_product_url_strips_whitespace():
    assert validate_product_url("  https://shop.test/p/1 ") == "https://shop.test/p/1"


def test_filename_from_url():
    assert filename_from_url(IMAGE_URL) == "sneaker-main.png"
    assert filename_from_url("https://shop.test/") == "product-image.jpg"


def test_fetch_downloads_extracted_image():
    fetcher, models = _fetcher(["The main image is at " + IMAGE_URL, '{"imageUrl": "%s"}' % IMAGE_URL], _image_handler)

    image = asyncio.run(fetcher.fetch("https://shop.test/p/1"))

    assert image.mime_type == "image/png"
    assert image.filename == "sneaker-main.png"
    assert image.data == make_png()
    assert len(models.calls) == 2
    assert "https://shop.test/p/1" in models.calls[0]["contents"][0]
    assert IMAGE_URL in models.calls[1]["contents"][0]


def test_fetch_reports_missing_image_url():
    fetcher, _ = _fetcher(["nothing here", '{"imageUrl": ""}'], _image_handler)

    with pytest.raises(ProductImageError, match="could not find an image URL"):
        asyncio.run(fetcher.fetch("https://shop.test/p/1"))


def test_fetch_reports_download_status():
    fetcher, _ = _fetcher(["x", '{"imageUrl": "%s"}' % IMAGE_URL], lambda request: httpx.Response(404))

    with pytest.raises(ProductImageError, match="Status: 404"):
        asyncio.run(fetcher.fetch("https://shop.test/p/1"))


def test_fetch_rejects_non_image_content():
    def handler(request):
        return httpx.Response(200, text="<html></html>", headers={"content-type": "text/html"})

    fetcher, _ = _fetcher(["x", '{"imageUrl": "%s"}' % IMAGE_URL], handler)

    with pytest.raises(ProductImageError, match="did not point to an image"):
        asyncio.run(fetcher.fetch("https://shop.test/p/1"))


def test_fetch_wraps_model_failures():
    class FailingModels:
        async def generate_content(self, **kwargs):
            raise RuntimeError("quota exceeded")

    client = SimpleNamespace(aio=SimpleNamespace(models=FailingModels()))
    fetcher = ProductImageFetcher(client, httpx.AsyncClient(transport=httpx.MockTransport(_image_handler)))

    with pytest.raises(ProductImageError, match="quota exceeded"):
        asyncio.run(fetcher.fetch("https://shop.test/p/1"))
