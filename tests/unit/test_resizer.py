"""
Unit tests for the Pillow image resizer.
"""

import io

import pytest
from PIL import Image

from mdimgup.infrastructure.images import PillowImageResizer, create_image_resizer

from conftest import make_image


def open_image(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


@pytest.fixture
def resizer() -> PillowImageResizer:
    return create_image_resizer()


class TestMetadata:

    @pytest.mark.asyncio
    async def test_reads_dimensions_and_format(self, resizer):
        meta = await resizer.metadata(make_image(640, 480, fmt="JPEG"))
        assert (meta.width, meta.height, meta.format) == (640, 480, "JPEG")

    @pytest.mark.asyncio
    async def test_garbage_raises(self, resizer):
        with pytest.raises(Exception):
            await resizer.metadata(b"definitely not an image")


class TestResizeToWidth:

    @pytest.mark.asyncio
    async def test_keeps_aspect_ratio(self, resizer):
        resized = await resizer.resize_to_width(make_image(2400, 1200), 1200)
        img = open_image(resized)
        assert img.size == (1200, 600)
        assert img.format == "PNG"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("fmt", ["JPEG", "WEBP"])
    async def test_keeps_lossy_format(self, resizer, fmt):
        resized = await resizer.resize_to_width(make_image(1000, 500, fmt=fmt), 250)
        img = open_image(resized)
        assert img.format == fmt
        assert img.size == (250, 125)

    @pytest.mark.asyncio
    async def test_narrow_image_is_returned_untouched(self, resizer):
        original = make_image(300, 200)
        assert await resizer.resize_to_width(original, 1200) is original

    @pytest.mark.asyncio
    async def test_exact_width_is_untouched(self, resizer):
        original = make_image(1200, 10)
        assert await resizer.resize_to_width(original, 1200) == original

    @pytest.mark.asyncio
    async def test_tiny_height_never_hits_zero(self, resizer):
        resized = await resizer.resize_to_width(make_image(3000, 1), 100)
        assert open_image(resized).size == (100, 1)

    @pytest.mark.asyncio
    async def test_target_must_be_positive(self, resizer):
        with pytest.raises(ValueError):
            await resizer.resize_to_width(make_image(), 0)
