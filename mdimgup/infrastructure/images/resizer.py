"""
Image resizing with Pillow.

Only one transformation exists: scale an image down so it is no wider
than a maximum, keeping its aspect ratio and its original format.
Images that are already narrow enough come back byte-for-byte unchanged.

Pillow is CPU-bound and synchronous, so the actual work runs in a
worker thread via asyncio.to_thread.
"""

import asyncio
import io
import logging

from PIL import Image

from ...core.ports import ImageMetadata, ImageResizer

logger = logging.getLogger(__name__)

# Quality used when re-encoding lossy formats after a resize
LOSSY_QUALITY = 85


class PillowImageResizer:
    """ImageResizer backed by Pillow."""

    async def metadata(self, data: bytes) -> ImageMetadata:
        return await asyncio.to_thread(self._read_metadata, data)

    async def resize_to_width(self, data: bytes, target_width: int) -> bytes:
        return await asyncio.to_thread(self._resize, data, target_width)

    @staticmethod
    def _read_metadata(data: bytes) -> ImageMetadata:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
            return ImageMetadata(width=width, height=height, format=img.format)

    @staticmethod
    def _resize(data: bytes, target_width: int) -> bytes:
        if target_width < 1:
            raise ValueError("target_width must be positive")

        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
            if width <= target_width:
                return data

            image_format = img.format or "PNG"
            target_height = max(1, round(height * target_width / width))
            resized = img.resize((target_width, target_height), Image.Resampling.LANCZOS)

            save_kwargs = {"format": image_format}
            if image_format in ("JPEG", "WEBP"):
                save_kwargs["quality"] = LOSSY_QUALITY
            if image_format == "PNG":
                save_kwargs["optimize"] = True

            buffer = io.BytesIO()
            resized.save(buffer, **save_kwargs)

        logger.debug(
            "Resized image",
            extra={
                "from_width": width,
                "to_width": target_width,
                "format": image_format,
            },
        )
        return buffer.getvalue()


def create_image_resizer() -> ImageResizer:
    return PillowImageResizer()
