"""
Image processing infrastructure.

Width clamping of images before upload, implemented with Pillow.
"""

from .resizer import PillowImageResizer, create_image_resizer

__all__ = [
    "PillowImageResizer",
    "create_image_resizer",
]
