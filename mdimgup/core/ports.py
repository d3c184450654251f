"""
Interfaces for the external collaborators the core depends on.

The core never imports boto3, Pillow or a concrete persistence layer.
It asks for something shaped like these protocols; the infrastructure
package provides real and in-memory implementations of each.
"""

from dataclasses import dataclass
from typing import Any, Optional, Protocol


class MetadataStore(Protocol):
    """
    Small key/value persistence for profiles, pointers and history.

    Reads are synchronous against an already-loaded snapshot; writes
    are awaited so implementations can flush to disk off the event loop.
    """

    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value for key, or default."""
        ...

    async def update(self, key: str, value: Any) -> None:
        """Store value under key. None removes the key."""
        ...


class SecretStore(Protocol):
    """Secret-capable key/value store used for profile credentials."""

    async def store(self, key: str, value: str) -> None:
        ...

    async def get(self, key: str) -> Optional[str]:
        ...

    async def delete(self, key: str) -> None:
        ...


class StorageClient(Protocol):
    """
    Object storage operations needed by uploads and undo.

    The bucket is bound when the client is constructed for a profile.
    Implementations raise on failure; the core decides whether that
    failure is fatal.
    """

    async def put_object(self, key: str, data: bytes, content_type: str) -> None:
        ...

    async def delete_object(self, key: str) -> None:
        ...


@dataclass(frozen=True)
class ImageMetadata:
    width: int
    height: int
    format: Optional[str] = None


class ImageResizer(Protocol):
    """Width-clamp resize primitive."""

    async def metadata(self, data: bytes) -> ImageMetadata:
        ...

    async def resize_to_width(self, data: bytes, target_width: int) -> bytes:
        """Return data scaled down to target_width; unchanged if already narrower."""
        ...
