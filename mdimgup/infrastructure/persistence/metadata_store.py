"""
Key/value metadata persistence.

Profiles, active-profile pointers and upload history are small JSON
values stored under fixed keys. The file store keeps the whole
document in memory, serves reads from it, and rewrites the file on
every update (write to a temp file, then rename over the original).
"""

import asyncio
import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from ...core.ports import MetadataStore

logger = logging.getLogger(__name__)


class InMemoryMetadataStore:
    """Dictionary-backed store for tests and mock mode."""

    def __init__(self, initial: Optional[dict[str, Any]] = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    async def update(self, key: str, value: Any) -> None:
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = copy.deepcopy(value)

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)


class JsonFileMetadataStore(InMemoryMetadataStore):
    """Metadata store persisted as a single JSON file."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._write_lock = asyncio.Lock()
        super().__init__(self._load())

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except ValueError as e:
            raise ValueError(f"Metadata file {self._path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Metadata file {self._path} must contain a JSON object")

        logger.debug("Loaded metadata", extra={"path": str(self._path), "keys": len(data)})
        return data

    async def update(self, key: str, value: Any) -> None:
        async with self._write_lock:
            await super().update(key, value)
            await asyncio.to_thread(self._write, self.snapshot())

    def _write(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        os.replace(tmp_path, self._path)


def create_metadata_store(path: Optional[Path] = None) -> MetadataStore:
    """File-backed store when a path is given, in-memory otherwise."""
    if path is None:
        return InMemoryMetadataStore()
    return JsonFileMetadataStore(path)
