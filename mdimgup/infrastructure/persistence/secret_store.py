"""
Credential storage.

Access keys must never sit in plain text next to the profile metadata.
FernetSecretStore keeps all secrets in one file encrypted with a
Fernet key (AES-128-CBC + HMAC, from the cryptography package). The key
comes from configuration, or is generated once and written next to
the data with owner-only permissions.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Optional, Union

from cryptography.fernet import Fernet, InvalidToken

from ...core.ports import SecretStore

logger = logging.getLogger(__name__)


class SecretStoreError(Exception):
    """Raised when the secret file can't be decrypted or parsed."""
    pass


def load_or_create_key(key_path: Path) -> bytes:
    """Read the Fernet key at key_path, generating it on first use."""
    key_path = Path(key_path)
    if key_path.exists():
        return key_path.read_bytes().strip()

    key = Fernet.generate_key()
    key_path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(key)

    logger.info("Generated secrets encryption key", extra={"path": str(key_path)})
    return key


class InMemorySecretStore:
    """Plain dictionary secret store for tests and mock mode."""

    def __init__(self) -> None:
        self._secrets: dict[str, str] = {}

    async def store(self, key: str, value: str) -> None:
        self._secrets[key] = value

    async def get(self, key: str) -> Optional[str]:
        return self._secrets.get(key)

    async def delete(self, key: str) -> None:
        self._secrets.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._secrets


class FernetSecretStore:
    """Secrets encrypted at rest in a single Fernet token file."""

    def __init__(self, path: Path, key: Union[str, bytes]) -> None:
        self._path = Path(path)
        self._fernet = Fernet(key)
        self._lock = asyncio.Lock()
        self._secrets = self._load()

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            payload = self._fernet.decrypt(self._path.read_bytes())
        except InvalidToken as e:
            raise SecretStoreError(
                f"Cannot decrypt {self._path}; the encryption key does not match"
            ) from e
        try:
            return json.loads(payload)
        except ValueError as e:
            raise SecretStoreError(f"Secret file {self._path} is corrupt") from e

    async def store(self, key: str, value: str) -> None:
        async with self._lock:
            self._secrets[key] = value
            await asyncio.to_thread(self._write, dict(self._secrets))

    async def get(self, key: str) -> Optional[str]:
        return self._secrets.get(key)

    async def delete(self, key: str) -> None:
        async with self._lock:
            if self._secrets.pop(key, None) is not None:
                await asyncio.to_thread(self._write, dict(self._secrets))

    def _write(self, secrets: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        token = self._fernet.encrypt(json.dumps(secrets).encode("utf-8"))
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(token)
        os.replace(tmp_path, self._path)


def create_secret_store(
    path: Optional[Path] = None,
    key: Union[str, bytes, None] = None,
    key_path: Optional[Path] = None,
) -> SecretStore:
    """
    Build the credential store.

    With no path, secrets live in memory only. With a path, a key must
    be given directly or through key_path (generated if missing).
    """
    if path is None:
        return InMemorySecretStore()
    if not key:
        if key_path is None:
            raise ValueError("key or key_path is required for a file-backed secret store")
        key = load_or_create_key(key_path)
    return FernetSecretStore(path, key)
