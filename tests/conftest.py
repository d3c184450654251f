"""
Shared fixtures.

Everything here is in-memory: metadata and secret stores are plain
dictionaries and object storage is the MockStorageClient, so no test
touches a bucket or the user's data directory. Images are generated
with Pillow on the fly.
"""

import io
from pathlib import Path

import pytest
import pytest_asyncio
from PIL import Image

from mdimgup.core.history import HistoryLedger, UndoService
from mdimgup.core.models import ProfileCredentials, StorageProfile
from mdimgup.core.profiles import ProfileStore
from mdimgup.core.uploader import UploadOptions, UploadOrchestrator
from mdimgup.infrastructure.images import PillowImageResizer
from mdimgup.infrastructure.persistence import InMemoryMetadataStore, InMemorySecretStore
from mdimgup.infrastructure.storage.client import MockStorageClient


def make_image(width: int = 100, height: int = 50, fmt: str = "PNG", color=(200, 30, 30)) -> bytes:
    """Encode a solid-colour image of the given size."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format=fmt)
    return buffer.getvalue()


def r2_fields(**overrides) -> dict:
    """Valid Cloudflare R2 profile settings."""
    fields = {
        "name": "Blog",
        "provider": "cloudflare-r2",
        "account_id": "abc123",
        "bucket": "blog-images",
        "cdn_domain": "https://cdn.example.com",
        "path_prefix": "blog",
    }
    fields.update(overrides)
    return fields


CREDENTIALS = ProfileCredentials(access_key="AKIAEXAMPLE", secret_key="secret-example")


@pytest.fixture
def metadata() -> InMemoryMetadataStore:
    return InMemoryMetadataStore()


@pytest.fixture
def secrets() -> InMemorySecretStore:
    return InMemorySecretStore()


@pytest.fixture
def profile_store(metadata, secrets) -> ProfileStore:
    return ProfileStore(metadata, secrets)


@pytest.fixture
def ledger(metadata) -> HistoryLedger:
    return HistoryLedger(metadata)


@pytest.fixture
def storage() -> MockStorageClient:
    return MockStorageClient("blog-images")


@pytest.fixture
def client_factory(storage):
    """Profile -> client factory that always hands out the shared mock."""
    calls: list[tuple[StorageProfile, ProfileCredentials]] = []

    def factory(profile, credentials):
        calls.append((profile, credentials))
        return storage

    factory.calls = calls
    return factory


@pytest.fixture
def orchestrator(client_factory, ledger, profile_store) -> UploadOrchestrator:
    return UploadOrchestrator(
        client_factory,
        PillowImageResizer(),
        ledger,
        profile_store,
        defaults=UploadOptions(max_width=1200, parallel_uploads=5, use_cache=True),
    )


@pytest.fixture
def undo_service(ledger, profile_store, client_factory) -> UndoService:
    return UndoService(ledger, profile_store, client_factory)


@pytest_asyncio.fixture
async def r2_profile(profile_store) -> StorageProfile:
    """A stored R2 profile with credentials."""
    return await profile_store.create_profile(credentials=CREDENTIALS, **r2_fields())


@pytest.fixture
def doc_dir(tmp_path) -> Path:
    """A folder holding a Markdown document and a few images."""
    (tmp_path / "images").mkdir()
    (tmp_path / "images" / "wide.png").write_bytes(make_image(2400, 1200))
    (tmp_path / "images" / "small.png").write_bytes(make_image(300, 200, color=(0, 90, 200)))
    (tmp_path / "images" / "anim.gif").write_bytes(make_image(3000, 100, fmt="GIF"))
    return tmp_path
