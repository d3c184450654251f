"""
Markdown image upload pipeline.

For every image reference in a document the orchestrator resolves the
file next to the document, fingerprints it, reuses a previous upload of
identical content when caching is on, otherwise clamps its width,
uploads it under a key rendered from the naming pattern and records
the upload in history.

Units run concurrently, bounded by a semaphore sized from the profile
(or the global default). A unit never touches the document text: it
returns the (token, url) pair it produced, and once every unit has
finished all pairs are applied together in one pass. Completed units
keep their result when the batch is cancelled or a sibling fails.

With caching on, units that hash to the same content inside one batch
share a single upload: the first one puts the object and the others
wait for it and reuse its URL.
"""

import asyncio
import base64
import hashlib
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

from .errors import ProfileNotFoundError, UploadCancelled, UploadFailure
from .history import HistoryLedger, StorageClientFactory
from .markdown import ImageReference, apply_substitutions, find_image_references
from .models import ProfileCredentials, StorageProfile, UploadRecord, utc_now_iso
from .naming import DEFAULT_NAMING_PATTERN, NamingContext, NamingPatternRenderer
from .ports import ImageResizer, StorageClient
from .profiles import ProfileStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_WIDTH = 1200
DEFAULT_PARALLEL_UPLOADS = 5

# Animated and vector formats are uploaded untouched
PASSTHROUGH_EXTENSIONS = frozenset({".gif", ".apng", ".svg"})

DEFAULT_CONTENT_TYPE = "application/octet-stream"
CONTENT_TYPES = {
    ".png": "image/png",
    ".apng": "image/apng",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".avif": "image/avif",
    ".svg": "image/svg+xml",
    ".bmp": "image/bmp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
    ".ico": "image/x-icon",
}


def fingerprint(data: bytes) -> str:
    """MD5 hex digest of the base64 encoding of the file bytes."""
    return hashlib.md5(base64.b64encode(data)).hexdigest()


def content_type_for(path: Path) -> str:
    return CONTENT_TYPES.get(path.suffix.lower(), DEFAULT_CONTENT_TYPE)


def build_key(path_prefix: str, name: str) -> str:
    prefix = (path_prefix or "").strip("/")
    return f"{prefix}/{name}" if prefix else name


def build_url(cdn_domain: str, key: str) -> str:
    return f"{cdn_domain.rstrip('/')}/{key}"


def document_uri(path: Path) -> str:
    return Path(path).resolve().as_uri()


def path_from_document_uri(uri: str) -> Path:
    """Inverse of document_uri for file: URIs."""
    parsed = urlparse(uri)
    if parsed.scheme != "file":
        raise ValueError(f"Not a file URI: {uri}")
    return Path(url2pathname(unquote(parsed.path)))


def resolve_image_path(reference: ImageReference, document_dir: Path) -> Path:
    """Absolute paths are used as-is, relative ones hang off the document's folder."""
    path = Path(reference.decoded_path)
    if path.is_absolute():
        return path
    return document_dir / path


class UploadCache:
    """Content fingerprint -> uploaded URL, for the lifetime of the owner."""

    def __init__(self) -> None:
        self._urls: dict[str, str] = {}

    def get(self, file_hash: str) -> Optional[str]:
        return self._urls.get(file_hash)

    def put(self, file_hash: str, url: str) -> None:
        self._urls[file_hash] = url

    def clear(self) -> None:
        self._urls.clear()

    def __len__(self) -> int:
        return len(self._urls)

    def __contains__(self, file_hash: str) -> bool:
        return file_hash in self._urls


@dataclass(frozen=True)
class UploadOptions:
    """Effective upload behaviour for one batch."""
    max_width: int = DEFAULT_MAX_WIDTH
    parallel_uploads: int = DEFAULT_PARALLEL_UPLOADS
    use_cache: bool = True
    naming_pattern: str = DEFAULT_NAMING_PATTERN

    def for_profile(self, profile: StorageProfile) -> "UploadOptions":
        """Profile overrides win; unset ones fall back to these defaults."""
        return UploadOptions(
            max_width=profile.max_width or self.max_width,
            parallel_uploads=profile.parallel_uploads or self.parallel_uploads,
            use_cache=self.use_cache if profile.use_cache is None else profile.use_cache,
            naming_pattern=profile.naming_pattern or self.naming_pattern,
        )


class UploadOutcome(str, Enum):
    UPLOADED = "uploaded"
    CACHED = "cached"
    SKIPPED_REMOTE = "skipped_remote"
    SKIPPED_MISSING = "skipped_missing"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ItemResult:
    """What happened to one distinct markdown token."""
    token: str
    outcome: UploadOutcome
    url: Optional[str] = None
    key: Optional[str] = None
    file_path: Optional[Path] = None
    file_size: int = 0
    file_hash: Optional[str] = None
    error: Optional[UploadFailure] = None

    @property
    def replacement(self) -> Optional[tuple[str, str]]:
        if self.outcome in (UploadOutcome.UPLOADED, UploadOutcome.CACHED) and self.url:
            return self.token, self.url
        return None


@dataclass
class UploadBatchResult:
    """Summary of one document upload."""
    text: str
    matched: int
    substituted: int = 0
    items: list[ItemResult] = field(default_factory=list)
    records: list[UploadRecord] = field(default_factory=list)

    def _count(self, *outcomes: UploadOutcome) -> int:
        return sum(1 for item in self.items if item.outcome in outcomes)

    @property
    def uploaded(self) -> int:
        return self._count(UploadOutcome.UPLOADED)

    @property
    def cached(self) -> int:
        return self._count(UploadOutcome.CACHED)

    @property
    def skipped(self) -> int:
        return self._count(UploadOutcome.SKIPPED_REMOTE, UploadOutcome.SKIPPED_MISSING)

    @property
    def failed(self) -> int:
        return self._count(UploadOutcome.FAILED)

    @property
    def cancelled(self) -> int:
        return self._count(UploadOutcome.CANCELLED)

    @property
    def failures(self) -> list[UploadFailure]:
        return [item.error for item in self.items if item.error is not None]

    @property
    def message(self) -> str:
        if self.matched == 0:
            return "No images found in document"

        parts = [f"{self.uploaded} uploaded"]
        if self.cached:
            parts.append(f"{self.cached} cached")
        if self.skipped:
            parts.append(f"{self.skipped} skipped")
        if self.failed:
            parts.append(f"{self.failed} failed")
        if self.cancelled:
            parts.append(f"{self.cancelled} cancelled")

        verb = "cancelled" if self.cancelled else "complete"
        return f"Image upload {verb} ({self.matched}): {', '.join(parts)}"


@dataclass
class _Batch:
    profile: StorageProfile
    client: StorageClient
    options: UploadOptions
    document_dir: Path
    semaphore: asyncio.Semaphore
    cancel_event: Optional[asyncio.Event]
    # fingerprint -> resolved once the unit uploading that content finishes
    in_flight: dict[str, asyncio.Future] = field(default_factory=dict)

    def check_cancelled(self, token: str) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise UploadCancelled(token)


class UploadOrchestrator:
    """
    Runs the upload pipeline over markdown documents.

    One orchestrator is meant to live as long as the process: it owns
    the fingerprint cache and the naming renderer (and with it the
    {counter} sequence), both of which span batches.
    """

    def __init__(
        self,
        client_factory: StorageClientFactory,
        resizer: ImageResizer,
        ledger: HistoryLedger,
        profiles: Optional[ProfileStore] = None,
        *,
        defaults: Optional[UploadOptions] = None,
        cache: Optional[UploadCache] = None,
    ) -> None:
        self._client_factory = client_factory
        self._resizer = resizer
        self._ledger = ledger
        self._profiles = profiles
        self._defaults = defaults or UploadOptions()
        self.cache = cache or UploadCache()
        self._renderer = NamingPatternRenderer()

    @property
    def defaults(self) -> UploadOptions:
        return self._defaults

    async def upload_document(
        self,
        text: str,
        document_path: Path,
        profile: StorageProfile,
        credentials: ProfileCredentials,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> UploadBatchResult:
        """
        Upload every local image referenced by the document.

        Returns the rewritten text along with per-token outcomes. Only
        a storage client that can't be built at all raises; everything
        that goes wrong with a single image is reported in the result.
        """
        document_path = Path(document_path)
        references = find_image_references(text)
        result = UploadBatchResult(text=text, matched=len(references))
        if not references:
            return result

        options = self._defaults.for_profile(profile)
        batch = _Batch(
            profile=profile,
            client=self._client_factory(profile, credentials),
            options=options,
            document_dir=document_path.resolve().parent,
            semaphore=asyncio.Semaphore(options.parallel_uploads),
            cancel_event=cancel_event,
        )

        # duplicates of a token are rewritten together by the substitution pass
        unique: dict[str, ImageReference] = {}
        for reference in references:
            unique.setdefault(reference.token, reference)

        logger.info(
            "Starting upload batch",
            extra={
                "document": str(document_path),
                "profile_id": profile.id,
                "references": len(references),
                "unique_tokens": len(unique),
                "parallel": options.parallel_uploads,
            },
        )

        result.items = list(await asyncio.gather(
            *(self._process(reference, batch) for reference in unique.values())
        ))

        replacements = [item.replacement for item in result.items if item.replacement]
        result.text, found = apply_substitutions(text, replacements)
        result.substituted = len(found)

        uri = document_uri(document_path)
        for item in result.items:
            if item.outcome == UploadOutcome.UPLOADED and item.token in found:
                record = await self._ledger.add_record(
                    profile_id=profile.id,
                    profile_name=profile.name,
                    document_uri=uri,
                    original_path=item.token,
                    uploaded_url=item.url,
                    upload_key=item.key,
                    file_size=item.file_size,
                    file_hash=item.file_hash,
                )
                result.records.append(record)

        if result.uploaded:
            await self._touch_profile(profile)

        logger.info(
            "Finished upload batch",
            extra={
                "document": str(document_path),
                "uploaded": result.uploaded,
                "cached": result.cached,
                "skipped": result.skipped,
                "failed": result.failed,
                "cancelled": result.cancelled,
            },
        )
        return result

    async def _process(self, reference: ImageReference, batch: _Batch) -> ItemResult:
        token = reference.token
        if reference.is_remote:
            return ItemResult(token=token, outcome=UploadOutcome.SKIPPED_REMOTE)

        async with batch.semaphore:
            try:
                return await self._upload_one(reference, batch)
            except UploadCancelled:
                return ItemResult(token=token, outcome=UploadOutcome.CANCELLED)
            except UploadFailure as e:
                logger.warning(
                    "Image upload failed",
                    extra={"token": token, "error": e.reason},
                )
                return ItemResult(token=token, outcome=UploadOutcome.FAILED, error=e)

    async def _upload_one(self, reference: ImageReference, batch: _Batch) -> ItemResult:
        token = reference.token
        batch.check_cancelled(token)

        path = resolve_image_path(reference, batch.document_dir)
        if not await asyncio.to_thread(path.is_file):
            logger.debug("Image file not found", extra={"token": token, "path": str(path)})
            return ItemResult(token=token, outcome=UploadOutcome.SKIPPED_MISSING, file_path=path)

        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise UploadFailure(token, f"could not read file: {e}") from e

        batch.check_cancelled(token)
        file_hash = await asyncio.to_thread(fingerprint, data)

        claim: Optional[asyncio.Future] = None
        if batch.options.use_cache:
            cached_url = await self._wait_for_cached(token, file_hash, batch)
            if cached_url:
                return ItemResult(
                    token=token,
                    outcome=UploadOutcome.CACHED,
                    url=cached_url,
                    file_path=path,
                    file_size=len(data),
                    file_hash=file_hash,
                )
            claim = asyncio.get_running_loop().create_future()
            batch.in_flight[file_hash] = claim

        try:
            return await self._put(token, path, data, file_hash, batch)
        finally:
            if claim is not None:
                batch.in_flight.pop(file_hash, None)
                if not claim.done():
                    claim.set_result(None)

    async def _wait_for_cached(self, token: str, file_hash: str, batch: _Batch) -> Optional[str]:
        """
        Cached URL for the content, waiting on a sibling unit that is
        already uploading the same bytes. None means this unit uploads.
        """
        while True:
            cached_url = self.cache.get(file_hash)
            if cached_url:
                return cached_url
            pending = batch.in_flight.get(file_hash)
            if pending is None:
                return None
            await asyncio.shield(pending)
            batch.check_cancelled(token)

    async def _put(
        self, token: str, path: Path, data: bytes, file_hash: str, batch: _Batch
    ) -> ItemResult:
        batch.check_cancelled(token)
        body = await self._transform(token, path, data, batch.options.max_width)

        name = self._renderer.render(
            batch.options.naming_pattern,
            NamingContext(
                original_path=str(path),
                file_hash=file_hash,
                profile_name=batch.profile.name,
            ),
        )
        key = build_key(batch.profile.path_prefix, name)

        batch.check_cancelled(token)
        try:
            await batch.client.put_object(key, body, content_type_for(path))
        except Exception as e:
            raise UploadFailure(token, f"upload failed: {e}") from e

        url = build_url(batch.profile.cdn_domain, key)
        self.cache.put(file_hash, url)

        logger.debug(
            "Uploaded image",
            extra={"token": token, "key": key, "size_bytes": len(body)},
        )
        return ItemResult(
            token=token,
            outcome=UploadOutcome.UPLOADED,
            url=url,
            key=key,
            file_path=path,
            file_size=len(body),
            file_hash=file_hash,
        )

    async def _transform(self, token: str, path: Path, data: bytes, max_width: int) -> bytes:
        if path.suffix.lower() in PASSTHROUGH_EXTENSIONS:
            return data

        try:
            metadata = await self._resizer.metadata(data)
            if metadata.width > max_width:
                return await self._resizer.resize_to_width(data, max_width)
        except Exception as e:
            raise UploadFailure(token, f"could not process image: {e}") from e
        return data

    async def _touch_profile(self, profile: StorageProfile) -> None:
        if self._profiles is None or profile.is_legacy:
            return
        try:
            await self._profiles.update_profile(profile.id, last_used=utc_now_iso())
        except ProfileNotFoundError:
            logger.warning(
                "Profile removed during upload",
                extra={"profile_id": profile.id},
            )
