"""
Upload history and undo.

The ledger is an append-only, capacity-bounded list of UploadRecords
kept most-recent-first. Records are only created for real uploads
(cache hits that reuse an existing URL are not recorded), removed one
at a time, cleared in bulk, or evicted oldest-first once the ledger
grows past its maximum.

Undo reverses one record:

- link-only: swap the uploaded URL back to the original markdown token
- link-and-delete: the same, then delete the remote object using the
  profile and credentials as they are *now*

Undo depends on the uploaded URL still being present verbatim in the
document. If it was edited away the undo is a no-op and the record is
kept so it can be retried.

Every occurrence of the URL is reverted, not only the first. One upload
rewrites a repeated token everywhere, and a leftover copy would still
link to the object that link-and-delete removes. The trade-off: another
token whose identical bytes were served from the cache shares the URL
without a record of its own, so it is rewritten to the recorded token
too. Both tokens name the same content, so the image still renders.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional
from uuid import uuid4

from .errors import (
    CredentialNotFoundError,
    DeleteFailure,
    DocumentMismatchError,
    ProfileNotFoundError,
)
from .models import ProfileCredentials, StorageProfile, UploadRecord, utc_now_iso
from .ports import MetadataStore, StorageClient
from .profiles import ProfileStore

logger = logging.getLogger(__name__)

HISTORY_KEY = "mdimgup.uploadHistory"
DEFAULT_MAX_RECORDS = 1000

StorageClientFactory = Callable[[StorageProfile, ProfileCredentials], StorageClient]


class HistoryLedger:
    """Persistent, most-recent-first log of completed uploads."""

    def __init__(self, metadata: MetadataStore, max_records: int = DEFAULT_MAX_RECORDS) -> None:
        if max_records < 1:
            raise ValueError("max_records must be at least 1")

        self._metadata = metadata
        self._max_records = max_records
        self._lock = asyncio.Lock()
        self._records: list[UploadRecord] = [
            UploadRecord.from_dict(raw) for raw in metadata.get(HISTORY_KEY, []) or []
        ][:max_records]

    @property
    def max_records(self) -> int:
        return self._max_records

    def __len__(self) -> int:
        return len(self._records)

    async def add_record(
        self,
        *,
        profile_id: str,
        profile_name: str,
        document_uri: str,
        original_path: str,
        uploaded_url: str,
        upload_key: str,
        file_size: int,
        file_hash: str,
    ) -> UploadRecord:
        """Prepend a new record, evicting the oldest beyond capacity."""
        record = UploadRecord(
            id=str(uuid4()),
            timestamp=utc_now_iso(),
            profile_id=profile_id,
            profile_name=profile_name,
            document_uri=document_uri,
            original_path=original_path,
            uploaded_url=uploaded_url,
            upload_key=upload_key,
            file_size=file_size,
            file_hash=file_hash,
        )

        async with self._lock:
            self._records.insert(0, record)
            evicted = len(self._records) - self._max_records
            if evicted > 0:
                del self._records[self._max_records:]
                logger.debug("Evicted history records", extra={"count": evicted})
            await self._save()

        return record

    def get_records(
        self,
        profile_id: Optional[str] = None,
        document_uri: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[UploadRecord]:
        """Records matching every given filter, most recent first."""
        records = self._records
        if profile_id:
            records = [r for r in records if r.profile_id == profile_id]
        if document_uri:
            records = [r for r in records if r.document_uri == document_uri]
        if limit:
            records = records[:limit]
        return list(records)

    def get_record(self, record_id: str) -> Optional[UploadRecord]:
        return next((r for r in self._records if r.id == record_id), None)

    async def delete_record(self, record_id: str) -> bool:
        """Remove one record. Returns False if it wasn't there."""
        async with self._lock:
            before = len(self._records)
            self._records = [r for r in self._records if r.id != record_id]
            removed = len(self._records) != before
            if removed:
                await self._save()
        return removed

    async def clear_all(self) -> int:
        return await self._retain(lambda r: False)

    async def clear_older_than(self, cutoff: datetime) -> int:
        """Drop records uploaded before cutoff; records at or after it stay."""
        if cutoff.tzinfo is None:
            cutoff = cutoff.replace(tzinfo=timezone.utc)
        return await self._retain(lambda r: r.uploaded_at >= cutoff)

    async def clear_by_profile(self, profile_id: str) -> int:
        return await self._retain(lambda r: r.profile_id != profile_id)

    async def _retain(self, keep: Callable[[UploadRecord], bool]) -> int:
        async with self._lock:
            before = len(self._records)
            self._records = [r for r in self._records if keep(r)]
            removed = before - len(self._records)
            await self._save()

        logger.info("Cleared history records", extra={"count": removed})
        return removed

    async def _save(self) -> None:
        await self._metadata.update(HISTORY_KEY, [r.to_dict() for r in self._records])


# ---------------------------------------------------------------------------
# Undo
# ---------------------------------------------------------------------------

class UndoMode(str, Enum):
    LINK_ONLY = "link-only"
    LINK_AND_DELETE = "link-and-delete"


class UndoStatus(str, Enum):
    REVERTED = "reverted"
    NOT_FOUND = "not_found"


@dataclass
class UndoResult:
    """
    Outcome of one undo.

    ``text`` is the document after the revert (unchanged when the URL
    was not found). ``warning`` is set when the remote delete failed;
    the revert itself still happened in that case.
    """
    status: UndoStatus
    text: str
    record: UploadRecord
    deleted_remote: bool = False
    warning: Optional[str] = None
    delete_error: Optional[DeleteFailure] = None

    @property
    def reverted(self) -> bool:
        return self.status == UndoStatus.REVERTED

    @property
    def message(self) -> str:
        if not self.reverted:
            return "Upload URL not found in document. It may have been manually edited."
        if self.warning:
            return self.warning
        if self.deleted_remote:
            return f"Reverted upload and deleted from {self.record.profile_name}"
        return "Upload link reverted"

    def raise_for_status(self) -> None:
        """Raise DocumentMismatchError when nothing was reverted."""
        if not self.reverted:
            raise DocumentMismatchError(self.record.uploaded_url)


def revert_text(text: str, uploaded_url: str, original_token: str) -> Optional[str]:
    """Swap every occurrence of the URL back to the token, or None if absent."""
    if not uploaded_url or uploaded_url not in text:
        return None
    return text.replace(uploaded_url, original_token)


class UndoService:
    """Reverts uploads recorded in the ledger."""

    def __init__(
        self,
        ledger: HistoryLedger,
        profiles: ProfileStore,
        client_factory: StorageClientFactory,
    ) -> None:
        self._ledger = ledger
        self._profiles = profiles
        self._client_factory = client_factory

    async def undo(self, record: UploadRecord, text: str, mode: UndoMode) -> UndoResult:
        """
        Revert one record against the live document text.

        The record is removed from the ledger whenever the text was
        reverted, whatever happens to the remote delete.
        """
        reverted = revert_text(text, record.uploaded_url, record.original_path)
        if reverted is None:
            logger.warning(
                "Undo target not found in document",
                extra={"record_id": record.id, "document_uri": record.document_uri},
            )
            return UndoResult(status=UndoStatus.NOT_FOUND, text=text, record=record)

        result = UndoResult(status=UndoStatus.REVERTED, text=reverted, record=record)

        if mode == UndoMode.LINK_AND_DELETE:
            try:
                await self._delete_remote(record)
                result.deleted_remote = True
            except DeleteFailure as e:
                result.delete_error = e
                result.warning = f"Link reverted, but failed to delete from storage: {e}"
                logger.warning(
                    "Remote delete failed during undo",
                    extra={"record_id": record.id, "key": record.upload_key, "error": str(e)},
                )

        await self._ledger.delete_record(record.id)

        logger.info(
            "Reverted upload",
            extra={
                "record_id": record.id,
                "mode": mode.value,
                "deleted_remote": result.deleted_remote,
            },
        )
        return result

    async def _delete_remote(self, record: UploadRecord) -> None:
        try:
            profile, credentials = await self._profiles.get_profile_with_credentials(
                record.profile_id
            )
        except ProfileNotFoundError:
            raise DeleteFailure(f"profile {record.profile_name} no longer exists")
        except CredentialNotFoundError:
            raise DeleteFailure(f"no credentials stored for profile {record.profile_name}")

        try:
            client = self._client_factory(profile, credentials)
            await client.delete_object(record.upload_key)
        except Exception as e:
            raise DeleteFailure(str(e)) from e


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------

def format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def format_time_ago(moment: datetime, now: Optional[datetime] = None) -> str:
    """Short relative age such as '5 mins ago'; a date beyond a week."""
    now = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)

    minutes = int((now - moment).total_seconds() // 60)
    hours = minutes // 60
    days = hours // 24

    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes} min{'' if minutes == 1 else 's'} ago"
    if hours < 24:
        return f"{hours} hour{'' if hours == 1 else 's'} ago"
    if days < 7:
        return f"{days} day{'' if days == 1 else 's'} ago"
    return moment.date().isoformat()


def describe_record(record: UploadRecord) -> str:
    """Multi-line details block for one record."""
    return "\n".join([
        "Upload Details",
        "==============",
        "",
        f"Profile: {record.profile_name}",
        f"Uploaded: {record.uploaded_at.isoformat()}",
        f"Original Path: {record.original_path}",
        f"Upload URL: {record.uploaded_url}",
        f"Storage Key: {record.upload_key}",
        f"File Size: {format_bytes(record.file_size)}",
        f"Hash: {record.file_hash}",
        f"Document: {record.document_uri}",
    ])
