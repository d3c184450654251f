"""
Upload history API endpoints.

Lists and inspects past uploads, clears history, and undoes a single
upload: the uploaded URL in the document is swapped back to the
original Markdown reference, optionally deleting the remote object too.

Undo is applied to the document text as it is now. If the URL is no
longer in it (edited by hand) the response says so with status
"not_found" and the history record is kept.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Literal, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field, model_validator

from ...core.history import UndoMode, describe_record, format_bytes, format_time_ago
from ...core.models import UploadRecord
from ...core.uploader import path_from_document_uri
from ..dependencies import AuthenticatedUser, HistoryLedgerDep, UndoServiceDep

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class RecordResponse(BaseModel):
    """One upload history record."""
    id: str
    timestamp: str
    profile_id: str
    profile_name: str
    document_uri: str
    original_path: str = Field(description="Markdown reference exactly as it appeared")
    uploaded_url: str
    upload_key: str
    file_size: int
    file_hash: str

    @classmethod
    def from_record(cls, record: UploadRecord) -> "RecordResponse":
        return cls(
            id=record.id,
            timestamp=record.timestamp,
            profile_id=record.profile_id,
            profile_name=record.profile_name,
            document_uri=record.document_uri,
            original_path=record.original_path,
            uploaded_url=record.uploaded_url,
            upload_key=record.upload_key,
            file_size=record.file_size,
            file_hash=record.file_hash,
        )


class RecordDetailResponse(RecordResponse):
    """Record plus human-readable extras."""
    size: str = Field(description="File size, e.g. '12.3 KB'")
    age: str = Field(description="Relative time, e.g. '5 mins ago'")
    details: str = Field(description="Multi-line details block")


class ClearHistoryRequest(BaseModel):
    """Exactly one of the three selectors must be given."""
    all: bool = False
    older_than_days: Optional[int] = Field(None, ge=0)
    profile_id: Optional[str] = None

    @model_validator(mode="after")
    def exactly_one_selector(self) -> "ClearHistoryRequest":
        chosen = [self.all, self.older_than_days is not None, self.profile_id is not None]
        if sum(chosen) != 1:
            raise ValueError("Specify exactly one of: all, older_than_days, profile_id")
        return self


class ClearHistoryResponse(BaseModel):
    removed: int


class UndoRequest(BaseModel):
    """Where to apply the undo, and whether to delete the remote object."""
    mode: Literal["link-only", "link-and-delete"] = "link-only"
    document_path: Optional[str] = Field(
        None,
        description="Markdown file to revert in. Defaults to the record's document.",
    )
    content: Optional[str] = Field(None, description="Document text. Read from disk when omitted.")
    write_back: bool = Field(False, description="Write the reverted text back to the document")


class UndoResponse(BaseModel):
    status: Literal["reverted", "not_found"]
    message: str
    text: str
    deleted_remote: bool = False
    warning: Optional[str] = None
    written: bool = False


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=list[RecordResponse],
    summary="List upload history",
    description="Most recent first, optionally filtered by profile and/or document",
)
async def list_records(
    api_key: AuthenticatedUser,
    ledger: HistoryLedgerDep,
    profile_id: Optional[str] = Query(None),
    document_uri: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
) -> list[RecordResponse]:
    records = ledger.get_records(profile_id=profile_id, document_uri=document_uri, limit=limit)
    return [RecordResponse.from_record(r) for r in records]


@router.post(
    "/clear",
    response_model=ClearHistoryResponse,
    summary="Clear history",
    description="Remove all records, records older than N days, or one profile's records",
)
async def clear_history(
    request: ClearHistoryRequest,
    api_key: AuthenticatedUser,
    ledger: HistoryLedgerDep,
) -> ClearHistoryResponse:
    if request.all:
        removed = await ledger.clear_all()
    elif request.older_than_days is not None:
        cutoff = datetime.now(timezone.utc) - timedelta(days=request.older_than_days)
        removed = await ledger.clear_older_than(cutoff)
    else:
        removed = await ledger.clear_by_profile(request.profile_id)

    return ClearHistoryResponse(removed=removed)


@router.get(
    "/{record_id}",
    response_model=RecordDetailResponse,
    summary="Get history record",
)
async def get_record(
    record_id: str,
    api_key: AuthenticatedUser,
    ledger: HistoryLedgerDep,
) -> RecordDetailResponse:
    record = ledger.get_record(record_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Record not found")

    return RecordDetailResponse(
        **RecordResponse.from_record(record).model_dump(),
        size=format_bytes(record.file_size),
        age=format_time_ago(record.uploaded_at),
        details=describe_record(record),
    )


@router.delete(
    "/{record_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete history record",
    description="Forget a record without touching the document or storage",
)
async def delete_record(
    record_id: str,
    api_key: AuthenticatedUser,
    ledger: HistoryLedgerDep,
) -> None:
    if not await ledger.delete_record(record_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Record not found")


@router.post(
    "/{record_id}/undo",
    response_model=UndoResponse,
    summary="Undo an upload",
    description="Swap the uploaded URL back to the original reference; optionally delete the object",
)
async def undo_upload(
    record_id: str,
    request: UndoRequest,
    api_key: AuthenticatedUser,
    ledger: HistoryLedgerDep,
    undo_service: UndoServiceDep,
) -> UndoResponse:
    record = ledger.get_record(record_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Record not found")

    if request.document_path:
        document_path = Path(request.document_path)
    else:
        try:
            document_path = path_from_document_uri(record.document_uri)
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    text = request.content
    if text is None:
        if not document_path.is_file():
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Document not found: {document_path}",
            )
        text = await asyncio.to_thread(document_path.read_text, encoding="utf-8")

    result = await undo_service.undo(record, text, UndoMode(request.mode))

    written = False
    if request.write_back and result.reverted:
        await asyncio.to_thread(document_path.write_text, result.text, encoding="utf-8")
        written = True

    return UndoResponse(
        status=result.status.value,
        message=result.message,
        text=result.text,
        deleted_remote=result.deleted_remote,
        warning=result.warning,
        written=written,
    )
