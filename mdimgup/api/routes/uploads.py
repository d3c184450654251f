"""
Document upload endpoint.

Runs the image upload pipeline over one Markdown document: every local
image it references is resized, uploaded to the profile's bucket and
replaced by its public URL. The document is read from disk unless its
content is supplied; relative image paths are always resolved against
the document's location.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from ...core.errors import MdImgUpError
from ...core.models import ProfileCredentials, StorageProfile
from ...core.profiles import ProfileStore
from ...core.uploader import UploadBatchResult
from ..dependencies import AuthenticatedUser, ProfileStoreDep, UploadOrchestratorDep
from ..errors import http_error
from .history import RecordResponse

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class DocumentUploadRequest(BaseModel):
    """Markdown document to process."""
    document_path: str = Field(description="Path of the Markdown file on the server")
    content: Optional[str] = Field(
        None,
        description="Document text. Read from document_path when omitted.",
    )
    profile_id: Optional[str] = Field(
        None,
        description="Profile to upload with. Defaults to the resolved active profile.",
    )
    workspace: Optional[str] = Field(None, description="Workspace used for profile resolution")
    write_back: bool = Field(False, description="Write the rewritten text to document_path")


class ItemResponse(BaseModel):
    token: str
    outcome: str
    url: Optional[str] = None
    key: Optional[str] = None
    error: Optional[str] = None


class DocumentUploadResponse(BaseModel):
    """Outcome of one document upload."""
    message: str = Field(description="One-line summary")
    profile_id: str
    matched: int = Field(description="Image references found in the document")
    substituted: int = Field(description="Distinct references rewritten to a URL")
    uploaded: int
    cached: int
    skipped: int
    failed: int
    cancelled: int
    items: list[ItemResponse]
    records: list[RecordResponse]
    text: str = Field(description="Document text after substitution")
    written: bool = Field(description="Whether the text was written back to disk")


async def resolve_upload_target(
    store: ProfileStore,
    profile_id: Optional[str],
    workspace: Optional[str],
) -> tuple[StorageProfile, ProfileCredentials]:
    """Explicit profile if given, else the resolved active one; both with credentials."""
    if profile_id is None:
        profile_id = store.require_resolved_profile(workspace).id
    return await store.get_profile_with_credentials(profile_id)


def to_upload_response(
    result: UploadBatchResult,
    profile: StorageProfile,
    written: bool,
) -> DocumentUploadResponse:
    return DocumentUploadResponse(
        message=result.message,
        profile_id=profile.id,
        matched=result.matched,
        substituted=result.substituted,
        uploaded=result.uploaded,
        cached=result.cached,
        skipped=result.skipped,
        failed=result.failed,
        cancelled=result.cancelled,
        items=[
            ItemResponse(
                token=item.token,
                outcome=item.outcome.value,
                url=item.url,
                key=item.key,
                error=item.error.reason if item.error else None,
            )
            for item in result.items
        ],
        records=[RecordResponse.from_record(r) for r in result.records],
        text=result.text,
        written=written,
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/document",
    response_model=DocumentUploadResponse,
    status_code=status.HTTP_200_OK,
    summary="Upload images of a Markdown document",
    description="Upload every local image of the document and rewrite references to URLs",
)
async def upload_document(
    request: DocumentUploadRequest,
    api_key: AuthenticatedUser,
    store: ProfileStoreDep,
    orchestrator: UploadOrchestratorDep,
) -> DocumentUploadResponse:
    document_path = Path(request.document_path)

    text = request.content
    if text is None:
        if not document_path.is_file():
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Document not found: {document_path}",
            )
        text = await asyncio.to_thread(document_path.read_text, encoding="utf-8")

    try:
        profile, credentials = await resolve_upload_target(
            store, request.profile_id, request.workspace
        )
        result = await orchestrator.upload_document(text, document_path, profile, credentials)
    except MdImgUpError as e:
        raise http_error(e)

    written = False
    if request.write_back and result.text != text:
        await asyncio.to_thread(document_path.write_text, result.text, encoding="utf-8")
        written = True

    logger.info(
        "Document upload finished",
        extra={
            "document": str(document_path),
            "profile_id": profile.id,
            "uploaded": result.uploaded,
            "failed": result.failed,
            "written": written,
        },
    )

    return to_upload_response(result, profile, written)
