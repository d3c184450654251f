"""
Storage profile API endpoints.

CRUD for named storage profiles plus everything around them: storing
credentials, choosing the active profile (globally or per workspace),
validation, import/export, migration of legacy settings and naming
pattern previews.

Credentials can be written but are never returned by any endpoint.
"""

import logging
from typing import Any, Literal, Optional

from fastapi import APIRouter, Body, HTTPException, Query, status
from pydantic import BaseModel, Field

from ...core.errors import MdImgUpError
from ...core.models import PROFILE_FIELD_NAMES, ProfileCredentials, StorageProfile
from ...core.naming import NAMING_PATTERN_TEMPLATES, NamingPatternRenderer, validate_pattern
from ...core.profiles import ProfileStore
from ..dependencies import AuthenticatedUser, ProfileStoreDep
from ..errors import http_error

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class CredentialsRequest(BaseModel):
    """Access key pair for a profile."""
    access_key: str = Field(min_length=1, description="Access key ID")
    secret_key: str = Field(min_length=1, description="Secret access key")

    def to_credentials(self) -> ProfileCredentials:
        return ProfileCredentials(access_key=self.access_key, secret_key=self.secret_key)


class ProfileFields(BaseModel):
    """Editable profile settings. Omitted fields are left unset."""
    name: Optional[str] = Field(None, description="Unique display name, up to 100 characters")
    description: Optional[str] = None
    provider: Optional[Literal["cloudflare-r2", "aws-s3", "s3-compatible"]] = None
    bucket: Optional[str] = None
    cdn_domain: Optional[str] = Field(None, description="Public base URL of uploaded objects")
    region: Optional[str] = None
    path_prefix: Optional[str] = Field(None, description="Key prefix, e.g. 'blog'")
    endpoint: Optional[str] = Field(None, description="Endpoint URL (S3-compatible only)")
    account_id: Optional[str] = Field(None, description="Account ID (Cloudflare R2 only)")
    max_width: Optional[int] = None
    parallel_uploads: Optional[int] = None
    use_cache: Optional[bool] = None
    naming_pattern: Optional[str] = None


class ProfileCreateRequest(ProfileFields):
    """New profile, optionally with its credentials."""
    credentials: Optional[CredentialsRequest] = None


class ProfileResponse(BaseModel):
    """A stored profile. Never includes credentials."""
    id: str
    name: str
    description: Optional[str] = None
    provider: Optional[str] = None
    bucket: str
    cdn_domain: str
    region: str
    path_prefix: str
    endpoint: Optional[str] = None
    account_id: Optional[str] = None
    max_width: Optional[int] = None
    parallel_uploads: Optional[int] = None
    use_cache: Optional[bool] = None
    naming_pattern: Optional[str] = None
    created_at: str
    updated_at: str
    last_used: Optional[str] = None
    is_legacy: bool = False
    has_credentials: bool = False


class DuplicateRequest(BaseModel):
    name: str = Field(min_length=1, description="Name of the copy")


class ActivateRequest(BaseModel):
    scope: Literal["global", "workspace"] = "global"
    workspace: Optional[str] = Field(None, description="Workspace identifier, required for workspace scope")


class ActiveProfileResponse(BaseModel):
    """The profile uploads would use right now, and why."""
    profile: Optional[ProfileResponse] = None
    source: Optional[Literal["workspace", "global", "legacy"]] = None
    message: Optional[str] = None


class ValidationResponse(BaseModel):
    valid: bool
    errors: list[str]
    name_conflict: bool = False


class MigrationResponse(BaseModel):
    migrated: bool
    profile: Optional[ProfileResponse] = None


class NamingTemplate(BaseModel):
    pattern: str
    description: str
    example: str


class NamingPreviewRequest(BaseModel):
    pattern: str


class NamingPreviewResponse(BaseModel):
    valid: bool
    error: Optional[str] = None
    example: Optional[str] = None


async def to_response(profile: StorageProfile, store: ProfileStore) -> ProfileResponse:
    return ProfileResponse(
        id=profile.id,
        name=profile.name,
        description=profile.description,
        provider=profile.provider.value if profile.provider else None,
        bucket=profile.bucket,
        cdn_domain=profile.cdn_domain,
        region=profile.region,
        path_prefix=profile.path_prefix,
        endpoint=profile.endpoint,
        account_id=profile.account_id,
        max_width=profile.max_width,
        parallel_uploads=profile.parallel_uploads,
        use_cache=profile.use_cache,
        naming_pattern=profile.naming_pattern,
        created_at=profile.created_at,
        updated_at=profile.updated_at,
        last_used=profile.last_used,
        is_legacy=profile.is_legacy,
        has_credentials=await store.get_credentials(profile.id) is not None,
    )


def _set_fields(fields: ProfileFields) -> dict[str, Any]:
    data = fields.model_dump(exclude_unset=True, exclude={"credentials"})
    return {key: value for key, value in data.items() if key in PROFILE_FIELD_NAMES}


# ---------------------------------------------------------------------------
# Collection endpoints
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=list[ProfileResponse],
    summary="List profiles",
)
async def list_profiles(
    api_key: AuthenticatedUser,
    store: ProfileStoreDep,
) -> list[ProfileResponse]:
    return [await to_response(p, store) for p in store.list_profiles()]


@router.post(
    "",
    response_model=ProfileResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create profile",
    description="Create a storage profile. Every validation error is reported at once.",
)
async def create_profile(
    request: ProfileCreateRequest,
    api_key: AuthenticatedUser,
    store: ProfileStoreDep,
) -> ProfileResponse:
    credentials = request.credentials.to_credentials() if request.credentials else None
    try:
        profile = await store.create_profile(credentials=credentials, **_set_fields(request))
    except MdImgUpError as e:
        raise http_error(e)
    return await to_response(profile, store)


@router.get(
    "/active",
    response_model=ActiveProfileResponse,
    summary="Resolve active profile",
    description="Workspace pointer, then global pointer, then legacy settings.",
)
async def get_active_profile(
    api_key: AuthenticatedUser,
    store: ProfileStoreDep,
    workspace: Optional[str] = Query(None, description="Workspace identifier"),
) -> ActiveProfileResponse:
    profile, source = store.resolve_with_source(workspace)
    if profile is None:
        return ActiveProfileResponse(
            message="No storage profile configured. Create a profile or select one first.",
        )
    return ActiveProfileResponse(profile=await to_response(profile, store), source=source)


@router.post(
    "/validate",
    response_model=ValidationResponse,
    summary="Validate profile settings",
    description="Check settings against every rule without saving anything.",
)
async def validate_profile(
    request: ProfileFields,
    api_key: AuthenticatedUser,
    store: ProfileStoreDep,
    profile_id: Optional[str] = Query(None, description="Validate as an update of this profile"),
) -> ValidationResponse:
    fields = _set_fields(request)
    if profile_id:
        try:
            candidate = store.require_profile(profile_id).copy(**fields)
        except MdImgUpError as e:
            raise http_error(e)
    else:
        candidate = StorageProfile.from_dict({**fields, "id": ""})

    result = store.validate_profile(candidate)
    return ValidationResponse(
        valid=result.valid,
        errors=result.errors,
        name_conflict=result.name_conflict,
    )


@router.get(
    "/export",
    summary="Export profiles",
    description="Profiles as a JSON document suitable for import. Credentials are never included.",
)
async def export_profiles(
    api_key: AuthenticatedUser,
    store: ProfileStoreDep,
    ids: Optional[list[str]] = Query(None, description="Profile IDs to export (default all)"),
) -> dict[str, Any]:
    try:
        return store.export_profiles(ids)
    except MdImgUpError as e:
        raise http_error(e)


@router.post(
    "/import",
    response_model=list[ProfileResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Import profiles",
    description="Import an export document. Clashing names get a ' (n)' suffix.",
)
async def import_profiles(
    api_key: AuthenticatedUser,
    store: ProfileStoreDep,
    payload: Any = Body(...),
) -> list[ProfileResponse]:
    try:
        imported = await store.import_profiles(payload)
    except MdImgUpError as e:
        raise http_error(e)

    logger.info("Profiles imported via API", extra={"count": len(imported)})
    return [await to_response(p, store) for p in imported]


@router.post(
    "/migrate-legacy",
    response_model=MigrationResponse,
    summary="Migrate legacy settings",
    description="Turn legacy single-target settings into a real profile, if no profiles exist yet.",
)
async def migrate_legacy(
    api_key: AuthenticatedUser,
    store: ProfileStoreDep,
) -> MigrationResponse:
    try:
        profile = await store.migrate_legacy_config()
    except MdImgUpError as e:
        raise http_error(e)

    if profile is None:
        return MigrationResponse(migrated=False)
    return MigrationResponse(migrated=True, profile=await to_response(profile, store))


@router.get(
    "/naming/templates",
    response_model=list[NamingTemplate],
    summary="Predefined naming patterns",
)
async def naming_templates(api_key: AuthenticatedUser) -> list[NamingTemplate]:
    renderer = NamingPatternRenderer()
    return [
        NamingTemplate(
            pattern=template.pattern,
            description=template.description,
            example=renderer.example(template.pattern),
        )
        for template in NAMING_PATTERN_TEMPLATES
    ]


@router.post(
    "/naming/preview",
    response_model=NamingPreviewResponse,
    summary="Validate and preview a naming pattern",
)
async def naming_preview(
    request: NamingPreviewRequest,
    api_key: AuthenticatedUser,
) -> NamingPreviewResponse:
    check = validate_pattern(request.pattern)
    if not check.valid:
        return NamingPreviewResponse(valid=False, error=check.error)
    return NamingPreviewResponse(
        valid=True,
        example=NamingPatternRenderer().example(request.pattern),
    )


# ---------------------------------------------------------------------------
# Single profile endpoints
# ---------------------------------------------------------------------------

@router.get(
    "/{profile_id}",
    response_model=ProfileResponse,
    summary="Get profile",
)
async def get_profile(
    profile_id: str,
    api_key: AuthenticatedUser,
    store: ProfileStoreDep,
) -> ProfileResponse:
    profile = store.get_profile(profile_id)
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Profile with ID {profile_id} not found",
        )
    return await to_response(profile, store)


@router.patch(
    "/{profile_id}",
    response_model=ProfileResponse,
    summary="Update profile",
    description="Partial update. Fields explicitly set to null are cleared.",
)
async def update_profile(
    profile_id: str,
    request: ProfileFields,
    api_key: AuthenticatedUser,
    store: ProfileStoreDep,
) -> ProfileResponse:
    try:
        profile = await store.update_profile(profile_id, **_set_fields(request))
    except MdImgUpError as e:
        raise http_error(e)
    return await to_response(profile, store)


@router.delete(
    "/{profile_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete profile",
    description="Deletes the profile, its credentials and any active-profile pointer at it.",
)
async def delete_profile(
    profile_id: str,
    api_key: AuthenticatedUser,
    store: ProfileStoreDep,
) -> None:
    try:
        await store.delete_profile(profile_id)
    except MdImgUpError as e:
        raise http_error(e)


@router.post(
    "/{profile_id}/duplicate",
    response_model=ProfileResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Duplicate profile",
    description="Copy settings under a new name. Credentials are not copied.",
)
async def duplicate_profile(
    profile_id: str,
    request: DuplicateRequest,
    api_key: AuthenticatedUser,
    store: ProfileStoreDep,
) -> ProfileResponse:
    try:
        profile = await store.duplicate_profile(profile_id, request.name)
    except MdImgUpError as e:
        raise http_error(e)
    return await to_response(profile, store)


@router.put(
    "/{profile_id}/credentials",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Store credentials",
)
async def set_credentials(
    profile_id: str,
    request: CredentialsRequest,
    api_key: AuthenticatedUser,
    store: ProfileStoreDep,
) -> None:
    try:
        store.require_profile(profile_id)
        await store.set_credentials(profile_id, request.to_credentials())
    except MdImgUpError as e:
        raise http_error(e)


@router.post(
    "/{profile_id}/activate",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Set active profile",
)
async def activate_profile(
    profile_id: str,
    request: ActivateRequest,
    api_key: AuthenticatedUser,
    store: ProfileStoreDep,
) -> None:
    if request.scope == "workspace" and not request.workspace:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="workspace is required for workspace scope",
        )
    try:
        await store.set_active_profile(profile_id, request.scope, request.workspace)
    except MdImgUpError as e:
        raise http_error(e)
