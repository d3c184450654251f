"""
Storage profile management.

The ProfileStore owns everything about named storage configurations:
CRUD, validation, the active-profile pointers, credentials (kept in a
separate secret store), import/export and migration of the older
single-profile settings.

Resolution of "which profile applies right now" is an ordered chain of
small strategy functions. The first one that returns a profile wins:

1. the workspace active-profile pointer (if the profile still exists)
2. the global active-profile pointer (if the profile still exists)
3. legacy settings, generic shape first, then the first-generation R2 shape
4. nothing - the caller has to ask the user to create or pick a profile
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Literal, Optional
from uuid import uuid4

from .errors import (
    ConfigurationMissingError,
    CredentialNotFoundError,
    ImportFormatError,
    NameConflictError,
    ProfileNotFoundError,
    ValidationError,
)
from .models import (
    IDENTITY_FIELDS,
    LEGACY_ID_PREFIX,
    PROFILE_FIELD_NAMES,
    ProfileCredentials,
    StorageProfile,
    StorageProvider,
    parse_provider,
    utc_now_iso,
)
from .naming import validate_pattern
from .ports import MetadataStore, SecretStore

logger = logging.getLogger(__name__)

ProfileScope = Literal["global", "workspace"]

PROFILES_KEY = "mdimgup.profiles"
GLOBAL_ACTIVE_KEY = "mdimgup.activeProfile"
WORKSPACE_ACTIVE_KEY = "mdimgup.workspaceActiveProfiles"

MAX_NAME_LENGTH = 100
DEFAULT_AWS_REGION = "us-east-1"
DEFAULT_LEGACY_PATH_PREFIX = "blog"

LEGACY_R2_ID = f"{LEGACY_ID_PREFIX}r2"
LEGACY_GENERIC_ID = f"{LEGACY_ID_PREFIX}generic"
MIGRATED_PROFILE_NAME = "Default (Legacy)"

EXPORT_VERSION = "1.0"
EXPORT_CREDENTIALS_PLACEHOLDER = "REQUIRED: Add accessKey and secretKey when importing"
EXPORT_NOTICE = (
    "Credentials are NOT included in this export for security. "
    "You must configure them after importing."
)

# Profile attributes that must hold a string when present in an import
STRING_FIELDS = (
    "name", "bucket", "cdn_domain", "region", "path_prefix",
    "endpoint", "account_id", "description", "naming_pattern",
)


def field_type_errors(profile: StorageProfile) -> list[str]:
    """Type problems in a profile built from untrusted JSON."""
    errors = []
    for attr in STRING_FIELDS:
        value = getattr(profile, attr)
        if value is not None and not isinstance(value, str):
            errors.append(f"{attr} must be a string")
    if profile.use_cache is not None and not isinstance(profile.use_cache, bool):
        errors.append("use_cache must be a boolean")
    return errors


def credentials_key(profile_id: str) -> str:
    return f"mdimgup.profile.{profile_id}.credentials"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

@dataclass
class ProfileValidation:
    """Result of validating a profile. Lists every violation found."""
    errors: list[str] = field(default_factory=list)
    name_conflict: bool = False

    @property
    def valid(self) -> bool:
        return not self.errors

    def raise_if_invalid(self) -> None:
        if self.name_conflict:
            raise NameConflictError(self.errors)
        if self.errors:
            raise ValidationError(self.errors)


def validate_profile(
    profile: StorageProfile,
    existing: Iterable[StorageProfile] = (),
) -> ProfileValidation:
    """
    Check a profile against every rule and report all violations.

    ``existing`` is the set of profiles the name must not collide with;
    the profile itself (same id) is skipped so renames to the same name
    and no-op updates pass.
    """
    result = ProfileValidation()
    name = (profile.name or "").strip()

    if not name:
        result.errors.append("Profile name is required")
    elif len(name) > MAX_NAME_LENGTH:
        result.errors.append(
            f"Profile name must be {MAX_NAME_LENGTH} characters or fewer"
        )

    if name:
        lowered = name.lower()
        for other in existing:
            if other.id != profile.id and other.name.strip().lower() == lowered:
                result.errors.append(f'A profile named "{name}" already exists')
                result.name_conflict = True
                break

    if profile.provider is None:
        result.errors.append("Storage provider is required")

    if not profile.bucket:
        result.errors.append("Bucket name is required")

    if not profile.cdn_domain:
        result.errors.append("CDN domain is required")

    if profile.provider == StorageProvider.CLOUDFLARE_R2 and not profile.account_id:
        result.errors.append("Cloudflare R2 requires account ID")

    if profile.provider == StorageProvider.S3_COMPATIBLE and not profile.endpoint:
        result.errors.append("S3-compatible provider requires endpoint URL")

    if profile.provider == StorageProvider.AWS_S3 and not profile.region:
        result.errors.append("AWS S3 requires region")

    if profile.naming_pattern:
        pattern_check = validate_pattern(profile.naming_pattern)
        if not pattern_check.valid:
            result.errors.append(f"Invalid naming pattern: {pattern_check.error}")

    for attr, label in (("max_width", "Max width"), ("parallel_uploads", "Parallel uploads")):
        value = getattr(profile, attr)
        if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 1):
            result.errors.append(f"{label} must be a positive integer")

    return result


# ---------------------------------------------------------------------------
# Storage client construction rule
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClientSettings:
    """Region and endpoint a storage client must be built with for a profile."""
    region: str
    endpoint_url: Optional[str] = None


def client_settings_for_profile(profile: StorageProfile) -> ClientSettings:
    """
    Derive client region/endpoint from the profile's provider.

    - Cloudflare R2: region "auto", endpoint from the account id
    - AWS S3: region from the profile, default endpoint
    - S3-compatible: region from the profile (us-east-1 if empty),
      endpoint from the profile
    """
    if profile.provider == StorageProvider.CLOUDFLARE_R2:
        return ClientSettings(
            region="auto",
            endpoint_url=f"https://{profile.account_id}.r2.cloudflarestorage.com",
        )
    if profile.provider == StorageProvider.AWS_S3:
        return ClientSettings(region=profile.region)
    if profile.provider == StorageProvider.S3_COMPATIBLE:
        return ClientSettings(
            region=profile.region or DEFAULT_AWS_REGION,
            endpoint_url=profile.endpoint,
        )
    raise ValidationError(["Storage provider is required"])


# ---------------------------------------------------------------------------
# Legacy single-profile settings
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LegacyConfig:
    """
    Settings from before named profiles existed.

    Two shapes are recognised. The first generation had fixed R2 field
    names (r2_*); the second generation is provider-agnostic. They are
    projected from application settings by the config layer.
    """
    # first generation
    r2_account_id: str = ""
    r2_bucket: str = ""
    r2_access_key: str = ""
    r2_secret_key: str = ""
    r2_domain: str = ""

    # second generation
    storage_provider: str = ""
    bucket: str = ""
    access_key: str = ""
    secret_key: str = ""
    endpoint: str = ""
    region: str = ""
    account_id: str = ""
    cdn_domain: str = ""

    path_prefix: str = ""

    @property
    def has_r2_shape(self) -> bool:
        return bool(self.r2_account_id and self.r2_bucket)

    @property
    def has_generic_shape(self) -> bool:
        return bool(self.bucket and self.access_key)


def legacy_generic_profile(config: LegacyConfig) -> Optional[StorageProfile]:
    """Synthesize the read-only pseudo-profile for the generic legacy shape."""
    if not config.has_generic_shape:
        return None
    now = utc_now_iso()
    return StorageProfile(
        id=LEGACY_GENERIC_ID,
        name="Legacy Configuration",
        provider=parse_provider(config.storage_provider) or StorageProvider.S3_COMPATIBLE,
        account_id=config.account_id or None,
        bucket=config.bucket,
        region=config.region or "auto",
        endpoint=config.endpoint or None,
        cdn_domain=config.cdn_domain,
        path_prefix=config.path_prefix or DEFAULT_LEGACY_PATH_PREFIX,
        created_at=now,
        updated_at=now,
    )


def legacy_r2_profile(config: LegacyConfig) -> Optional[StorageProfile]:
    """Synthesize the read-only pseudo-profile for the first-generation R2 shape."""
    if not config.has_r2_shape:
        return None
    now = utc_now_iso()
    return StorageProfile(
        id=LEGACY_R2_ID,
        name="Legacy R2 Configuration",
        provider=StorageProvider.CLOUDFLARE_R2,
        account_id=config.r2_account_id,
        bucket=config.r2_bucket,
        region="auto",
        cdn_domain=config.r2_domain,
        path_prefix=config.path_prefix or DEFAULT_LEGACY_PATH_PREFIX,
        created_at=now,
        updated_at=now,
    )


def legacy_credentials(profile_id: str, config: LegacyConfig) -> Optional[ProfileCredentials]:
    if profile_id == LEGACY_R2_ID and config.r2_access_key and config.r2_secret_key:
        return ProfileCredentials(config.r2_access_key, config.r2_secret_key)
    if profile_id == LEGACY_GENERIC_ID and config.access_key and config.secret_key:
        return ProfileCredentials(config.access_key, config.secret_key)
    return None


def resolve_legacy_profile(config: LegacyConfig) -> Optional[StorageProfile]:
    """Generic shape wins when both legacy shapes are present."""
    return legacy_generic_profile(config) or legacy_r2_profile(config)


ResolutionStrategy = Callable[[], Optional[StorageProfile]]


def first_resolved(
    strategies: Iterable[tuple[str, ResolutionStrategy]],
) -> tuple[Optional[StorageProfile], Optional[str]]:
    """Run strategies in order; return the first profile found and its source name."""
    for source, strategy in strategies:
        profile = strategy()
        if profile is not None:
            return profile, source
    return None, None


# ---------------------------------------------------------------------------
# Profile store
# ---------------------------------------------------------------------------

class ProfileStore:
    """
    Repository for storage profiles and their credentials.

    Profile metadata goes to the metadata store, credentials to the
    secret store, both keyed by profile id. The two are guarded by
    separate locks and no method holds both at once, so a credential
    read during undo never waits on a profile write.
    """

    def __init__(
        self,
        metadata: MetadataStore,
        secrets: SecretStore,
        legacy_config: Optional[LegacyConfig] = None,
    ) -> None:
        self._metadata = metadata
        self._secrets = secrets
        self._legacy = legacy_config or LegacyConfig()
        self._profiles_lock = asyncio.Lock()
        self._credentials_lock = asyncio.Lock()

        self._profiles: dict[str, StorageProfile] = {}
        for raw in metadata.get(PROFILES_KEY, []) or []:
            profile = StorageProfile.from_dict(raw)
            self._profiles[profile.id] = profile

        logger.debug("Loaded profiles", extra={"count": len(self._profiles)})

    # -- queries ------------------------------------------------------------

    def list_profiles(self) -> list[StorageProfile]:
        return list(self._profiles.values())

    def get_profile(self, profile_id: str) -> Optional[StorageProfile]:
        """Look up a stored profile, or a legacy pseudo-profile by its reserved id."""
        if profile_id.startswith(LEGACY_ID_PREFIX):
            if profile_id == LEGACY_GENERIC_ID:
                return legacy_generic_profile(self._legacy)
            if profile_id == LEGACY_R2_ID:
                return legacy_r2_profile(self._legacy)
            return None
        return self._profiles.get(profile_id)

    def require_profile(self, profile_id: str) -> StorageProfile:
        profile = self.get_profile(profile_id)
        if profile is None:
            raise ProfileNotFoundError(profile_id)
        return profile

    def has_profile(self, name: str) -> bool:
        lowered = name.strip().lower()
        return any(p.name.strip().lower() == lowered for p in self._profiles.values())

    def validate_profile(self, profile: StorageProfile) -> ProfileValidation:
        return validate_profile(profile, self._profiles.values())

    # -- CRUD ---------------------------------------------------------------

    async def create_profile(
        self,
        credentials: Optional[ProfileCredentials] = None,
        **profile_fields: Any,
    ) -> StorageProfile:
        """
        Create and persist a new profile.

        Raises ValidationError (or NameConflictError) listing every
        violation if the profile is invalid. Nothing is persisted then.
        """
        profile = self._build_new_profile(profile_fields)

        async with self._profiles_lock:
            self.validate_profile(profile).raise_if_invalid()
            self._profiles[profile.id] = profile
            await self._save_profiles()

        if credentials is not None:
            await self.set_credentials(profile.id, credentials)

        logger.info(
            "Created profile",
            extra={"profile_id": profile.id, "provider": profile.provider.value},
        )
        return profile

    async def update_profile(self, profile_id: str, **updates: Any) -> StorageProfile:
        """
        Apply a partial update.

        id and createdAt are preserved, updatedAt is bumped and never
        moves backwards.
        """
        self._ensure_mutable(profile_id)
        unknown = set(updates) - PROFILE_FIELD_NAMES
        if unknown:
            raise ValidationError([f"Unknown profile field: {name}" for name in sorted(unknown)])

        changes = {k: v for k, v in updates.items() if k not in IDENTITY_FIELDS}
        if "provider" in changes:
            changes["provider"] = parse_provider(changes["provider"])
        if isinstance(changes.get("name"), str):
            changes["name"] = changes["name"].strip()

        async with self._profiles_lock:
            current = self._profiles.get(profile_id)
            if current is None:
                raise ProfileNotFoundError(profile_id)

            updated = current.copy(
                **changes,
                updated_at=max(utc_now_iso(), current.updated_at),
            )
            self.validate_profile(updated).raise_if_invalid()
            self._profiles[profile_id] = updated
            await self._save_profiles()

        logger.info(
            "Updated profile",
            extra={"profile_id": profile_id, "fields": sorted(changes)},
        )
        return updated

    async def delete_profile(self, profile_id: str) -> None:
        """Delete a profile, its credentials, and any pointer at it."""
        self._ensure_mutable(profile_id)

        async with self._profiles_lock:
            if profile_id not in self._profiles:
                raise ProfileNotFoundError(profile_id)
            del self._profiles[profile_id]
            await self._save_profiles()

        await self.delete_credentials(profile_id)

        async with self._profiles_lock:
            if self._metadata.get(GLOBAL_ACTIVE_KEY) == profile_id:
                await self._metadata.update(GLOBAL_ACTIVE_KEY, None)

            workspaces = dict(self._metadata.get(WORKSPACE_ACTIVE_KEY, {}) or {})
            remaining = {ws: pid for ws, pid in workspaces.items() if pid != profile_id}
            if remaining != workspaces:
                await self._metadata.update(WORKSPACE_ACTIVE_KEY, remaining)

        logger.info("Deleted profile", extra={"profile_id": profile_id})

    async def duplicate_profile(self, profile_id: str, new_name: str) -> StorageProfile:
        """
        Copy a profile's settings under a new name.

        Credentials are not copied; they must be entered again.
        """
        original = self.require_profile(profile_id)
        data = {
            name: getattr(original, name)
            for name in PROFILE_FIELD_NAMES
            if name not in IDENTITY_FIELDS and name != "last_used"
        }
        data["name"] = new_name
        return await self.create_profile(**data)

    # -- active profile -----------------------------------------------------

    async def set_active_profile(
        self,
        profile_id: str,
        scope: ProfileScope = "global",
        workspace: Optional[str] = None,
    ) -> None:
        self.require_profile(profile_id)
        if scope == "workspace" and not workspace:
            raise ValueError("workspace is required for workspace scope")

        if not profile_id.startswith(LEGACY_ID_PREFIX):
            await self.update_profile(profile_id, last_used=utc_now_iso())

        async with self._profiles_lock:
            if scope == "global":
                await self._metadata.update(GLOBAL_ACTIVE_KEY, profile_id)
            else:
                workspaces = dict(self._metadata.get(WORKSPACE_ACTIVE_KEY, {}) or {})
                workspaces[workspace] = profile_id
                await self._metadata.update(WORKSPACE_ACTIVE_KEY, workspaces)

        logger.info(
            "Set active profile",
            extra={"profile_id": profile_id, "scope": scope, "workspace": workspace},
        )

    def get_active_profile_id(
        self,
        scope: ProfileScope = "global",
        workspace: Optional[str] = None,
    ) -> Optional[str]:
        """Raw pointer value for a scope. May point at a deleted profile."""
        if scope == "global":
            return self._metadata.get(GLOBAL_ACTIVE_KEY)
        if not workspace:
            return None
        return (self._metadata.get(WORKSPACE_ACTIVE_KEY, {}) or {}).get(workspace)

    def resolution_strategies(
        self,
        workspace: Optional[str] = None,
    ) -> list[tuple[str, ResolutionStrategy]]:
        return [
            ("workspace", lambda: self._pointer_target(self.get_active_profile_id("workspace", workspace))),
            ("global", lambda: self._pointer_target(self.get_active_profile_id("global"))),
            ("legacy", lambda: legacy_generic_profile(self._legacy)),
            ("legacy", lambda: legacy_r2_profile(self._legacy)),
        ]

    def resolve_with_source(
        self,
        workspace: Optional[str] = None,
    ) -> tuple[Optional[StorageProfile], Optional[str]]:
        """Profile in effect plus where it came from (workspace, global or legacy)."""
        return first_resolved(self.resolution_strategies(workspace))

    def resolve_profile(self, workspace: Optional[str] = None) -> Optional[StorageProfile]:
        """Return the profile in effect, or None if the user must pick one."""
        return self.resolve_with_source(workspace)[0]

    def require_resolved_profile(self, workspace: Optional[str] = None) -> StorageProfile:
        profile = self.resolve_profile(workspace)
        if profile is None:
            raise ConfigurationMissingError(
                "No storage profile configured. Create a profile or select one first."
            )
        return profile

    # -- credentials --------------------------------------------------------

    async def set_credentials(self, profile_id: str, credentials: ProfileCredentials) -> None:
        self._ensure_mutable(profile_id)
        async with self._credentials_lock:
            await self._secrets.store(
                credentials_key(profile_id), json.dumps(credentials.to_dict())
            )
        logger.info("Stored credentials", extra={"profile_id": profile_id})

    async def get_credentials(self, profile_id: str) -> Optional[ProfileCredentials]:
        """Stored credentials, or None if absent or unreadable."""
        if profile_id.startswith(LEGACY_ID_PREFIX):
            return legacy_credentials(profile_id, self._legacy)

        async with self._credentials_lock:
            stored = await self._secrets.get(credentials_key(profile_id))

        if not stored:
            return None
        try:
            return ProfileCredentials.from_dict(json.loads(stored))
        except (ValueError, KeyError, TypeError):
            logger.warning("Unreadable credentials entry", extra={"profile_id": profile_id})
            return None

    async def delete_credentials(self, profile_id: str) -> None:
        async with self._credentials_lock:
            await self._secrets.delete(credentials_key(profile_id))

    async def get_profile_with_credentials(
        self,
        profile_id: str,
    ) -> tuple[StorageProfile, ProfileCredentials]:
        """
        Profile plus its credentials, read fresh.

        Raises ProfileNotFoundError or CredentialNotFoundError.
        """
        profile = self.require_profile(profile_id)
        credentials = await self.get_credentials(profile_id)
        if credentials is None:
            raise CredentialNotFoundError(profile_id)
        return profile, credentials

    # -- import / export ----------------------------------------------------

    def export_profiles(self, profile_ids: Optional[Iterable[str]] = None) -> dict[str, Any]:
        """
        Build the export envelope. Credentials are never included.

        Exports every stored profile when no ids are given.
        """
        if profile_ids is None:
            profiles = self.list_profiles()
        else:
            profiles = [self.require_profile(pid) for pid in profile_ids]

        return {
            "version": EXPORT_VERSION,
            "exportedAt": utc_now_iso(),
            "exportedBy": "mdimgup",
            "profiles": [
                {**profile.to_dict(), "_credentials": EXPORT_CREDENTIALS_PLACEHOLDER}
                for profile in profiles
            ],
            "_notice": EXPORT_NOTICE,
        }

    async def import_profiles(self, payload: Any) -> list[StorageProfile]:
        """
        Import profiles from an export envelope (dict or JSON text).

        Every profile gets a fresh id; embedded ids and timestamps are
        ignored. Name collisions get " (n)" with the smallest free n.
        The whole import is rejected if any profile is invalid.
        """
        data = self._parse_import_payload(payload)

        async with self._profiles_lock:
            taken = {p.name.strip().lower() for p in self._profiles.values()}
            candidates: list[StorageProfile] = []
            problems: list[str] = []

            for index, raw in enumerate(data["profiles"]):
                if not isinstance(raw, dict):
                    problems.append(f"Profile #{index + 1}: not an object")
                    continue

                cleaned = {
                    k: v for k, v in raw.items()
                    if not k.startswith("_")
                    and k not in {"id", "createdAt", "updatedAt", "lastUsed",
                                  "created_at", "updated_at", "last_used"}
                }
                profile_fields = StorageProfile.from_dict(cleaned)
                type_errors = field_type_errors(profile_fields)
                if type_errors:
                    problems.append(f"Profile #{index + 1}: {'; '.join(type_errors)}")
                    continue

                name = self._unique_name(profile_fields.name.strip(), taken) if profile_fields.name.strip() else ""
                candidate = self._build_new_profile({
                    attr: getattr(profile_fields, attr)
                    for attr in PROFILE_FIELD_NAMES
                    if attr not in IDENTITY_FIELDS and attr != "last_used"
                } | {"name": name})

                check = validate_profile(candidate, self._profiles.values())
                if not check.valid:
                    label = name or f"#{index + 1}"
                    problems.append(f"Profile {label}: {'; '.join(check.errors)}")
                    continue

                taken.add(name.lower())
                candidates.append(candidate)

            if problems:
                raise ImportFormatError("Invalid profile data: " + " | ".join(problems))

            for candidate in candidates:
                self._profiles[candidate.id] = candidate
            await self._save_profiles()

        logger.info("Imported profiles", extra={"count": len(candidates)})
        return candidates

    # -- legacy migration ---------------------------------------------------

    async def migrate_legacy_config(self) -> Optional[StorageProfile]:
        """
        Persist legacy settings as a real profile.

        Only runs when no profiles exist yet. The new profile gets the
        legacy credentials and becomes the global active profile.
        """
        if self._profiles:
            return None

        legacy = resolve_legacy_profile(self._legacy)
        if legacy is None:
            return None

        credentials = legacy_credentials(legacy.id, self._legacy)
        profile = await self.create_profile(
            credentials=credentials,
            name=MIGRATED_PROFILE_NAME,
            description=f"Migrated from {legacy.name.lower()}",
            provider=legacy.provider,
            account_id=legacy.account_id,
            bucket=legacy.bucket,
            region=legacy.region,
            endpoint=legacy.endpoint,
            cdn_domain=legacy.cdn_domain,
            path_prefix=legacy.path_prefix,
        )
        await self.set_active_profile(profile.id, "global")

        logger.info(
            "Migrated legacy configuration",
            extra={"profile_id": profile.id, "source": legacy.id},
        )
        return profile

    # -- helpers ------------------------------------------------------------

    def _build_new_profile(self, profile_fields: dict[str, Any]) -> StorageProfile:
        unknown = set(profile_fields) - PROFILE_FIELD_NAMES
        if unknown:
            raise ValidationError([f"Unknown profile field: {name}" for name in sorted(unknown)])

        data = {k: v for k, v in profile_fields.items() if k not in IDENTITY_FIELDS}
        data["provider"] = parse_provider(data.get("provider"))
        data.setdefault("name", "")
        data["name"] = (data["name"] or "").strip()
        for attr in ("bucket", "cdn_domain", "region", "path_prefix"):
            if data.get(attr) is None:
                data[attr] = ""

        if not data["region"]:
            if data["provider"] == StorageProvider.AWS_S3:
                data["region"] = DEFAULT_AWS_REGION
            elif data["provider"] == StorageProvider.CLOUDFLARE_R2:
                data["region"] = "auto"

        now = utc_now_iso()
        return StorageProfile(id=str(uuid4()), created_at=now, updated_at=now, **data)

    def _pointer_target(self, profile_id: Optional[str]) -> Optional[StorageProfile]:
        if not profile_id:
            return None
        return self._profiles.get(profile_id)

    def _ensure_mutable(self, profile_id: str) -> None:
        if profile_id.startswith(LEGACY_ID_PREFIX):
            raise ValidationError(
                ["Legacy configuration profiles are read-only; migrate them first"]
            )

    @staticmethod
    def _unique_name(name: str, taken: set[str]) -> str:
        if name.lower() not in taken:
            return name
        counter = 1
        while f"{name} ({counter})".lower() in taken:
            counter += 1
        return f"{name} ({counter})"

    @staticmethod
    def _parse_import_payload(payload: Any) -> dict[str, Any]:
        if isinstance(payload, (str, bytes)):
            try:
                payload = json.loads(payload)
            except ValueError as e:
                raise ImportFormatError(f"Profile file is not valid JSON: {e}")

        if not isinstance(payload, dict) or not isinstance(payload.get("profiles"), list):
            raise ImportFormatError("Invalid profile file format: missing 'profiles' list")
        return payload

    async def _save_profiles(self) -> None:
        await self._metadata.update(
            PROFILES_KEY, [profile.to_dict() for profile in self._profiles.values()]
        )
