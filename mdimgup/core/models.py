"""
Domain models for storage profiles and upload history.

These are plain dataclasses with no knowledge of how they are stored.
Serialization to and from the persisted/exported shape (camelCase keys)
lives here too, since that shape is part of the public contract for
profile export files.
"""

from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class StorageProvider(str, Enum):
    """Supported object storage flavours."""
    CLOUDFLARE_R2 = "cloudflare-r2"
    AWS_S3 = "aws-s3"
    S3_COMPATIBLE = "s3-compatible"

    @property
    def display_name(self) -> str:
        return _PROVIDER_DISPLAY_NAMES[self]


_PROVIDER_DISPLAY_NAMES = {
    StorageProvider.CLOUDFLARE_R2: "Cloudflare R2",
    StorageProvider.AWS_S3: "AWS S3",
    StorageProvider.S3_COMPATIBLE: "S3-Compatible",
}


def utc_now_iso() -> str:
    """Current time as an ISO-8601 UTC string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def parse_timestamp(value: str) -> datetime:
    """
    Parse a stored ISO timestamp into an aware datetime.

    Accepts a trailing 'Z' (JavaScript style) as well as offsets.
    Naive values are assumed to be UTC.
    """
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# Python attribute -> persisted key
_PROFILE_KEYS = {
    "id": "id",
    "name": "name",
    "description": "description",
    "provider": "provider",
    "endpoint": "endpoint",
    "region": "region",
    "bucket": "bucket",
    "account_id": "accountId",
    "cdn_domain": "cdnDomain",
    "path_prefix": "pathPrefix",
    "max_width": "maxWidth",
    "parallel_uploads": "parallelUploads",
    "use_cache": "useCache",
    "naming_pattern": "namingPattern",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
    "last_used": "lastUsed",
}

# Fields callers are never allowed to set through update()
IDENTITY_FIELDS = frozenset({"id", "created_at", "updated_at"})


@dataclass
class StorageProfile:
    """
    A named storage configuration.

    Credentials are never part of this object; they live in the
    secret store keyed by the profile id.
    """
    id: str
    name: str
    provider: Optional[StorageProvider]
    bucket: str = ""
    cdn_domain: str = ""
    region: str = ""
    path_prefix: str = ""
    endpoint: Optional[str] = None
    account_id: Optional[str] = None
    description: Optional[str] = None

    # Upload behaviour overrides (None means use the global default)
    max_width: Optional[int] = None
    parallel_uploads: Optional[int] = None
    use_cache: Optional[bool] = None
    naming_pattern: Optional[str] = None

    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)
    last_used: Optional[str] = None

    @property
    def is_legacy(self) -> bool:
        """True for read-only pseudo-profiles synthesized from legacy settings."""
        return self.id.startswith(LEGACY_ID_PREFIX)

    def copy(self, **changes: Any) -> "StorageProfile":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Serialize with camelCase keys, dropping unset optionals."""
        data: dict[str, Any] = {}
        for attr, key in _PROFILE_KEYS.items():
            value = getattr(self, attr)
            if value is None:
                continue
            if isinstance(value, StorageProvider):
                value = value.value
            data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StorageProfile":
        """
        Build a profile from its persisted shape.

        Unknown keys are ignored. snake_case keys are accepted as well
        as camelCase so hand-written import files work.
        """
        kwargs: dict[str, Any] = {}
        for attr, key in _PROFILE_KEYS.items():
            if key in data:
                kwargs[attr] = data[key]
            elif attr in data:
                kwargs[attr] = data[attr]

        kwargs["provider"] = parse_provider(kwargs.get("provider"))
        kwargs.setdefault("id", "")
        kwargs.setdefault("name", "")
        for attr in ("bucket", "cdn_domain", "region", "path_prefix"):
            if kwargs.get(attr) is None:
                kwargs[attr] = ""
        return cls(**kwargs)


LEGACY_ID_PREFIX = "legacy-"

PROFILE_FIELD_NAMES = frozenset(f.name for f in fields(StorageProfile))


def parse_provider(value: Any) -> Optional[StorageProvider]:
    """Return the matching provider, or None when missing or unknown."""
    if value is None or value == "":
        return None
    if isinstance(value, StorageProvider):
        return value
    try:
        return StorageProvider(value)
    except ValueError:
        return None


@dataclass(frozen=True)
class ProfileCredentials:
    """Access key pair for a profile. Never logged, never exported."""
    access_key: str
    secret_key: str

    def to_dict(self) -> dict[str, str]:
        return {"accessKey": self.access_key, "secretKey": self.secret_key}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProfileCredentials":
        return cls(access_key=data["accessKey"], secret_key=data["secretKey"])

    def __repr__(self) -> str:
        return "ProfileCredentials(access_key='***', secret_key='***')"


_RECORD_KEYS = {
    "id": "id",
    "timestamp": "timestamp",
    "profile_id": "profileId",
    "profile_name": "profileName",
    "document_uri": "documentUri",
    "original_path": "originalPath",
    "uploaded_url": "uploadedUrl",
    "upload_key": "uploadKey",
    "file_size": "fileSize",
    "file_hash": "fileHash",
}


@dataclass(frozen=True)
class UploadRecord:
    """
    One completed upload, as kept in the history ledger.

    Profile id and name are snapshotted so history stays readable after
    the profile is renamed or deleted. ``original_path`` is the verbatim
    markdown token (title, angle brackets and percent-encoding intact),
    which is what undo writes back.
    """
    id: str
    timestamp: str
    profile_id: str
    profile_name: str
    document_uri: str
    original_path: str
    uploaded_url: str
    upload_key: str
    file_size: int
    file_hash: str

    @property
    def uploaded_at(self) -> datetime:
        return parse_timestamp(self.timestamp)

    def to_dict(self) -> dict[str, Any]:
        return {key: getattr(self, attr) for attr, key in _RECORD_KEYS.items()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UploadRecord":
        return cls(**{attr: data[key] for attr, key in _RECORD_KEYS.items()})
