"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables (prefixed MDIMGUP_)
or a .env file, with sensible defaults. Using Pydantic's BaseSettings
means we get:
- Type validation at startup (fail fast if config is wrong)
- Documentation of what's required vs optional
- Easy testing with different configurations

The legacy_* style fields describe a single storage target the way it
was configured before named profiles existed. They are only read to
synthesize a fallback profile or to migrate into a real one.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..core.history import DEFAULT_MAX_RECORDS
from ..core.naming import DEFAULT_NAMING_PATTERN
from ..core.profiles import LegacyConfig
from ..core.uploader import DEFAULT_MAX_WIDTH, DEFAULT_PARALLEL_UPLOADS, UploadOptions


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via MDIMGUP_<NAME> environment variables.
    For lists (like api_keys), use comma-separated values in env.
    """

    # API Configuration
    api_title: str = "mdimgup API"
    api_version: str = "v1"
    api_keys: str = Field(
        default="dev-key-1,dev-key-2",
        description="Comma-separated API keys. Using a list enables key rotation without downtime."
    )

    # Local persistence
    data_dir: Path = Field(
        default=Path.home() / ".mdimgup",
        description="Directory holding profiles, history and the encrypted credential file"
    )
    secrets_encryption_key: str = Field(
        default="",
        description="Fernet key for the credential file. Generated under data_dir when empty."
    )

    storage_mock_mode: bool = Field(
        default=False,
        description="Use in-memory mock instead of real object storage. Enables local dev without a bucket."
    )

    # Upload defaults (profiles may override each of these)
    max_width: int = Field(
        default=DEFAULT_MAX_WIDTH,
        gt=0,
        description="Images wider than this are scaled down before upload"
    )
    parallel_uploads: int = Field(
        default=DEFAULT_PARALLEL_UPLOADS,
        gt=0,
        description="How many images of one document are processed at once"
    )
    use_cache: bool = Field(
        default=True,
        description="Reuse the URL of identical content uploaded earlier in this process"
    )
    naming_pattern: str = Field(
        default=DEFAULT_NAMING_PATTERN,
        description="Default object key pattern, see mdimgup.core.naming"
    )

    history_max_records: int = Field(
        default=DEFAULT_MAX_RECORDS,
        gt=0,
        description="Upload history capacity. Oldest records are evicted beyond it."
    )

    # Legacy single-target configuration, first generation (R2 only)
    r2_account_id: str = ""
    r2_bucket: str = ""
    r2_access_key: str = ""
    r2_secret_key: str = ""
    r2_domain: str = ""

    # Legacy single-target configuration, second generation
    storage_provider: str = ""
    bucket: str = ""
    access_key: str = ""
    secret_key: str = ""
    endpoint: str = ""
    region: str = ""
    account_id: str = ""
    cdn_domain: str = ""
    path_prefix: str = ""

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins. Use * for development only."
    )

    model_config = SettingsConfigDict(
        env_prefix="MDIMGUP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def api_keys_list(self) -> list[str]:
        """Parse comma-separated API keys into a list."""
        return [key.strip() for key in self.api_keys.split(",") if key.strip()]

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def metadata_path(self) -> Path:
        return self.data_dir / "metadata.json"

    @property
    def secrets_path(self) -> Path:
        return self.data_dir / "secrets.json.enc"

    @property
    def secrets_key_path(self) -> Path:
        return self.data_dir / "secrets.key"

    def upload_options(self) -> UploadOptions:
        """Global upload defaults, before any profile override."""
        return UploadOptions(
            max_width=self.max_width,
            parallel_uploads=self.parallel_uploads,
            use_cache=self.use_cache,
            naming_pattern=self.naming_pattern,
        )

    def legacy_config(self) -> LegacyConfig:
        """Project the legacy fields onto the core's LegacyConfig."""
        return LegacyConfig(
            r2_account_id=self.r2_account_id,
            r2_bucket=self.r2_bucket,
            r2_access_key=self.r2_access_key,
            r2_secret_key=self.r2_secret_key,
            r2_domain=self.r2_domain,
            storage_provider=self.storage_provider,
            bucket=self.bucket,
            access_key=self.access_key,
            secret_key=self.secret_key,
            endpoint=self.endpoint,
            region=self.region,
            account_id=self.account_id,
            cdn_domain=self.cdn_domain,
            path_prefix=self.path_prefix,
        )

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set.

        Returns list of missing required fields. This is separate from
        Pydantic validation because what counts as required depends on
        other settings.
        """
        missing = []

        if not self.api_keys_list:
            missing.append("MDIMGUP_API_KEYS")

        # Legacy R2 fields are all-or-nothing
        r2_fields = {
            "MDIMGUP_R2_ACCOUNT_ID": self.r2_account_id,
            "MDIMGUP_R2_BUCKET": self.r2_bucket,
            "MDIMGUP_R2_ACCESS_KEY": self.r2_access_key,
            "MDIMGUP_R2_SECRET_KEY": self.r2_secret_key,
            "MDIMGUP_R2_DOMAIN": self.r2_domain,
        }
        if any(r2_fields.values()):
            missing.extend(name for name, value in r2_fields.items() if not value)

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache means we only load settings once per process.
    For tests, you can call get_settings.cache_clear() to reset.
    """
    return Settings()
