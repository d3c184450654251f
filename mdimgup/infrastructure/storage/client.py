"""
Object storage client for uploaded images.

Supports Cloudflare R2, AWS S3 and any other S3-compatible service
through boto3, with a mock mode for local development and tests.

Mock mode keeps objects in memory, enabling API testing without
provisioning actual object storage.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ...core.models import ProfileCredentials, StorageProfile
from ...core.ports import StorageClient
from ...core.profiles import client_settings_for_profile

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when storage operations fail."""
    pass


@dataclass
class StorageConfig:
    """
    Configuration for an S3-compatible bucket.

    endpoint_url is None for AWS S3 itself, which lets boto3 pick the
    regional endpoint.
    """
    access_key_id: str
    secret_access_key: str
    bucket_name: str
    endpoint_url: Optional[str] = None
    region: str = "auto"  # R2 uses 'auto' for region

    def __repr__(self) -> str:
        return (
            f"StorageConfig(bucket_name={self.bucket_name!r}, "
            f"endpoint_url={self.endpoint_url!r}, region={self.region!r})"
        )


def storage_config_for_profile(
    profile: StorageProfile,
    credentials: ProfileCredentials,
) -> StorageConfig:
    """Apply the per-provider region/endpoint rule to build a client config."""
    settings = client_settings_for_profile(profile)
    return StorageConfig(
        access_key_id=credentials.access_key,
        secret_access_key=credentials.secret_key,
        bucket_name=profile.bucket,
        endpoint_url=settings.endpoint_url,
        region=settings.region,
    )


class S3StorageClient:
    """
    boto3-backed object storage client.

    boto3 is synchronous, so each call runs in a worker thread. That
    keeps the event loop free while several images of one document
    upload in parallel.
    """

    def __init__(self, config: StorageConfig, s3_client=None) -> None:
        """
        Initialize the client with boto3.

        s3_client lets tests pass a pre-built (stubbed) boto3 client.
        """
        self._config = config

        if s3_client is None:
            import boto3
            from botocore.config import Config

            # R2 and most S3-compatible services require v4 signatures
            # and path-style addressing
            boto_config = Config(
                signature_version='s3v4',
                s3={'addressing_style': 'path'},
            )

            s3_client = boto3.client(
                's3',
                endpoint_url=config.endpoint_url,
                aws_access_key_id=config.access_key_id,
                aws_secret_access_key=config.secret_access_key,
                region_name=config.region,
                config=boto_config,
            )

        self._s3_client = s3_client

        logger.info(
            "Initialized S3 storage client",
            extra={
                "bucket": config.bucket_name,
                "endpoint": config.endpoint_url,
                "region": config.region,
            }
        )

    @property
    def bucket_name(self) -> str:
        return self._config.bucket_name

    async def put_object(self, key: str, data: bytes, content_type: str) -> None:
        """Upload bytes under key, overwriting any existing object."""
        try:
            await asyncio.to_thread(
                self._s3_client.put_object,
                Bucket=self._config.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
            )

            logger.debug(
                "Uploaded object",
                extra={"key": key, "size_bytes": len(data), "content_type": content_type},
            )

        except Exception as e:
            logger.error(
                "Failed to upload object",
                extra={"key": key, "error": str(e)},
            )
            raise StorageError(f"Upload failed: {e}") from e

    async def delete_object(self, key: str) -> None:
        """Delete one object. Deleting a missing key is not an error in S3."""
        try:
            await asyncio.to_thread(
                self._s3_client.delete_object,
                Bucket=self._config.bucket_name,
                Key=key,
            )

            logger.info("Deleted object", extra={"key": key})

        except Exception as e:
            logger.error(
                "Failed to delete object",
                extra={"key": key, "error": str(e)},
            )
            raise StorageError(f"Delete failed: {e}") from e


# ---------------------------------------------------------------------------
# Mock Storage for Local Development
# ---------------------------------------------------------------------------

class MockStorageClient:
    """
    In-memory storage for local development and tests.

    Objects are kept in a dictionary, and every put/delete is recorded
    so tests can assert on exactly which calls were made. Set
    ``fail_puts``/``fail_deletes`` to make the next operations raise.
    """

    def __init__(self, bucket_name: str = "mock-bucket") -> None:
        self.bucket_name = bucket_name
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.puts: list[str] = []
        self.deletes: list[str] = []
        self.fail_puts = False
        self.fail_deletes = False
        logger.info("Initialized mock storage client (in-memory)")

    async def put_object(self, key: str, data: bytes, content_type: str) -> None:
        """Store object in memory."""
        if self.fail_puts:
            raise StorageError(f"Upload failed: mock failure for {key}")

        self.puts.append(key)
        self.objects[key] = data
        self.content_types[key] = content_type

        logger.debug(
            "Stored object in mock storage",
            extra={"key": key, "size_bytes": len(data)},
        )

    async def delete_object(self, key: str) -> None:
        """Delete object from memory."""
        if self.fail_deletes:
            raise StorageError(f"Delete failed: mock failure for {key}")

        self.deletes.append(key)
        self.objects.pop(key, None)
        self.content_types.pop(key, None)


# ---------------------------------------------------------------------------
# Factory Functions
# ---------------------------------------------------------------------------

def create_storage_client(
    config: Optional[StorageConfig] = None,
    mock_mode: bool = False,
) -> StorageClient:
    """
    Create storage client based on configuration.

    Args:
        config: Storage configuration (required if not mock_mode)
        mock_mode: If True, return mock client for testing

    Returns:
        StorageClient implementation (S3 or Mock)
    """
    if mock_mode:
        return MockStorageClient(config.bucket_name if config else "mock-bucket")

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return S3StorageClient(config)


def profile_client_factory(
    mock_mode: bool = False,
) -> Callable[[StorageProfile, ProfileCredentials], StorageClient]:
    """
    Build the profile -> client factory used by uploads and undo.

    In mock mode every profile shares one in-memory bucket per bucket
    name, so objects uploaded in one request can be deleted by a later undo.
    """
    mock_buckets: dict[str, MockStorageClient] = {}

    def factory(profile: StorageProfile, credentials: ProfileCredentials) -> StorageClient:
        if mock_mode:
            if profile.bucket not in mock_buckets:
                mock_buckets[profile.bucket] = MockStorageClient(profile.bucket)
            return mock_buckets[profile.bucket]
        return create_storage_client(storage_config_for_profile(profile, credentials))

    return factory
