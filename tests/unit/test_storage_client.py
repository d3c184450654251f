"""
Unit tests for the object storage client.

The boto3 client is replaced by a botocore Stubber, so request
parameters are checked without any network access.
"""

import boto3
import pytest
from botocore.stub import Stubber

from mdimgup.core.models import StorageProfile, StorageProvider
from mdimgup.infrastructure.storage.client import (
    MockStorageClient,
    S3StorageClient,
    StorageConfig,
    StorageError,
    create_storage_client,
    profile_client_factory,
    storage_config_for_profile,
)

from conftest import CREDENTIALS

CONFIG = StorageConfig(
    access_key_id="AKIAEXAMPLE",
    secret_access_key="secret-example",
    bucket_name="blog-images",
    endpoint_url="https://abc123.r2.cloudflarestorage.com",
)


@pytest.fixture
def stubbed():
    s3 = boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    with Stubber(s3) as stubber:
        yield S3StorageClient(CONFIG, s3_client=s3), stubber
        stubber.assert_no_pending_responses()


def profile(provider: StorageProvider, **overrides) -> StorageProfile:
    fields = {
        "id": "p1",
        "name": "P",
        "provider": provider,
        "bucket": "bucket",
        "cdn_domain": "https://cdn.example.com",
    }
    fields.update(overrides)
    return StorageProfile(**fields)


class TestS3StorageClient:

    @pytest.mark.asyncio
    async def test_put_object(self, stubbed):
        client, stubber = stubbed
        stubber.add_response(
            "put_object",
            {},
            {
                "Bucket": "blog-images",
                "Key": "blog/a.png",
                "Body": b"png-bytes",
                "ContentType": "image/png",
            },
        )

        await client.put_object("blog/a.png", b"png-bytes", "image/png")

    @pytest.mark.asyncio
    async def test_delete_object(self, stubbed):
        client, stubber = stubbed
        stubber.add_response("delete_object", {}, {"Bucket": "blog-images", "Key": "blog/a.png"})

        await client.delete_object("blog/a.png")

    @pytest.mark.asyncio
    async def test_put_error_is_wrapped(self, stubbed):
        client, stubber = stubbed
        stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)

        with pytest.raises(StorageError, match="Upload failed"):
            await client.put_object("blog/a.png", b"x", "image/png")

    @pytest.mark.asyncio
    async def test_delete_error_is_wrapped(self, stubbed):
        client, stubber = stubbed
        stubber.add_client_error("delete_object", service_error_code="NoSuchBucket", http_status_code=404)

        with pytest.raises(StorageError, match="Delete failed"):
            await client.delete_object("blog/a.png")

    def test_bucket_name(self, stubbed):
        client, _ = stubbed
        assert client.bucket_name == "blog-images"


class TestStorageConfig:

    def test_repr_hides_secrets(self):
        text = repr(CONFIG)
        assert "secret-example" not in text
        assert "AKIAEXAMPLE" not in text
        assert "blog-images" in text

    def test_r2_profile(self):
        config = storage_config_for_profile(
            profile(StorageProvider.CLOUDFLARE_R2, account_id="abc123"), CREDENTIALS
        )
        assert config.region == "auto"
        assert config.endpoint_url == "https://abc123.r2.cloudflarestorage.com"
        assert config.access_key_id == CREDENTIALS.access_key
        assert config.secret_access_key == CREDENTIALS.secret_key

    def test_aws_profile(self):
        config = storage_config_for_profile(
            profile(StorageProvider.AWS_S3, region="ap-southeast-2"), CREDENTIALS
        )
        assert config.region == "ap-southeast-2"
        assert config.endpoint_url is None

    def test_s3_compatible_profile(self):
        config = storage_config_for_profile(
            profile(StorageProvider.S3_COMPATIBLE, endpoint="http://localhost:9000"), CREDENTIALS
        )
        assert config.region == "us-east-1"
        assert config.endpoint_url == "http://localhost:9000"


class TestFactories:

    def test_mock_mode(self):
        client = create_storage_client(CONFIG, mock_mode=True)
        assert isinstance(client, MockStorageClient)
        assert client.bucket_name == "blog-images"

    def test_config_required_outside_mock_mode(self):
        with pytest.raises(ValueError):
            create_storage_client(None, mock_mode=False)

    def test_real_client(self):
        assert isinstance(create_storage_client(CONFIG), S3StorageClient)

    def test_mock_factory_shares_buckets(self):
        factory = profile_client_factory(mock_mode=True)
        a = factory(profile(StorageProvider.AWS_S3, region="us-east-1"), CREDENTIALS)
        b = factory(profile(StorageProvider.AWS_S3, id="p2", region="us-east-1"), CREDENTIALS)
        c = factory(profile(StorageProvider.AWS_S3, bucket="other", region="us-east-1"), CREDENTIALS)

        assert a is b
        assert a is not c

    @pytest.mark.asyncio
    async def test_mock_client_records_calls(self):
        client = MockStorageClient()
        await client.put_object("k", b"v", "image/png")
        await client.delete_object("k")

        assert client.puts == ["k"]
        assert client.deletes == ["k"]
        assert client.objects == {}

    @pytest.mark.asyncio
    async def test_mock_client_failures(self):
        client = MockStorageClient()
        client.fail_puts = True
        with pytest.raises(StorageError):
            await client.put_object("k", b"v", "image/png")
