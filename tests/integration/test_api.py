"""
API tests against the full FastAPI app.

Requests go through httpx's ASGI transport, so nothing listens on a
port. Settings and the service container are overridden with
in-memory stores and a mock bucket.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from mdimgup.api.dependencies import build_services, get_services
from mdimgup.config.settings import Settings, get_settings
from mdimgup.infrastructure.images import PillowImageResizer
from mdimgup.infrastructure.persistence import InMemoryMetadataStore, InMemorySecretStore
from mdimgup.infrastructure.storage.client import MockStorageClient
from mdimgup.main import create_app

from conftest import make_image

HEADERS = {"X-API-Key": "test-key"}

PROFILE = {
    "name": "Blog",
    "provider": "cloudflare-r2",
    "account_id": "abc123",
    "bucket": "blog-images",
    "cdn_domain": "https://cdn.example.com",
    "path_prefix": "blog",
    "credentials": {"access_key": "AKIAEXAMPLE", "secret_key": "secret-example"},
}


@pytest.fixture
def bucket() -> MockStorageClient:
    return MockStorageClient("blog-images")


@pytest.fixture
def services(tmp_path, bucket):
    settings = Settings(_env_file=None, data_dir=tmp_path / "data", api_keys="test-key")
    return build_services(
        settings,
        metadata=InMemoryMetadataStore(),
        secrets=InMemorySecretStore(),
        client_factory=lambda profile, credentials: bucket,
        resizer=PillowImageResizer(),
    ), settings


@pytest_asyncio.fixture
async def client(services):
    container, settings = services
    app = create_app()
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_services] = lambda: container

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def create_profile(client, **overrides) -> dict:
    response = await client.post("/api/v1/profiles", json={**PROFILE, **overrides}, headers=HEADERS)
    assert response.status_code == 201, response.text
    return response.json()


class TestHealth:

    @pytest.mark.asyncio
    async def test_liveness(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    @pytest.mark.asyncio
    async def test_readiness_without_profile_is_a_warning(self, client):
        response = await client.get("/health/ready")

        assert response.status_code == 200
        checks = {c["name"]: c["status"] for c in response.json()["checks"]}
        assert checks == {"configuration": "ok", "data_dir": "ok", "profile": "warning"}


class TestAuthentication:

    @pytest.mark.asyncio
    async def test_missing_key(self, client):
        assert (await client.get("/api/v1/profiles")).status_code == 403

    @pytest.mark.asyncio
    async def test_wrong_key(self, client):
        response = await client.get("/api/v1/profiles", headers={"X-API-Key": "nope"})
        assert response.status_code == 403


class TestProfileEndpoints:

    @pytest.mark.asyncio
    async def test_create_and_fetch(self, client):
        created = await create_profile(client)

        assert created["has_credentials"] is True
        assert "credentials" not in created
        assert created["region"] == "auto"

        response = await client.get(f"/api/v1/profiles/{created['id']}", headers=HEADERS)
        assert response.status_code == 200
        assert response.json()["name"] == "Blog"

    @pytest.mark.asyncio
    async def test_invalid_profile_lists_every_error(self, client):
        response = await client.post(
            "/api/v1/profiles", json={"provider": "aws-s3"}, headers=HEADERS
        )

        assert response.status_code == 422
        errors = response.json()["detail"]["errors"]
        assert "Profile name is required" in errors
        assert "Bucket name is required" in errors
        assert "CDN domain is required" in errors

    @pytest.mark.asyncio
    async def test_name_conflict(self, client):
        await create_profile(client)
        response = await client.post("/api/v1/profiles", json={**PROFILE, "name": "BLOG"}, headers=HEADERS)
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_unknown_profile(self, client):
        assert (await client.get("/api/v1/profiles/nope", headers=HEADERS)).status_code == 404
        assert (await client.delete("/api/v1/profiles/nope", headers=HEADERS)).status_code == 404

    @pytest.mark.asyncio
    async def test_update_and_delete(self, client):
        created = await create_profile(client)

        response = await client.patch(
            f"/api/v1/profiles/{created['id']}", json={"max_width": 800}, headers=HEADERS
        )
        assert response.status_code == 200
        assert response.json()["max_width"] == 800
        assert response.json()["bucket"] == "blog-images"

        response = await client.delete(f"/api/v1/profiles/{created['id']}", headers=HEADERS)
        assert response.status_code == 204
        assert (await client.get("/api/v1/profiles", headers=HEADERS)).json() == []

    @pytest.mark.asyncio
    async def test_duplicate_has_no_credentials(self, client):
        created = await create_profile(client)
        response = await client.post(
            f"/api/v1/profiles/{created['id']}/duplicate", json={"name": "Blog Copy"}, headers=HEADERS
        )

        assert response.status_code == 201
        assert response.json()["has_credentials"] is False

    @pytest.mark.asyncio
    async def test_activation_and_resolution(self, client):
        blog = await create_profile(client)
        docs = await create_profile(client, name="Docs")

        await client.post(f"/api/v1/profiles/{blog['id']}/activate", json={}, headers=HEADERS)
        await client.post(
            f"/api/v1/profiles/{docs['id']}/activate",
            json={"scope": "workspace", "workspace": "/ws/docs"},
            headers=HEADERS,
        )

        response = await client.get("/api/v1/profiles/active", params={"workspace": "/ws/docs"}, headers=HEADERS)
        assert response.json()["profile"]["id"] == docs["id"]
        assert response.json()["source"] == "workspace"

        response = await client.get("/api/v1/profiles/active", headers=HEADERS)
        assert response.json()["profile"]["id"] == blog["id"]
        assert response.json()["source"] == "global"

    @pytest.mark.asyncio
    async def test_workspace_scope_needs_workspace(self, client):
        created = await create_profile(client)
        response = await client.post(
            f"/api/v1/profiles/{created['id']}/activate", json={"scope": "workspace"}, headers=HEADERS
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_nothing_active(self, client):
        response = await client.get("/api/v1/profiles/active", headers=HEADERS)
        assert response.status_code == 200
        assert response.json()["profile"] is None
        assert response.json()["message"].startswith("No storage profile configured")

    @pytest.mark.asyncio
    async def test_validate_without_saving(self, client):
        response = await client.post(
            "/api/v1/profiles/validate", json={"name": "X", "provider": "cloudflare-r2"}, headers=HEADERS
        )

        body = response.json()
        assert body["valid"] is False
        assert "Cloudflare R2 requires account ID" in body["errors"]
        assert (await client.get("/api/v1/profiles", headers=HEADERS)).json() == []

    @pytest.mark.asyncio
    async def test_export_then_import(self, client):
        await create_profile(client)

        exported = (await client.get("/api/v1/profiles/export", headers=HEADERS)).json()
        assert "secret-example" not in str(exported)

        response = await client.post("/api/v1/profiles/import", json=exported, headers=HEADERS)
        assert response.status_code == 201
        assert [p["name"] for p in response.json()] == ["Blog (1)"]

    @pytest.mark.asyncio
    async def test_bad_import(self, client):
        response = await client.post("/api/v1/profiles/import", json={"nope": []}, headers=HEADERS)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_naming_preview_and_templates(self, client):
        response = await client.post(
            "/api/v1/profiles/naming/preview", json={"pattern": "{hash:12}{ext}"}, headers=HEADERS
        )
        assert response.json() == {"valid": True, "error": None, "example": "a1b2c3d4e5f6.png"}

        response = await client.post(
            "/api/v1/profiles/naming/preview", json={"pattern": "{filename}{ext}"}, headers=HEADERS
        )
        assert response.json()["valid"] is False

        templates = (await client.get("/api/v1/profiles/naming/templates", headers=HEADERS)).json()
        assert len(templates) == 6
        assert all(t["example"] for t in templates)


class TestUploadAndUndo:

    @pytest.mark.asyncio
    async def test_upload_without_profile(self, client, tmp_path):
        document = tmp_path / "post.md"
        document.write_text("![a](a.png)")

        response = await client.post(
            "/api/v1/uploads/document", json={"document_path": str(document)}, headers=HEADERS
        )
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_missing_document(self, client, tmp_path):
        response = await client.post(
            "/api/v1/uploads/document",
            json={"document_path": str(tmp_path / "missing.md")},
            headers=HEADERS,
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_upload_history_undo_cycle(self, client, bucket, tmp_path):
        (tmp_path / "shot.png").write_bytes(make_image(2000, 1000))
        document = tmp_path / "post.md"
        document.write_text("# Post\n\n![shot](shot.png)\n")

        profile = await create_profile(client)
        await client.post(f"/api/v1/profiles/{profile['id']}/activate", json={}, headers=HEADERS)

        # upload
        response = await client.post(
            "/api/v1/uploads/document",
            json={"document_path": str(document), "write_back": True},
            headers=HEADERS,
        )
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["uploaded"] == 1
        assert body["written"] is True
        url = body["items"][0]["url"]
        key = body["items"][0]["key"]
        assert document.read_text() == f"# Post\n\n![shot]({url})\n"
        assert key in bucket.objects

        # history
        records = (await client.get("/api/v1/history", headers=HEADERS)).json()
        assert len(records) == 1
        record_id = records[0]["id"]

        detail = (await client.get(f"/api/v1/history/{record_id}", headers=HEADERS)).json()
        assert detail["age"] == "just now"
        assert detail["uploaded_url"] == url

        # undo
        response = await client.post(
            f"/api/v1/history/{record_id}/undo",
            json={"mode": "link-and-delete", "write_back": True},
            headers=HEADERS,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "reverted"
        assert response.json()["deleted_remote"] is True
        assert document.read_text() == "# Post\n\n![shot](shot.png)\n"
        assert key not in bucket.objects
        assert (await client.get("/api/v1/history", headers=HEADERS)).json() == []

    @pytest.mark.asyncio
    async def test_undo_after_manual_edit(self, client, tmp_path):
        (tmp_path / "shot.png").write_bytes(make_image(50, 50))
        document = tmp_path / "post.md"
        document.write_text("![shot](shot.png)")
        profile = await create_profile(client)

        response = await client.post(
            "/api/v1/uploads/document",
            json={"document_path": str(document), "profile_id": profile["id"]},
            headers=HEADERS,
        )
        record_id = response.json()["records"][0]["id"]

        response = await client.post(
            f"/api/v1/history/{record_id}/undo",
            json={"content": "edited away"},
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["status"] == "not_found"
        assert response.json()["text"] == "edited away"
        assert (await client.get(f"/api/v1/history/{record_id}", headers=HEADERS)).status_code == 200


class TestHistoryEndpoints:

    @pytest.mark.asyncio
    async def test_clear_needs_exactly_one_selector(self, client):
        response = await client.post("/api/v1/history/clear", json={}, headers=HEADERS)
        assert response.status_code == 422

        response = await client.post(
            "/api/v1/history/clear", json={"all": True, "profile_id": "p"}, headers=HEADERS
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_clear_all(self, client):
        response = await client.post("/api/v1/history/clear", json={"all": True}, headers=HEADERS)
        assert response.json() == {"removed": 0}

    @pytest.mark.asyncio
    async def test_unknown_record(self, client):
        assert (await client.get("/api/v1/history/nope", headers=HEADERS)).status_code == 404
        assert (await client.delete("/api/v1/history/nope", headers=HEADERS)).status_code == 404
        response = await client.post("/api/v1/history/nope/undo", json={}, headers=HEADERS)
        assert response.status_code == 404
