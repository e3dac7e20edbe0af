"""Tests for the storage signing clients.

Tests cover:
- Supabase sign request shape and URL absolutization
- Failure modes raise StorageError(E_SIGN_FAILED)
- FakeStorageClient behavior
- Client selection from settings
"""

import json

import httpx
import pytest
import respx

from casefile.config import Settings
from casefile.storage.client import (
    FakeStorageClient,
    StorageClient,
    StorageError,
    get_storage_client,
)

SUPABASE_URL = "https://project.supabase.co"
SIGN_URL = f"{SUPABASE_URL}/storage/v1/object/sign/case-media/case-001/photo.png"


@pytest.fixture
def storage_client() -> StorageClient:
    return StorageClient(SUPABASE_URL, "service-key", bucket="case-media")


class TestStorageClient:
    @respx.mock
    def test_sign_url_request(self, storage_client):
        route = respx.post(SIGN_URL).mock(
            return_value=httpx.Response(
                200, json={"signedURL": "/object/sign/case-media/case-001/photo.png?token=t"}
            )
        )

        url = storage_client.sign_url("case-001/photo.png", expires_in=600)

        assert url == f"{SUPABASE_URL}/storage/v1/object/sign/case-media/case-001/photo.png?token=t"
        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer service-key"
        assert request.headers["apikey"] == "service-key"
        assert json.loads(request.content) == {"expiresIn": 600}

    @respx.mock
    def test_leading_slash_stripped(self, storage_client):
        respx.post(SIGN_URL).mock(
            return_value=httpx.Response(200, json={"signedURL": "/object/sign/x?token=t"})
        )

        assert storage_client.sign_url("/case-001/photo.png")

    @respx.mock
    def test_project_relative_path(self, storage_client):
        respx.post(SIGN_URL).mock(
            return_value=httpx.Response(
                200, json={"signedUrl": "/storage/v1/object/sign/case-media/x?token=t"}
            )
        )

        url = storage_client.sign_url("case-001/photo.png")

        assert url == f"{SUPABASE_URL}/storage/v1/object/sign/case-media/x?token=t"

    @respx.mock
    def test_absolute_url_kept(self, storage_client):
        respx.post(SIGN_URL).mock(
            return_value=httpx.Response(200, json={"signedURL": "https://cdn.example.com/x"})
        )

        assert storage_client.sign_url("case-001/photo.png") == "https://cdn.example.com/x"

    @respx.mock
    def test_error_status(self, storage_client):
        respx.post(SIGN_URL).mock(return_value=httpx.Response(404, text="Object not found"))

        with pytest.raises(StorageError) as exc_info:
            storage_client.sign_url("case-001/photo.png")

        assert exc_info.value.code == "E_SIGN_FAILED"
        assert "404" in exc_info.value.message

    @respx.mock
    def test_missing_signed_url(self, storage_client):
        respx.post(SIGN_URL).mock(return_value=httpx.Response(200, json={}))

        with pytest.raises(StorageError, match="missing signed URL"):
            storage_client.sign_url("case-001/photo.png")

    @respx.mock
    def test_non_json_body(self, storage_client):
        respx.post(SIGN_URL).mock(return_value=httpx.Response(200, text="<html>gateway</html>"))

        with pytest.raises(StorageError, match="not JSON") as exc_info:
            storage_client.sign_url("case-001/photo.png")

        assert exc_info.value.code == "E_SIGN_FAILED"

    @respx.mock
    def test_non_object_body(self, storage_client):
        respx.post(SIGN_URL).mock(return_value=httpx.Response(200, json=["signedURL"]))

        with pytest.raises(StorageError, match="unexpected response body"):
            storage_client.sign_url("case-001/photo.png")

    @respx.mock
    def test_unreachable(self, storage_client):
        respx.post(SIGN_URL).mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(StorageError, match="unreachable"):
            storage_client.sign_url("case-001/photo.png")


class TestFakeStorageClient:
    def test_sign_records_calls(self):
        storage = FakeStorageClient()

        url = storage.sign_url("case-001/a.pdf", expires_in=60)

        assert url.startswith("https://fake-storage.test/sign/case-001/a.pdf?")
        assert "expires=60" in url
        assert storage.signed == [("case-001/a.pdf", 60)]

    def test_fail_on(self):
        storage = FakeStorageClient()
        storage.fail_on("case-001/a.pdf")

        with pytest.raises(StorageError):
            storage.sign_url("case-001/a.pdf")

        storage.clear()
        assert storage.sign_url("case-001/a.pdf")


class TestGetStorageClient:
    def test_fake_without_supabase(self, monkeypatch):
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        monkeypatch.delenv("SUPABASE_SERVICE_KEY", raising=False)

        assert isinstance(get_storage_client(Settings(_env_file=None)), FakeStorageClient)

    def test_supabase_when_configured(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", SUPABASE_URL)
        monkeypatch.setenv("SUPABASE_SERVICE_KEY", "service-key")

        assert isinstance(get_storage_client(Settings(_env_file=None)), StorageClient)
