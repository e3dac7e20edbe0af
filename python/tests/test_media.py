"""Tests for case evidence listing and URL resolution.

Tests cover:
- Items come back in display order
- Videos use their external URL and are never signed
- Storage-backed items get a signed URL with the configured lifetime
- A signing failure leaves url=None on that item only, whatever the storage
  service answered
- GET /cases/{case_id}/media enforces purchase access
"""

import httpx
import respx

from casefile.db.models import MediaType
from casefile.services.media import (
    get_case_media,
    get_case_media_with_urls,
    resolve_media_url,
    resolve_media_urls,
    sign_url,
)
from casefile.storage.client import FakeStorageClient, StorageClient
from tests.factories import create_test_media, create_test_purchase
from tests.helpers import auth_headers


class TestGetCaseMedia:
    def test_display_order(self, db_session, cases):
        create_test_media(db_session, "case-001", display_order=2, title="third")
        create_test_media(db_session, "case-001", display_order=0, title="first")
        create_test_media(db_session, "case-001", display_order=1, title="second")
        create_test_media(db_session, "case-002", display_order=0, title="other case")

        items = get_case_media(db_session, "case-001")

        assert [m.title for m in items] == ["first", "second", "third"]

    def test_no_media(self, db_session, cases):
        assert get_case_media(db_session, "case-002") == []


class TestUrlResolution:
    def test_video_uses_external_url(self, db_session, cases):
        storage = FakeStorageClient()
        create_test_media(
            db_session,
            "case-001",
            MediaType.video,
            external_url="https://video.example.com/interview",
            storage_path="case-001/ignored.mp4",
        )
        item = get_case_media(db_session, "case-001")[0]

        assert resolve_media_url(storage, item) == "https://video.example.com/interview"
        assert storage.signed == []

    def test_storage_path_is_signed(self, db_session, cases):
        storage = FakeStorageClient()
        create_test_media(db_session, "case-001", MediaType.document, storage_path="case-001/a.pdf")
        item = get_case_media(db_session, "case-001")[0]

        url = resolve_media_url(storage, item, ttl_seconds=120)

        assert url.startswith("https://fake-storage.test/sign/case-001/a.pdf")
        assert storage.signed == [("case-001/a.pdf", 120)]

    def test_external_url_fallback(self, db_session, cases):
        create_test_media(
            db_session, "case-001", MediaType.image, external_url="https://cdn.example.com/a.png"
        )
        item = get_case_media(db_session, "case-001")[0]

        assert resolve_media_url(FakeStorageClient(), item) == "https://cdn.example.com/a.png"

    def test_sign_failure_returns_none(self):
        storage = FakeStorageClient()
        storage.fail_on("missing.png")

        assert sign_url(storage, "missing.png") is None

    def test_partial_failure_keeps_every_item(self, db_session, cases):
        storage = FakeStorageClient()
        create_test_media(db_session, "case-001", storage_path="case-001/ok.png", display_order=0)
        create_test_media(db_session, "case-001", storage_path="case-001/gone.png", display_order=1)
        storage.fail_on("case-001/gone.png")

        items = get_case_media_with_urls(db_session, storage, "case-001")

        assert len(items) == 2
        assert items[0].url is not None
        assert items[1].url is None
        assert items[1].storage_path == "case-001/gone.png"

    @respx.mock
    def test_garbled_storage_answer_keeps_every_item(self, db_session, cases):
        sign_base = "https://project.supabase.co/storage/v1/object/sign/case-media"
        for name in ("a.png", "c.png"):
            respx.post(f"{sign_base}/case-001/{name}").mock(
                return_value=httpx.Response(200, json={"signedURL": f"/object/sign/{name}?t=1"})
            )
        respx.post(f"{sign_base}/case-001/bad.png").mock(
            return_value=httpx.Response(200, text="<html>gateway</html>")
        )
        for order, name in enumerate(("a.png", "bad.png", "c.png")):
            create_test_media(
                db_session, "case-001", storage_path=f"case-001/{name}", display_order=order
            )
        storage = StorageClient("https://project.supabase.co", "service-key")

        items = resolve_media_urls(storage, get_case_media(db_session, "case-001"))

        assert len(items) == 3
        assert [item.url is None for item in items] == [False, True, False]

    def test_unexpected_signing_error_returns_none(self):
        class BrokenStorage(FakeStorageClient):
            def sign_url(self, path, *, expires_in=3600):
                raise RuntimeError("storage client bug")

        assert sign_url(BrokenStorage(), "case-001/a.png") is None


class TestMediaRoute:
    def test_requires_auth(self, client, cases):
        assert client.get("/cases/case-001/media").status_code == 401

    def test_unknown_case(self, client, cases, test_user_id):
        response = client.get("/cases/case-404/media", headers=auth_headers(test_user_id))

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_CASE_NOT_FOUND"

    def test_purchase_required(self, client, db_session, cases, test_user_id):
        create_test_media(db_session, "case-001")

        response = client.get("/cases/case-001/media", headers=auth_headers(test_user_id))

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "E_PURCHASE_REQUIRED"

    def test_purchased_case_lists_media(self, client, db_session, storage, cases, test_user_id):
        create_test_purchase(db_session, test_user_id, "case-001")
        create_test_media(db_session, "case-001", storage_path="case-001/photo.png")
        create_test_media(
            db_session,
            "case-001",
            MediaType.video,
            display_order=1,
            external_url="https://video.example.com/v",
        )

        response = client.get("/cases/case-001/media", headers=auth_headers(test_user_id))

        assert response.status_code == 200
        data = response.json()["data"]
        assert [m["media_type"] for m in data] == ["image", "video"]
        assert data[0]["url"].startswith("https://fake-storage.test/sign/case-001/photo.png")
        assert data[1]["url"] == "https://video.example.com/v"
        assert storage.signed == [("case-001/photo.png", 3600)]
