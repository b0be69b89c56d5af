"""Tests for storage keys and the local token-URL backend."""
from urllib.parse import parse_qs, unquote, urlparse

import httpx
import pytest

from fileshare.config import settings
from fileshare.main import app
from fileshare.services.file_storage import (
    ObjectStorage,
    StorageError,
    build_key,
    content_disposition,
    get_object_storage,
    key_belongs_to,
)


@pytest.fixture
def local_storage(tmp_path, monkeypatch) -> ObjectStorage:
    monkeypatch.setattr(settings, "FILE_STORAGE_PATH", str(tmp_path))
    monkeypatch.setattr(settings, "PUBLIC_BASE_URL", "http://files.test")
    return ObjectStorage("local")


def _query(url: str) -> dict:
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


class TestKeys:
    def test_key_keeps_extension(self):
        assert build_key("abc", "report.final.pdf") == "uploads/abc.pdf"

    def test_key_without_extension(self):
        assert build_key("abc", "README") == "uploads/abc"

    @pytest.mark.parametrize("key, expected", [
        ("uploads/abc", True),
        ("uploads/abc.pdf", True),
        ("uploads/abcd.pdf", False),
        ("uploads/victim.pdf", False),
        ("uploads/abc./../victim.pdf", False),
        ("other/abc.pdf", False),
    ])
    def test_key_belongs_to_its_upload_id(self, key, expected):
        assert key_belongs_to(key, "abc") is expected

    def test_disposition_quotes_filename(self):
        assert content_disposition('a"b.txt', inline=False).startswith('attachment; filename="ab.txt"')
        assert content_disposition("a.txt", inline=True).startswith("inline;")


class TestLocalStorage:
    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            ObjectStorage("ftp")

    async def test_upload_url_is_signed(self, local_storage):
        url = await local_storage.issue_upload_capability("uploads/a.txt", "text/plain")
        parsed = urlparse(url)
        assert parsed.netloc == "files.test"
        assert unquote(parsed.path) == "/api/storage/uploads/a.txt"
        token = _query(url)["token"]
        assert local_storage.verify(token, "PUT", "uploads/a.txt") is not None
        assert local_storage.verify(token, "GET", "uploads/a.txt") is None
        assert local_storage.verify(token, "PUT", "uploads/b.txt") is None

    async def test_download_token_carries_disposition(self, local_storage):
        url = await local_storage.issue_download_capability("uploads/a.txt", "a.txt", inline=True)
        claims = local_storage.verify(_query(url)["token"], "GET", "uploads/a.txt")
        assert claims["disposition"].startswith("inline;")

    async def test_round_trip_through_storage_routes(self, local_storage):
        app.dependency_overrides[get_object_storage] = lambda: local_storage
        try:
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://files.test") as c:
                put_url = await local_storage.issue_upload_capability("uploads/a.txt", "text/plain")
                assert (await c.put(put_url, content=b"hello")).status_code == 204

                get_url = await local_storage.issue_download_capability("uploads/a.txt", "a.txt")
                response = await c.get(get_url)
                assert response.content == b"hello"
                assert response.headers["content-disposition"].startswith("attachment;")

                other_url = await local_storage.issue_download_capability("uploads/b.txt", "b.txt")
                borrowed = await c.get(
                    "/api/storage/uploads/a.txt", params={"token": _query(other_url)["token"]}
                )
                assert borrowed.status_code == 403
                assert (await c.get("/api/storage/uploads/a.txt", params={"token": "forged"})).status_code == 403
        finally:
            app.dependency_overrides.clear()

    def test_expired_token_rejected(self, local_storage, monkeypatch):
        token = local_storage.sign("GET", "uploads/a.txt")
        monkeypatch.setattr(settings, "DOWNLOAD_URL_EXPIRES_SECONDS", -1)
        assert local_storage.verify(token, "GET", "uploads/a.txt") is None

    def test_token_from_another_secret_rejected(self, local_storage, monkeypatch):
        monkeypatch.setattr(settings, "STORAGE_SIGNING_SECRET", "another-secret")
        foreign = ObjectStorage("local").sign("GET", "uploads/a.txt")
        assert local_storage.verify(foreign, "GET", "uploads/a.txt") is None

    def test_path_traversal_rejected(self, local_storage):
        with pytest.raises(StorageError):
            local_storage.local_path("../outside.txt")

    async def test_write_and_delete(self, local_storage, tmp_path):
        await local_storage.write_local("uploads/a.txt", b"hello")
        assert (tmp_path / "uploads" / "a.txt").read_bytes() == b"hello"
        await local_storage.delete_object("uploads/a.txt")
        assert not (tmp_path / "uploads" / "a.txt").exists()

    async def test_deleting_missing_object_is_not_an_error(self, local_storage):
        await local_storage.delete_object("uploads/never-written.txt")
