from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pytest
from botocore.exceptions import ClientError, EndpointConnectionError
from pydantic import ValidationError

from mediavault.core.config import get_settings
from mediavault.core.errors import DownloadFailed, InvalidFilename, StorageUnavailable
from mediavault.core.storage import LocalStorage, S3Storage, get_storage
from mediavault.ingest.hashing import compute_content_hash


def _client_error(code: str, operation: str = "HeadObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture()
def s3_client():
    client = MagicMock()
    client.put_object.return_value = {"ETag": '"test-etag"'}
    return client


@pytest.fixture()
def s3_storage(s3_client):
    backend = S3Storage(
        bucket="test-bucket",
        client=s3_client,
        storage_base_url="https://test-bucket.s3.amazonaws.com",
        base_path="test-base-path",
    )
    yield backend
    backend.close()


def test_default_backend_is_local(storage):
    assert isinstance(storage, LocalStorage)


def test_selecting_s3_returns_s3_storage(monkeypatch):
    monkeypatch.setenv("MEDIAVAULT_STORAGE_BACKEND", "s3")
    monkeypatch.setenv("MEDIAVAULT_S3_BUCKET", "bucket")
    monkeypatch.setenv("MEDIAVAULT_S3_ACCESS_KEY", "access")
    monkeypatch.setenv("MEDIAVAULT_S3_SECRET_KEY", "secret")
    monkeypatch.setenv("MEDIAVAULT_S3_REGION", "us-east-1")
    monkeypatch.setenv("MEDIAVAULT_S3_ENDPOINT_URL", "http://localhost:9000")
    backend = get_storage(get_settings())
    try:
        assert isinstance(backend, S3Storage)
        assert backend.bucket == "bucket"
    finally:
        backend.close()


def test_s3_backend_requires_credentials(monkeypatch):
    monkeypatch.setenv("MEDIAVAULT_STORAGE_BACKEND", "s3")
    monkeypatch.delenv("MEDIAVAULT_S3_BUCKET", raising=False)
    with pytest.raises(ValidationError) as excinfo:
        get_settings()
    assert "MEDIAVAULT_S3_BUCKET" in str(excinfo.value)


def test_legacy_env_names_are_aliased(monkeypatch):
    monkeypatch.delenv("MEDIAVAULT_STORAGE_BASE_URL", raising=False)
    monkeypatch.setenv("S3_STORAGE_BASE_URL", "https://legacy.example.com")
    settings = get_settings()
    assert settings.storage_base_url == "https://legacy.example.com"


@pytest.mark.parametrize("filename", ["a.png", "a/b.png", "alice/pic.jpeg", "__deleted__/1-x-y.gif"])
def test_url_round_trip(storage, filename):
    url = storage.make_url(filename)
    assert url == f"https://cdn.example.com/media/{filename}"
    assert storage.get_filename_from_url(url) == filename


@pytest.mark.parametrize(
    "url",
    [
        "https://cdn.example.com/test.jpg",
        "https://other.example.com/media/test.jpg",
        "https://cdn.example.com/media-other/test.jpg",
        "https://cdn.example.com/media/a/b/c.png",
        "",
    ],
)
def test_get_filename_from_url_outside_prefix(storage, url):
    assert storage.get_filename_from_url(url) is None


def test_local_upload_exists_download_delete(storage):
    result = storage.upload(b"payload", "alice/pic.png")
    assert result.url == "https://cdn.example.com/media/alice/pic.png"
    assert result.hash == compute_content_hash(b"payload")
    assert result.size == len(b"payload")
    assert result.content_type == "image/png"
    assert storage.exists("alice/pic.png")
    assert (storage.root / "media" / "alice" / "pic.png").read_bytes() == b"payload"

    progress: list[int] = []
    assert storage.download(result.url, progress.append) == b"payload"
    assert progress[-1] == len(b"payload")

    storage.delete("alice/pic.png")
    assert not storage.exists("alice/pic.png")


def test_local_upload_rejects_invalid_filename(storage):
    with pytest.raises(InvalidFilename):
        storage.upload(b"payload", "Alice/pic.png")
    assert not any(storage.root.rglob("*.png"))


def test_local_rename_is_copy_then_delete(storage):
    storage.upload(b"old", "alice/pic.png")
    result = storage.rename("alice/pic.png", "bob/pic.png")
    assert result.url == storage.make_url("bob/pic.png")
    assert not storage.exists("alice/pic.png")
    assert storage.download(result.url) == b"old"


def test_local_rename_missing_source_fails(storage):
    with pytest.raises(StorageUnavailable):
        storage.rename("alice/missing.png", "bob/pic.png")
    assert not storage.exists("bob/pic.png")


def test_local_download_missing_object(storage):
    with pytest.raises(DownloadFailed):
        storage.download(storage.make_url("alice/missing.png"))


def test_download_streams_remote_url(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url == "https://images.example.org/cat.gif"
        return httpx.Response(200, content=iter([b"abc", b"def"]))

    http_client = httpx.Client(transport=httpx.MockTransport(handler))
    backend = get_storage(settings, http_client=http_client)
    progress: list[int] = []
    try:
        assert backend.download("https://images.example.org/cat.gif", progress.append) == b"abcdef"
    finally:
        backend.close()
        http_client.close()
    assert progress[-1] == 6


def test_download_propagates_progress_errors(settings):
    class Stop(Exception):
        pass

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=iter([b"a" * 10, b"b" * 10]))

    def progress(size: int) -> None:
        raise Stop(size)

    with httpx.Client(transport=httpx.MockTransport(handler)) as http_client:
        backend = get_storage(settings, http_client=http_client)
        with pytest.raises(Stop):
            backend.download("https://images.example.org/cat.gif", progress)


@pytest.mark.parametrize("status_code", [404, 500])
def test_download_http_error(settings, status_code):
    with httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(status_code))) as http_client:
        backend = get_storage(settings, http_client=http_client)
        with pytest.raises(DownloadFailed):
            backend.download("https://images.example.org/cat.gif")


def test_download_transport_error(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with httpx.Client(transport=httpx.MockTransport(handler)) as http_client:
        backend = get_storage(settings, http_client=http_client)
        with pytest.raises(DownloadFailed) as excinfo:
            backend.download("https://images.example.org/cat.gif")
    assert isinstance(excinfo.value, StorageUnavailable)


def test_s3_upload_sets_metadata(s3_storage, s3_client):
    result = s3_storage.upload(b"test", "test/test.jpg")
    s3_client.put_object.assert_called_once_with(
        Bucket="test-bucket",
        Key="test-base-path/test/test.jpg",
        Body=b"test",
        ContentLength=4,
        ContentType="image/jpeg",
        CacheControl="max-age=86400",
    )
    assert result.url == "https://test-bucket.s3.amazonaws.com/test-base-path/test/test.jpg"
    assert result.hash == compute_content_hash(b"test")


def test_s3_upload_invalid_filename_makes_no_request(s3_storage, s3_client):
    with pytest.raises(InvalidFilename):
        s3_storage.upload(b"test", "test.txt")
    s3_client.put_object.assert_not_called()


def test_s3_get_filename_from_url(s3_storage):
    assert s3_storage.get_filename_from_url("https://test-bucket.s3.amazonaws.com/test-base-path/test.jpg") == "test.jpg"
    assert s3_storage.get_filename_from_url("https://test-bucket.s3.amazonaws.com/test.jpg") is None


def test_s3_exists(s3_storage, s3_client):
    assert s3_storage.exists("test.jpg") is True
    s3_client.head_object.assert_called_once_with(Bucket="test-bucket", Key="test-base-path/test.jpg")


@pytest.mark.parametrize("code", ["404", "NoSuchKey", "NotFound"])
def test_s3_exists_missing(s3_storage, s3_client, code):
    s3_client.head_object.side_effect = _client_error(code)
    assert s3_storage.exists("test.jpg") is False


def test_s3_exists_propagates_faults(s3_storage, s3_client):
    s3_client.head_object.side_effect = _client_error("AccessDenied")
    with pytest.raises(StorageUnavailable):
        s3_storage.exists("test.jpg")

    s3_client.head_object.side_effect = EndpointConnectionError(endpoint_url="http://localhost:9000")
    with pytest.raises(StorageUnavailable):
        s3_storage.exists("test.jpg")


def test_s3_delete(s3_storage, s3_client):
    s3_storage.delete("test.jpg")
    s3_client.delete_object.assert_called_once_with(Bucket="test-bucket", Key="test-base-path/test.jpg")


def test_s3_rename_copies_then_deletes(s3_storage, s3_client):
    calls = MagicMock()
    calls.attach_mock(s3_client.copy_object, "copy_object")
    calls.attach_mock(s3_client.delete_object, "delete_object")

    result = s3_storage.rename("a/old.gif", "a/new.gif")

    assert [c[0] for c in calls.mock_calls] == ["copy_object", "delete_object"]
    s3_client.copy_object.assert_called_once_with(
        Bucket="test-bucket",
        Key="test-base-path/a/new.gif",
        CopySource={"Bucket": "test-bucket", "Key": "test-base-path/a/old.gif"},
    )
    s3_client.delete_object.assert_called_once_with(Bucket="test-bucket", Key="test-base-path/a/old.gif")
    assert result.url == "https://test-bucket.s3.amazonaws.com/test-base-path/a/new.gif"


def test_s3_rename_copy_failure_keeps_source(s3_storage, s3_client):
    s3_client.copy_object.side_effect = _client_error("InternalError", "CopyObject")
    with pytest.raises(StorageUnavailable):
        s3_storage.rename("a/old.gif", "a/new.gif")
    s3_client.delete_object.assert_not_called()


@pytest.mark.parametrize("url", ["http://[::1", "http://" + "a" * 70 + "/pic.png"])
def test_download_malformed_url(storage, url):
    with pytest.raises(DownloadFailed) as excinfo:
        storage.download(url)
    assert excinfo.value.url == url


def test_local_download_read_error(storage, monkeypatch):
    result = storage.upload(b"payload", "alice/pic.png")

    def unreadable(self, *args, **kwargs):
        raise PermissionError("permission denied")

    monkeypatch.setattr(Path, "open", unreadable)
    with pytest.raises(StorageUnavailable) as excinfo:
        storage.download(result.url)
    assert not isinstance(excinfo.value, DownloadFailed)
