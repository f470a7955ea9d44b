from __future__ import annotations

import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional

import boto3
import httpx
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from mediavault.ingest.filenames import content_type_for, is_valid_filename, validate_filename
from mediavault.ingest.hashing import compute_content_hash

from .config import Settings
from .errors import DownloadFailed, StorageUnavailable
from .logging import get_logger

ProgressCallback = Callable[[int], None]

_MISSING_OBJECT_CODES = {"404", "NoSuchKey", "NotFound"}


@dataclass(slots=True)
class UploadResult:
    filename: str
    url: str
    hash: str
    size: int
    content_type: str


@dataclass(slots=True)
class RenameResult:
    url: str


def _urljoin(*parts: str) -> str:
    return "/".join(part.strip("/") for part in parts if part and part.strip("/"))


class Storage(ABC):
    """Filename-keyed object store with deterministic public URLs.

    Subclasses supply the raw object primitives; URL mapping, validation,
    hashing, streamed downloads and copy-then-delete renames live here.
    """

    def __init__(
        self,
        *,
        storage_base_url: str,
        base_path: str = "",
        cache_control: str = "max-age=86400",
        http_client: httpx.Client | None = None,
        download_timeout_s: float = 30.0,
        chunk_size: int = 64 * 1024,
    ) -> None:
        self.storage_base_url = storage_base_url.rstrip("/")
        self.base_path = base_path.strip("/")
        self.cache_control = cache_control
        self.chunk_size = chunk_size
        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.Client(timeout=download_timeout_s, follow_redirects=True)
        self.logger = get_logger(component="storage", backend=type(self).__name__)

    @abstractmethod
    def exists(self, filename: str) -> bool: ...

    @abstractmethod
    def delete(self, filename: str) -> None: ...

    @abstractmethod
    def _put(self, file_path: str, buffer: bytes, content_type: str) -> None: ...

    @abstractmethod
    def _copy(self, source_path: str, target_path: str) -> None: ...

    def make_file_path(self, filename: str) -> str:
        return _urljoin(self.base_path, filename)

    def make_url(self, filename: str) -> str:
        return _urljoin(self.storage_base_url, self.make_file_path(filename))

    def get_filename_from_url(self, url: str) -> Optional[str]:
        prefix = _urljoin(self.storage_base_url, self.base_path) + "/"
        if not url.startswith(prefix):
            return None
        filename = url[len(prefix):]
        if not is_valid_filename(filename):
            return None
        return filename

    def upload(self, buffer: bytes, filename: str) -> UploadResult:
        content_type = content_type_for(filename)
        file_path = self.make_file_path(filename)
        self.logger.debug("storage_upload", file_path=file_path, size=len(buffer))
        self._put(file_path, buffer, content_type)
        return UploadResult(
            filename=filename,
            url=self.make_url(filename),
            hash=compute_content_hash(buffer),
            size=len(buffer),
            content_type=content_type,
        )

    def rename(self, old_filename: str, new_filename: str) -> RenameResult:
        """Copy ``old_filename`` to ``new_filename`` then delete the source.

        Not atomic: a failure between the two steps leaves both objects.
        """
        old_path = self.make_file_path(validate_filename(old_filename))
        new_path = self.make_file_path(validate_filename(new_filename))
        self.logger.debug("storage_rename", source=old_path, target=new_path)
        self._copy(old_path, new_path)
        self.delete(old_filename)
        return RenameResult(url=self.make_url(new_filename))

    def download(
        self,
        url: str,
        progress: ProgressCallback | None = None,
        *,
        timeout: float | None = None,
    ) -> bytes:
        """Stream ``url`` into memory, reporting the cumulative size per chunk.

        An exception raised by ``progress`` closes the stream and propagates.
        """
        self.logger.debug("storage_download", url=url)
        chunks: list[bytes] = []
        total = 0
        request_timeout = httpx.USE_CLIENT_DEFAULT if timeout is None else timeout
        try:
            with self.http_client.stream("GET", url, timeout=request_timeout) as response:
                if response.is_error:
                    raise DownloadFailed(url, f"HTTP {response.status_code}")
                for chunk in response.iter_bytes(self.chunk_size):
                    chunks.append(chunk)
                    total += len(chunk)
                    if progress is not None:
                        progress(total)
        except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError) as exc:
            raise DownloadFailed(url, str(exc) or type(exc).__name__) from exc
        return b"".join(chunks)

    def close(self) -> None:
        if self._owns_http_client:
            self.http_client.close()


class LocalStorage(Storage):
    """Filesystem-backed storage abstraction suitable for development."""

    def __init__(self, root: Path, **kwargs) -> None:
        super().__init__(**kwargs)
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, file_path: str) -> Path:
        return (self.root / file_path).resolve()

    def exists(self, filename: str) -> bool:
        return self._resolve(self.make_file_path(validate_filename(filename))).is_file()

    def delete(self, filename: str) -> None:
        path = self._resolve(self.make_file_path(validate_filename(filename)))
        self.logger.debug("storage_delete", file_path=str(path))
        with _translate_os_errors("delete", filename):
            path.unlink(missing_ok=True)

    def _put(self, file_path: str, buffer: bytes, content_type: str) -> None:
        target = self._resolve(file_path)
        with _translate_os_errors("put", file_path):
            target.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(dir=target.parent, delete=False, suffix=".part") as tmp:
                tmp.write(buffer)
            os.replace(tmp.name, target)

    def _copy(self, source_path: str, target_path: str) -> None:
        source = self._resolve(source_path)
        target = self._resolve(target_path)
        with _translate_os_errors("copy", source_path):
            target.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(dir=target.parent, delete=False, suffix=".part") as tmp:
                tmp_path = tmp.name
            try:
                shutil.copyfile(source, tmp_path)
            except OSError:
                os.unlink(tmp_path)
                raise
            os.replace(tmp_path, target)

    def download(
        self,
        url: str,
        progress: ProgressCallback | None = None,
        *,
        timeout: float | None = None,
    ) -> bytes:
        filename = self.get_filename_from_url(url)
        if filename is None:
            return super().download(url, progress, timeout=timeout)

        path = self._resolve(self.make_file_path(filename))
        if not path.is_file():
            raise DownloadFailed(url, "object not found")
        chunks: list[bytes] = []
        total = 0
        with _translate_os_errors("read", filename), path.open("rb") as handle:
            while chunk := handle.read(self.chunk_size):
                chunks.append(chunk)
                total += len(chunk)
                if progress is not None:
                    progress(total)
        return b"".join(chunks)


class S3Storage(Storage):
    """S3 (or S3-compatible, e.g. MinIO) backend using a shared boto3 client."""

    def __init__(
        self,
        *,
        bucket: str,
        client=None,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        region: str | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.bucket = bucket
        if client is None:
            session = boto3.session.Session(
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=region,
            )
            client = session.client(
                "s3",
                endpoint_url=endpoint_url,
                config=BotoConfig(retries={"max_attempts": 3, "mode": "standard"}),
            )
        self.client = client

    def exists(self, filename: str) -> bool:
        key = self.make_file_path(validate_filename(filename))
        self.logger.debug("storage_exists", key=key)
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _client_error_code(exc) in _MISSING_OBJECT_CODES:
                return False
            raise StorageUnavailable(f"head_object failed for {key}", {"key": key}) from exc
        except BotoCoreError as exc:
            raise StorageUnavailable(f"head_object failed for {key}", {"key": key}) from exc
        return True

    def delete(self, filename: str) -> None:
        key = self.make_file_path(validate_filename(filename))
        self.logger.debug("storage_delete", key=key)
        with _translate_boto_errors("delete_object", key):
            self.client.delete_object(Bucket=self.bucket, Key=key)

    def _put(self, file_path: str, buffer: bytes, content_type: str) -> None:
        with _translate_boto_errors("put_object", file_path):
            self.client.put_object(
                Bucket=self.bucket,
                Key=file_path,
                Body=buffer,
                ContentLength=len(buffer),
                ContentType=content_type,
                CacheControl=self.cache_control,
            )

    def _copy(self, source_path: str, target_path: str) -> None:
        with _translate_boto_errors("copy_object", source_path):
            self.client.copy_object(
                Bucket=self.bucket,
                Key=target_path,
                CopySource={"Bucket": self.bucket, "Key": source_path},
            )

    def close(self) -> None:
        super().close()
        self.client.close()


def _client_error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


@contextmanager
def _translate_boto_errors(operation: str, key: str) -> Iterator[None]:
    try:
        yield
    except (ClientError, BotoCoreError) as exc:
        raise StorageUnavailable(f"{operation} failed for {key}", {"key": key}) from exc


@contextmanager
def _translate_os_errors(operation: str, key: str) -> Iterator[None]:
    try:
        yield
    except OSError as exc:
        raise StorageUnavailable(f"{operation} failed for {key}", {"key": key}) from exc


def get_storage(settings: Settings, *, http_client: httpx.Client | None = None) -> Storage:
    common = {
        "storage_base_url": settings.storage_base_url,
        "base_path": settings.base_path,
        "cache_control": settings.cache_control,
        "http_client": http_client,
        "download_timeout_s": settings.download_timeout_s,
        "chunk_size": settings.download_chunk_size,
    }
    if settings.storage_backend == "local":
        return LocalStorage(root=Path(settings.local_storage_base_path), **common)
    if settings.storage_backend == "s3":
        return S3Storage(
            bucket=settings.s3_bucket or "",
            endpoint_url=settings.s3_endpoint_url,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
            region=settings.s3_region,
            **common,
        )
    raise ValueError(f"Unsupported storage backend: {settings.storage_backend}")


__all__ = [
    "Storage",
    "LocalStorage",
    "S3Storage",
    "UploadResult",
    "RenameResult",
    "ProgressCallback",
    "get_storage",
]
