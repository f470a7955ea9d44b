from __future__ import annotations

import asyncio
import contextlib
from dataclasses import asdict, dataclass
from typing import Any, Callable, Optional, TypeVar

from mediavault.core.config import Settings
from mediavault.core.errors import AlreadyExists
from mediavault.core.logging import get_logger
from mediavault.core.storage import Storage
from mediavault.domain import (
    DownloadGuard,
    ImageDerivedData,
    compute_content_hash,
    derive_image_data,
    ensure_within_budget,
    make_thumbnail_filename,
    validate_filename,
)

T = TypeVar("T")


async def run_to_completion(func: Callable[..., T], *args: Any) -> T:
    """Run a blocking storage mutation in a worker thread.

    Cancelling the caller does not stop the thread, so on cancellation this
    waits for the call to settle before re-raising.
    """
    future = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        with contextlib.suppress(Exception):
            await future
        raise


@dataclass(slots=True)
class StoredObject:
    filename: str
    url: str
    content_type: str
    size: int
    content_hash: str


@dataclass(slots=True)
class MediaRef:
    """What a collaborator knows about an existing media record."""

    url: str
    thumbnail_url: Optional[str] = None
    content_hash: Optional[str] = None


@dataclass(slots=True)
class MediaMetadata:
    """Storage metadata a collaborator persists for a media record."""

    url: str
    thumbnail_url: Optional[str]
    width: int
    height: int
    color: Optional[str]
    size: int
    content_hash: str

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class RenamedMedia:
    url: str
    thumbnail_url: Optional[str]


class MediaService:
    def __init__(self, settings: Settings, storage: Storage):
        self.settings = settings
        self.storage = storage
        self.guard = DownloadGuard(
            storage,
            max_bytes=settings.max_file_size_bytes,
            timeout=settings.download_timeout_s,
        )
        self.logger = get_logger(component="media_service")

    async def download_url(self, url: str) -> bytes:
        return await asyncio.to_thread(self.guard.fetch, url)

    async def acquire(self, *, buffer: bytes | None = None, source_url: str | None = None) -> bytes:
        """Return new content from exactly one of an in-memory buffer or a URL."""
        if (buffer is None) == (source_url is None):
            raise ValueError("exactly one of buffer or source_url is required")
        if source_url is not None:
            return await self.download_url(source_url)
        return ensure_within_budget(buffer, self.settings.max_file_size_bytes)

    async def derive(self, buffer: bytes) -> ImageDerivedData:
        return await asyncio.to_thread(
            derive_image_data,
            buffer,
            thumbnail_width=self.settings.thumbnail_width,
            thumbnail_quality=self.settings.thumbnail_quality,
            palette_size=self.settings.palette_size,
        )

    async def store_buffer(self, buffer: bytes, filename: str) -> StoredObject:
        validate_filename(filename)
        ensure_within_budget(buffer, self.settings.max_file_size_bytes)
        if await asyncio.to_thread(self.storage.exists, filename):
            raise AlreadyExists(filename)
        result = await run_to_completion(self.storage.upload, buffer, filename)
        self.logger.info("media_stored", filename=filename, size=result.size, hash=result.hash)
        return StoredObject(
            filename=filename,
            url=result.url,
            content_type=result.content_type,
            size=result.size,
            content_hash=result.hash,
        )

    async def store_thumbnail(self, thumbnail: bytes, filename: str) -> str:
        """Upload the thumbnail for ``filename``, replacing any stale one."""
        result = await run_to_completion(self.storage.upload, thumbnail, make_thumbnail_filename(filename))
        return result.url

    async def store_new(
        self,
        filename: str,
        *,
        buffer: bytes | None = None,
        source_url: str | None = None,
    ) -> MediaMetadata:
        validate_filename(filename)
        content = await self.acquire(buffer=buffer, source_url=source_url)
        image = await self.derive(content)
        stored = await self.store_buffer(content, filename)

        thumbnail_url = None
        if image.thumbnail is not None:
            try:
                thumbnail_url = await self.store_thumbnail(image.thumbnail, filename)
            except (Exception, asyncio.CancelledError) as exc:
                self.logger.warning("media_thumbnail_failed", filename=filename, error=str(exc))
                # Drop the main object so the store can be retried under the same name.
                await run_to_completion(self.storage.delete, filename)
                raise

        return MediaMetadata(
            url=stored.url,
            thumbnail_url=thumbnail_url,
            width=image.width,
            height=image.height,
            color=image.dominant_color,
            size=stored.size,
            content_hash=stored.content_hash,
        )

    async def reparse(self, ref: MediaRef) -> MediaMetadata | None:
        """Re-derive metadata for an object this gateway owns; ``None`` otherwise."""
        filename = self.storage.get_filename_from_url(ref.url)
        if not filename:
            return None

        content = await self.download_url(ref.url)
        image = await self.derive(content)

        thumbnail_url = None
        if image.thumbnail is not None:
            thumbnail_url = await self.store_thumbnail(image.thumbnail, filename)
        elif ref.thumbnail_url:
            await self.delete_url(ref.thumbnail_url)

        content_hash = ref.content_hash or compute_content_hash(content)
        self.logger.info("media_reparsed", filename=filename, width=image.width, height=image.height)
        return MediaMetadata(
            url=ref.url,
            thumbnail_url=thumbnail_url,
            width=image.width,
            height=image.height,
            color=image.dominant_color,
            size=len(content),
            content_hash=content_hash,
        )

    async def rename(self, ref: MediaRef, new_filename: str) -> RenamedMedia | None:
        validate_filename(new_filename)
        filename = self.storage.get_filename_from_url(ref.url)
        if not filename:
            return None
        if await asyncio.to_thread(self.storage.exists, new_filename):
            raise AlreadyExists(new_filename)

        requests = [run_to_completion(self.storage.rename, filename, new_filename)]
        thumbnail_filename = self.storage.get_filename_from_url(ref.thumbnail_url or "")
        if thumbnail_filename:
            requests.append(
                run_to_completion(self.storage.rename, thumbnail_filename, make_thumbnail_filename(new_filename))
            )

        responses = await asyncio.gather(*requests)
        self.logger.info("media_renamed", source=filename, target=new_filename)
        return RenamedMedia(
            url=responses[0].url,
            thumbnail_url=responses[1].url if len(responses) > 1 else None,
        )

    async def delete_url(self, url: str | None) -> bool:
        if not url:
            return False
        filename = self.storage.get_filename_from_url(url)
        if not filename:
            return False
        await run_to_completion(self.storage.delete, filename)
        self.logger.info("media_deleted", filename=filename)
        return True


__all__ = [
    "MediaService",
    "run_to_completion",
    "MediaRef",
    "MediaMetadata",
    "RenamedMedia",
    "StoredObject",
]
