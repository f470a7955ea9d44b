from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from mediavault.core.config import Settings
from mediavault.core.errors import InvalidMediaURL, TransactionRollbackFailure
from mediavault.core.logging import get_logger
from mediavault.core.storage import Storage
from mediavault.domain import make_staged_filename, make_thumbnail_filename

from .media_service import MediaMetadata, MediaRef, MediaService, run_to_completion

PersistCallback = Callable[[MediaMetadata], Awaitable[None]]


class ReplaceState(str, enum.Enum):
    start = "start"
    aside_old = "aside_old"
    store_new = "store_new"
    derive_thumbnail = "derive_thumbnail"
    update_metadata = "update_metadata"
    cleanup_old = "cleanup_old"
    committed = "committed"
    rolling_back = "rolling_back"
    rolled_back = "rolled_back"


@dataclass(slots=True)
class ReplaceTransaction:
    """Bookkeeping for one in-place swap of a media object's bytes."""

    filename: str
    thumbnail_filename: Optional[str]
    staged_filename: str
    staged_thumbnail_filename: str
    buffer: bytes
    state: ReplaceState = ReplaceState.start
    history: list[ReplaceState] = field(default_factory=lambda: [ReplaceState.start])
    # staged name -> original name, recorded before each aside rename
    staged: dict[str, str] = field(default_factory=dict)
    # canonical names, recorded before each upload starts
    written: list[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        if self.state == ReplaceState.committed:
            return "committed"
        if self.state == ReplaceState.rolled_back:
            return "rolled_back"
        return "pending"

    def advance(self, state: ReplaceState) -> None:
        self.state = state
        self.history.append(state)


class ReplaceCoordinator:
    """Swap the bytes behind a media URL, restoring the old object on failure.

    Callers must serialise replaces of the same record.
    """

    def __init__(self, settings: Settings, storage: Storage, media: MediaService | None = None):
        self.settings = settings
        self.storage = storage
        self.media = media or MediaService(settings, storage)
        self.logger = get_logger(component="replace_coordinator")

    async def replace(
        self,
        ref: MediaRef,
        *,
        buffer: bytes | None = None,
        source_url: str | None = None,
        persist: PersistCallback | None = None,
    ) -> MediaMetadata:
        txn = await self.begin(ref, buffer=buffer, source_url=source_url)
        return await self.execute(txn, persist=persist)

    async def begin(
        self,
        ref: MediaRef,
        *,
        buffer: bytes | None = None,
        source_url: str | None = None,
    ) -> ReplaceTransaction:
        """Resolve names and acquire the new content without touching storage."""
        filename = self.storage.get_filename_from_url(ref.url)
        if not filename:
            raise InvalidMediaURL(ref.url)

        thumbnail_filename = None
        if ref.thumbnail_url:
            thumbnail_filename = self.storage.get_filename_from_url(ref.thumbnail_url)
        if thumbnail_filename is None:
            thumbnail_filename = make_thumbnail_filename(filename)

        content = await self.media.acquire(buffer=buffer, source_url=source_url)
        staged_filename = make_staged_filename(filename)
        return ReplaceTransaction(
            filename=filename,
            thumbnail_filename=thumbnail_filename,
            staged_filename=staged_filename,
            staged_thumbnail_filename=make_thumbnail_filename(staged_filename),
            buffer=content,
        )

    async def execute(self, txn: ReplaceTransaction, *, persist: PersistCallback | None = None) -> MediaMetadata:
        logger = self.logger.bind(filename=txn.filename, staged_filename=txn.staged_filename)
        try:
            await self._aside_old(txn)
            metadata = await self._store_new(txn)
            txn.advance(ReplaceState.update_metadata)
            if persist is not None:
                await persist(metadata)
        except (Exception, asyncio.CancelledError) as exc:
            logger.warning("replace_failed", state=txn.state.value, error=str(exc), error_type=type(exc).__name__)
            await self._rollback(txn, exc)
            raise

        await self._cleanup(txn)
        txn.advance(ReplaceState.committed)
        logger.info("replace_committed", size=metadata.size, hash=metadata.content_hash)
        return metadata

    async def _aside_old(self, txn: ReplaceTransaction) -> None:
        txn.advance(ReplaceState.aside_old)
        moves = [(txn.filename, txn.staged_filename)]
        if txn.thumbnail_filename and await asyncio.to_thread(self.storage.exists, txn.thumbnail_filename):
            moves.append((txn.thumbnail_filename, txn.staged_thumbnail_filename))
        for original, staged in moves:
            txn.staged[staged] = original
            await run_to_completion(self.storage.rename, original, staged)

    async def _store_new(self, txn: ReplaceTransaction) -> MediaMetadata:
        txn.advance(ReplaceState.store_new)
        txn.written.append(txn.filename)
        stored = await self.media.store_buffer(txn.buffer, txn.filename)

        txn.advance(ReplaceState.derive_thumbnail)
        image = await self.media.derive(txn.buffer)
        thumbnail_url = None
        if image.thumbnail is not None:
            txn.written.append(make_thumbnail_filename(txn.filename))
            thumbnail_url = await self.media.store_thumbnail(image.thumbnail, txn.filename)

        return MediaMetadata(
            url=stored.url,
            thumbnail_url=thumbnail_url,
            width=image.width,
            height=image.height,
            color=image.dominant_color,
            size=stored.size,
            content_hash=stored.content_hash,
        )

    async def _rollback(self, txn: ReplaceTransaction, error: BaseException) -> None:
        txn.advance(ReplaceState.rolling_back)
        try:
            for filename in reversed(txn.written):
                # Names with a staged original are overwritten by the restore below.
                if filename not in txn.staged.values():
                    await run_to_completion(self.storage.delete, filename)
            for staged, original in reversed(list(txn.staged.items())):
                if await asyncio.to_thread(self.storage.exists, staged):
                    await run_to_completion(self.storage.rename, staged, original)
        except Exception as rollback_exc:
            self.logger.error(
                "replace_rollback_failed",
                filename=txn.filename,
                staged=txn.staged,
                error=str(rollback_exc),
            )
            raise TransactionRollbackFailure(error, txn.staged) from rollback_exc
        txn.advance(ReplaceState.rolled_back)
        self.logger.info("replace_rolled_back", filename=txn.filename)

    async def _cleanup(self, txn: ReplaceTransaction) -> None:
        txn.advance(ReplaceState.cleanup_old)
        for staged in txn.staged:
            try:
                await run_to_completion(self.storage.delete, staged)
            except Exception as exc:
                # The new object is already live; the staged copy leaks until collected.
                self.logger.warning("replace_cleanup_failed", staged_filename=staged, error=str(exc))


__all__ = [
    "ReplaceCoordinator",
    "ReplaceState",
    "ReplaceTransaction",
    "PersistCallback",
]
