from __future__ import annotations

from typing import TYPE_CHECKING

from mediavault.core.config import MAX_FILE_SIZE_BYTES
from mediavault.core.errors import PayloadTooLarge
from mediavault.core.logging import get_logger

if TYPE_CHECKING:
    from mediavault.core.storage import Storage

__all__ = ["DownloadGuard", "ensure_within_budget"]


def ensure_within_budget(buffer: bytes, max_bytes: int = MAX_FILE_SIZE_BYTES) -> bytes:
    if len(buffer) > max_bytes:
        raise PayloadTooLarge(len(buffer), max_bytes)
    return buffer


class DownloadGuard:
    """Fetch remote content through a storage gateway under a byte budget.

    The budget is checked after every received chunk, so an oversized source
    is abandoned mid-stream instead of being buffered in full.
    """

    def __init__(self, storage: "Storage", *, max_bytes: int = MAX_FILE_SIZE_BYTES, timeout: float | None = None):
        self.storage = storage
        self.max_bytes = max_bytes
        self.timeout = timeout
        self.logger = get_logger(component="download_guard")

    def fetch(self, url: str) -> bytes:
        def _enforce_budget(size: int) -> None:
            if size > self.max_bytes:
                raise PayloadTooLarge(size, self.max_bytes)

        try:
            buffer = self.storage.download(url, _enforce_budget, timeout=self.timeout)
        except PayloadTooLarge as exc:
            self.logger.warning("download_aborted_over_budget", url=url, received=exc.size, limit=self.max_bytes)
            raise
        self.logger.info("download_complete", url=url, size=len(buffer))
        return buffer
