from __future__ import annotations

from hashlib import md5

__all__ = ["compute_content_hash"]


def compute_content_hash(buffer: bytes) -> str:
    """Return a hexadecimal MD5 digest for the buffer.

    The digest is used for de-duplication and cache-busting only.

    Args:
        buffer: The content to hash.

    Returns:
        The hexadecimal MD5 digest.
    """
    return md5(buffer, usedforsecurity=False).hexdigest()
