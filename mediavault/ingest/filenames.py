"""Storage key grammar and the filename conventions derived from it."""

from __future__ import annotations

import re
import time
from typing import Optional

from mediavault.core.errors import InvalidFilename

__all__ = [
    "FILENAME_PATTERN",
    "EXTENSION_TO_CONTENT_TYPE",
    "STAGING_PREFIX",
    "is_valid_filename",
    "validate_filename",
    "content_type_for",
    "make_thumbnail_filename",
    "make_staged_filename",
]

FILENAME_PATTERN = re.compile(r"^([a-z0-9_-]+/)?[a-z0-9_-]+\.(gif|jpg|jpeg|png)$")

EXTENSION_TO_CONTENT_TYPE = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
}

STAGING_PREFIX = "__deleted__"
THUMBNAIL_SUFFIX = "-thumbnail.jpg"


def is_valid_filename(filename: str) -> bool:
    return FILENAME_PATTERN.fullmatch(filename) is not None


def validate_filename(filename: str) -> str:
    if not is_valid_filename(filename):
        raise InvalidFilename(filename)
    return filename


def content_type_for(filename: str) -> str:
    """Return the MIME type for a grammar-valid filename."""
    extension = validate_filename(filename).rsplit(".", 1)[1]
    return EXTENSION_TO_CONTENT_TYPE[extension]


def make_thumbnail_filename(filename: str) -> str:
    """``foo/bar.gif`` -> ``foo/bar-thumbnail.jpg``."""
    stem = filename.rsplit(".", 1)[0]
    return f"{stem}{THUMBNAIL_SUFFIX}"


def make_staged_filename(filename: str, *, timestamp_ms: Optional[int] = None) -> str:
    """Name an object is renamed to while a replace is in flight.

    The directory separator is folded into the name so the result stays
    within the single-directory grammar.
    """
    ts = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    return f"{STAGING_PREFIX}/{ts}-{filename.replace('/', '-')}"
