
"""Domain entities and ingest utilities reused by the API and the CLI."""

from mediavault.ingest.download_guard import DownloadGuard, ensure_within_budget
from mediavault.ingest.filenames import (
    is_valid_filename,
    make_staged_filename,
    make_thumbnail_filename,
    validate_filename,
)
from mediavault.ingest.hashing import compute_content_hash
from mediavault.ingest.image_data import ImageDerivedData, derive_image_data
from mediavault.ingest.quantize import Quantizer, median_cut

__all__ = [
    "DownloadGuard",
    "ensure_within_budget",
    "is_valid_filename",
    "validate_filename",
    "make_thumbnail_filename",
    "make_staged_filename",
    "compute_content_hash",
    "ImageDerivedData",
    "derive_image_data",
    "Quantizer",
    "median_cut",
]
