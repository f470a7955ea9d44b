from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = Field(default="ok", description="Health status indicator.")
    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    storage_backend: Optional[str] = None


class MediaRefRequest(BaseModel):
    url: str = Field(..., json_schema_extra={"example": "https://cdn.example.com/media/alice/pic.gif"})
    thumbnail_url: Optional[str] = Field(
        default=None,
        json_schema_extra={"example": "https://cdn.example.com/media/alice/pic-thumbnail.jpg"},
    )
    content_hash: Optional[str] = Field(default=None, description="Known content hash, reused on reparse.")


class RenameRequest(MediaRefRequest):
    new_filename: str = Field(..., json_schema_extra={"example": "alice/new-name.gif"})


class MediaMetadataResponse(BaseModel):
    url: str
    thumbnail_url: Optional[str] = None
    width: int
    height: int
    color: Optional[str] = Field(default=None, description="Dominant color as #rrggbb.")
    size: int = Field(..., ge=0, description="Object size in bytes.")
    content_hash: str


class RenameResponse(BaseModel):
    url: str
    thumbnail_url: Optional[str] = None


class ErrorResponse(BaseModel):
    detail: str
    message: str
    context: Optional[dict[str, Any]] = None


__all__ = [
    "HealthResponse",
    "MediaRefRequest",
    "RenameRequest",
    "MediaMetadataResponse",
    "RenameResponse",
    "ErrorResponse",
]
