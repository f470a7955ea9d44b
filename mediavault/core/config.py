from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024


class Settings(BaseSettings):
    """Centralised runtime configuration for the Mediavault API."""

    model_config = SettingsConfigDict(
        env_prefix="MEDIAVAULT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Mediavault API"
    environment: str = Field(default="development", description="Deployment environment label.")
    version: str = Field(default="0.1.0", description="API version for metadata and OpenAPI.")
    log_level: str = Field(default="info")
    json_logs: bool = Field(default=True, description="Render log lines as JSON instead of console output.")

    storage_backend: Literal["local", "s3"] = Field(default="local", description="Active storage implementation.")
    storage_base_url: str = Field(
        default="http://localhost:8000/media",
        description="Public base URL objects are served from.",
    )
    base_path: str = Field(default="", description="Key prefix prepended to every filename.")
    local_storage_base_path: Path = Field(
        default_factory=lambda: Path("media"),
        description="Root directory for the local storage backend.",
    )

    s3_bucket: Optional[str] = None
    s3_endpoint_url: Optional[str] = Field(default=None, description="Custom endpoint for S3-compatible stores.")
    s3_access_key: Optional[str] = None
    s3_secret_key: Optional[str] = None
    s3_region: Optional[str] = None

    max_file_size_bytes: int = Field(default=MAX_FILE_SIZE_BYTES, gt=0, description="Hard cap for uploads and downloads.")
    cache_control: str = Field(default="max-age=86400", description="Cache-Control header stored with every object.")
    download_timeout_s: float = Field(default=30.0, gt=0, description="Timeout applied to each outbound download.")
    download_chunk_size: int = Field(default=64 * 1024, gt=0)

    thumbnail_width: int = Field(default=500, gt=0, description="Target width of generated thumbnails.")
    thumbnail_quality: int = Field(default=80, ge=1, le=95, description="JPEG quality for generated thumbnails.")
    palette_size: int = Field(default=10, ge=1, description="Palette size used for dominant color quantization.")

    @model_validator(mode="after")
    def _require_backend_fields(self) -> "Settings":
        if self.storage_backend == "s3":
            missing = [
                f"MEDIAVAULT_{name.upper()}"
                for name in ("s3_bucket", "s3_access_key", "s3_secret_key")
                if not getattr(self, name)
            ]
            if missing:
                raise ValueError(f"Missing required settings for s3 backend: {', '.join(missing)}")
        return self

    @property
    def environment_lower(self) -> str:
        return self.environment.lower()


@lru_cache()
def get_settings() -> Settings:
    load_dotenv(".env", override=False)

    _ENV_ALIAS_MAP = {
        "MEDIAVAULT_ENV": "MEDIAVAULT_ENVIRONMENT",
        "S3_BUCKET": "MEDIAVAULT_S3_BUCKET",
        "S3_BASE_PATH": "MEDIAVAULT_BASE_PATH",
        "S3_STORAGE_BASE_URL": "MEDIAVAULT_STORAGE_BASE_URL",
        "S3_ACCESS_KEY": "MEDIAVAULT_S3_ACCESS_KEY",
        "S3_SECRET_KEY": "MEDIAVAULT_S3_SECRET_KEY",
        "S3_REGION": "MEDIAVAULT_S3_REGION",
    }

    for source, target in _ENV_ALIAS_MAP.items():
        value = os.getenv(source)
        if value and not os.getenv(target):
            os.environ[target] = value

    return Settings()


__all__ = ["MAX_FILE_SIZE_BYTES", "Settings", "get_settings"]
