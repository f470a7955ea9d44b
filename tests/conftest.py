from __future__ import annotations

import os
from io import BytesIO
from typing import Callable
from unittest import mock

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from mediavault.core.config import get_settings
from mediavault.core.storage import LocalStorage, get_storage
from mediavault.main import create_app

STORAGE_BASE_URL = "https://cdn.example.com"
BASE_PATH = "media"


@pytest.fixture(autouse=True)
def configure_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("MEDIAVAULT_ENV", "test")
    monkeypatch.setenv("MEDIAVAULT_LOG_LEVEL", "debug")
    monkeypatch.setenv("MEDIAVAULT_STORAGE_BACKEND", "local")
    monkeypatch.setenv("MEDIAVAULT_STORAGE_BASE_URL", STORAGE_BASE_URL)
    monkeypatch.setenv("MEDIAVAULT_BASE_PATH", BASE_PATH)
    monkeypatch.setenv("MEDIAVAULT_LOCAL_STORAGE_BASE_PATH", str(tmp_path / "objects"))
    for name in ("S3_BUCKET", "S3_BASE_PATH", "S3_STORAGE_BASE_URL", "S3_ACCESS_KEY", "S3_SECRET_KEY", "S3_REGION"):
        monkeypatch.delenv(name, raising=False)

    get_settings.cache_clear()
    # get_settings copies aliased variables straight into os.environ.
    with mock.patch.dict(os.environ):
        yield
    get_settings.cache_clear()


@pytest.fixture()
def settings(configure_environment):
    return get_settings()


@pytest.fixture()
def storage(settings) -> LocalStorage:
    backend = get_storage(settings)
    assert isinstance(backend, LocalStorage)
    yield backend
    backend.close()


@pytest.fixture()
def client(settings, storage):
    app = create_app(settings=settings, storage=storage)
    with TestClient(app) as client:
        yield client


def _encode(image: Image.Image, fmt: str) -> bytes:
    out = BytesIO()
    image.save(out, format=fmt)
    return out.getvalue()


@pytest.fixture()
def make_image() -> Callable[..., bytes]:
    """Build an encoded solid-color image."""

    def _make(
        size: tuple[int, int] = (10, 10),
        color: tuple[int, ...] = (255, 0, 0),
        fmt: str = "PNG",
        mode: str = "RGB",
    ) -> bytes:
        image = Image.new(mode, size, color)
        if fmt == "GIF":
            image = image.convert("P")
        return _encode(image, fmt)

    return _make


@pytest.fixture()
def animated_gif() -> bytes:
    frames = [Image.new("RGB", (500, 209), color).convert("P") for color in ((0, 0, 255), (0, 255, 0))]
    out = BytesIO()
    frames[0].save(out, format="GIF", save_all=True, append_images=frames[1:], duration=100, loop=0)
    return out.getvalue()
