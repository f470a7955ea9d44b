from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from mediavault.core.config import Settings
from mediavault.core.storage import Storage
from mediavault.services.media_service import MediaService
from mediavault.services.replace_service import ReplaceCoordinator


def get_storage(request: Request) -> Storage:
    storage: Storage = request.app.state.storage
    return storage


def get_app_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def get_media_service(
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
) -> MediaService:
    return MediaService(settings, storage)


def get_replace_coordinator(
    media: MediaService = Depends(get_media_service),
) -> ReplaceCoordinator:
    return ReplaceCoordinator(media.settings, media.storage, media)


MediaServiceDependency = Annotated[MediaService, Depends(get_media_service)]
ReplaceCoordinatorDependency = Annotated[ReplaceCoordinator, Depends(get_replace_coordinator)]
SettingsDependency = Annotated[Settings, Depends(get_app_settings)]


__all__ = [
    "get_storage",
    "get_app_settings",
    "get_media_service",
    "get_replace_coordinator",
    "MediaServiceDependency",
    "ReplaceCoordinatorDependency",
    "SettingsDependency",
]
