from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, File, Form, HTTPException, Response, UploadFile, status

from mediavault.api import deps
from mediavault.core.config import Settings
from mediavault.core.errors import InvalidMediaURL, PayloadTooLarge
from mediavault.services.media_service import MediaMetadata, MediaRef

from . import schemas

READ_CHUNK_SIZE = 1024 * 1024

router = APIRouter(
    prefix="/media",
    tags=["media"],
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": schemas.ErrorResponse},
        status.HTTP_409_CONFLICT: {"model": schemas.ErrorResponse},
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": schemas.ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": schemas.ErrorResponse},
    },
)


async def _read_upload(file: UploadFile, max_bytes: int) -> bytes:
    chunks: list[bytes] = []
    total = 0
    try:
        while True:
            chunk = await file.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            total += len(chunk)
            if total > max_bytes:
                raise PayloadTooLarge(total, max_bytes)
            chunks.append(chunk)
    finally:
        await file.close()
    return b"".join(chunks)


async def _source_payload(
    file: Optional[UploadFile],
    source_url: Optional[str],
    settings: Settings,
) -> dict[str, object]:
    if (file is None) == (not source_url):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="file_or_source_url_required")
    if file is not None:
        return {"buffer": await _read_upload(file, settings.max_file_size_bytes)}
    return {"source_url": source_url}


def _to_response(metadata: MediaMetadata) -> schemas.MediaMetadataResponse:
    return schemas.MediaMetadataResponse(**metadata.as_dict())


@router.post("", response_model=schemas.MediaMetadataResponse, status_code=status.HTTP_201_CREATED)
async def store_media(
    service: deps.MediaServiceDependency,
    settings: deps.SettingsDependency,
    filename: str = Form(...),
    file: Optional[UploadFile] = File(default=None),
    source_url: Optional[str] = Form(default=None),
) -> schemas.MediaMetadataResponse:
    payload = await _source_payload(file, source_url, settings)
    metadata = await service.store_new(filename, **payload)
    return _to_response(metadata)


@router.post("/replace", response_model=schemas.MediaMetadataResponse)
async def replace_media(
    coordinator: deps.ReplaceCoordinatorDependency,
    settings: deps.SettingsDependency,
    url: str = Form(...),
    thumbnail_url: Optional[str] = Form(default=None),
    file: Optional[UploadFile] = File(default=None),
    source_url: Optional[str] = Form(default=None),
) -> schemas.MediaMetadataResponse:
    payload = await _source_payload(file, source_url, settings)
    metadata = await coordinator.replace(MediaRef(url=url, thumbnail_url=thumbnail_url), **payload)
    return _to_response(metadata)


@router.post("/reparse", response_model=schemas.MediaMetadataResponse)
async def reparse_media(
    payload: schemas.MediaRefRequest,
    service: deps.MediaServiceDependency,
) -> schemas.MediaMetadataResponse:
    ref = MediaRef(url=payload.url, thumbnail_url=payload.thumbnail_url, content_hash=payload.content_hash)
    metadata = await service.reparse(ref)
    if metadata is None:
        raise InvalidMediaURL(payload.url)
    return _to_response(metadata)


@router.post("/rename", response_model=schemas.RenameResponse)
async def rename_media(
    payload: schemas.RenameRequest,
    service: deps.MediaServiceDependency,
) -> schemas.RenameResponse:
    renamed = await service.rename(
        MediaRef(url=payload.url, thumbnail_url=payload.thumbnail_url),
        payload.new_filename,
    )
    if renamed is None:
        raise InvalidMediaURL(payload.url)
    return schemas.RenameResponse(url=renamed.url, thumbnail_url=renamed.thumbnail_url)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def delete_media(url: str, service: deps.MediaServiceDependency) -> Response:
    if not await service.delete_url(url):
        raise InvalidMediaURL(url)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router"]
