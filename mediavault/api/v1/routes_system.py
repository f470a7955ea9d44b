from __future__ import annotations

from fastapi import APIRouter

from mediavault.api import deps

from .schemas import HealthResponse


router = APIRouter(tags=["system"])


@router.get("/health", response_model=HealthResponse, summary="Liveness check")
async def health(settings: deps.SettingsDependency) -> HealthResponse:
    return HealthResponse(storage_backend=settings.storage_backend)


__all__ = ["router"]
