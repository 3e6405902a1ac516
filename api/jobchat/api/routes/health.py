from typing import Any

from fastapi import APIRouter, Depends

from jobchat.core.config import Settings, get_settings
from jobchat.services.access_cache import AccessCache, get_access_cache

router = APIRouter()


@router.get("/")
async def root(settings: Settings = Depends(get_settings)) -> dict[str, str]:
    return {"status": "ok", "service": settings.app_name}


@router.get("/healthz")
async def healthz(access_cache: AccessCache = Depends(get_access_cache)) -> dict[str, Any]:
    return {"status": "ok", "access_cache_entries": len(access_cache)}
