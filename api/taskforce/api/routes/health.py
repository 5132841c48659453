from fastapi import APIRouter, Depends

from taskforce.core.config import Settings, get_settings

router = APIRouter()


@router.get("/")
async def root(settings: Settings = Depends(get_settings)) -> dict[str, str]:
    return {"status": "ok", "service": settings.app_name, "environment": settings.environment}


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}
