# Filename: neodrive/routers/root.py
from fastapi import APIRouter, Depends

from ..auth import get_settings_dep
from ..config import Settings

router = APIRouter()


@router.get("/", tags=["root"])
def root(settings: Settings = Depends(get_settings_dep)):
    """
    Root endpoint with app version and health.
    """
    return {
        "app_name": settings.app_name,
        "app_version": settings.app_version,
        "storage_backend": settings.storage_backend,
        "status": "ok",
    }
