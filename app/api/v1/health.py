"""Health check and public limits."""

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from app.api.deps import get_settings
from app.config import Settings

router = APIRouter()
root_router = APIRouter()


@root_router.get("/healthz", response_class=PlainTextResponse)
async def health_check():
    return PlainTextResponse("ok", headers={"Cache-Control": "no-store"})


@router.get("/limits")
async def get_limits(settings: Settings = Depends(get_settings)):
    """Upload limits the UI should enforce before submitting."""
    return {
        "max_files": settings.max_files,
        "max_file_mb": settings.max_file_mb,
        "max_pages": settings.max_pages,
        "max_total_mb": settings.max_total_mb,
    }
