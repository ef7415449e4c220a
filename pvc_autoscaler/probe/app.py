from typing import Optional

from fastapi import APIRouter, FastAPI
from fastapi.responses import JSONResponse

from ..config import Settings, get_settings
from .disk import collect_disk_usage


def create_router(pvcs: str, mount: str) -> APIRouter:
    router = APIRouter(tags=["probe"])

    @router.get("/disk")
    def disk_usage() -> JSONResponse:
        # statvfs blocks; a sync endpoint keeps it off the event loop.
        status_code, responses = collect_disk_usage(pvcs, mount)
        return JSONResponse(status_code=status_code, content=[resp.to_wire() for resp in responses])

    return router


def create_probe_app(settings: Optional[Settings] = None) -> FastAPI:
    """磁盘用量探针应用（sidecar）"""
    settings = settings or get_settings()
    app = FastAPI(
        title="PVC disk usage probe",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.include_router(create_router(settings.probe_pvcs, settings.probe_mount))
    return app
