"""FastAPI dependencies resolving the per-app services created in the lifespan."""

from fastapi import HTTPException, Request

from app.config import Settings
from app.jobs.in_process_queue import InProcessQueue
from app.processors.registry import ProcessorRegistry
from app.storage.workspace import TempWorkspace


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> ProcessorRegistry:
    return request.app.state.registry


def get_dispatcher(request: Request) -> InProcessQueue:
    dispatcher = getattr(request.app.state, "job_queue", None)
    if dispatcher is None:
        raise HTTPException(status_code=503, detail="Job dispatcher not initialized")
    return dispatcher


def get_workspace(request: Request) -> TempWorkspace:
    workspace = getattr(request.app.state, "workspace", None)
    if workspace is None:
        raise HTTPException(status_code=503, detail="Temp workspace not initialized")
    return workspace
