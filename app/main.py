"""PDF tools backend - FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import Settings, settings as default_settings
from app.api.v1.health import root_router as health_root_router
from app.api.v1.router import api_router
from app.core.errors import register_error_handlers
from app.core.logging import setup_logging
from app.jobs.in_process_queue import InProcessQueue
from app.processors.registry import ProcessorRegistry
from app.storage.workspace import TempWorkspace

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, registry: Optional[ProcessorRegistry] = None) -> FastAPI:
    """Build the application. Tests pass their own settings and processor table."""
    settings = settings or default_settings
    registry = registry or ProcessorRegistry()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level)
        logger.info("Starting PDF tools backend on port %d", settings.compute_port)
        logger.info("Temp dir: %s, job root: %s", settings.tmp_dir, settings.job_root)

        workspace = TempWorkspace(settings.tmp_dir, ttl_minutes=settings.tmp_ttl_minutes)
        workspace.ensure_root()
        job_queue = InProcessQueue(settings=settings, registry=registry, workspace=workspace)
        await job_queue.start()
        logger.info("Job queue started with %d tool(s)", len(registry.list_tools()))

        app.state.settings = settings
        app.state.registry = registry
        app.state.workspace = workspace
        app.state.job_queue = job_queue

        yield

        logger.info("Shutting down PDF tools backend")
        await job_queue.stop()
        workspace.cleanup_expired()

    app = FastAPI(
        title="PDF Tools Service",
        description="Merge, split, convert and secure PDF documents",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    app.include_router(health_root_router, tags=["health"])  # GET /healthz at root
    app.include_router(api_router)  # All /api/* endpoints
    return app


app = create_app()
