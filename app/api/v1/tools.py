"""Synchronous tool endpoints.

Small documents can be converted inline: the upload is persisted into a temp
workspace, the processor runs under the request timeout, and the workspace
is removed once the response has been streamed. Long-running work should go
through /api/jobs instead.
"""

import asyncio
import logging
import os

from fastapi import APIRouter, Depends, Request
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from app.api.deps import get_registry, get_settings, get_workspace
from app.config import Settings
from app.core.errors import ApiError
from app.jobs.input_store import UploadLimits, persist_job_input
from app.processors.base import ToolProcessContext
from app.processors.registry import ProcessorRegistry
from app.storage.workspace import TempWorkspace, remove_tree

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/tools")
async def list_tools(registry: ProcessorRegistry = Depends(get_registry)):
    """List the tool identifiers accepted by /jobs/{tool} and /tools/{tool}."""
    tools = registry.list_tools()
    return {"tools": tools, "count": len(tools)}


@router.post("/tools/{tool}")
async def run_tool(
    tool: str,
    request: Request,
    registry: ProcessorRegistry = Depends(get_registry),
    workspace: TempWorkspace = Depends(get_workspace),
    settings: Settings = Depends(get_settings),
):
    """Run a tool inline and stream its output back."""
    if not registry.is_supported(tool):
        raise ApiError(f'Unsupported tool "{tool}".', 404)

    form = await request.form()
    # create_temp_dir sweeps stale dirs first
    loop = asyncio.get_running_loop()
    work_dir = await loop.run_in_executor(None, workspace.create_temp_dir, tool)
    input_dir = os.path.join(work_dir, "input")
    output_dir = os.path.join(work_dir, "output")
    os.makedirs(input_dir)
    os.makedirs(output_dir)

    context = None
    try:
        stored = await persist_job_input(form.multi_items(), input_dir, UploadLimits.from_settings(settings))
        context = ToolProcessContext(
            job_id=os.path.basename(work_dir),
            tool=tool,
            work_dir=work_dir,
            input_dir=input_dir,
            output_dir=output_dir,
            input=stored,
            set_progress=lambda progress, message: None,
            log=logger.info,
            settings=settings,
        )
        result = await asyncio.wait_for(registry.process(context), timeout=settings.request_timeout_sec)
    except asyncio.TimeoutError:
        if context is not None:
            context.cancel_event.set()
        remove_tree(work_dir)
        raise ApiError(f"Request timed out after {settings.request_timeout_sec} seconds.", 408)
    except (Exception, asyncio.CancelledError):
        remove_tree(work_dir)
        raise

    return FileResponse(
        result.output_path,
        media_type=result.content_type,
        filename=result.filename,
        headers={"Cache-Control": "no-store"},
        background=BackgroundTask(remove_tree, work_dir),
    )
