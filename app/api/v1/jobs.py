"""Job management API: submit jobs, poll status, download outputs."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import FileResponse, JSONResponse

from app.api.deps import get_dispatcher, get_registry
from app.core.errors import ApiError
from app.jobs.in_process_queue import InProcessQueue
from app.jobs.models import JobStatusPayload, JobSubmitResponse
from app.processors.registry import ProcessorRegistry

router = APIRouter()

_NO_STORE = {"Cache-Control": "no-store"}


@router.post("/jobs/{tool}", status_code=202, response_model=JobSubmitResponse)
async def submit_job(
    tool: str,
    request: Request,
    dispatcher: InProcessQueue = Depends(get_dispatcher),
    registry: ProcessorRegistry = Depends(get_registry),
):
    """Queue a multipart submission for `tool`. Returns immediately with the job id."""
    # Reject before the multipart body is spooled anywhere
    if not registry.is_supported(tool):
        raise ApiError(f'Unsupported tool "{tool}".', 404)

    form = await request.form()
    job_id = await dispatcher.submit(tool, form.multi_items())
    return JobSubmitResponse(job_id=job_id)


@router.get("/jobs/{job_id}", response_model=JobStatusPayload)
async def get_job_status(job_id: str, dispatcher: InProcessQueue = Depends(get_dispatcher)):
    """Poll a job: queued -> running -> done | error."""
    status = await dispatcher.get_status(job_id)
    return JSONResponse(status.model_dump(mode="json"), headers=_NO_STORE)


@router.get("/jobs/{job_id}/download")
async def download_job_output(job_id: str, dispatcher: InProcessQueue = Depends(get_dispatcher)):
    """Stream the output of a finished job. 409 while running or after a failure."""
    download = await dispatcher.get_download(job_id)
    return FileResponse(
        download.path,
        media_type=download.content_type,
        filename=download.filename,
        headers=_NO_STORE,
    )
