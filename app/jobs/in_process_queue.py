"""In-process job queue using asyncio.

Runs document processors sequentially (one job at a time) in a background
task so heavyweight native tools never compete for CPU and memory. A second
background task sweeps finished jobs once their retention has passed.
No external dependencies (Redis, Celery) needed.
"""

import asyncio
import logging
import os
import threading
import uuid
from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional

from app.config import Settings, settings as default_settings
from app.core.errors import ApiError
from app.core.logging import job_logger
from app.jobs.dispatcher import JobDispatcher
from app.jobs.input_store import FormItem, UploadLimits, persist_job_input
from app.jobs.models import JobDownload, JobRecord, JobStatus, JobStatusPayload, utcnow
from app.processors.base import ToolProcessContext, ToolProcessResult
from app.processors.registry import ProcessorRegistry
from app.storage.workspace import TempWorkspace, remove_tree

logger = logging.getLogger(__name__)

SHUTDOWN_MESSAGE = "Job was interrupted because the server is shutting down."


def _format_duration(seconds: float) -> str:
    if seconds >= 60:
        return f"{int(seconds // 60)} minutes"
    return f"{seconds:g} seconds"


class InProcessQueue(JobDispatcher):
    """Local async job queue. Owns the job registry, the FIFO and both background loops."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        registry: Optional[ProcessorRegistry] = None,
        workspace: Optional[TempWorkspace] = None,
    ):
        """
        registry: tool -> processor lookup; defaults to every built-in tool.
        workspace: temp root of the synchronous endpoints, swept alongside
            expired jobs when given.
        """
        self._settings = settings or default_settings
        self._registry = registry or ProcessorRegistry()
        self._workspace = workspace
        self._limits = UploadLimits.from_settings(self._settings)
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._jobs: Dict[str, JobRecord] = {}
        self._task: Optional[asyncio.Task] = None
        self._sweeper: Optional[asyncio.Task] = None
        self._running = False
        self._stopped = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        self._stopped = False
        self._ensure_started()

    def _ensure_started(self) -> None:
        if self._running:
            return
        if self._stopped:
            raise ApiError("Job queue is shutting down.", 503)
        self._running = True
        os.makedirs(self._settings.job_root, exist_ok=True)
        self._task = asyncio.create_task(self._worker_loop(), name="job-pump")
        self._sweeper = asyncio.create_task(self._sweep_loop(), name="job-sweeper")
        logger.info("Job queue started (root=%s)", self._settings.job_root)

    async def stop(self) -> None:
        """Cancel both loops and fail every job that will no longer run. Final until start()."""
        self._stopped = True
        self._running = False
        for task in (self._task, self._sweeper):
            if task is None:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._sweeper = None
        self._fail_waiting_jobs()
        logger.info("Job queue stopped")

    def _fail_waiting_jobs(self) -> None:
        while True:
            try:
                job_id = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            job = self._jobs.get(job_id)
            if job is not None and job.status == JobStatus.QUEUED:
                self._fail_job(job, SHUTDOWN_MESSAGE)
            self._queue.task_done()

    async def join(self) -> None:
        """Wait until every job queued so far has finished running."""
        await self._queue.join()

    # ------------------------------------------------------------------
    # Submission and queries
    # ------------------------------------------------------------------

    async def submit(self, tool: str, form_items: Iterable[FormItem]) -> str:
        if not self._registry.is_supported(tool):
            raise ApiError(f'Unsupported tool "{tool}".', 404)
        self._ensure_started()

        job_id = str(uuid.uuid4())
        work_dir = os.path.join(self._settings.job_root, job_id)
        input_dir = os.path.join(work_dir, "input")
        os.makedirs(input_dir, exist_ok=True)
        os.makedirs(os.path.join(work_dir, "output"), exist_ok=True)

        try:
            stored = await persist_job_input(form_items, input_dir, self._limits)
        except (Exception, asyncio.CancelledError):
            remove_tree(work_dir)
            raise

        created_at = utcnow()
        job = JobRecord(
            id=job_id,
            tool=tool,
            work_dir=work_dir,
            input=stored,
            created_at=created_at,
            updated_at=created_at,
            expires_at=created_at + self._retention,
        )
        self._jobs[job_id] = job
        self._queue.put_nowait(job_id)
        job_logger(job_id).info("queued tool=%s files=%d bytes=%d", tool, stored.total_files, stored.total_bytes)
        return job_id

    async def get_status(self, job_id: str) -> JobStatusPayload:
        job = self._existing_job(job_id)
        return JobStatusPayload(
            job_id=job.id,
            tool=job.tool,
            status=job.status,
            progress=job.progress,
            message=(job.error_message or job.message) if job.status == JobStatus.ERROR else job.message,
            download_url=f"/api/jobs/{job.id}/download" if job.status == JobStatus.DONE else None,
        )

    async def get_download(self, job_id: str) -> JobDownload:
        job = self._existing_job(job_id)
        if job.status != JobStatus.DONE or job.download is None:
            if job.status == JobStatus.ERROR:
                raise ApiError(job.error_message or "Job failed.", 409)
            raise ApiError("Job output is not ready yet.", 409)
        return job.download

    def get_record(self, job_id: str) -> Optional[JobRecord]:
        return self._jobs.get(job_id)

    @property
    def job_count(self) -> int:
        return len(self._jobs)

    def _existing_job(self, job_id: str) -> JobRecord:
        job = self._jobs.get(job_id)
        if job is None:
            raise ApiError("Job not found.", 404)
        return job

    @property
    def _retention(self) -> timedelta:
        return timedelta(seconds=self._settings.job_retention_seconds)

    # ------------------------------------------------------------------
    # Pump
    # ------------------------------------------------------------------

    async def _worker_loop(self) -> None:
        """Process jobs one at a time from the queue."""
        while True:
            job_id = await self._queue.get()
            try:
                job = self._jobs.get(job_id)
                if job is None or job.status != JobStatus.QUEUED:
                    continue
                await self._run_job(job)
            finally:
                self._queue.task_done()

    async def _run_job(self, job: JobRecord) -> None:
        log = job_logger(job.id)
        now = utcnow()
        job.status = JobStatus.RUNNING
        job.progress = 1
        job.message = "Running..."
        job.error_message = None
        job.started_at = now
        job.updated_at = now
        log.info("started tool=%s", job.tool)

        loop = asyncio.get_running_loop()
        loop_thread = threading.get_ident()

        def apply_progress(progress: float, message: str) -> None:
            if job.status != JobStatus.RUNNING:
                # Late report from a run that already timed out
                return
            normalized = max(0, min(100, round(progress)))
            job.progress = normalized
            job.message = message
            job.updated_at = utcnow()
            log.info("%d%% %s", normalized, message)

        def set_progress(progress: float, message: str) -> None:
            # The record is only ever written on the loop thread
            if threading.get_ident() == loop_thread:
                apply_progress(progress, message)
            elif not loop.is_closed():
                loop.call_soon_threadsafe(apply_progress, progress, message)

        cancel_event = threading.Event()
        context = ToolProcessContext(
            job_id=job.id,
            tool=job.tool,
            work_dir=job.work_dir,
            input_dir=job.input_dir,
            output_dir=job.output_dir,
            input=job.input,
            set_progress=set_progress,
            log=log.info,
            settings=self._settings,
            cancel_event=cancel_event,
        )
        timeout = self._settings.job_timeout_seconds

        try:
            result = await asyncio.wait_for(self._registry.process(context), timeout=timeout)
            download = self._checked_download(result)
        except asyncio.TimeoutError:
            cancel_event.set()
            self._fail_job(job, f"Job exceeded {_format_duration(timeout)} and was stopped.")
            return
        except asyncio.CancelledError:
            cancel_event.set()
            self._fail_job(job, SHUTDOWN_MESSAGE)
            raise
        except ApiError as exc:
            self._fail_job(job, exc.message)
            return
        except Exception:
            log.exception("processor crashed")
            self._fail_job(job, "Unexpected server error.")
            return

        finished_at = utcnow()
        job.status = JobStatus.DONE
        job.progress = 100
        job.message = "Done"
        job.download = download
        job.finished_at = finished_at
        job.updated_at = finished_at
        job.expires_at = finished_at + self._retention
        log.info("completed: %s", download.filename)

    @staticmethod
    def _checked_download(result: ToolProcessResult) -> JobDownload:
        if not os.path.isfile(result.output_path) or os.path.getsize(result.output_path) <= 0:
            raise ApiError(f'Generated output "{result.filename}" is empty.', 500)
        return JobDownload(path=result.output_path, filename=result.filename, content_type=result.content_type)

    def _fail_job(self, job: JobRecord, message: str) -> None:
        finished_at = utcnow()
        job.status = JobStatus.ERROR
        job.progress = 100
        job.message = "Error"
        job.error_message = message or "Job failed."
        job.download = None
        job.finished_at = finished_at
        job.updated_at = finished_at
        job.expires_at = finished_at + self._retention
        job_logger(job.id).warning("failed: %s", job.error_message)

    # ------------------------------------------------------------------
    # Expiry sweep
    # ------------------------------------------------------------------

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._settings.cleanup_interval_seconds)
            try:
                await self.sweep_expired()
                if self._workspace is not None:
                    await asyncio.get_running_loop().run_in_executor(None, self._workspace.cleanup_expired)
            except Exception:
                logger.exception("Expiry sweep failed")

    async def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """Delete expired terminal jobs from disk and the registry. Returns count removed."""
        now = now or utcnow()
        loop = asyncio.get_running_loop()
        removed = 0
        for job_id, job in list(self._jobs.items()):
            if not job.status.is_terminal or job.expires_at > now:
                continue
            try:
                if not await loop.run_in_executor(None, remove_tree, job.work_dir):
                    job_logger(job_id).error("cleanup failed for %s", job.work_dir)
            finally:
                self._jobs.pop(job_id, None)
            removed += 1
        if removed:
            logger.info("Swept %d expired job(s)", removed)
        return removed
