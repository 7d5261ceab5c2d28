"""Job dispatcher interface."""

from abc import ABC, abstractmethod
from typing import Iterable

from app.jobs.input_store import FormItem
from app.jobs.models import JobDownload, JobStatusPayload


class JobDispatcher(ABC):
    """Abstract interface for job dispatching."""

    @abstractmethod
    async def submit(self, tool: str, form_items: Iterable[FormItem]) -> str:
        """Persist the submission and queue it. Returns job_id without waiting for the run."""
        ...

    @abstractmethod
    async def get_status(self, job_id: str) -> JobStatusPayload:
        """Current status of a job. Raises ApiError(404) for unknown ids."""
        ...

    @abstractmethod
    async def get_download(self, job_id: str) -> JobDownload:
        """Output of a finished job. Raises ApiError(404) or ApiError(409)."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Start the dispatcher (e.g., start worker loop)."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the dispatcher gracefully."""
        ...
