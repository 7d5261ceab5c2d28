"""Job record data model for async processing."""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.ERROR)


class StoredInputFile(BaseModel):
    """One uploaded file part, already written under the job's input dir."""
    field: str
    original_name: str
    content_type: str
    size: int
    path: str


class StoredJobInput(BaseModel):
    fields: Dict[str, List[str]] = Field(default_factory=dict)
    files: Dict[str, List[StoredInputFile]] = Field(default_factory=dict)
    total_files: int = 0
    total_bytes: int = 0


class JobDownload(BaseModel):
    path: str
    filename: str
    content_type: str


class JobRecord(BaseModel):
    """Tracks the lifecycle of an async processing job."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    tool: str
    status: JobStatus = JobStatus.QUEUED
    progress: int = 0
    message: str = "Queued"
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    expires_at: datetime = Field(default_factory=utcnow)
    work_dir: str
    input: StoredJobInput = Field(default_factory=StoredJobInput)
    download: Optional[JobDownload] = None

    @property
    def input_dir(self) -> str:
        return f"{self.work_dir}/input"

    @property
    def output_dir(self) -> str:
        return f"{self.work_dir}/output"


class JobStatusPayload(BaseModel):
    job_id: str
    tool: str
    status: JobStatus
    progress: int
    message: str
    download_url: Optional[str] = None


class JobSubmitResponse(BaseModel):
    job_id: str
