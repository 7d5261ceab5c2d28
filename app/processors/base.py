"""Processor contract: the context a tool receives and the result it returns."""

import os
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

from app.config import Settings
from app.core.errors import ApiError
from app.jobs.models import StoredJobInput


class ToolSlug(str, Enum):
    MERGE_PDF = "merge-pdf"
    SPLIT_PDF = "split-pdf"
    ROTATE_PDF = "rotate-pdf"
    COMPRESS_PDF = "compress-pdf"
    PDF_TO_JPG = "pdf-to-jpg"
    JPG_TO_PDF = "jpg-to-pdf"
    PROTECT_PDF = "protect-pdf"
    UNLOCK_PDF = "unlock-pdf"
    WORD_TO_PDF = "word-to-pdf"
    POWERPOINT_TO_PDF = "powerpoint-to-pdf"
    EXCEL_TO_PDF = "excel-to-pdf"


# fn(percent, message)
ProgressCallback = Callable[[float, str], None]
LogCallback = Callable[[str], None]


class JobCancelled(Exception):
    """Raised inside a processor once its run has been abandoned."""


@dataclass
class ToolProcessResult:
    output_path: str
    filename: str
    content_type: str


@dataclass
class ToolProcessContext:
    """Everything a processor may touch for one run.

    A processor reads only from `input`, writes only under `output_dir` and
    takes its limits from `settings`. It should call check_cancelled() between
    units of work so a timed-out run stops promptly instead of running on
    detached.
    """
    job_id: str
    tool: str
    work_dir: str
    input_dir: str
    output_dir: str
    input: StoredJobInput
    set_progress: ProgressCallback
    log: LogCallback
    settings: Settings
    cancel_event: threading.Event = field(default_factory=threading.Event)

    def check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise JobCancelled(f"Job {self.job_id} was cancelled.")

    def output_path(self, filename: str) -> str:
        return os.path.join(self.output_dir, filename)


ToolProcessor = Callable[[ToolProcessContext], Awaitable[ToolProcessResult]]


def done_result(output_path: str, filename: str, content_type: str) -> ToolProcessResult:
    """Build a result after checking the output file exists and is non-empty."""
    if not os.path.isfile(output_path) or os.path.getsize(output_path) <= 0:
        raise ApiError(f'Generated output "{filename}" is empty.', 500)
    return ToolProcessResult(output_path=output_path, filename=filename, content_type=content_type)
