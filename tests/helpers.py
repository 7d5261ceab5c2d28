"""Builders shared by the test modules: PDFs, upload parts, processor contexts."""

import io
import os
from typing import Dict, List, Optional

from pypdf import PdfWriter
from starlette.datastructures import Headers, UploadFile

from app.config import Settings
from app.jobs.models import StoredInputFile, StoredJobInput
from app.processors.base import ToolProcessContext


def pdf_bytes(pages: int = 1) -> bytes:
    """Generate a PDF with `pages` blank pages."""
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=200, height=200)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def write_pdf(path: str, pages: int = 1) -> str:
    with open(path, "wb") as fh:
        fh.write(pdf_bytes(pages))
    return path


def make_upload(filename: str, data: bytes, content_type: str = "application/pdf") -> UploadFile:
    """An in-memory multipart file part, as request.form() would yield it."""
    return UploadFile(
        file=io.BytesIO(data),
        size=len(data),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


def stored_file(path: str, field: str, content_type: str = "application/pdf", name: Optional[str] = None) -> StoredInputFile:
    return StoredInputFile(
        field=field,
        original_name=name or os.path.basename(path),
        content_type=content_type,
        size=os.path.getsize(path),
        path=path,
    )


class ProgressRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, progress, message):
        self.calls.append((progress, message))


def build_context(
    work_dir: str,
    tool: str,
    files: Optional[Dict[str, List[StoredInputFile]]] = None,
    fields: Optional[Dict[str, List[str]]] = None,
    settings: Optional[Settings] = None,
) -> ToolProcessContext:
    """Processor context over an existing work dir, with progress recorded."""
    input_dir = os.path.join(work_dir, "input")
    output_dir = os.path.join(work_dir, "output")
    os.makedirs(input_dir, exist_ok=True)
    os.makedirs(output_dir, exist_ok=True)
    files = files or {}
    stored = StoredJobInput(
        fields=fields or {},
        files=files,
        total_files=sum(len(group) for group in files.values()),
        total_bytes=sum(f.size for group in files.values() for f in group),
    )
    return ToolProcessContext(
        job_id="test-job",
        tool=tool,
        work_dir=work_dir,
        input_dir=input_dir,
        output_dir=output_dir,
        input=stored,
        set_progress=ProgressRecorder(),
        log=lambda message: None,
        settings=settings or Settings(),
    )
