"""Persist a multipart submission into a job's input directory.

Limits are enforced while writing: the file-count limit before a part
touches disk, the per-file limit while the part is streamed, the total
limit once every part has been written. Any violation raises ApiError;
the caller owns the directory and removes it.
"""

import os
import re
from dataclasses import dataclass
from typing import Iterable, Tuple, Union

from starlette.datastructures import UploadFile

from app.config import Settings
from app.core.errors import ApiError
from app.jobs.models import StoredInputFile, StoredJobInput

FormItem = Tuple[str, Union[str, UploadFile]]

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
_CHUNK_SIZE = 1024 * 1024  # 1 MB


def sanitize_filename(filename: str) -> str:
    return _UNSAFE_CHARS.sub("_", filename)


@dataclass(frozen=True)
class UploadLimits:
    max_files: int
    max_file_bytes: int
    max_total_bytes: int

    @classmethod
    def from_settings(cls, settings: Settings) -> "UploadLimits":
        return cls(
            max_files=settings.max_files,
            max_file_bytes=settings.max_file_bytes,
            max_total_bytes=settings.max_total_bytes,
        )


def _mb(num_bytes: int) -> int:
    return num_bytes // (1024 * 1024)


async def _write_part(upload: UploadFile, target: str, limits: UploadLimits, display_name: str) -> int:
    written = 0
    with open(target, "wb") as dst:
        while True:
            chunk = await upload.read(_CHUNK_SIZE)
            if not chunk:
                break
            written += len(chunk)
            if written > limits.max_file_bytes:
                raise ApiError(f'"{display_name}" exceeds {_mb(limits.max_file_bytes)}MB limit.', 400)
            dst.write(chunk)
    return written


async def persist_job_input(
    form_items: Iterable[FormItem],
    input_dir: str,
    limits: UploadLimits,
) -> StoredJobInput:
    stored = StoredJobInput()
    file_index = 0

    for key, value in form_items:
        if isinstance(value, str):
            stored.fields.setdefault(key, []).append(value)
            continue

        if not isinstance(value, UploadFile):
            continue

        stored.total_files += 1
        if stored.total_files > limits.max_files:
            raise ApiError(f"You can upload up to {limits.max_files} files at once.", 400)

        display_name = value.filename or f"upload-{file_index}"
        if value.size is not None and value.size > limits.max_file_bytes:
            raise ApiError(f'"{display_name}" exceeds {_mb(limits.max_file_bytes)}MB limit.', 400)

        safe_name = sanitize_filename(display_name)
        target = os.path.join(input_dir, f"{file_index:03d}-{safe_name}")
        size = await _write_part(value, target, limits, display_name)
        stored.total_bytes += size

        stored.files.setdefault(key, []).append(
            StoredInputFile(
                field=key,
                original_name=value.filename or safe_name,
                content_type=value.content_type or "application/octet-stream",
                size=size,
                path=target,
            )
        )
        file_index += 1

    if stored.total_files > 0 and stored.total_bytes > limits.max_total_bytes:
        raise ApiError(f"Total upload size exceeds {_mb(limits.max_total_bytes)}MB limit.", 400)

    return stored
