"""Helpers shared by the tool processors: form access, validation, PDF I/O."""

import asyncio
import functools
import os
import zipfile
from typing import Any, Callable, List, Optional, Sequence, Tuple, TypeVar

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from app.config import Settings
from app.core.errors import ApiError
from app.jobs.models import StoredInputFile, StoredJobInput

T = TypeVar("T")

_TRUTHY = {"1", "true", "yes", "on"}


async def run_blocking(fn: Callable[..., T], *args: Any) -> T:
    """Run CPU-bound PDF work in the default executor so the event loop stays free."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(fn, *args))


def get_field(input: StoredJobInput, key: str, fallback: str = "") -> str:
    values = input.fields.get(key)
    if not values:
        return fallback
    return values[0]


def get_boolean_field(input: StoredJobInput, key: str, fallback: bool = False) -> bool:
    return get_field(input, key, "1" if fallback else "0").strip().lower() in _TRUTHY


def get_required_files(
    input: StoredJobInput,
    key: str,
    min_count: int = 1,
    max_count: Optional[int] = None,
) -> List[StoredInputFile]:
    files = input.files.get(key, [])
    if len(files) < min_count:
        raise ApiError(f'Missing required file field "{key}".', 400)
    if max_count is not None and len(files) > max_count:
        raise ApiError(f'"{key}" supports up to {max_count} file(s).', 400)
    return files


def get_required_file(input: StoredJobInput, key: str) -> StoredInputFile:
    return get_required_files(input, key, min_count=1, max_count=1)[0]


def get_optional_file(input: StoredJobInput, key: str) -> Optional[StoredInputFile]:
    files = input.files.get(key, [])
    if not files:
        return None
    if len(files) > 1:
        raise ApiError(f'"{key}" supports only one file.', 400)
    return files[0]


def assert_total_upload_limits(input: StoredJobInput, settings: Settings) -> None:
    if input.total_files > settings.max_files:
        raise ApiError(f"You can upload up to {settings.max_files} files at once.", 400)
    if input.total_bytes > settings.max_total_bytes:
        raise ApiError(f"Total upload size exceeds {settings.max_total_mb}MB limit.", 400)


def is_pdf(file: StoredInputFile) -> bool:
    return file.original_name.lower().endswith(".pdf") or file.content_type == "application/pdf"


def is_png(file: StoredInputFile) -> bool:
    return file.content_type == "image/png" or file.original_name.lower().endswith(".png")


def is_jpeg(file: StoredInputFile) -> bool:
    lower = file.original_name.lower()
    return file.content_type == "image/jpeg" or lower.endswith((".jpg", ".jpeg"))


def assert_pdf_file(file: StoredInputFile) -> None:
    if not is_pdf(file):
        raise ApiError(f'"{file.original_name}" is not a PDF file.', 400)


def assert_image_file(file: StoredInputFile) -> None:
    if not (is_png(file) or is_jpeg(file)):
        raise ApiError(f'"{file.original_name}" must be JPG or PNG.', 400)


def assert_ext(file: StoredInputFile, allowed: Sequence[str]) -> None:
    ext = os.path.splitext(file.original_name)[1].lower()
    if ext not in allowed:
        raise ApiError(f'"{file.original_name}" must use one of: {", ".join(allowed)}', 400)


def load_pdf(file: StoredInputFile) -> Tuple[PdfReader, int]:
    """Open a stored PDF and return it with its page count."""
    try:
        reader = PdfReader(file.path)
        return reader, len(reader.pages)
    except (PyPdfError, ValueError, KeyError, OSError):
        raise ApiError(f'"{file.original_name}" is not a valid PDF file.', 400)


def page_limit_error(page_count: int, max_pages: int) -> ApiError:
    return ApiError(f"PDF has {page_count} pages. Limit is {max_pages}.", 413)


def assert_page_limit(page_count: int, max_pages: int) -> None:
    if page_count > max_pages:
        raise page_limit_error(page_count, max_pages)


def progress_for_page(page_number: int, page_count: int, start: int = 10, end: int = 90) -> int:
    if page_count <= 1:
        return end
    ratio = (page_number - 1) / (page_count - 1)
    return round(start + (end - start) * ratio)


def zip_file_entries(output_zip_path: str, entries: Sequence[Tuple[str, str]]) -> None:
    """Write (path, archive_name) pairs into a deflated zip."""
    with zipfile.ZipFile(output_zip_path, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
        for path, name in entries:
            archive.write(path, arcname=name)
