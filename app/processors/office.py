"""Office document to PDF conversion through headless LibreOffice."""

import os
import shutil
from typing import List, Sequence

from app.config import Settings
from app.core.errors import ApiError
from app.processing.command import DOCKER_HINT, run_command
from app.processors.base import ToolProcessContext, ToolProcessResult, done_result
from app.processors.common import (
    assert_ext,
    assert_page_limit,
    assert_total_upload_limits,
    get_required_file,
    load_pdf,
    run_blocking,
)


def _libreoffice_candidates(settings: Settings) -> List[str]:
    configured = (settings.libreoffice_cmd or "").strip()
    return [cmd for cmd in (configured, "libreoffice", "soffice") if cmd]


async def convert_office_to_pdf(input_path: str, output_dir: str, settings: Settings) -> str:
    """Convert with the first LibreOffice binary found; returns the produced PDF path."""
    last_error = None
    for command in _libreoffice_candidates(settings):
        try:
            await run_command(
                command,
                [
                    "--headless",
                    "--norestore",
                    "--nolockcheck",
                    "--nodefault",
                    "--nofirststartwizard",
                    "--convert-to",
                    "pdf",
                    "--outdir",
                    output_dir,
                    input_path,
                ],
                timeout=settings.command_timeout_seconds,
            )
        except ApiError as exc:
            if exc.status_code == 503:
                last_error = exc
                continue
            raise
        stem = os.path.splitext(os.path.basename(input_path))[0]
        return os.path.join(output_dir, f"{stem}.pdf")

    suffix = f" Last error: {last_error.message}" if last_error else ""
    raise ApiError(
        "LibreOffice command not found. Install LibreOffice and add it to PATH, "
        f"or set LIBREOFFICE_CMD. {DOCKER_HINT}{suffix}",
        503,
    )


async def _convert_office(
    context: ToolProcessContext,
    extensions: Sequence[str],
    output_filename: str,
) -> ToolProcessResult:
    assert_total_upload_limits(context.input, context.settings)
    file = get_required_file(context.input, "file")
    assert_ext(file, extensions)

    context.set_progress(15, "Converting with LibreOffice...")
    converted = await convert_office_to_pdf(file.path, context.output_dir, context.settings)
    if not os.path.isfile(converted):
        raise ApiError(f'LibreOffice produced no output for "{file.original_name}".', 500)

    context.set_progress(85, "Checking converted PDF...")
    converted_file = file.model_copy(update={"path": converted, "original_name": output_filename})
    _, page_count = await run_blocking(load_pdf, converted_file)
    assert_page_limit(page_count, context.settings.max_pages)

    output_path = context.output_path(output_filename)
    if os.path.abspath(converted) != os.path.abspath(output_path):
        shutil.move(converted, output_path)
    return done_result(output_path, output_filename, "application/pdf")


async def process_word_to_pdf(context: ToolProcessContext) -> ToolProcessResult:
    return await _convert_office(context, [".doc", ".docx"], "word.pdf")


async def process_powerpoint_to_pdf(context: ToolProcessContext) -> ToolProcessResult:
    return await _convert_office(context, [".ppt", ".pptx"], "slides.pdf")


async def process_excel_to_pdf(context: ToolProcessContext) -> ToolProcessResult:
    return await _convert_office(context, [".xls", ".xlsx"], "sheet.pdf")
