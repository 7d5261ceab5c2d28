"""PDF tools: merge, split, rotate, image conversion, compress, protect/unlock.

Page manipulation uses pypdf in a worker thread; rasterizing, compression and
encryption shell out to pdftoppm, ghostscript and qpdf respectively.
"""

import os
import shutil
from typing import List

from PIL import Image
from pypdf import PdfWriter

from app.core.errors import ApiError
from app.jobs.models import StoredInputFile
from app.processing.command import ensure_command_available, run_command
from app.processing.page_ranges import parse_page_selection, parse_split_range_groups, to_positive_number
from app.processors.base import ToolProcessContext, ToolProcessResult, done_result
from app.processors.common import (
    assert_image_file,
    assert_page_limit,
    assert_pdf_file,
    assert_total_upload_limits,
    get_field,
    get_required_file,
    get_required_files,
    load_pdf,
    progress_for_page,
    run_blocking,
    zip_file_entries,
)

# A4 in points
_A4_PORTRAIT = (595, 842)
_IMAGE_PDF_SCALE = 2  # render pages at 144 dpi

_COMPRESS_QUALITY = {
    "screen": "/screen",
    "ebook": "/ebook",
    "printer": "/printer",
}


def _write_pdf(writer: PdfWriter, output_path: str) -> None:
    with open(output_path, "wb") as fh:
        writer.write(fh)


# ---------------------------------------------------------------------------
# merge-pdf
# ---------------------------------------------------------------------------

def _merge_pdfs(context: ToolProcessContext, files: List[StoredInputFile], output_path: str) -> None:
    writer = PdfWriter()
    total_pages = 0
    for index, file in enumerate(files):
        context.check_cancelled()
        reader, page_count = load_pdf(file)
        total_pages += page_count
        assert_page_limit(total_pages, context.settings.max_pages)
        for page in reader.pages:
            writer.add_page(page)
        context.set_progress(
            round((index + 1) / len(files) * 90),
            f"Merged {index + 1}/{len(files)} file(s)...",
        )
    _write_pdf(writer, output_path)


async def process_merge_pdf(context: ToolProcessContext) -> ToolProcessResult:
    assert_total_upload_limits(context.input, context.settings)
    files = get_required_files(context.input, "files", min_count=1, max_count=5)
    for file in files:
        assert_pdf_file(file)

    context.set_progress(5, "Loading source PDFs...")
    output_path = context.output_path("merged.pdf")
    await run_blocking(_merge_pdfs, context, files, output_path)
    return done_result(output_path, "merged.pdf", "application/pdf")


# ---------------------------------------------------------------------------
# split-pdf
# ---------------------------------------------------------------------------

def _split_pdf(context: ToolProcessContext, file: StoredInputFile, ranges: str, output_path: str) -> None:
    reader, page_count = load_pdf(file)
    assert_page_limit(page_count, context.settings.max_pages)

    groups = parse_split_range_groups(ranges, page_count)
    if len(groups) > context.settings.max_files * 10:
        raise ApiError("Too many split segments requested.", 400)

    segment_dir = os.path.join(context.output_dir, "segments")
    os.makedirs(segment_dir, exist_ok=True)
    entries = []
    for index, group in enumerate(groups):
        context.check_cancelled()
        writer = PdfWriter()
        for page_index in group:
            writer.add_page(reader.pages[page_index])

        if len(group) == 1:
            label = f"{group[0] + 1}"
        else:
            label = f"{group[0] + 1}-{group[-1] + 1}"
        filename = f"split-{index + 1}-{label}.pdf"
        segment_path = os.path.join(segment_dir, filename)
        _write_pdf(writer, segment_path)
        entries.append((segment_path, filename))
        context.set_progress(
            round((index + 1) / len(groups) * 90),
            f"Prepared split {index + 1}/{len(groups)}...",
        )

    zip_file_entries(output_path, entries)


async def process_split_pdf(context: ToolProcessContext) -> ToolProcessResult:
    assert_total_upload_limits(context.input, context.settings)
    file = get_required_file(context.input, "file")
    assert_pdf_file(file)

    context.set_progress(5, "Loading PDF...")
    output_path = context.output_path("split.zip")
    await run_blocking(_split_pdf, context, file, get_field(context.input, "ranges"), output_path)
    return done_result(output_path, "split.zip", "application/zip")


# ---------------------------------------------------------------------------
# rotate-pdf
# ---------------------------------------------------------------------------

def _rotate_pdf(context: ToolProcessContext, file: StoredInputFile, angle: int, pages: str, output_path: str) -> None:
    reader, page_count = load_pdf(file)
    assert_page_limit(page_count, context.settings.max_pages)
    selected = set(parse_page_selection(pages, page_count))

    writer = PdfWriter()
    for index, page in enumerate(reader.pages):
        context.check_cancelled()
        added = writer.add_page(page)
        if index in selected:
            added.rotate(angle)
    _write_pdf(writer, output_path)


async def process_rotate_pdf(context: ToolProcessContext) -> ToolProcessResult:
    assert_total_upload_limits(context.input, context.settings)
    file = get_required_file(context.input, "file")
    assert_pdf_file(file)

    try:
        angle = int(get_field(context.input, "angle", "90"))
    except ValueError:
        angle = 0
    if angle not in (90, 180, 270):
        raise ApiError("Angle must be 90, 180, or 270.", 400)

    output_path = context.output_path("rotated.pdf")
    await run_blocking(_rotate_pdf, context, file, angle, get_field(context.input, "pages", "all"), output_path)
    return done_result(output_path, "rotated.pdf", "application/pdf")


# ---------------------------------------------------------------------------
# jpg-to-pdf
# ---------------------------------------------------------------------------

def _images_to_pdf(
    context: ToolProcessContext,
    files: List[StoredInputFile],
    landscape: bool,
    margin: float,
    output_path: str,
) -> None:
    page_w, page_h = _A4_PORTRAIT[::-1] if landscape else _A4_PORTRAIT
    canvas_size = (page_w * _IMAGE_PDF_SCALE, page_h * _IMAGE_PDF_SCALE)
    box_w = canvas_size[0] - 2 * margin * _IMAGE_PDF_SCALE
    box_h = canvas_size[1] - 2 * margin * _IMAGE_PDF_SCALE

    pages = []
    for index, file in enumerate(files):
        context.check_cancelled()
        try:
            with Image.open(file.path) as source:
                image = source.convert("RGB")
        except (OSError, ValueError):
            raise ApiError(f'"{file.original_name}" must be JPG or PNG.', 400)

        scale = min(box_w / image.width, box_h / image.height)
        fitted = image.resize((max(1, int(image.width * scale)), max(1, int(image.height * scale))), Image.LANCZOS)
        page = Image.new("RGB", canvas_size, (255, 255, 255))
        page.paste(fitted, ((canvas_size[0] - fitted.width) // 2, (canvas_size[1] - fitted.height) // 2))
        pages.append(page)
        context.set_progress(
            round((index + 1) / len(files) * 90),
            f"Placed image {index + 1}/{len(files)}...",
        )

    pages[0].save(
        output_path,
        "PDF",
        save_all=True,
        append_images=pages[1:],
        resolution=72.0 * _IMAGE_PDF_SCALE,
    )


async def process_jpg_to_pdf(context: ToolProcessContext) -> ToolProcessResult:
    assert_total_upload_limits(context.input, context.settings)
    files = get_required_files(context.input, "files", min_count=1, max_count=5)
    for file in files:
        assert_image_file(file)

    landscape = get_field(context.input, "orientation", "portrait") == "landscape"
    margin = max(0.0, min(80.0, to_positive_number(get_field(context.input, "margin"), 24, 0)))

    output_path = context.output_path("images.pdf")
    await run_blocking(_images_to_pdf, context, files, landscape, margin, output_path)
    return done_result(output_path, "images.pdf", "application/pdf")


# ---------------------------------------------------------------------------
# pdf-to-jpg
# ---------------------------------------------------------------------------

async def _rasterize_page(pdf_path: str, image_dir: str, page_number: int, dpi: int, timeout: float) -> str:
    prefix = os.path.join(image_dir, f"page-{page_number}")
    await run_command(
        "pdftoppm",
        ["-f", str(page_number), "-l", str(page_number), "-singlefile", "-r", str(dpi), "-jpeg", pdf_path, prefix],
        timeout=timeout,
    )
    image_path = f"{prefix}.jpg"
    if not os.path.isfile(image_path):
        raise ApiError(f"Failed to render page {page_number}.", 500)
    return image_path


async def process_pdf_to_jpg(context: ToolProcessContext) -> ToolProcessResult:
    assert_total_upload_limits(context.input, context.settings)
    file = get_required_file(context.input, "file")
    assert_pdf_file(file)
    ensure_command_available("pdftoppm", "PDF to JPG requires poppler-utils in Docker.")

    dpi = 300 if get_field(context.input, "dpi", "150").strip() == "300" else 150
    timeout = context.settings.command_timeout_seconds
    _, page_count = load_pdf(file)
    assert_page_limit(page_count, context.settings.max_pages)

    image_dir = os.path.join(context.output_dir, "images")
    os.makedirs(image_dir, exist_ok=True)

    if page_count == 1:
        image_path = await _rasterize_page(file.path, image_dir, 1, dpi, timeout)
        output_path = context.output_path("page-1.jpg")
        shutil.copyfile(image_path, output_path)
        return done_result(output_path, "page-1.jpg", "image/jpeg")

    entries = []
    for page_number in range(1, page_count + 1):
        context.check_cancelled()
        context.set_progress(
            progress_for_page(page_number, page_count, 10, 80),
            f"Rendering page {page_number}/{page_count}...",
        )
        image_path = await _rasterize_page(file.path, image_dir, page_number, dpi, timeout)
        entries.append((image_path, f"page-{page_number}.jpg"))

    output_path = context.output_path("pages.zip")
    await run_blocking(zip_file_entries, output_path, entries)
    return done_result(output_path, "pages.zip", "application/zip")


# ---------------------------------------------------------------------------
# compress-pdf
# ---------------------------------------------------------------------------

async def process_compress_pdf(context: ToolProcessContext) -> ToolProcessResult:
    assert_total_upload_limits(context.input, context.settings)
    file = get_required_file(context.input, "file")
    assert_pdf_file(file)
    ensure_command_available("gs", "Compress requires ghostscript in Docker.")

    _, page_count = load_pdf(file)
    assert_page_limit(page_count, context.settings.max_pages)
    quality = _COMPRESS_QUALITY.get(get_field(context.input, "quality", "ebook"), _COMPRESS_QUALITY["ebook"])

    context.set_progress(20, "Compressing with Ghostscript...")
    output_path = context.output_path("compressed.pdf")
    await run_command(
        "gs",
        [
            "-sDEVICE=pdfwrite",
            "-dCompatibilityLevel=1.4",
            "-dNOPAUSE",
            "-dQUIET",
            "-dBATCH",
            f"-dPDFSETTINGS={quality}",
            f"-sOutputFile={output_path}",
            file.path,
        ],
        timeout=context.settings.command_timeout_seconds,
    )
    return done_result(output_path, "compressed.pdf", "application/pdf")


# ---------------------------------------------------------------------------
# protect-pdf / unlock-pdf
# ---------------------------------------------------------------------------

async def process_protect_pdf(context: ToolProcessContext) -> ToolProcessResult:
    assert_total_upload_limits(context.input, context.settings)
    file = get_required_file(context.input, "file")
    assert_pdf_file(file)
    password = get_field(context.input, "password")
    if len(password) < 4:
        raise ApiError("Password must be at least 4 characters.", 400)
    ensure_command_available("qpdf", "Protect PDF requires qpdf in Docker.")

    output_path = context.output_path("protected.pdf")
    await run_command(
        "qpdf",
        ["--encrypt", password, password, "256", "--", file.path, output_path],
        timeout=context.settings.command_timeout_seconds,
    )
    return done_result(output_path, "protected.pdf", "application/pdf")


async def process_unlock_pdf(context: ToolProcessContext) -> ToolProcessResult:
    assert_total_upload_limits(context.input, context.settings)
    file = get_required_file(context.input, "file")
    assert_pdf_file(file)
    password = get_field(context.input, "password")
    if not password:
        raise ApiError("Password is required to unlock PDF.", 400)
    ensure_command_available("qpdf", "Unlock PDF requires qpdf in Docker.")

    output_path = context.output_path("unlocked.pdf")
    try:
        await run_command(
            "qpdf",
            [f"--password={password}", "--decrypt", file.path, output_path],
            timeout=context.settings.command_timeout_seconds,
        )
    except ApiError as exc:
        if exc.status_code == 400:
            raise ApiError("Failed to unlock PDF. Password may be incorrect.", 400)
        raise
    return done_result(output_path, "unlocked.pdf", "application/pdf")
