"""Tests for the pypdf/Pillow processors and their shared helpers."""

import io
import os
import zipfile

import pytest
from PIL import Image
from pypdf import PdfReader

from app.config import Settings
from app.core.errors import ApiError
from app.processors.base import JobCancelled, ToolSlug
from app.processors.common import get_boolean_field, get_field, get_required_files, load_pdf, progress_for_page
from app.processors.office import process_word_to_pdf
from app.processors.pdf_basic import (
    process_jpg_to_pdf,
    process_merge_pdf,
    process_rotate_pdf,
    process_split_pdf,
)
from app.processors.registry import TOOL_PROCESSORS, ProcessorRegistry
from helpers import build_context, stored_file, write_pdf


@pytest.fixture
def work_dir(tmp_path):
    path = tmp_path / "job"
    (path / "input").mkdir(parents=True)
    return str(path)


def _input_pdf(work_dir, name, pages=1):
    return stored_file(write_pdf(os.path.join(work_dir, "input", name), pages), "file")


class TestRegistry:
    def test_every_tool_has_a_processor(self):
        assert set(TOOL_PROCESSORS) == set(ToolSlug)
        assert ProcessorRegistry().list_tools() == sorted(slug.value for slug in ToolSlug)

    def test_unknown_tool_is_not_found(self):
        registry = ProcessorRegistry()
        assert not registry.is_supported("not-a-tool")
        with pytest.raises(ApiError) as excinfo:
            registry.get("not-a-tool")
        assert excinfo.value.status_code == 404
        assert excinfo.value.message == 'Unsupported tool "not-a-tool".'


class TestFormHelpers:
    def test_get_field_returns_first_value(self, work_dir):
        context = build_context(work_dir, "rotate-pdf", fields={"angle": ["180", "90"]})
        assert get_field(context.input, "angle") == "180"
        assert get_field(context.input, "pages", "all") == "all"

    @pytest.mark.parametrize("raw, expected", [("true", True), ("ON", True), ("1", True), ("no", False)])
    def test_get_boolean_field(self, work_dir, raw, expected):
        context = build_context(work_dir, "x", fields={"flag": [raw]})
        assert get_boolean_field(context.input, "flag") is expected

    def test_required_files_bounds(self, work_dir):
        context = build_context(work_dir, "merge-pdf")
        with pytest.raises(ApiError) as excinfo:
            get_required_files(context.input, "files")
        assert excinfo.value.message == 'Missing required file field "files".'

    def test_progress_for_page(self):
        assert progress_for_page(1, 1) == 90
        assert progress_for_page(1, 5, 10, 90) == 10
        assert progress_for_page(5, 5, 10, 90) == 90
        assert progress_for_page(3, 5, 10, 90) == 50

    def test_load_pdf_rejects_garbage(self, work_dir):
        path = os.path.join(work_dir, "input", "bad.pdf")
        with open(path, "wb") as fh:
            fh.write(b"not a pdf at all")
        with pytest.raises(ApiError) as excinfo:
            load_pdf(stored_file(path, "file"))
        assert excinfo.value.message == '"bad.pdf" is not a valid PDF file.'


class TestMergePdf:
    @pytest.mark.asyncio
    async def test_merges_pages_in_order(self, work_dir):
        files = [_input_pdf(work_dir, "a.pdf", 1), _input_pdf(work_dir, "b.pdf", 2)]
        context = build_context(work_dir, "merge-pdf", files={"files": files})

        result = await process_merge_pdf(context)

        assert result.filename == "merged.pdf"
        assert result.content_type == "application/pdf"
        assert len(PdfReader(result.output_path).pages) == 3
        assert context.set_progress.calls[-1] == (90, "Merged 2/2 file(s)...")

    @pytest.mark.asyncio
    async def test_rejects_non_pdf(self, work_dir):
        path = os.path.join(work_dir, "input", "notes.txt")
        with open(path, "w") as fh:
            fh.write("hello")
        files = [stored_file(path, "files", content_type="text/plain")]
        context = build_context(work_dir, "merge-pdf", files={"files": files})

        with pytest.raises(ApiError) as excinfo:
            await process_merge_pdf(context)
        assert excinfo.value.message == '"notes.txt" is not a PDF file.'

    @pytest.mark.asyncio
    async def test_rejects_more_than_five_files(self, work_dir):
        files = [_input_pdf(work_dir, f"{i}.pdf") for i in range(6)]
        context = build_context(work_dir, "merge-pdf", files={"files": files})

        with pytest.raises(ApiError) as excinfo:
            await process_merge_pdf(context)
        assert excinfo.value.message == '"files" supports up to 5 file(s).'

    @pytest.mark.asyncio
    async def test_page_limit_comes_from_context_settings(self, work_dir):
        files = [_input_pdf(work_dir, "a.pdf", 2), _input_pdf(work_dir, "b.pdf", 1)]
        context = build_context(work_dir, "merge-pdf", files={"files": files}, settings=Settings(max_pages=2))

        with pytest.raises(ApiError) as excinfo:
            await process_merge_pdf(context)
        assert excinfo.value.status_code == 413
        assert excinfo.value.message == "PDF has 3 pages. Limit is 2."

    @pytest.mark.asyncio
    async def test_cancelled_run_stops_before_next_file(self, work_dir):
        files = [_input_pdf(work_dir, "a.pdf"), _input_pdf(work_dir, "b.pdf")]
        context = build_context(work_dir, "merge-pdf", files={"files": files})
        context.cancel_event.set()

        with pytest.raises(JobCancelled):
            await process_merge_pdf(context)


class TestSplitPdf:
    @pytest.mark.asyncio
    async def test_default_split_is_one_file_per_page(self, work_dir):
        context = build_context(work_dir, "split-pdf", files={"file": [_input_pdf(work_dir, "doc.pdf", 2)]})

        result = await process_split_pdf(context)

        assert result.filename == "split.zip"
        assert result.content_type == "application/zip"
        with zipfile.ZipFile(result.output_path) as archive:
            assert archive.namelist() == ["split-1-1.pdf", "split-2-2.pdf"]
            for name in archive.namelist():
                assert len(PdfReader(io.BytesIO(archive.read(name))).pages) == 1

    @pytest.mark.asyncio
    async def test_split_by_ranges(self, work_dir):
        context = build_context(
            work_dir,
            "split-pdf",
            files={"file": [_input_pdf(work_dir, "doc.pdf", 3)]},
            fields={"ranges": ["1-2, 3"]},
        )

        result = await process_split_pdf(context)

        with zipfile.ZipFile(result.output_path) as archive:
            assert archive.namelist() == ["split-1-1-2.pdf", "split-2-3.pdf"]


class TestRotatePdf:
    @pytest.mark.asyncio
    async def test_rotates_selected_pages_only(self, work_dir):
        context = build_context(
            work_dir,
            "rotate-pdf",
            files={"file": [_input_pdf(work_dir, "doc.pdf", 2)]},
            fields={"angle": ["180"], "pages": ["2"]},
        )

        result = await process_rotate_pdf(context)

        pages = PdfReader(result.output_path).pages
        assert [page.rotation for page in pages] == [0, 180]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("angle", ["45", "abc", "0"])
    async def test_invalid_angle(self, work_dir, angle):
        context = build_context(
            work_dir,
            "rotate-pdf",
            files={"file": [_input_pdf(work_dir, "doc.pdf")]},
            fields={"angle": [angle]},
        )

        with pytest.raises(ApiError) as excinfo:
            await process_rotate_pdf(context)
        assert excinfo.value.message == "Angle must be 90, 180, or 270."


class TestJpgToPdf:
    @pytest.mark.asyncio
    async def test_one_page_per_image(self, work_dir):
        files = []
        for index, (fmt, ext, content_type) in enumerate([("PNG", "png", "image/png"), ("JPEG", "jpg", "image/jpeg")]):
            path = os.path.join(work_dir, "input", f"img-{index}.{ext}")
            Image.new("RGB", (120, 80), (200, 30, 30)).save(path, fmt)
            files.append(stored_file(path, "files", content_type=content_type))
        context = build_context(
            work_dir,
            "jpg-to-pdf",
            files={"files": files},
            fields={"orientation": ["landscape"]},
        )

        result = await process_jpg_to_pdf(context)

        reader = PdfReader(result.output_path)
        assert len(reader.pages) == 2
        box = reader.pages[0].mediabox
        assert float(box.width) > float(box.height)

    @pytest.mark.asyncio
    async def test_rejects_non_image(self, work_dir):
        context = build_context(work_dir, "jpg-to-pdf", files={"files": [_input_pdf(work_dir, "doc.pdf")]})

        with pytest.raises(ApiError) as excinfo:
            await process_jpg_to_pdf(context)
        assert excinfo.value.message == '"doc.pdf" must be JPG or PNG.'


class TestOfficeToPdf:
    @pytest.mark.asyncio
    async def test_rejects_wrong_extension(self, work_dir):
        context = build_context(work_dir, "word-to-pdf", files={"file": [_input_pdf(work_dir, "doc.pdf")]})

        with pytest.raises(ApiError) as excinfo:
            await process_word_to_pdf(context)
        assert excinfo.value.status_code == 400


class TestContextSettings:
    @pytest.mark.asyncio
    async def test_total_upload_limit_comes_from_context_settings(self, work_dir):
        files = [_input_pdf(work_dir, f"{i}.pdf") for i in range(3)]
        context = build_context(work_dir, "merge-pdf", files={"files": files}, settings=Settings(max_files=2))

        with pytest.raises(ApiError) as excinfo:
            await process_merge_pdf(context)
        assert excinfo.value.message == "You can upload up to 2 files at once."

    @pytest.mark.asyncio
    async def test_configured_libreoffice_command_is_tried_first(self, work_dir, monkeypatch):
        calls = []

        async def fake_run_command(command, args, cwd=None, timeout=None):
            calls.append((command, timeout))
            raise ApiError(f'Required command "{command}" is missing.', 503)

        monkeypatch.setattr("app.processors.office.run_command", fake_run_command)
        path = os.path.join(work_dir, "input", "doc.docx")
        with open(path, "wb") as fh:
            fh.write(b"PK")
        settings = Settings(libreoffice_cmd="/opt/lo/soffice", job_timeout_minutes=2)
        context = build_context(work_dir, "word-to-pdf", files={"file": [stored_file(path, "file")]}, settings=settings)

        with pytest.raises(ApiError) as excinfo:
            await process_word_to_pdf(context)

        assert excinfo.value.status_code == 503
        assert [command for command, _ in calls] == ["/opt/lo/soffice", "libreoffice", "soffice"]
        assert all(timeout == 120 for _, timeout in calls)
