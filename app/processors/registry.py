"""Tool dispatch: maps every ToolSlug to its processor."""

from typing import Dict, List, Mapping, Optional

from app.core.errors import ApiError
from app.processors.base import ToolProcessContext, ToolProcessor, ToolProcessResult, ToolSlug
from app.processors.office import process_excel_to_pdf, process_powerpoint_to_pdf, process_word_to_pdf
from app.processors.pdf_basic import (
    process_compress_pdf,
    process_jpg_to_pdf,
    process_merge_pdf,
    process_pdf_to_jpg,
    process_protect_pdf,
    process_rotate_pdf,
    process_split_pdf,
    process_unlock_pdf,
)

TOOL_PROCESSORS: Dict[ToolSlug, ToolProcessor] = {
    ToolSlug.MERGE_PDF: process_merge_pdf,
    ToolSlug.SPLIT_PDF: process_split_pdf,
    ToolSlug.ROTATE_PDF: process_rotate_pdf,
    ToolSlug.COMPRESS_PDF: process_compress_pdf,
    ToolSlug.PDF_TO_JPG: process_pdf_to_jpg,
    ToolSlug.JPG_TO_PDF: process_jpg_to_pdf,
    ToolSlug.PROTECT_PDF: process_protect_pdf,
    ToolSlug.UNLOCK_PDF: process_unlock_pdf,
    ToolSlug.WORD_TO_PDF: process_word_to_pdf,
    ToolSlug.POWERPOINT_TO_PDF: process_powerpoint_to_pdf,
    ToolSlug.EXCEL_TO_PDF: process_excel_to_pdf,
}

_missing = [slug.value for slug in ToolSlug if slug not in TOOL_PROCESSORS]
if _missing:
    raise RuntimeError(f"No processor registered for tool(s): {', '.join(_missing)}")


class ProcessorRegistry:
    """Resolves tool identifiers to processors.

    Defaults to TOOL_PROCESSORS; tests and embedders may pass their own
    mapping keyed by plain strings.
    """

    def __init__(self, processors: Optional[Mapping[str, ToolProcessor]] = None):
        source = processors if processors is not None else TOOL_PROCESSORS
        self._processors: Dict[str, ToolProcessor] = {_key(k): v for k, v in source.items()}

    def is_supported(self, tool: str) -> bool:
        return tool in self._processors

    def list_tools(self) -> List[str]:
        return sorted(self._processors)

    def get(self, tool: str) -> ToolProcessor:
        processor = self._processors.get(tool)
        if processor is None:
            raise ApiError(f'Unsupported tool "{tool}".', 404)
        return processor

    async def process(self, context: ToolProcessContext) -> ToolProcessResult:
        processor = self.get(context.tool)
        context.log(f"processor start ({context.tool})")
        result = await processor(context)
        context.log(f"processor done ({context.tool})")
        return result


def _key(tool) -> str:
    return tool.value if isinstance(tool, ToolSlug) else tool
