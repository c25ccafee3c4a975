"""Split oversized PDFs into parts that fit the provider's upload limit."""
from __future__ import annotations

import io
import logging
import re
from typing import List

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError

from legal_ocr.errors import ValidationError
from legal_ocr.models.batch import UploadedFile
from legal_ocr.utils.logging_utils import structured_log

_LOG = logging.getLogger("pdf_splitter")

DEFAULT_MAX_BYTES = 50 * 1024 * 1024
_SAFETY_RATIO = 0.9
_PDF_SUFFIX = re.compile(r"\.pdf$", re.IGNORECASE)


def part_name(file_name: str, index: int) -> str:
    return f"{_PDF_SUFFIX.sub('', file_name)}_part{index}.pdf"


def _write_pages(reader: PdfReader, start: int, end: int) -> bytes:
    writer = PdfWriter()
    for page in reader.pages[start:end]:
        writer.add_page(page)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def split_pdf_by_size(document: UploadedFile, max_bytes: int = DEFAULT_MAX_BYTES) -> List[UploadedFile]:
    """Return ``[document]`` when it fits, otherwise page-range parts.

    Pages per part start from the average page size at 90% of the limit; a part
    that still comes out too large is retried with half as many pages. A single
    page that exceeds the limit on its own is emitted as is.
    """
    if max_bytes <= 0:
        raise ValueError("max_bytes must be positive")
    if document.size <= max_bytes:
        return [document]

    try:
        reader = PdfReader(io.BytesIO(document.data))
        page_count = len(reader.pages)
    except (PyPdfError, ValueError, OSError) as exc:
        raise ValidationError(f"Failed to read PDF for splitting: {exc}") from exc
    if page_count <= 1:
        return [document]

    estimated_page_size = document.size / page_count
    pages_per_part = max(1, int((max_bytes * _SAFETY_RATIO) // estimated_page_size))

    parts: List[UploadedFile] = []
    start = 0
    while start < page_count:
        end = min(start + pages_per_part, page_count)
        data = _write_pages(reader, start, end)
        if len(data) > max_bytes and end - start > 1:
            pages_per_part = max(1, (end - start) // 2)
            continue
        parts.append(UploadedFile(name=part_name(document.name, len(parts) + 1), mime_type="application/pdf", data=data))
        start = end

    structured_log(
        _LOG,
        logging.INFO,
        "pdf_split",
        bytes=document.size,
        pages=page_count,
        file_count=len(parts),
    )
    return parts


__all__ = ["DEFAULT_MAX_BYTES", "part_name", "split_pdf_by_size"]
