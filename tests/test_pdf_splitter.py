from __future__ import annotations

import io

import pytest
from pypdf import PdfReader, PdfWriter

from legal_ocr.errors import ValidationError
from legal_ocr.models.batch import UploadedFile
from legal_ocr.utils.pdf_splitter import part_name, split_pdf_by_size


def _pdf(pages: int, name: str = "bundle.pdf") -> UploadedFile:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=612, height=792)
    buffer = io.BytesIO()
    writer.write(buffer)
    return UploadedFile(name=name, mime_type="application/pdf", data=buffer.getvalue())


def _page_count(document: UploadedFile) -> int:
    return len(PdfReader(io.BytesIO(document.data)).pages)


def test_small_document_is_returned_unchanged():
    document = _pdf(3)

    assert split_pdf_by_size(document, document.size) == [document]


def test_single_page_document_is_never_split():
    document = _pdf(1)

    assert split_pdf_by_size(document, 10) == [document]


def test_large_document_is_split_into_named_parts():
    document = _pdf(12, name="Evidence.PDF")
    limit = document.size - 1

    parts = split_pdf_by_size(document, limit)

    assert len(parts) >= 2
    assert [part.name for part in parts] == [f"Evidence_part{index}.pdf" for index in range(1, len(parts) + 1)]
    assert sum(_page_count(part) for part in parts) == 12
    for part in parts:
        assert part.mime_type == "application/pdf"
        assert part.size <= limit or _page_count(part) == 1


def test_tight_limit_halves_pages_per_part():
    document = _pdf(8)
    limit = document.size // 3

    parts = split_pdf_by_size(document, limit)

    assert sum(_page_count(part) for part in parts) == 8
    assert all(part.size <= limit or _page_count(part) == 1 for part in parts)


def test_unreadable_pdf_is_a_validation_error():
    document = UploadedFile(name="broken.pdf", mime_type="application/pdf", data=b"definitely not a pdf" * 10)

    with pytest.raises(ValidationError, match="Failed to read PDF for splitting"):
        split_pdf_by_size(document, 10)


def test_limit_must_be_positive():
    with pytest.raises(ValueError):
        split_pdf_by_size(_pdf(2), 0)


def test_part_name():
    assert part_name("contract.pdf", 2) == "contract_part2.pdf"
    assert part_name("scan", 1) == "scan_part1.pdf"
