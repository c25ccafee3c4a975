from __future__ import annotations

import re
from typing import List, Tuple

from legal_ocr.errors import NO_CONTENT_MESSAGE
from legal_ocr.models.batch import UploadedFile
from legal_ocr.services.sequential import (
    EMPTY_OUTPUT_MESSAGE,
    QueueItemStatus,
    build_queue,
    generate_item_id,
    process_files_sequentially,
)
from tests.stubs.provider_stub import API_KEY


def _files(*names: str) -> List[UploadedFile]:
    return [UploadedFile(name=name, mime_type="application/pdf", data=b"%PDF " + name.encode()) for name in names]


class _BlankGateway:
    def upload_file(self, data: bytes, filename: str, credential: str) -> str:
        return "file-blank"

    def extract_from_file_id(self, file_id: str, credential: str) -> str:
        return "   "


def test_item_ids_are_unique_and_prefixed():
    first, second = generate_item_id(), generate_item_id()
    assert re.fullmatch(r"file_\d+_[a-z0-9]{9}", first)
    assert first != second


def test_items_are_processed_in_order(provider, gateway):
    provider.pages_by_name["two.pdf"] = ["Second document"]
    updates: List[Tuple[str, str]] = []
    items = build_queue(_files("one.pdf", "two.pdf"))

    process_files_sequentially(
        items, gateway, API_KEY, on_update=lambda item: updates.append((item.file.name, item.status.value))
    )

    assert [item.status for item in items] == [QueueItemStatus.COMPLETED, QueueItemStatus.COMPLETED]
    assert items[0].markdown == "# Contract\n\nBody text"
    assert items[1].markdown == "Second document"
    assert updates == [
        ("one.pdf", "processing"),
        ("one.pdf", "completed"),
        ("two.pdf", "processing"),
        ("two.pdf", "completed"),
    ]
    uploads = [provider.files[file_id]["name"] for file_id in sorted(provider.files)]
    assert uploads == ["one.pdf", "two.pdf"]


def test_failures_are_recorded_per_item(provider, gateway):
    provider.script("upload", 400)
    provider.pages_by_name["empty.pdf"] = [" "]
    items = build_queue(_files("rejected.pdf", "empty.pdf", "fine.pdf"))

    process_files_sequentially(items, gateway, API_KEY)

    assert [item.status for item in items] == [
        QueueItemStatus.FAILED,
        QueueItemStatus.FAILED,
        QueueItemStatus.COMPLETED,
    ]
    assert items[0].error.startswith("Upload failed: Failed to upload file to provider: 400")
    assert items[1].error == NO_CONTENT_MESSAGE
    assert items[2].error is None


def test_blank_output_is_a_failure():
    items = build_queue(_files("blank.pdf"))

    process_files_sequentially(items, _BlankGateway(), API_KEY)

    assert items[0].status is QueueItemStatus.FAILED
    assert items[0].error == EMPTY_OUTPUT_MESSAGE


def test_stop_flag_leaves_remaining_items_queued(provider, gateway):
    items = build_queue(_files("a.pdf", "b.pdf", "c.pdf"))

    process_files_sequentially(
        items, gateway, API_KEY, should_stop=lambda: items[0].status is QueueItemStatus.COMPLETED
    )

    assert [item.status for item in items] == [
        QueueItemStatus.COMPLETED,
        QueueItemStatus.QUEUED,
        QueueItemStatus.QUEUED,
    ]
    assert provider.calls_to("upload") == 1


def test_only_queued_items_are_processed(provider, gateway):
    items = build_queue(_files("done.pdf", "todo.pdf"))
    items[0].status = QueueItemStatus.COMPLETED
    items[0].markdown = "kept"

    process_files_sequentially(items, gateway, API_KEY)

    assert items[0].markdown == "kept"
    assert provider.calls_to("upload") == 1
    assert items[1].status is QueueItemStatus.COMPLETED
