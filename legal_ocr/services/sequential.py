"""Synchronous-queue processing path: one document at a time.

OCR invocations are serialised to respect provider rate limits. A cooperative
stop flag is checked before each item; an in-flight call is never aborted.
"""
from __future__ import annotations

import logging
import secrets
import string
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List

from legal_ocr.errors import OcrProviderError, ValidationError
from legal_ocr.models.batch import UploadedFile
from legal_ocr.utils.logging_utils import structured_log

from .interfaces import OcrGateway

LOG = logging.getLogger("sequential")

EMPTY_OUTPUT_MESSAGE = "No content extracted from the document."
_ID_ALPHABET = string.ascii_lowercase + string.digits


class QueueItemStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class QueueItem:
    id: str
    file: UploadedFile
    status: QueueItemStatus = QueueItemStatus.QUEUED
    markdown: str | None = None
    error: str | None = None


def generate_item_id() -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"file_{int(time.time() * 1000)}_{suffix}"


def build_queue(files: Iterable[UploadedFile]) -> List[QueueItem]:
    return [QueueItem(id=generate_item_id(), file=item) for item in files]


def _process_one(item: QueueItem, gateway: OcrGateway, credential: str) -> str:
    try:
        file_id = gateway.upload_file(item.file.data, item.file.name, credential)
    except OcrProviderError as exc:
        raise OcrProviderError(f"Upload failed: {exc}") from exc
    markdown = gateway.extract_from_file_id(file_id, credential)
    if not markdown or not markdown.strip():
        raise OcrProviderError(EMPTY_OUTPUT_MESSAGE)
    return markdown


def process_files_sequentially(
    items: List[QueueItem],
    gateway: OcrGateway,
    credential: str,
    *,
    on_update: Callable[[QueueItem], None] | None = None,
    should_stop: Callable[[], bool] = lambda: False,
) -> List[QueueItem]:
    """Process ``queued`` items in order; other items are left untouched."""
    for item in items:
        if should_stop():
            structured_log(LOG, logging.INFO, "sequential_stopped", reason="stop_requested")
            break
        if item.status is not QueueItemStatus.QUEUED:
            continue

        item.status = QueueItemStatus.PROCESSING
        if on_update:
            on_update(item)
        try:
            item.markdown = _process_one(item, gateway, credential)
            item.status = QueueItemStatus.COMPLETED
        except (OcrProviderError, ValidationError) as exc:
            item.status = QueueItemStatus.FAILED
            item.error = str(exc) or "Unknown error occurred"
            structured_log(
                LOG, logging.WARNING, "sequential_item_failed", error_type=type(exc).__name__
            )
        if on_update:
            on_update(item)
    return items


__all__ = [
    "EMPTY_OUTPUT_MESSAGE",
    "QueueItem",
    "QueueItemStatus",
    "build_queue",
    "generate_item_id",
    "process_files_sequentially",
]
