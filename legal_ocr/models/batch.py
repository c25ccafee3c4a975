"""Batch job records and their public views.

A `BatchJobRecord` is created once the files of a batch are already stored at
the OCR provider, so it starts life in PROCESSING (or FAILED when the batch
submission itself fails). Only reconciliation mutates it afterwards and the
terminal states COMPLETED / FAILED are sticky.

Results are correlated to files by position: the provider's bulk output only
guarantees line order, so ``results[i]`` always describes ``files[i]``.
"""
from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping


class BatchStatus(str, Enum):
    """Local lifecycle of a batch job."""

    QUEUED = "queued"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (BatchStatus.COMPLETED, BatchStatus.FAILED)


class RemoteBatchStatus(str, Enum):
    """Job states reported by the provider's batch endpoint."""

    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    TIMEOUT_EXCEEDED = "TIMEOUT_EXCEEDED"
    CANCELLATION_REQUESTED = "CANCELLATION_REQUESTED"
    CANCELLED = "CANCELLED"


@dataclass(slots=True, frozen=True)
class UploadedFile:
    """Raw document handed to the core by the HTTP/CLI boundary."""

    name: str
    mime_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    def looks_like_pdf(self) -> bool:
        return self.mime_type == "application/pdf" or self.name.lower().endswith(".pdf")


@dataclass(slots=True)
class BatchFile:
    display_name: str
    remote_file_id: str


@dataclass(slots=True)
class BatchFileResult:
    file_name: str
    markdown: str
    error: str | None = None
    custom_id: str | None = None


@dataclass(slots=True)
class BatchProgress:
    """Advisory counters copied from the provider on each poll; never persisted."""

    total: int
    succeeded: int = 0
    failed: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {"total": self.total, "succeeded": self.succeeded, "failed": self.failed}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def generate_job_id() -> str:
    return f"batch_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


@dataclass(slots=True)
class BatchJobRecord:
    id: str
    owner_key: str
    files: List[BatchFile]
    status: BatchStatus = BatchStatus.PROCESSING
    remote_job_id: str = ""
    results: List[BatchFileResult] | None = None
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)
    error: str | None = None

    def touch(self) -> None:
        self.updated_at = utc_now_iso()

    @property
    def file_names(self) -> List[str]:
        return [item.display_name for item in self.files]


def record_to_dict(record: BatchJobRecord) -> Dict[str, Any]:
    data = asdict(record)
    data["status"] = record.status.value
    if record.results is None:
        data.pop("results")
    if record.error is None:
        data.pop("error")
    return data


def record_from_dict(payload: Mapping[str, Any]) -> BatchJobRecord:
    """Rebuild a record; raises KeyError/TypeError/ValueError on malformed input."""
    files = [
        BatchFile(display_name=str(item["display_name"]), remote_file_id=str(item["remote_file_id"]))
        for item in payload["files"]
    ]
    raw_results = payload.get("results")
    results = None
    if raw_results is not None:
        results = [
            BatchFileResult(
                file_name=str(item["file_name"]),
                markdown=str(item.get("markdown") or ""),
                error=item.get("error"),
                custom_id=item.get("custom_id"),
            )
            for item in raw_results
        ]
    return BatchJobRecord(
        id=str(payload["id"]),
        owner_key=str(payload["owner_key"]),
        files=files,
        status=BatchStatus(payload["status"]),
        remote_job_id=str(payload.get("remote_job_id") or ""),
        results=results,
        created_at=str(payload["created_at"]),
        updated_at=str(payload.get("updated_at") or payload["created_at"]),
        error=payload.get("error"),
    )


def job_status_view(record: BatchJobRecord, progress: BatchProgress | None = None) -> Dict[str, Any]:
    """Shape a record for the status endpoint."""
    view: Dict[str, Any] = {
        "job_id": record.id,
        "status": record.status.value,
        "files": record.file_names,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
        "error": record.error,
    }
    if progress is not None:
        view["progress"] = progress.as_dict()
    return view


def job_summary_view(record: BatchJobRecord) -> Dict[str, Any]:
    """Shape a record for list responses and the local history cache."""
    return {
        "job_id": record.id,
        "status": record.status.value,
        "files": record.file_names,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
        "error": record.error,
    }


def job_results_view(record: BatchJobRecord) -> Dict[str, Any]:
    results = []
    for item in record.results or []:
        entry: Dict[str, Any] = {"file_name": item.file_name, "markdown": item.markdown}
        if item.error:
            entry["error"] = item.error
        results.append(entry)
    return {"job_id": record.id, "status": record.status.value, "results": results}


__all__ = [
    "BatchStatus",
    "RemoteBatchStatus",
    "UploadedFile",
    "BatchFile",
    "BatchFileResult",
    "BatchProgress",
    "BatchJobRecord",
    "generate_job_id",
    "utc_now_iso",
    "record_to_dict",
    "record_from_dict",
    "job_status_view",
    "job_summary_view",
    "job_results_view",
]
