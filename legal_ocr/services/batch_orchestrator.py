"""Batch job lifecycle: creation, remote reconciliation and result parsing.

State machine per job::

    processing -> completed | failed      (terminal states are sticky)

A record is persisted before the provider batch is submitted, so a failed
submission still leaves a queryable ``failed`` record behind. Reconciliation is
the only other writer; failures while *checking* remote status are transient
and never written into the record.
"""
from __future__ import annotations

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Sequence, TypeVar

from legal_ocr.errors import (
    AuthError,
    BatchCreationError,
    JobNotCompletedError,
    JobNotFoundError,
    OcrProviderError,
    PollTimeoutError,
    ReconciliationTransientError,
    UploadError,
    ValidationError,
)
from legal_ocr.models.batch import (
    BatchFile,
    BatchFileResult,
    BatchJobRecord,
    BatchProgress,
    BatchStatus,
    RemoteBatchStatus,
    UploadedFile,
    generate_job_id,
)
from legal_ocr.utils.logging_utils import owner_fingerprint, stage_marker, structured_log

from .interfaces import MetricsClient, OcrGateway
from .job_store import JobStore
from .markdown import ocr_response_to_markdown
from .metrics import NullMetrics

LOG = logging.getLogger("batch_orchestrator")

PARSE_ERROR_MESSAGE = "Failed to parse result"
EMPTY_RESULT_MESSAGE = "No text content extracted"
MISSING_RESULT_MESSAGE = "No result returned for this file"
NO_OUTPUT_MESSAGE = "Batch job finished without an output file"

_FAILED_REMOTE_STATES = {
    RemoteBatchStatus.FAILED.value,
    RemoteBatchStatus.CANCELLED.value,
    RemoteBatchStatus.TIMEOUT_EXCEEDED.value,
}

T = TypeVar("T")


@dataclass(slots=True)
class ReconcileOutcome:
    record: BatchJobRecord
    progress: BatchProgress | None = None


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class BatchJobOrchestrator:
    """Create batch jobs and keep their local records in step with the provider."""

    def __init__(
        self,
        *,
        gateway: OcrGateway,
        store: JobStore,
        metrics: MetricsClient | None = None,
        upload_concurrency: int = 4,
        reflow: bool = False,
    ) -> None:
        self.gateway = gateway
        self.store = store
        self.metrics = metrics or NullMetrics()
        self.upload_concurrency = max(1, upload_concurrency)
        self.reflow = reflow

    # ------------------------------------------------------------------ create
    def _upload_one(self, item: UploadedFile | BatchFile, credential: str) -> BatchFile:
        if isinstance(item, BatchFile):
            return item
        try:
            file_id = self.gateway.upload_file(item.data, item.name, credential)
        except AuthError:
            raise
        except OcrProviderError as exc:
            raise UploadError(
                f"Failed to upload file {item.name}",
                status_code=getattr(exc, "status_code", None),
            ) from exc
        return BatchFile(display_name=item.name, remote_file_id=file_id)

    def upload_files(
        self, files: Sequence[UploadedFile | BatchFile], credential: str
    ) -> List[BatchFile]:
        """Upload files lacking a provider reference; the input order is kept."""
        pending = sum(1 for item in files if isinstance(item, UploadedFile))
        if pending == 0:
            return [item for item in files if isinstance(item, BatchFile)]
        with stage_marker(LOG, stage="batch_upload", file_count=pending):
            workers = min(self.upload_concurrency, pending)
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="batch-upload") as pool:
                return list(pool.map(lambda item: self._upload_one(item, credential), files))

    def create_job(
        self,
        files: Sequence[UploadedFile | BatchFile],
        credential: str,
        owner_key: str,
    ) -> BatchJobRecord:
        if not files:
            raise ValidationError("No files provided")
        batch_files = self.upload_files(files, credential)

        record = BatchJobRecord(id=generate_job_id(), owner_key=owner_key, files=batch_files)
        self.store.save(record)

        try:
            with stage_marker(LOG, stage="batch_submit", job_id=record.id, file_count=len(batch_files)):
                remote = self.gateway.create_batch_job(
                    [item.remote_file_id for item in batch_files], credential
                )
                remote_job_id = str(remote["id"])
        except AuthError as exc:
            self._fail_submission(record, exc)
            raise
        except OcrProviderError as exc:
            self._fail_submission(record, exc)
            raise BatchCreationError(record.error, record=record) from exc
        except Exception as exc:
            self._fail_submission(record, exc)
            raise

        record.remote_job_id = remote_job_id
        record.touch()
        self.store.save(record)
        self.metrics.increment("batch_jobs_created_total", stage="batch", outcome="ok")
        structured_log(
            LOG,
            logging.INFO,
            "batch_job_created",
            job_id=record.id,
            remote_job_id=record.remote_job_id,
            owner=owner_fingerprint(owner_key),
            file_count=len(batch_files),
        )
        return record

    def _fail_submission(self, record: BatchJobRecord, exc: Exception) -> None:
        """Persist the terminal failed record before the error propagates."""
        record.status = BatchStatus.FAILED
        record.error = str(exc) or type(exc).__name__
        record.touch()
        self.store.save(record)
        self.metrics.increment("batch_jobs_created_total", stage="batch", outcome="error")

    # --------------------------------------------------------------- reconcile
    def _fetch_remote_status(self, record: BatchJobRecord, credential: str) -> Mapping[str, Any]:
        try:
            return self.gateway.get_batch_job(record.remote_job_id, credential)
        except OcrProviderError as exc:
            raise ReconciliationTransientError(str(exc)) from exc

    def reconcile_status(self, record: BatchJobRecord, credential: str) -> ReconcileOutcome:
        """Refresh a non-terminal record from the provider's job state."""
        if record.status.is_terminal or not record.remote_job_id:
            return ReconcileOutcome(record)

        try:
            remote = self._fetch_remote_status(record, credential)
        except ReconciliationTransientError as exc:
            structured_log(
                LOG,
                logging.WARNING,
                "batch_reconcile_transient",
                job_id=record.id,
                error_type=type(exc.__cause__ or exc).__name__,
            )
            self.metrics.increment("batch_reconciliations_total", stage="batch", outcome="transient")
            return ReconcileOutcome(record)

        remote_status = str(remote.get("status") or "").upper()
        progress = BatchProgress(
            total=_as_int(remote.get("total_requests")) or len(record.files),
            succeeded=_as_int(remote.get("succeeded_requests")),
            failed=_as_int(remote.get("failed_requests")),
        )
        self.metrics.increment(
            "batch_reconciliations_total", stage="batch", outcome=remote_status.lower() or "unknown"
        )

        if remote_status == RemoteBatchStatus.SUCCESS.value:
            output_file = remote.get("output_file")
            if output_file:
                try:
                    with stage_marker(LOG, stage="batch_download", job_id=record.id):
                        content = self.gateway.download_file_content(str(output_file), credential)
                except OcrProviderError as exc:
                    structured_log(
                        LOG,
                        logging.WARNING,
                        "batch_reconcile_transient",
                        job_id=record.id,
                        stage="batch_download",
                        error_type=type(exc).__name__,
                    )
                    return ReconcileOutcome(record, progress)
                results = self.parse_results(record, content)
            else:
                results = [
                    BatchFileResult(file_name=item.display_name, markdown="", error=NO_OUTPUT_MESSAGE)
                    for item in record.files
                ]
            record.status = BatchStatus.COMPLETED
            record.results = results
            record.touch()
            self.store.save(record)
        elif remote_status in _FAILED_REMOTE_STATES:
            record.status = BatchStatus.FAILED
            record.error = f"Remote batch job {remote_status.lower()}"
            record.touch()
            self.store.save(record)

        structured_log(
            LOG,
            logging.INFO,
            "batch_reconciled",
            job_id=record.id,
            remote_status=remote_status,
            status=record.status.value,
        )
        return ReconcileOutcome(record, progress)

    def parse_results(self, record: BatchJobRecord, content: str) -> List[BatchFileResult]:
        """Pair each JSONL line with ``files[line_index]`` by position."""
        lines = [line for line in content.splitlines() if line.strip()]
        if len(lines) > len(record.files):
            structured_log(
                LOG,
                logging.WARNING,
                "batch_extra_result_lines",
                job_id=record.id,
                result_count=len(lines),
                file_count=len(record.files),
            )
        results: List[BatchFileResult] = []
        for index, item in enumerate(record.files):
            if index >= len(lines):
                results.append(
                    BatchFileResult(file_name=item.display_name, markdown="", error=MISSING_RESULT_MESSAGE)
                )
                continue
            results.append(self._parse_line(record, index, item.display_name, lines[index]))
        return results

    def _parse_line(self, record: BatchJobRecord, index: int, file_name: str, line: str) -> BatchFileResult:
        try:
            payload = json.loads(line)
            if not isinstance(payload, dict):
                raise ValueError("result line is not an object")
        except ValueError:
            structured_log(LOG, logging.WARNING, "batch_result_unparseable", job_id=record.id, line_index=index)
            return BatchFileResult(file_name=file_name, markdown="", error=PARSE_ERROR_MESSAGE)

        custom_id = payload.get("custom_id")
        custom_id = None if custom_id is None else str(custom_id)
        if custom_id is not None and custom_id != str(index):
            structured_log(
                LOG,
                logging.WARNING,
                "batch_custom_id_mismatch",
                job_id=record.id,
                line_index=index,
                custom_id=custom_id,
            )

        response = payload.get("response") if isinstance(payload.get("response"), dict) else {}
        error = payload.get("error")
        status_code = _as_int(response.get("status_code"), 200)
        if error or status_code >= 400:
            return BatchFileResult(
                file_name=file_name,
                markdown="",
                error=_describe_line_error(error, response.get("body"), status_code),
                custom_id=custom_id,
            )
        try:
            markdown = ocr_response_to_markdown(response.get("body") or {}, reflow=self.reflow)
        except (AttributeError, TypeError, ValueError) as exc:
            structured_log(
                LOG,
                logging.WARNING,
                "batch_result_unparseable",
                job_id=record.id,
                line_index=index,
                error_type=type(exc).__name__,
            )
            return BatchFileResult(file_name=file_name, markdown="", error=PARSE_ERROR_MESSAGE, custom_id=custom_id)
        return BatchFileResult(
            file_name=file_name,
            markdown=markdown,
            error=None if markdown else EMPTY_RESULT_MESSAGE,
            custom_id=custom_id,
        )

    # ------------------------------------------------------------------ lookup
    def list_jobs(self, owner_key: str) -> List[BatchJobRecord]:
        return self.store.list_jobs(owner_key)

    def get_job(self, owner_key: str, job_id: str) -> BatchJobRecord:
        record = self.store.get(owner_key, job_id)
        if record is None:
            raise JobNotFoundError(job_id)
        return record

    def get_results(self, owner_key: str, job_id: str) -> BatchJobRecord:
        record = self.get_job(owner_key, job_id)
        if record.status is not BatchStatus.COMPLETED:
            raise JobNotCompletedError(record.status.value)
        return record

    def wait_for_completion(
        self,
        owner_key: str,
        job_id: str,
        credential: str,
        *,
        interval: float = 5.0,
        max_attempts: int = 120,
        sleep_fn: Callable[[float], None] = time.sleep,
        on_status: Callable[[ReconcileOutcome], None] | None = None,
    ) -> BatchJobRecord:
        def _check() -> ReconcileOutcome:
            return self.reconcile_status(self.get_job(owner_key, job_id), credential)

        outcome = poll_until(
            _check,
            lambda outcome: outcome.record.status.is_terminal,
            interval=interval,
            max_attempts=max_attempts,
            sleep_fn=sleep_fn,
            on_status=on_status,
        )
        return outcome.record


def _describe_line_error(error: Any, body: Any, status_code: int) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error)
    if error:
        return str(error)
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"OCR request failed with status {status_code}"


def poll_until(
    check: Callable[[], T],
    done: Callable[[T], bool],
    *,
    interval: float = 5.0,
    max_attempts: int = 120,
    sleep_fn: Callable[[float], None] = time.sleep,
    on_status: Callable[[T], None] | None = None,
) -> T:
    """Call ``check`` every ``interval`` seconds until ``done`` or give up."""
    for attempt in range(1, max_attempts + 1):
        value = check()
        if on_status is not None:
            on_status(value)
        if done(value):
            return value
        if attempt < max_attempts:
            sleep_fn(interval)
    raise PollTimeoutError()


__all__ = [
    "BatchJobOrchestrator",
    "EMPTY_RESULT_MESSAGE",
    "MISSING_RESULT_MESSAGE",
    "NO_OUTPUT_MESSAGE",
    "PARSE_ERROR_MESSAGE",
    "ReconcileOutcome",
    "poll_until",
]
