"""HTTP client for the service's ``/batch`` and ``/ocr`` routes.

Used by the CLI. Polling and the local history cache live here because they are
client policy layered over the idempotent status endpoint.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Sequence, Tuple

import httpx

from legal_ocr.errors import PollTimeoutError
from legal_ocr.models.batch import BatchStatus, UploadedFile
from legal_ocr.services.batch_orchestrator import poll_until
from legal_ocr.services.history_cache import LocalHistoryCache, merge_job_lists
from legal_ocr.utils.logging_utils import structured_log

LOG = logging.getLogger("service_client")

_TERMINAL = {BatchStatus.COMPLETED.value, BatchStatus.FAILED.value}


class ServiceClientError(Exception):
    """Non-2xx answer (or transport failure) from the service."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class BatchServiceClient:
    def __init__(
        self,
        base_url: str,
        *,
        api_key: str,
        access_code: str,
        history: LocalHistoryCache | None = None,
        client: httpx.Client | None = None,
        transport: httpx.BaseTransport | None = None,
        timeout: float = 120.0,
        sleep_fn: Callable[[float], None] = time.sleep,
    ) -> None:
        self.api_key = api_key
        self.access_code = access_code.strip().upper()
        self.history = history
        self._sleep_fn = sleep_fn
        self._client = client or httpx.Client(
            base_url=base_url.rstrip("/"), timeout=timeout, transport=transport
        )

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", "X-Access-Code": self.access_code}

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.TransportError as exc:
            raise ServiceClientError(f"Service unreachable: {exc}") from exc
        if response.is_success:
            return response
        message = f"Error: {response.status_code} {response.reason_phrase}".strip()
        if "application/json" in response.headers.get("content-type", ""):
            try:
                payload = response.json()
            except ValueError:
                payload = None
            if isinstance(payload, dict) and payload.get("error"):
                message = str(payload["error"])
        raise ServiceClientError(message, status_code=response.status_code)

    def _remember(self, job: Dict[str, Any]) -> None:
        if self.history is not None:
            self.history.save_job(self.access_code, job)

    # ------------------------------------------------------------------ batch
    def create_job(self, files: Sequence[Tuple[str, str]]) -> Dict[str, Any]:
        """Register already-uploaded files given as ``(name, remote_file_id)``."""
        body = {"files": [{"name": name, "remoteFileId": file_id} for name, file_id in files]}
        created = self._request("POST", "/batch/create", json=body).json()
        self._remember({**created, "files": [name for name, _ in files]})
        return created

    def create_job_from_uploads(self, documents: Sequence[UploadedFile]) -> Dict[str, Any]:
        parts = [("files[]", (doc.name, doc.data, doc.mime_type or "application/pdf")) for doc in documents]
        created = self._request("POST", "/batch/create", files=parts).json()
        self._remember({**created, "files": [doc.name for doc in documents]})
        return created

    def get_status(self, job_id: str) -> Dict[str, Any]:
        return self._request("GET", "/batch/status", params={"id": job_id}).json()

    def get_results(self, job_id: str) -> Dict[str, Any]:
        return self._request("GET", "/batch/results", params={"id": job_id}).json()

    def list_server_jobs(self) -> List[Dict[str, Any]]:
        payload = self._request("GET", "/batch/list").json()
        return list(payload.get("jobs") or [])

    def list_jobs(self) -> List[Dict[str, Any]]:
        """Server list merged with local history; history alone if the server fails."""
        local = self.history.get_history(self.access_code) if self.history else []
        try:
            server_jobs: List[Dict[str, Any]] | None = self.list_server_jobs()
        except ServiceClientError as exc:
            structured_log(LOG, logging.WARNING, "job_list_fallback", error_type=type(exc).__name__)
            server_jobs = None
        return merge_job_lists(server_jobs, local)

    def poll_status(
        self,
        job_id: str,
        *,
        interval: float = 5.0,
        max_attempts: int = 120,
        on_status: Callable[[Dict[str, Any]], None] | None = None,
    ) -> Dict[str, Any]:
        """Poll until completed/failed; raises `PollTimeoutError` when exhausted."""

        def _observe(status: Dict[str, Any]) -> None:
            self._remember(status)
            if on_status is not None:
                on_status(status)

        try:
            return poll_until(
                lambda: self.get_status(job_id),
                lambda status: status.get("status") in _TERMINAL,
                interval=interval,
                max_attempts=max_attempts,
                sleep_fn=self._sleep_fn,
                on_status=_observe,
            )
        except PollTimeoutError:
            structured_log(LOG, logging.WARNING, "poll_timeout", job_id=job_id, attempt=max_attempts)
            raise

    # -------------------------------------------------------------------- ocr
    def ocr_document(self, document: UploadedFile, *, refine: bool = False) -> str:
        response = self._request(
            "POST",
            "/ocr",
            params={"refine": "true"} if refine else None,
            files={"file": (document.name, document.data, "application/pdf")},
        )
        return response.text

    def close(self) -> None:
        self._client.close()


__all__ = ["BatchServiceClient", "PollTimeoutError", "ServiceClientError"]
