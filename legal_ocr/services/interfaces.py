"""Shared interfaces used across the legal OCR services."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Protocol


class MetricsClient(Protocol):
    """Interface for emitting metrics to Prometheus (or nowhere)."""

    def observe_latency(self, name: str, value: float, **labels: str) -> None: ...

    def increment(self, name: str, amount: int = 1, **labels: str) -> None: ...


class OcrGateway(Protocol):
    """Calls the orchestrator and routes make against the OCR provider."""

    def upload_file(self, data: bytes, filename: str, credential: str) -> str: ...

    def extract_from_file_id(self, file_id: str, credential: str) -> str: ...

    def upload_and_extract(self, data: bytes, filename: str, credential: str) -> str: ...

    def create_batch_job(self, file_ids: list[str], credential: str) -> Dict[str, Any]: ...

    def get_batch_job(self, remote_job_id: str, credential: str) -> Mapping[str, Any]: ...

    def download_file_content(self, file_id: str, credential: str) -> str: ...


__all__ = ["MetricsClient", "OcrGateway"]
