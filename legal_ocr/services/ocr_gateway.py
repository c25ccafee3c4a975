"""Gateway to the remote OCR provider (files, OCR, batch and chat endpoints)."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Mapping

import httpx

from legal_ocr.config import AppConfig
from legal_ocr.errors import AuthError, NoContentError, ProviderError, UploadError
from legal_ocr.utils.logging_utils import stage_marker, structured_log

from .http_client import RetryableHttpClient, extract_provider_message, raise_for_result
from .interfaces import MetricsClient
from .markdown import ocr_response_to_markdown
from .metrics import NullMetrics

LOG = logging.getLogger(__name__)

BATCH_OCR_ENDPOINT = "/v1/ocr"


def _json_payload(response: httpx.Response, action: str) -> Any:
    """Decode a 2xx provider body; anything but JSON is a provider error."""
    try:
        return response.json()
    except ValueError as exc:
        raise ProviderError(
            f"{action} returned an invalid response", status_code=response.status_code
        ) from exc


class RemoteOcrGateway:
    """Upload, resolve, extract and normalise documents through the provider.

    Every method takes the caller's credential explicitly; the gateway itself
    never holds an API key.
    """

    def __init__(
        self,
        *,
        http: RetryableHttpClient,
        ocr_model: str = "mistral-ocr-latest",
        chat_model: str = "mistral-small-latest",
        reflow: bool = False,
        metrics: MetricsClient | None = None,
    ) -> None:
        self.http = http
        self.ocr_model = ocr_model
        self.chat_model = chat_model
        self.reflow = reflow
        self.metrics = metrics or NullMetrics()

    def _ocr_body(self, document: Dict[str, str]) -> Dict[str, Any]:
        return {
            "model": self.ocr_model,
            "document": document,
            "extract_header": True,
            "extract_footer": True,
            "include_image_base64": False,
        }

    def upload_file(self, data: bytes, filename: str, credential: str) -> str:
        """Store a document at the provider and return its file id."""
        with stage_marker(LOG, stage="upload", bytes=len(data)):
            result = self.http.request(
                "POST",
                "/files",
                credential=credential,
                files={"file": (filename, data, "application/pdf")},
                data={"purpose": "ocr"},
            )
            if result.ok:
                payload = _json_payload(result.response, "Upload")  # type: ignore[arg-type]
                file_id = payload.get("id") if isinstance(payload, dict) else None
                if not file_id:
                    raise UploadError("Provider upload response did not contain a file id")
                return str(file_id)
            if result.status_code == 401:
                raise AuthError(f"Invalid API Key: {extract_provider_message(result.response)}")  # type: ignore[arg-type]
            if result.response is None:
                raise UploadError(f"Failed to upload file to provider: {result.transport_error}")
            raise UploadError(
                "Failed to upload file to provider: "
                f"{result.response.status_code} {result.response.reason_phrase}".rstrip(),
                status_code=result.response.status_code,
            )

    def get_signed_url(self, file_id: str, credential: str) -> str:
        result = self.http.request("GET", f"/files/{file_id}/url", credential=credential)
        payload = _json_payload(raise_for_result(result, action="Signed URL request"), "Signed URL request")
        url = payload.get("url") if isinstance(payload, dict) else None
        if not url:
            raise ProviderError("Provider did not return a signed URL")
        return str(url)

    def run_ocr(self, document_url: str, credential: str) -> Mapping[str, Any]:
        body = self._ocr_body({"type": "document_url", "document_url": document_url})
        started = time.perf_counter()
        result = self.http.request("POST", "/ocr", credential=credential, json=body)
        self.metrics.observe_latency("ocr_latency_seconds", time.perf_counter() - started, stage="ocr")
        self.metrics.increment(
            "ocr_requests_total", stage="ocr", outcome="ok" if result.ok else "error"
        )
        payload = _json_payload(raise_for_result(result, action="OCR request"), "OCR request")
        return payload if isinstance(payload, dict) else {}

    def extract_from_file_id(self, file_id: str, credential: str) -> str:
        """Signed URL, OCR and normalisation for a file already at the provider."""
        with stage_marker(LOG, stage="extract") as marker:
            payload = self.run_ocr(self.get_signed_url(file_id, credential), credential)
            markdown = ocr_response_to_markdown(payload, reflow=self.reflow)
            marker.add_completion_fields(
                pages=len(payload.get("pages") or []), text_length=len(markdown)
            )
        if not markdown:
            raise NoContentError()
        return markdown

    def upload_and_extract(self, data: bytes, filename: str, credential: str) -> str:
        return self.extract_from_file_id(self.upload_file(data, filename, credential), credential)

    def create_batch_job(self, file_ids: List[str], credential: str) -> Dict[str, Any]:
        """Submit one OCR sub-request per file, tagged with its position."""
        requests = [
            {
                "custom_id": str(index),
                "body": self._ocr_body({"type": "file", "file_id": file_id}),
            }
            for index, file_id in enumerate(file_ids)
        ]
        body = {"model": self.ocr_model, "endpoint": BATCH_OCR_ENDPOINT, "requests": requests}
        result = self.http.request("POST", "/batch/jobs", credential=credential, json=body)
        payload = _json_payload(raise_for_result(result, action="Batch creation"), "Batch creation")
        if not isinstance(payload, dict) or not payload.get("id"):
            raise ProviderError("Provider batch response did not contain a job id")
        structured_log(
            LOG,
            logging.INFO,
            "remote_batch_created",
            remote_job_id=payload["id"],
            file_count=len(file_ids),
            remote_status=payload.get("status"),
        )
        return payload

    def get_batch_job(self, remote_job_id: str, credential: str) -> Mapping[str, Any]:
        result = self.http.request("GET", f"/batch/jobs/{remote_job_id}", credential=credential)
        payload = _json_payload(raise_for_result(result, action="Batch status"), "Batch status")
        return payload if isinstance(payload, dict) else {}

    def download_file_content(self, file_id: str, credential: str) -> str:
        result = self.http.request("GET", f"/files/{file_id}/content", credential=credential)
        return raise_for_result(result, action="Result download").text

    def chat_completion(
        self,
        messages: List[Dict[str, str]],
        credential: str,
        *,
        temperature: float = 0.1,
        max_tokens: int = 8000,
    ) -> str:
        body = {
            "model": self.chat_model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        result = self.http.request("POST", "/chat/completions", credential=credential, json=body)
        payload = _json_payload(raise_for_result(result, action="Chat completion"), "Chat completion")
        try:
            content = payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError("Chat completion response had no content") from exc
        return str(content or "")

    def close(self) -> None:
        self.http.close()


def build_gateway_from_config(
    config: AppConfig, *, metrics: MetricsClient | None = None, **http_kwargs: Any
) -> RemoteOcrGateway:
    http = RetryableHttpClient(
        base_url=config.provider_base_url,
        timeout=config.http_timeout_seconds,
        max_attempts=config.max_retry_attempts,
        base_delay=config.retry_base_delay_seconds,
        **http_kwargs,
    )
    return RemoteOcrGateway(
        http=http,
        ocr_model=config.ocr_model,
        chat_model=config.chat_model,
        reflow=config.enable_reflow,
        metrics=metrics,
    )


__all__ = ["BATCH_OCR_ENDPOINT", "RemoteOcrGateway", "build_gateway_from_config"]
