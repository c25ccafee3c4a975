"""Runtime configuration for the legal OCR service.

Only service-side settings live here. The OCR provider API key is never
configured on the server: every caller supplies its own key through the
``Authorization: Bearer <key>`` header.

Environment variables (names in parentheses):
 - OCR_PROVIDER_BASE_URL / MISTRAL_BASE_URL
 - OCR_MODEL, CHAT_MODEL
 - HTTP_TIMEOUT_SECONDS, MAX_RETRY_ATTEMPTS, RETRY_BASE_DELAY_SECONDS
 - BATCH_JOB_TTL_SECONDS, JOB_STORE_BACKEND, JOB_STORE_DIR
 - HISTORY_DIR, HISTORY_MAX_ENTRIES
 - POLL_INTERVAL_SECONDS, POLL_MAX_ATTEMPTS
 - MAX_UPLOAD_BYTES, MAX_BATCH_BYTES
 - ALLOWED_ORIGINS, ALLOWED_ORIGIN_SUFFIXES
 - ENABLE_REFLOW, ENABLE_METRICS
"""
from __future__ import annotations

import re
from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ALLOWED_ORIGINS = (
    "https://ocr.jus.team,"
    "https://jus-team-pdf-converter.pages.dev,"
    "http://localhost:5173,"
    "http://localhost:3000"
)
DEFAULT_ORIGIN_SUFFIXES = ".jus-team-pdf-converter.pages.dev,.legal-ocr-frontend.pages.dev"
_JOB_STORE_BACKENDS = {"memory", "file"}


def parse_bool(value: str | None) -> bool:
    if value is None:
        return False
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _split_csv(raw: str | None) -> list[str]:
    return [item.strip() for item in (raw or "").split(",") if item.strip()]


class AppConfig(BaseSettings):
    provider_base_url: str = Field(
        "https://api.mistral.ai/v1",
        validation_alias=AliasChoices("OCR_PROVIDER_BASE_URL", "MISTRAL_BASE_URL"),
    )
    ocr_model: str = Field("mistral-ocr-latest", validation_alias="OCR_MODEL")
    chat_model: str = Field("mistral-small-latest", validation_alias="CHAT_MODEL")
    http_timeout_seconds: float = Field(120.0, validation_alias="HTTP_TIMEOUT_SECONDS")
    max_retry_attempts: int = Field(3, validation_alias="MAX_RETRY_ATTEMPTS")
    retry_base_delay_seconds: float = Field(1.0, validation_alias="RETRY_BASE_DELAY_SECONDS")
    batch_job_ttl_seconds: int = Field(7 * 24 * 60 * 60, validation_alias="BATCH_JOB_TTL_SECONDS")
    job_store_backend: str = Field("memory", validation_alias="JOB_STORE_BACKEND")
    job_store_dir: str = Field(".legal_ocr/jobs", validation_alias="JOB_STORE_DIR")
    history_dir: str = Field(".legal_ocr/history", validation_alias="HISTORY_DIR")
    history_max_entries: int = Field(50, validation_alias="HISTORY_MAX_ENTRIES")
    poll_interval_seconds: float = Field(5.0, validation_alias="POLL_INTERVAL_SECONDS")
    poll_max_attempts: int = Field(120, validation_alias="POLL_MAX_ATTEMPTS")
    upload_concurrency: int = Field(4, validation_alias="UPLOAD_CONCURRENCY")
    max_upload_bytes: int = Field(50 * 1024 * 1024, validation_alias="MAX_UPLOAD_BYTES")
    max_batch_bytes: int = Field(50 * 1024 * 1024, validation_alias="MAX_BATCH_BYTES")
    allowed_origins_raw: str = Field(DEFAULT_ALLOWED_ORIGINS, validation_alias="ALLOWED_ORIGINS")
    allowed_origin_suffixes_raw: str = Field(
        DEFAULT_ORIGIN_SUFFIXES, validation_alias="ALLOWED_ORIGIN_SUFFIXES"
    )
    # Raw env capture; post-processed to strict bool via parse_bool
    enable_reflow_raw: str | bool | None = Field(False, validation_alias="ENABLE_REFLOW")
    enable_metrics_raw: str | bool | None = Field(True, validation_alias="ENABLE_METRICS")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", case_sensitive=False)

    @property
    def enable_reflow(self) -> bool:
        raw = self.enable_reflow_raw
        if isinstance(raw, bool):
            return raw
        return parse_bool(str(raw))

    @property
    def enable_metrics(self) -> bool:
        raw = self.enable_metrics_raw
        if isinstance(raw, bool):
            return raw
        return parse_bool(str(raw))

    @property
    def allowed_origins(self) -> list[str]:
        return _split_csv(self.allowed_origins_raw)

    @property
    def allowed_origin_regex(self) -> str | None:
        suffixes = _split_csv(self.allowed_origin_suffixes_raw)
        if not suffixes:
            return None
        alternatives = "|".join(re.escape(suffix) for suffix in suffixes)
        return rf"https://[A-Za-z0-9\-\.]+(?:{alternatives})"

    def validate_required(self) -> None:
        problems: list[str] = []
        if not self.provider_base_url.startswith(("http://", "https://")):
            problems.append("provider_base_url")
        positive_fields = (
            ("http_timeout_seconds", self.http_timeout_seconds),
            ("max_retry_attempts", self.max_retry_attempts),
            ("batch_job_ttl_seconds", self.batch_job_ttl_seconds),
            ("history_max_entries", self.history_max_entries),
            ("poll_interval_seconds", self.poll_interval_seconds),
            ("poll_max_attempts", self.poll_max_attempts),
            ("upload_concurrency", self.upload_concurrency),
            ("max_upload_bytes", self.max_upload_bytes),
            ("max_batch_bytes", self.max_batch_bytes),
        )
        problems.extend(name for name, value in positive_fields if value <= 0)
        if self.retry_base_delay_seconds < 0:
            problems.append("retry_base_delay_seconds")
        if problems:
            raise RuntimeError("Invalid configuration values: " + ", ".join(sorted(problems)))
        if self.job_store_backend.strip().lower() not in _JOB_STORE_BACKENDS:
            raise RuntimeError(
                f"JOB_STORE_BACKEND must be one of {sorted(_JOB_STORE_BACKENDS)}, "
                f"got {self.job_store_backend!r}"
            )


@lru_cache
def get_config() -> AppConfig:
    return AppConfig()  # type: ignore[call-arg]


__all__ = ["AppConfig", "get_config", "parse_bool"]
