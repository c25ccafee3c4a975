"""FastAPI application entrypoint for the legal OCR service."""

from __future__ import annotations

import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import Any, Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from legal_ocr import __version__
from legal_ocr.api import build_api_router
from legal_ocr.config import AppConfig, get_config, parse_bool
from legal_ocr.errors import (
    AuthError,
    BatchCreationError,
    JobNotCompletedError,
    JobNotFoundError,
    NoContentError,
    OcrProviderError,
    PayloadTooLargeError,
    ProviderError,
    RateLimitError,
    UploadError,
    ValidationError,
)
from legal_ocr.logging_setup import configure_logging, request_context
from legal_ocr.services.batch_orchestrator import BatchJobOrchestrator
from legal_ocr.services.interfaces import MetricsClient
from legal_ocr.services.job_store import JobStore, create_job_store_from_config
from legal_ocr.services.metrics import NullMetrics, PrometheusMetrics
from legal_ocr.services.ocr_gateway import RemoteOcrGateway, build_gateway_from_config
from legal_ocr.utils.logging_utils import structured_log

SERVICE_NAME = "legal-ocr"
DEBUG_ENABLED = "--debug" in sys.argv or parse_bool(os.getenv("DEBUG"))
LOG_LEVEL = logging.DEBUG if DEBUG_ENABLED else logging.INFO

_API_LOG = logging.getLogger("api")

CORS_ALLOWED_HEADERS = ["Content-Type", "Authorization", "X-User-Id", "X-Access-Code"]

# Most specific classes first; handlers are resolved along the exception MRO.
_ERROR_STATUS: dict[type[Exception], int] = {
    PayloadTooLargeError: 413,
    ValidationError: 400,
    JobNotFoundError: 404,
    JobNotCompletedError: 400,
    AuthError: 401,
    RateLimitError: 429,
    NoContentError: 422,
    UploadError: 502,
    ProviderError: 502,
    BatchCreationError: 500,
    OcrProviderError: 502,
}


def _health_payload() -> dict[str, str]:
    return {"status": "ok", "service": SERVICE_NAME, "version": __version__}


def _error_message(exc: Exception) -> str:
    if isinstance(exc, BatchCreationError):
        return f"Failed to create batch job: {exc}"
    return str(exc) or exc.__class__.__name__


def _register_error_handlers(app: FastAPI) -> None:
    async def _handle(request: Request, exc: Exception) -> JSONResponse:
        status = _ERROR_STATUS.get(type(exc))
        if status is None:
            status = next(
                (code for cls, code in _ERROR_STATUS.items() if isinstance(exc, cls)), 500
            )
        structured_log(
            _API_LOG,
            logging.WARNING if status < 500 else logging.ERROR,
            "request_failed",
            path=request.url.path,
            status_code=status,
            error_type=exc.__class__.__name__,
        )
        headers = None
        if isinstance(exc, RateLimitError) and exc.retry_after is not None:
            headers = {"Retry-After": str(int(exc.retry_after))}
        return JSONResponse(status_code=status, content={"error": _error_message(exc)}, headers=headers)

    for exc_class in _ERROR_STATUS:
        app.add_exception_handler(exc_class, _handle)


def create_app(
    *,
    config: AppConfig | None = None,
    gateway: RemoteOcrGateway | None = None,
    job_store: JobStore | None = None,
    metrics: MetricsClient | None = None,
) -> FastAPI:
    configure_logging(level=LOG_LEVEL)
    if config is None:
        get_config.cache_clear()
        config = get_config()
    config.validate_required()

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        routes = [getattr(route, "path", str(route)) for route in app.router.routes]
        structured_log(_API_LOG, logging.INFO, "service_startup", component=SERVICE_NAME, path=",".join(routes))
        yield
        app.state.gateway.close()

    app = FastAPI(title="Legal OCR API", version=__version__, lifespan=_lifespan)
    app.state.config = config

    if metrics is not None:
        app.state.metrics = metrics
    elif config.enable_metrics:
        app.state.metrics = PrometheusMetrics.instrument_app(app)
    else:
        app.state.metrics = NullMetrics()

    app.state.gateway = gateway or build_gateway_from_config(config, metrics=app.state.metrics)
    app.state.job_store = job_store or create_job_store_from_config(config)
    app.state.orchestrator = BatchJobOrchestrator(
        gateway=app.state.gateway,
        store=app.state.job_store,
        metrics=app.state.metrics,
        upload_concurrency=config.upload_concurrency,
        reflow=config.enable_reflow,
    )

    _register_error_handlers(app)

    # Health endpoints ---------------------------------------------------------
    @app.get("/healthz", summary="Healthz")
    async def healthz():
        return _health_payload()

    @app.get("/health", include_in_schema=False)
    async def health_alias():
        return _health_payload()

    @app.get("/", include_in_schema=False)
    async def root_health():
        return _health_payload()

    app.include_router(build_api_router())

    @app.middleware("http")
    async def _request_id(request: Request, call_next: Callable[[Request], Any]):
        with request_context(request.headers.get("X-Request-ID")) as rid:
            response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_origin_regex=config.allowed_origin_regex,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=CORS_ALLOWED_HEADERS,
        allow_credentials=True,
        expose_headers=["X-Request-ID"],
        max_age=86400,
    )
    return app


__all__ = ["create_app", "SERVICE_NAME"]
