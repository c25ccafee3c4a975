"""Request-scoped helpers shared by the routers.

Request metadata (headers, cookies) is always read from the request passed in;
nothing is stashed in module state.
"""
from __future__ import annotations

from fastapi import Request, Response

from legal_ocr.config import AppConfig
from legal_ocr.errors import AuthError
from legal_ocr.services.batch_orchestrator import BatchJobOrchestrator
from legal_ocr.services.identity import (
    Identity,
    build_owner_cookie,
    extract_bearer_token,
    resolve_identity,
)
from legal_ocr.services.ocr_gateway import RemoteOcrGateway

MISSING_CREDENTIAL_MESSAGE = "Missing Authorization header"


def require_credential(request: Request) -> str:
    token = extract_bearer_token(request.headers.get("Authorization"))
    if not token:
        raise AuthError(MISSING_CREDENTIAL_MESSAGE)
    return token


def request_identity(request: Request, response: Response) -> Identity:
    """Resolve the owner namespace; new owners get the identity cookie."""
    identity = resolve_identity(request.headers, request.cookies)
    if identity.is_new:
        response.headers["Set-Cookie"] = build_owner_cookie(identity.owner_key)
    return identity


def get_orchestrator(request: Request) -> BatchJobOrchestrator:
    return request.app.state.orchestrator


def get_gateway(request: Request) -> RemoteOcrGateway:
    return request.app.state.gateway


def get_app_config(request: Request) -> AppConfig:
    return request.app.state.config


def megabytes(size: int) -> str:
    return f"{size / 1024 / 1024:.2f}"


__all__ = [
    "MISSING_CREDENTIAL_MESSAGE",
    "get_app_config",
    "get_gateway",
    "get_orchestrator",
    "megabytes",
    "request_identity",
    "require_credential",
]
