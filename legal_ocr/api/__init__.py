"""Routers for the legal OCR FastAPI application."""

from __future__ import annotations

from fastapi import APIRouter

from .batch import router as batch_router
from .ocr import router as ocr_router
from .redaction import router as redaction_router


def build_api_router() -> APIRouter:
    """Combine all API routers for inclusion in the FastAPI app."""
    router = APIRouter()
    router.include_router(ocr_router, tags=["ocr"])
    router.include_router(batch_router, prefix="/batch", tags=["batch"])
    router.include_router(redaction_router, prefix="/redaction", tags=["redaction"])
    return router


__all__ = ["build_api_router"]
