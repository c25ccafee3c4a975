"""Synchronous single-document OCR route returning Markdown."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Query, Request
from fastapi.responses import Response
from starlette.datastructures import UploadFile

from legal_ocr.errors import PayloadTooLargeError, ValidationError
from legal_ocr.models.batch import UploadedFile
from legal_ocr.services.refine import MarkdownRefiner
from legal_ocr.utils.logging_utils import stage_marker

from .deps import get_app_config, get_gateway, megabytes, require_credential

router = APIRouter()

_API_LOG = logging.getLogger("api.ocr")
MARKDOWN_MEDIA_TYPE = "text/markdown; charset=utf-8"
NO_FILE_MESSAGE = (
    "No PDF file found in request. Send multipart/form-data with a 'file' field "
    "or a raw application/pdf body."
)


def _too_large(size: int, limit: int) -> PayloadTooLargeError:
    return PayloadTooLargeError(
        f"File too large. Maximum is {limit // (1024 * 1024)}MB. Your upload: {megabytes(size)}MB"
    )


async def _document_from_request(request: Request, limit: int) -> UploadedFile | None:
    content_type = request.headers.get("Content-Type", "")
    content_length = request.headers.get("Content-Length")
    if content_length and content_length.isdigit() and int(content_length) > limit:
        raise _too_large(int(content_length), limit)

    if "multipart/form-data" in content_type:
        form = await request.form()
        part = form.get("file")
        if not isinstance(part, UploadFile):
            return None
        document = UploadedFile(
            name=part.filename or "document.pdf",
            mime_type=part.content_type or "",
            data=await part.read(),
        )
        return document if document.looks_like_pdf() else None

    if "application/pdf" in content_type or "application/octet-stream" in content_type:
        data = await request.body()
        if not data:
            return None
        return UploadedFile(name="document.pdf", mime_type="application/pdf", data=data)
    return None


@router.post("/ocr")
async def ocr_document(request: Request, refine: bool = Query(False)):
    credential = require_credential(request)
    cfg = get_app_config(request)
    gateway = get_gateway(request)

    remote_file_id: str | None = None
    if "application/json" in request.headers.get("Content-Type", ""):
        try:
            body = await request.json()
        except ValueError as exc:
            raise ValidationError("Request body must be valid JSON") from exc
        if isinstance(body, dict):
            for key in ("remote_file_id", "remoteFileId", "mistral_file_id"):
                if body.get(key):
                    remote_file_id = str(body[key])
                    break
        if not remote_file_id:
            raise ValidationError("Missing remote_file_id in request body")

    async with stage_marker(_API_LOG, stage="ocr_request", component="ocr_api") as marker:
        if remote_file_id:
            markdown = await asyncio.to_thread(gateway.extract_from_file_id, remote_file_id, credential)
        else:
            document = await _document_from_request(request, cfg.max_upload_bytes)
            if document is None:
                raise ValidationError(NO_FILE_MESSAGE)
            if document.size > cfg.max_upload_bytes:
                raise _too_large(document.size, cfg.max_upload_bytes)
            marker.add_completion_fields(bytes=document.size)
            markdown = await asyncio.to_thread(
                gateway.upload_and_extract, document.data, document.name, credential
            )
        if refine:
            markdown = await asyncio.to_thread(MarkdownRefiner(gateway).refine, markdown, credential)
        marker.add_completion_fields(text_length=len(markdown))

    return Response(content=markdown, media_type=MARKDOWN_MEDIA_TYPE)


__all__ = ["router", "MARKDOWN_MEDIA_TYPE"]
