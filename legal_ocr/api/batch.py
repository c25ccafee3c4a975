"""Batch job routes: create, status (with reconciliation), results and list."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query, Request
from starlette.datastructures import UploadFile

from legal_ocr.errors import PayloadTooLargeError, ValidationError
from legal_ocr.models.batch import (
    BatchFile,
    UploadedFile,
    job_results_view,
    job_status_view,
    job_summary_view,
)
from legal_ocr.services.identity import Identity
from legal_ocr.utils.logging_utils import owner_fingerprint, structured_log

from .deps import get_app_config, get_orchestrator, megabytes, request_identity, require_credential

router = APIRouter()

_API_LOG = logging.getLogger("api.batch")
_FILE_ID_KEYS = ("remoteFileId", "remote_file_id", "mistral_file_id")
_FILE_NAME_KEYS = ("name", "fileName", "file_name", "display_name")


def _first(entry: Dict[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = entry.get(key)
        if value:
            return str(value)
    return ""


def _files_from_json(body: Any) -> List[BatchFile]:
    if not isinstance(body, dict) or not isinstance(body.get("files"), list):
        return []
    files: List[BatchFile] = []
    for position, entry in enumerate(body["files"]):
        if not isinstance(entry, dict):
            raise ValidationError(f"files[{position}] must be an object")
        remote_id = _first(entry, _FILE_ID_KEYS)
        if not remote_id:
            raise ValidationError(f"files[{position}] is missing remoteFileId")
        name = _first(entry, _FILE_NAME_KEYS) or f"document_{position}.pdf"
        files.append(BatchFile(display_name=name, remote_file_id=remote_id))
    return files


async def _files_from_multipart(request: Request, max_batch_bytes: int) -> List[UploadedFile]:
    content_length = request.headers.get("Content-Length")
    if content_length and content_length.isdigit() and int(content_length) > max_batch_bytes:
        raise PayloadTooLargeError(
            f"Total batch size too large. Maximum is {max_batch_bytes // (1024 * 1024)}MB. "
            f"Your upload: {megabytes(int(content_length))}MB"
        )
    if "multipart/form-data" not in request.headers.get("Content-Type", ""):
        return []
    form = await request.form()
    files: List[UploadedFile] = []
    for part in form.getlist("files[]"):
        if not isinstance(part, UploadFile):
            continue
        candidate = UploadedFile(
            name=part.filename or f"document_{len(files)}.pdf",
            mime_type=part.content_type or "",
            data=await part.read(),
        )
        if candidate.looks_like_pdf():
            files.append(candidate)
    return files


@router.post("/create", status_code=201)
async def create_batch(request: Request, identity: Identity = Depends(request_identity)):
    credential = require_credential(request)
    cfg = get_app_config(request)

    files: List[BatchFile] | List[UploadedFile] = []
    if "application/json" in request.headers.get("Content-Type", ""):
        try:
            body = await request.json()
        except ValueError:
            body = None
        files = _files_from_json(body)
    if not files:
        files = await _files_from_multipart(request, cfg.max_batch_bytes)
        if not files:
            raise ValidationError("No PDF files found in request")

    orchestrator = get_orchestrator(request)
    record = await asyncio.to_thread(orchestrator.create_job, files, credential, identity.owner_key)
    structured_log(
        _API_LOG,
        logging.INFO,
        "batch_create_accepted",
        job_id=record.id,
        owner=owner_fingerprint(identity.owner_key),
        file_count=len(record.files),
    )
    return {
        "job_id": record.id,
        "status": record.status.value,
        "file_count": len(record.files),
        "created_at": record.created_at,
    }


def _require_job_id(job_id: str | None) -> str:
    if not job_id or not job_id.strip():
        raise ValidationError("Missing job id parameter")
    return job_id.strip()


@router.get("/status")
async def batch_status(
    request: Request,
    job_id: str | None = Query(None, alias="id"),
    identity: Identity = Depends(request_identity),
):
    job_id = _require_job_id(job_id)
    credential = require_credential(request)
    orchestrator = get_orchestrator(request)
    record = orchestrator.get_job(identity.owner_key, job_id)
    outcome = await asyncio.to_thread(orchestrator.reconcile_status, record, credential)
    return job_status_view(outcome.record, outcome.progress)


@router.get("/results")
async def batch_results(
    request: Request,
    job_id: str | None = Query(None, alias="id"),
    identity: Identity = Depends(request_identity),
):
    job_id = _require_job_id(job_id)
    record = get_orchestrator(request).get_results(identity.owner_key, job_id)
    return job_results_view(record)


@router.get("/list")
async def batch_list(request: Request, identity: Identity = Depends(request_identity)):
    try:
        records = get_orchestrator(request).list_jobs(identity.owner_key)
    except OSError as exc:
        structured_log(_API_LOG, logging.ERROR, "batch_list_failed", error_type=type(exc).__name__)
        records = []
    return {"jobs": [job_summary_view(record) for record in records]}


__all__ = ["router"]
