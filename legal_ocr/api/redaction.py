"""Redaction preview/apply routes.

Identification is deterministic, so the client keeps the match list, toggles or
removes entries locally and posts the edited list back to ``/apply``.
"""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from legal_ocr.services.redaction import (
    RedactionSession,
    apply_redactions,
    compare_report,
    count_by_category,
    match_from_dict,
    match_to_dict,
    validate_non_overlapping,
)
from legal_ocr.services.redaction_rules import DEFAULT_RULES, TYPE_NAMES, blacklist_rule, load_rules

router = APIRouter()


class PreviewRequest(BaseModel):
    text: str
    rules: List[Dict[str, Any]] | None = None
    blacklist: List[str] = Field(default_factory=list)


class ApplyRequest(BaseModel):
    text: str
    matches: List[Dict[str, Any]]


@router.post("/preview")
async def preview(payload: PreviewRequest, request: Request):
    rules = load_rules(payload.rules) if payload.rules is not None else list(DEFAULT_RULES)
    extra = blacklist_rule(payload.blacklist)
    if extra is not None:
        rules.insert(0, extra)
    session = RedactionSession(payload.text, rules, metrics=getattr(request.app.state, "metrics", None))
    return {
        "matches": [match_to_dict(match) for match in session.matches],
        "counts": count_by_category(session.matches),
        "type_names": TYPE_NAMES,
        "redacted_text": session.redacted_text(),
        "report": session.report(),
    }


@router.post("/apply")
async def apply(payload: ApplyRequest):
    matches = [match_from_dict(item, len(payload.text)) for item in payload.matches]
    validate_non_overlapping([match for match in matches if match.is_selected])
    return {
        "redacted_text": apply_redactions(payload.text, matches),
        "report": compare_report(matches),
    }


__all__ = ["router"]
