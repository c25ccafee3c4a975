"""Map request metadata to an owner namespace for job storage.

The access code is a bare lookup key chosen (or generated) by the user, not a
credential. Resolution order:

1. ``X-Access-Code`` header, at least 4 characters (upper-cased).
2. ``X-User-Id`` header longer than 5 characters.
3. ``jus_user_id`` cookie.
4. A fresh uuid4, returned with ``is_new=True`` so the caller sets the cookie.
"""
from __future__ import annotations

import re
import secrets
import string
import uuid
from dataclasses import dataclass
from typing import Mapping

OWNER_COOKIE = "jus_user_id"
OWNER_COOKIE_MAX_AGE = 365 * 24 * 60 * 60
ACCESS_CODE_LENGTH = 6
_ACCESS_CODE_ALPHABET = string.digits + string.ascii_uppercase
_BEARER = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


@dataclass(slots=True, frozen=True)
class Identity:
    owner_key: str
    source: str
    is_new: bool = False


def normalize_access_code(code: str) -> str:
    return code.strip().upper()


def _header(headers: Mapping[str, str], name: str) -> str:
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    return (value or "").strip()


def resolve_identity(headers: Mapping[str, str], cookies: Mapping[str, str]) -> Identity:
    access_code = _header(headers, "X-Access-Code")
    if len(access_code) >= 4:
        return Identity(owner_key=normalize_access_code(access_code), source="access_code")

    user_id = _header(headers, "X-User-Id")
    if len(user_id) > 5:
        return Identity(owner_key=user_id, source="user_id")

    cookie_id = (cookies.get(OWNER_COOKIE) or "").strip()
    if cookie_id:
        return Identity(owner_key=cookie_id, source="cookie")

    return Identity(owner_key=str(uuid.uuid4()), source="generated", is_new=True)


def build_owner_cookie(owner_key: str) -> str:
    return (
        f"{OWNER_COOKIE}={owner_key}; Path=/; Max-Age={OWNER_COOKIE_MAX_AGE}; "
        "SameSite=None; Secure"
    )


def generate_access_code(length: int = ACCESS_CODE_LENGTH) -> str:
    return "".join(secrets.choice(_ACCESS_CODE_ALPHABET) for _ in range(length))


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the key from ``Authorization: Bearer <key>`` (scheme case-insensitive)."""
    if not authorization:
        return None
    match = _BEARER.match(authorization.strip())
    if not match:
        return None
    token = match.group(1).strip()
    return token or None


__all__ = [
    "ACCESS_CODE_LENGTH",
    "Identity",
    "OWNER_COOKIE",
    "build_owner_cookie",
    "extract_bearer_token",
    "generate_access_code",
    "normalize_access_code",
    "resolve_identity",
]
