from __future__ import annotations

import string

from legal_ocr.services.identity import (
    build_owner_cookie,
    extract_bearer_token,
    generate_access_code,
    resolve_identity,
)


def test_access_code_takes_priority_and_is_upper_cased():
    identity = resolve_identity(
        {"X-Access-Code": " ab12cd ", "X-User-Id": "user-123456"}, {"jus_user_id": "cookie-id"}
    )
    assert identity.owner_key == "AB12CD"
    assert identity.source == "access_code"
    assert identity.is_new is False


def test_short_access_code_falls_through_to_user_id():
    identity = resolve_identity({"X-Access-Code": "abc", "X-User-Id": "user-123456"}, {})
    assert identity.owner_key == "user-123456"
    assert identity.source == "user_id"


def test_short_user_id_falls_through_to_cookie():
    identity = resolve_identity({"x-user-id": "12345"}, {"jus_user_id": "cookie-id"})
    assert identity.owner_key == "cookie-id"
    assert identity.source == "cookie"


def test_fresh_identity_is_generated_and_flagged():
    first = resolve_identity({}, {})
    second = resolve_identity({}, {})
    assert first.is_new and second.is_new
    assert first.source == "generated"
    assert first.owner_key != second.owner_key


def test_owner_cookie_attributes():
    cookie = build_owner_cookie("owner-1")
    assert cookie.startswith("jus_user_id=owner-1; ")
    for attribute in ("Path=/", "Max-Age=31536000", "SameSite=None", "Secure"):
        assert attribute in cookie


def test_generate_access_code_alphabet():
    code = generate_access_code()
    assert len(code) == 6
    assert set(code) <= set(string.digits + string.ascii_uppercase)


def test_extract_bearer_token():
    assert extract_bearer_token("Bearer abc") == "abc"
    assert extract_bearer_token("bearer   abc  ") == "abc"
    assert extract_bearer_token("Basic abc") is None
    assert extract_bearer_token("Bearer ") is None
    assert extract_bearer_token(None) is None
