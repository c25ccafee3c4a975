from __future__ import annotations

import logging

import httpx
import pytest

from legal_ocr.errors import AuthError, ProviderError, RateLimitError
from legal_ocr.services.http_client import (
    CallResult,
    ErrorKind,
    RetryableHttpClient,
    classify_response,
    extract_provider_message,
    parse_retry_after,
    raise_for_result,
    retry_call,
)
from tests.stubs.provider_stub import API_KEY, BASE_URL, FakeProvider


def _client(provider: FakeProvider, sleeps: list[float], **kwargs) -> RetryableHttpClient:
    return RetryableHttpClient(
        base_url=BASE_URL, transport=provider.transport(), sleep_fn=sleeps.append, **kwargs
    )


@pytest.mark.parametrize(
    "status, kind",
    [(200, None), (201, None), (400, ErrorKind.FATAL), (401, ErrorKind.FATAL), (404, ErrorKind.FATAL),
     (429, ErrorKind.RETRYABLE), (500, ErrorKind.RETRYABLE), (502, ErrorKind.RETRYABLE),
     (503, ErrorKind.RETRYABLE), (504, ErrorKind.RETRYABLE)],
)
def test_classify_response_kinds(status, kind):
    assert classify_response(httpx.Response(status)).kind is kind


def test_parse_retry_after_handles_bad_values():
    assert parse_retry_after("3") == 3.0
    assert parse_retry_after(" 1.5 ") == 1.5
    assert parse_retry_after("-2") == 0.0
    assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") is None
    assert parse_retry_after(None) is None


def test_rate_limit_waits_for_retry_after_hint():
    provider = FakeProvider()
    sleeps: list[float] = []
    provider.script("ocr", httpx.Response(429, headers={"Retry-After": "2"}, json={"message": "slow down"}))
    provider.script("ocr", httpx.Response(200, json={"pages": []}))

    result = _client(provider, sleeps).request("POST", "/ocr", credential=API_KEY, json={})

    assert result.ok
    assert sleeps == [2.0]
    assert provider.calls_to("ocr") == 2


def test_server_errors_back_off_exponentially(caplog):
    caplog.set_level(logging.WARNING)
    provider = FakeProvider()
    provider.set_batch_state("remote-1", status="RUNNING")
    provider.script("batch_status", 503, 503)
    sleeps: list[float] = []

    result = _client(provider, sleeps).request("GET", "/batch/jobs/remote-1", credential=API_KEY)

    assert result.ok
    assert result.response.json()["status"] == "RUNNING"
    assert sleeps == [1.0, 2.0]
    retries = [record for record in caplog.records if record.getMessage() == "provider_retry"]
    assert [record.attempt for record in retries] == [1, 2]
    assert all(record.status_code == 503 for record in retries)


def test_exhausted_retries_return_last_result():
    provider = FakeProvider()
    provider.script("ocr", 500, 500, 500)
    sleeps: list[float] = []

    result = _client(provider, sleeps).request("POST", "/ocr", credential=API_KEY, json={})

    assert not result.ok
    assert result.status_code == 500
    assert provider.calls_to("ocr") == 3
    assert sleeps == [1.0, 2.0]
    with pytest.raises(ProviderError) as excinfo:
        raise_for_result(result, action="OCR request")
    assert excinfo.value.status_code == 500
    assert str(excinfo.value) == "scripted 500"


def test_unauthorized_is_not_retried():
    provider = FakeProvider()
    provider.script("ocr", 401)
    sleeps: list[float] = []

    result = _client(provider, sleeps).request("POST", "/ocr", credential="wrong", json={})

    assert result.kind is ErrorKind.FATAL
    assert provider.calls_to("ocr") == 1
    assert sleeps == []
    with pytest.raises(AuthError, match="Invalid API Key: scripted 401"):
        raise_for_result(result, action="OCR request")


def test_rate_limit_after_retries_raises_with_hint():
    provider = FakeProvider()
    limited = {"headers": {"Retry-After": "4"}, "json": {"message": "too many"}}
    provider.script("ocr", *(httpx.Response(429, **limited) for _ in range(3)))
    sleeps: list[float] = []

    result = _client(provider, sleeps).request("POST", "/ocr", credential=API_KEY, json={})

    assert sleeps == [4.0, 4.0]
    with pytest.raises(RateLimitError) as excinfo:
        raise_for_result(result, action="OCR request")
    assert excinfo.value.retry_after == 4.0
    assert "too many" in str(excinfo.value)


def test_transport_errors_are_retried():
    provider = FakeProvider()
    provider.script("signed_url", httpx.ConnectError("connection refused"))
    sleeps: list[float] = []

    result = _client(provider, sleeps).request("GET", "/files/file-1/url", credential=API_KEY)

    assert result.ok
    assert sleeps == [1.0]


def test_transport_failure_after_retries_becomes_provider_error():
    provider = FakeProvider()
    provider.script("signed_url", *(httpx.ConnectError("down") for _ in range(2)))
    sleeps: list[float] = []

    result = _client(provider, sleeps, max_attempts=2).request("GET", "/files/f/url", credential=API_KEY)

    assert result.response is None
    with pytest.raises(ProviderError, match="Signed URL request failed: down"):
        raise_for_result(result, action="Signed URL request")


def test_request_sends_bearer_credential():
    provider = FakeProvider()
    _client(provider, []).request("GET", "/files/file-1/url", credential="secret-key")

    assert provider.requests[-1].headers["Authorization"] == "Bearer secret-key"


def test_retry_call_stops_on_first_non_retryable_result():
    attempts: list[int] = []
    outcomes = [CallResult(kind=ErrorKind.RETRYABLE), CallResult(response=httpx.Response(400), kind=ErrorKind.FATAL)]

    def _attempt() -> CallResult:
        attempts.append(1)
        return outcomes[len(attempts) - 1]

    result = retry_call(_attempt, max_attempts=5, sleep_fn=lambda _seconds: None)

    assert len(attempts) == 2
    assert result.kind is ErrorKind.FATAL


@pytest.mark.parametrize(
    "payload, expected",
    [
        ({"message": "Invalid file"}, "Invalid file"),
        ({"detail": "Bad model"}, "Bad model"),
        ({"detail": [{"message": "field a"}, {"message": "field b"}]}, "field a; field b"),
        ({"object": "error"}, "Provider error: 400 Bad Request"),
    ],
)
def test_extract_provider_message(payload, expected):
    assert extract_provider_message(httpx.Response(400, json=payload)) == expected


def test_extract_provider_message_without_json_body():
    response = httpx.Response(502, text="<html>bad gateway</html>")
    assert extract_provider_message(response) == "Provider error: 502 Bad Gateway"
