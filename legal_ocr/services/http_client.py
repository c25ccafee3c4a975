"""Rate-limit aware HTTP access to the OCR provider.

Each attempt produces a `CallResult` instead of raising: the result is either a
successful response or an error tagged RETRYABLE (HTTP 429, 5xx, transport
failure) or FATAL (any other 4xx). `retry_call` is the retry-loop combinator; it
inspects the kind, waits for the provider's ``Retry-After`` hint when present
and otherwise backs off exponentially (1s, 2s, 4s, ...). Only the final result
is converted into an exception, by `raise_for_result`.
"""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

import httpx
from tenacity import RetryCallState, Retrying, retry_if_result, stop_after_attempt

from legal_ocr.errors import AuthError, ProviderError, RateLimitError
from legal_ocr.utils.logging_utils import structured_log

_LOG = logging.getLogger("ocr_provider.http")
_RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


class ErrorKind(str, Enum):
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass(slots=True)
class CallResult:
    response: httpx.Response | None = None
    transport_error: Exception | None = None
    kind: ErrorKind | None = None
    retry_after: float | None = None

    @property
    def ok(self) -> bool:
        return self.kind is None and self.response is not None

    @property
    def retryable(self) -> bool:
        return self.kind is ErrorKind.RETRYABLE

    @property
    def status_code(self) -> int | None:
        return None if self.response is None else self.response.status_code


def parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return max(0.0, seconds)


def classify_response(response: httpx.Response) -> CallResult:
    if response.is_success:
        return CallResult(response=response)
    if response.status_code in _RETRYABLE_STATUSES:
        retry_after = None
        if response.status_code == 429:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
        return CallResult(response=response, kind=ErrorKind.RETRYABLE, retry_after=retry_after)
    return CallResult(response=response, kind=ErrorKind.FATAL)


def _backoff_wait(base_delay: float) -> Callable[[RetryCallState], float]:
    def _wait(state: RetryCallState) -> float:
        result: CallResult | None = state.outcome.result() if state.outcome else None
        if result is not None and result.retry_after is not None:
            return result.retry_after
        return base_delay * (2 ** (state.attempt_number - 1))

    return _wait


def retry_call(
    attempt: Callable[[], CallResult],
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    sleep_fn: Callable[[float], None] = time.sleep,
    label: str = "provider_call",
) -> CallResult:
    """Run ``attempt`` until it is not retryable or attempts are exhausted."""

    def _before_sleep(state: RetryCallState) -> None:
        result: CallResult = state.outcome.result()  # type: ignore[union-attr]
        delay = state.next_action.sleep if state.next_action else None
        structured_log(
            _LOG,
            logging.WARNING,
            "provider_retry",
            component=label,
            attempt=state.attempt_number,
            status_code=result.status_code,
            error_type=type(result.transport_error).__name__ if result.transport_error else None,
            delay_seconds=delay,
        )

    retrying = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=_backoff_wait(base_delay),
        retry=retry_if_result(lambda result: result.retryable),
        sleep=sleep_fn,
        before_sleep=_before_sleep,
        retry_error_callback=lambda state: state.outcome.result(),  # type: ignore[union-attr]
    )
    return retrying(attempt)


def extract_provider_message(response: httpx.Response) -> str:
    """Best-effort extraction of the provider's error text."""
    default = f"Provider error: {response.status_code} {response.reason_phrase}".strip()
    try:
        payload = response.json()
    except (json.JSONDecodeError, ValueError):
        return default
    if not isinstance(payload, dict):
        return default
    message = payload.get("message")
    if isinstance(message, str) and message:
        return message
    detail = payload.get("detail")
    if isinstance(detail, str) and detail:
        return detail
    if isinstance(detail, list) and detail:
        parts = [str(item.get("message") if isinstance(item, dict) else item) for item in detail]
        return "; ".join(part for part in parts if part and part != "None") or default
    return default


def raise_for_result(result: CallResult, *, action: str) -> httpx.Response:
    """Return the successful response or raise the matching provider error."""
    if result.ok:
        return result.response  # type: ignore[return-value]
    if result.response is None:
        raise ProviderError(f"{action} failed: {result.transport_error}")
    status = result.response.status_code
    message = extract_provider_message(result.response)
    if status == 401:
        raise AuthError(f"Invalid API Key: {message}")
    if status == 429:
        raise RateLimitError(f"Rate limit exceeded: {message}", retry_after=result.retry_after)
    raise ProviderError(message, status_code=status)


class RetryableHttpClient:
    """httpx client bound to the provider base URL with retry semantics."""

    def __init__(
        self,
        *,
        base_url: str,
        timeout: float = 120.0,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        client: httpx.Client | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep_fn: Callable[[float], None] = time.sleep,
    ) -> None:
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep_fn = sleep_fn
        self._client = client or httpx.Client(
            base_url=base_url.rstrip("/"), timeout=timeout, transport=transport
        )

    def request(
        self,
        method: str,
        path: str,
        *,
        credential: str,
        **kwargs: Any,
    ) -> CallResult:
        headers = dict(kwargs.pop("headers", None) or {})
        headers["Authorization"] = f"Bearer {credential}"

        def _attempt() -> CallResult:
            try:
                response = self._client.request(method, path, headers=headers, **kwargs)
            except httpx.TransportError as exc:
                return CallResult(transport_error=exc, kind=ErrorKind.RETRYABLE)
            return classify_response(response)

        return retry_call(
            _attempt,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            sleep_fn=self._sleep_fn,
            label=f"{method} {path.split('/')[1] if '/' in path else path}",
        )

    def close(self) -> None:
        self._client.close()


__all__ = [
    "CallResult",
    "ErrorKind",
    "RetryableHttpClient",
    "classify_response",
    "extract_provider_message",
    "parse_retry_after",
    "raise_for_result",
    "retry_call",
]
