from __future__ import annotations

from fastapi import FastAPI
from prometheus_client import REGISTRY

from legal_ocr.services.metrics import NullMetrics, PrometheusMetrics


def _sample(name: str, labels: dict) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_prometheus_counter_and_histogram_record_values():
    metrics = PrometheusMetrics.default()
    counter_labels = {"stage": "unit", "name": "ocr_requests_total", "outcome": "error"}
    latency_labels = {"stage": "unit", "name": "ocr_latency_seconds"}
    before_count = _sample("legal_ocr_events_total", counter_labels)
    before_latency = _sample("legal_ocr_latency_seconds_count", latency_labels)

    metrics.increment("ocr_requests_total", 2, stage="unit", outcome="error")
    metrics.observe_latency("ocr_latency_seconds", 0.25, stage="unit")
    with metrics.time("ocr_latency_seconds", stage="unit"):
        pass

    assert _sample("legal_ocr_events_total", counter_labels) == before_count + 2
    assert _sample("legal_ocr_latency_seconds_count", latency_labels) == before_latency + 2


def test_default_instance_is_shared():
    assert PrometheusMetrics.default() is PrometheusMetrics.default()


def test_instrument_app_is_idempotent():
    app = FastAPI()

    first = PrometheusMetrics.instrument_app(app)
    second = PrometheusMetrics.instrument_app(app)

    assert first is second
    assert app.state.metrics is first
    assert [route.path for route in app.routes].count("/metrics") == 1


def test_null_metrics_accepts_calls():
    metrics = NullMetrics()
    metrics.increment("anything", stage="x")
    metrics.observe_latency("anything", 1.0, stage="x")
