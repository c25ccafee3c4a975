from __future__ import annotations

from typing import List

import pytest
from fastapi.testclient import TestClient

from legal_ocr.config import AppConfig, get_config
from legal_ocr.main import create_app
from legal_ocr.services.batch_orchestrator import BatchJobOrchestrator
from legal_ocr.services.job_store import InMemoryKeyValue, JobStore
from legal_ocr.services.metrics import NullMetrics
from legal_ocr.services.ocr_gateway import RemoteOcrGateway
from tests.stubs.provider_stub import FakeProvider, build_gateway


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ENABLE_METRICS", "false")
    monkeypatch.setenv("JOB_STORE_BACKEND", "memory")
    get_config.cache_clear()
    yield
    get_config.cache_clear()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def gateway(provider: FakeProvider, sleeps: List[float]) -> RemoteOcrGateway:
    return build_gateway(provider, sleeps=sleeps)


@pytest.fixture
def store() -> JobStore:
    return JobStore(InMemoryKeyValue())


@pytest.fixture
def orchestrator(gateway: RemoteOcrGateway, store: JobStore) -> BatchJobOrchestrator:
    return BatchJobOrchestrator(gateway=gateway, store=store, metrics=NullMetrics(), upload_concurrency=2)


@pytest.fixture
def app(gateway: RemoteOcrGateway, store: JobStore):
    return create_app(config=AppConfig(), gateway=gateway, job_store=store, metrics=NullMetrics())


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
