from __future__ import annotations

from legal_ocr.config import AppConfig
from legal_ocr.models.batch import BatchFile, BatchFileResult, BatchJobRecord, BatchStatus
from legal_ocr.services.job_store import (
    FileKeyValue,
    InMemoryKeyValue,
    JobStore,
    create_job_store_from_config,
    job_key,
)


class _Clock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _record(job_id: str, owner: str = "OWNER1", created_at: str = "2024-05-01T10:00:00.000Z") -> BatchJobRecord:
    return BatchJobRecord(
        id=job_id,
        owner_key=owner,
        files=[BatchFile("a.pdf", "file-a"), BatchFile("b.pdf", "file-b")],
        remote_job_id="remote-1",
        created_at=created_at,
        updated_at=created_at,
    )


def test_in_memory_entries_expire_after_ttl():
    clock = _Clock()
    backend = InMemoryKeyValue(clock=clock)
    backend.put("batch:o:1", "value", ttl_seconds=10)

    clock.now += 9
    assert backend.get("batch:o:1") == "value"
    assert backend.list_keys("batch:o:") == ["batch:o:1"]

    clock.now += 2
    assert backend.get("batch:o:1") is None
    assert backend.list_keys("batch:o:") == []


def test_job_store_round_trips_records_with_results():
    store = JobStore(InMemoryKeyValue())
    record = _record("batch_1")
    record.status = BatchStatus.COMPLETED
    record.results = [
        BatchFileResult("a.pdf", "# A", custom_id="0"),
        BatchFileResult("b.pdf", "", error="Failed to parse result"),
    ]
    store.save(record)

    loaded = store.get("OWNER1", "batch_1")

    assert loaded == record


def test_job_store_namespaces_by_owner():
    store = JobStore(InMemoryKeyValue())
    store.save(_record("batch_1", owner="OWNER1"))

    assert store.get("OWNER2", "batch_1") is None
    assert store.list_jobs("OWNER2") == []
    assert job_key("OWNER1", "batch_1") == "batch:OWNER1:batch_1"


def test_owner_keys_containing_colons_stay_separate():
    store = JobStore(InMemoryKeyValue())
    store.save(_record("batch_1_x", owner="ABCD:EVE"))

    assert store.list_jobs("ABCD") == []
    assert store.get("ABCD", "EVE:batch_1_x") is None
    assert [job.id for job in store.list_jobs("ABCD:EVE")] == ["batch_1_x"]


def test_list_jobs_is_newest_first():
    store = JobStore(InMemoryKeyValue())
    store.save(_record("batch_old", created_at="2024-05-01T10:00:00.000Z"))
    store.save(_record("batch_new", created_at="2024-06-01T10:00:00.000Z"))
    store.save(_record("batch_mid", created_at="2024-05-15T10:00:00.000Z"))

    assert [record.id for record in store.list_jobs("OWNER1")] == ["batch_new", "batch_mid", "batch_old"]


def test_malformed_entries_are_skipped(caplog):
    backend = InMemoryKeyValue()
    store = JobStore(backend)
    store.save(_record("batch_ok"))
    backend.put(job_key("OWNER1", "batch_bad"), "{not json", 60)
    backend.put(job_key("OWNER1", "batch_partial"), '{"id": "batch_partial"}', 60)

    assert store.get("OWNER1", "batch_bad") is None
    assert [record.id for record in store.list_jobs("OWNER1")] == ["batch_ok"]
    assert any(record.getMessage() == "job_record_malformed" for record in caplog.records)


def test_store_ttl_is_applied_to_records():
    clock = _Clock()
    store = JobStore(InMemoryKeyValue(clock=clock), ttl_seconds=60)
    store.save(_record("batch_1"))

    clock.now += 61

    assert store.get("OWNER1", "batch_1") is None


def test_file_backend_persists_across_instances(tmp_path):
    clock = _Clock()
    first = JobStore(FileKeyValue(tmp_path / "jobs", clock=clock))
    first.save(_record("batch_1"))

    second = JobStore(FileKeyValue(tmp_path / "jobs", clock=clock))

    assert second.get("OWNER1", "batch_1") == _record("batch_1")
    assert [record.id for record in second.list_jobs("OWNER1")] == ["batch_1"]
    assert list((tmp_path / "jobs").glob("*.tmp")) == []


def test_file_backend_expires_and_ignores_garbage(tmp_path):
    clock = _Clock()
    backend = FileKeyValue(tmp_path, clock=clock)
    backend.put("batch:o:1", "value", ttl_seconds=5)
    backend.put("batch:o:2", "other", ttl_seconds=50)
    (tmp_path / "not-base64!.json").write_text("{}", encoding="utf-8")

    clock.now += 10

    assert backend.get("batch:o:1") is None
    assert backend.list_keys("batch:o:") == ["batch:o:2"]


def test_create_job_store_from_config_file_backend(monkeypatch, tmp_path):
    monkeypatch.setenv("JOB_STORE_BACKEND", "file")
    monkeypatch.setenv("JOB_STORE_DIR", str(tmp_path / "store"))
    monkeypatch.setenv("BATCH_JOB_TTL_SECONDS", "120")

    store = create_job_store_from_config(AppConfig())

    assert isinstance(store.backend, FileKeyValue)
    assert store.ttl_seconds == 120
    assert (tmp_path / "store").is_dir()
