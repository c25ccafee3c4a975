from __future__ import annotations

import json

from legal_ocr.services.history_cache import LocalHistoryCache, history_key, merge_job_lists


def test_history_key_uses_upper_case_code():
    assert history_key(" abc123 ") == "ocr_job_history_ABC123"


def test_save_job_inserts_newest_first_and_upserts(tmp_path):
    cache = LocalHistoryCache(tmp_path)
    cache.save_job("abc123", {"job_id": "batch_1", "status": "processing"})
    cache.save_job("abc123", {"job_id": "batch_2", "status": "processing"})
    cache.save_job("ABC123", {"job_id": "batch_1", "status": "completed"})

    history = cache.get_history("abc123")

    assert [(item["job_id"], item["status"]) for item in history] == [
        ("batch_2", "processing"),
        ("batch_1", "completed"),
    ]
    assert all("saved_at" in item for item in history)
    assert (tmp_path / "ocr_job_history_ABC123.json").exists()


def test_history_is_capped(tmp_path):
    cache = LocalHistoryCache(tmp_path, max_entries=3)
    for index in range(5):
        cache.save_job("CODE", {"job_id": f"batch_{index}"})

    assert [item["job_id"] for item in cache.get_history("CODE")] == ["batch_4", "batch_3", "batch_2"]


def test_missing_or_corrupt_history_reads_as_empty(tmp_path):
    cache = LocalHistoryCache(tmp_path)
    assert cache.get_history("NONE") == []

    (tmp_path / "ocr_job_history_BROKEN.json").write_text("{oops", encoding="utf-8")
    assert cache.get_history("BROKEN") == []

    (tmp_path / "ocr_job_history_MIXED.json").write_text(
        json.dumps([{"job_id": "batch_1"}, "junk", {"status": "no id"}]), encoding="utf-8"
    )
    assert cache.get_history("MIXED") == [{"job_id": "batch_1"}]


def test_blank_codes_and_jobs_without_id_are_ignored(tmp_path):
    cache = LocalHistoryCache(tmp_path / "history")
    cache.save_job("  ", {"job_id": "batch_1"})
    cache.save_job("CODE", {"status": "processing"})

    assert not (tmp_path / "history").exists()


def test_clear_removes_history(tmp_path):
    cache = LocalHistoryCache(tmp_path)
    cache.save_job("CODE", {"job_id": "batch_1"})
    cache.clear("code")

    assert cache.get_history("CODE") == []


def test_merge_prefers_server_status_and_keeps_local_only_jobs():
    server = [
        {"job_id": "batch_2", "status": "completed", "created_at": "2024-06-02T00:00:00Z"},
        {"job_id": "batch_3", "status": "processing", "created_at": "2024-06-03T00:00:00Z"},
    ]
    local = [
        {"job_id": "batch_2", "status": "processing", "created_at": "2024-06-02T00:00:00Z"},
        {"job_id": "batch_1", "status": "completed", "created_at": "2024-06-01T00:00:00Z"},
    ]

    merged = merge_job_lists(server, local)

    assert [(job["job_id"], job["status"]) for job in merged] == [
        ("batch_3", "processing"),
        ("batch_2", "completed"),
        ("batch_1", "completed"),
    ]


def test_merge_without_server_list_uses_local_cache():
    local = [{"job_id": "batch_1", "created_at": "2024-06-01T00:00:00Z"}]

    assert merge_job_lists(None, local) == local
