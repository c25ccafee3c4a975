from __future__ import annotations

from types import SimpleNamespace

import legal_ocr.runtime_server as runtime_server


def test_worker_count_prefers_env(monkeypatch):
    monkeypatch.setenv("UVICORN_WORKERS", "4")
    assert runtime_server._worker_count() == 4
    monkeypatch.setenv("UVICORN_WORKERS", "invalid")
    monkeypatch.setenv("JOB_STORE_BACKEND", "file")
    monkeypatch.setattr(runtime_server.multiprocessing, "cpu_count", lambda: 6)
    assert runtime_server._worker_count() == 6


def test_memory_backend_runs_single_worker(monkeypatch):
    monkeypatch.delenv("UVICORN_WORKERS", raising=False)
    monkeypatch.setenv("JOB_STORE_BACKEND", "memory")
    monkeypatch.setattr(runtime_server.multiprocessing, "cpu_count", lambda: 6)
    assert runtime_server._worker_count() == 1


def test_main_sets_env_and_invokes_uvicorn(monkeypatch):
    monkeypatch.setattr(runtime_server, "_worker_count", lambda: 2)
    monkeypatch.setenv("PORT", "9090")
    monkeypatch.delenv("HOST", raising=False)
    monkeypatch.delenv("FASTAPI_APP", raising=False)
    recorded: dict[str, object] = {}

    def _fake_run(app, *, host, port, factory, workers, lifespan):
        recorded.update(
            {
                "app": app,
                "host": host,
                "port": port,
                "factory": factory,
                "workers": workers,
                "lifespan": lifespan,
            }
        )

    monkeypatch.setattr(runtime_server, "uvicorn", SimpleNamespace(run=_fake_run))
    runtime_server.main()
    assert recorded["app"] == "legal_ocr.main:create_app"
    assert recorded["host"] == "0.0.0.0"
    assert recorded["port"] == 9090
    assert recorded["workers"] == 2
    assert recorded["factory"] is True


def test_explicit_arguments_win(monkeypatch):
    recorded: dict[str, object] = {}
    monkeypatch.setattr(
        runtime_server, "uvicorn", SimpleNamespace(run=lambda app, **kwargs: recorded.update(kwargs))
    )

    runtime_server.main(host="127.0.0.1", port=8001, workers=3)

    assert (recorded["host"], recorded["port"], recorded["workers"]) == ("127.0.0.1", 8001, 3)
