"""Runtime launcher for the legal OCR API."""

from __future__ import annotations

import multiprocessing
import os

import uvicorn


def _worker_count() -> int:
    explicit = os.getenv("UVICORN_WORKERS")
    if explicit:
        try:
            value = int(explicit)
            if value > 0:
                return value
        except ValueError:
            pass
    # In-memory job records are per process.
    if os.getenv("JOB_STORE_BACKEND", "memory").strip().lower() == "memory":
        return 1
    return max(1, multiprocessing.cpu_count() or 1)


def main(*, host: str | None = None, port: int | None = None, workers: int | None = None) -> None:
    uvicorn.run(
        os.getenv("FASTAPI_APP", "legal_ocr.main:create_app"),
        host=host or os.getenv("HOST", "0.0.0.0"),
        port=port or int(os.getenv("PORT", "8080")),
        factory=True,
        workers=workers or _worker_count(),
        lifespan="on",
    )


if __name__ == "__main__":  # pragma: no cover - exercised in runtime
    main()
