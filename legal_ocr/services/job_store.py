"""Key-value persistence of batch job records.

One entry per ``(owner_key, job_id)`` under the key ``batch:<owner>:<job id>``
holds the full record as JSON and expires after a fixed TTL (7 days by
default). Two key-value backends are provided:

* `InMemoryKeyValue` for tests and single-process deployments.
* `FileKeyValue` which writes one JSON document per key into a directory, using
  atomic replace so readers never observe half-written files.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Protocol, Tuple

from legal_ocr.config import AppConfig
from legal_ocr.models.batch import BatchJobRecord, record_from_dict, record_to_dict
from legal_ocr.utils.logging_utils import owner_fingerprint, structured_log

LOG = logging.getLogger("job_store")

DEFAULT_TTL_SECONDS = 7 * 24 * 60 * 60


class KeyValueBackend(Protocol):
    def put(self, key: str, value: str, ttl_seconds: int) -> None: ...

    def get(self, key: str) -> str | None: ...

    def list_keys(self, prefix: str) -> List[str]: ...


class InMemoryKeyValue(KeyValueBackend):
    """Thread-safe dict with per-key expiry."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._items: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.RLock()
        self._clock = clock

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._items[key] = (value, self._clock() + ttl_seconds)

    def get(self, key: str) -> str | None:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            value, expires_at = item
            if expires_at <= self._clock():
                del self._items[key]
                return None
            return value

    def list_keys(self, prefix: str) -> List[str]:
        with self._lock:
            now = self._clock()
            expired = [key for key, (_, expires_at) in self._items.items() if expires_at <= now]
            for key in expired:
                del self._items[key]
            return sorted(key for key in self._items if key.startswith(prefix))


def _encode_key(key: str) -> str:
    return base64.urlsafe_b64encode(key.encode("utf-8")).decode("ascii")


def _decode_key(name: str) -> str | None:
    try:
        return base64.urlsafe_b64decode(name.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None


class FileKeyValue(KeyValueBackend):
    """Directory-backed store: one ``<b64 key>.json`` file per entry."""

    def __init__(self, directory: str | os.PathLike[str], *, clock: Callable[[], float] = time.time) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._clock = clock

    def _path(self, key: str) -> Path:
        return self.directory / f"{_encode_key(key)}.json"

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        document = json.dumps({"expires_at": self._clock() + ttl_seconds, "value": value})
        with self._lock:
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(document)
                os.replace(tmp_name, self._path(key))
            except OSError:
                Path(tmp_name).unlink(missing_ok=True)
                raise

    def get(self, key: str) -> str | None:
        path = self._path(key)
        with self._lock:
            try:
                document = json.loads(path.read_text(encoding="utf-8"))
            except FileNotFoundError:
                return None
            except (OSError, json.JSONDecodeError):
                LOG.warning("job_store_unreadable_entry", extra={"path": path.name})
                return None
            if not isinstance(document, dict) or float(document.get("expires_at", 0)) <= self._clock():
                path.unlink(missing_ok=True)
                return None
            value = document.get("value")
            return value if isinstance(value, str) else None

    def list_keys(self, prefix: str) -> List[str]:
        keys: List[str] = []
        for path in self.directory.glob("*.json"):
            key = _decode_key(path.stem)
            if key is None or not key.startswith(prefix):
                continue
            if self.get(key) is not None:
                keys.append(key)
        return sorted(keys)


def job_key(owner_key: str, job_id: str) -> str:
    return f"batch:{owner_key}:{job_id}"


class JobStore:
    """Persist and look up `BatchJobRecord` values per owner namespace."""

    def __init__(self, backend: KeyValueBackend, *, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        self.backend = backend
        self.ttl_seconds = ttl_seconds

    def save(self, record: BatchJobRecord) -> BatchJobRecord:
        payload = json.dumps(record_to_dict(record), ensure_ascii=False)
        self.backend.put(job_key(record.owner_key, record.id), payload, self.ttl_seconds)
        return record

    def get(self, owner_key: str, job_id: str) -> BatchJobRecord | None:
        raw = self.backend.get(job_key(owner_key, job_id))
        if raw is None:
            return None
        try:
            record = record_from_dict(json.loads(raw))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            structured_log(
                LOG,
                logging.WARNING,
                "job_record_malformed",
                job_id=job_id,
                owner=owner_fingerprint(owner_key),
                error_type=type(exc).__name__,
            )
            return None
        # Owner keys may contain ":", so a key prefix alone does not pin the owner.
        if record.owner_key != owner_key:
            return None
        return record

    def list_jobs(self, owner_key: str) -> List[BatchJobRecord]:
        """All readable records of an owner, newest first."""
        records: List[BatchJobRecord] = []
        prefix = job_key(owner_key, "")
        for key in self.backend.list_keys(prefix):
            record = self.get(owner_key, key[len(prefix):])
            if record is not None:
                records.append(record)
        records.sort(key=lambda record: record.created_at, reverse=True)
        return records


def create_job_store_from_config(config: AppConfig) -> JobStore:
    """Instantiate the configured backend wrapped in a `JobStore`."""
    backend_name = config.job_store_backend.strip().lower()
    backend: KeyValueBackend
    if backend_name == "file":
        backend = FileKeyValue(config.job_store_dir)
    else:
        backend = InMemoryKeyValue()
    structured_log(LOG, logging.INFO, "job_store_backend", component=backend_name)
    return JobStore(backend, ttl_seconds=config.batch_job_ttl_seconds)


__all__ = [
    "DEFAULT_TTL_SECONDS",
    "FileKeyValue",
    "InMemoryKeyValue",
    "JobStore",
    "KeyValueBackend",
    "create_job_store_from_config",
    "job_key",
]
