"""Client-side job history that outlives the server's record TTL.

Each access code owns one JSON document (``ocr_job_history_<CODE>.json``)
holding job summaries, most recently added first and capped at
``max_entries``. Entries never expire; they are frozen at their last-known
status once the server forgets the job.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

from legal_ocr.models.batch import utc_now_iso

LOG = logging.getLogger("history_cache")

HISTORY_KEY_PREFIX = "ocr_job_history_"
DEFAULT_MAX_ENTRIES = 50


def history_key(access_code: str) -> str:
    return f"{HISTORY_KEY_PREFIX}{access_code.strip().upper()}"


class LocalHistoryCache:
    def __init__(self, directory: str | os.PathLike[str], *, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        self.directory = Path(directory)
        self.max_entries = max_entries
        self._lock = threading.RLock()

    def _path(self, access_code: str) -> Path:
        return self.directory / f"{history_key(access_code)}.json"

    def get_history(self, access_code: str) -> List[Dict[str, Any]]:
        if not access_code or not access_code.strip():
            return []
        path = self._path(access_code)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, ValueError):
            LOG.warning("history_unreadable", extra={"path": path.name})
            return []
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, dict) and item.get("job_id")]

    def save_job(self, access_code: str, job: Mapping[str, Any]) -> None:
        """Insert or update a job summary; new jobs go to the front."""
        if not access_code or not access_code.strip() or not job.get("job_id"):
            return
        with self._lock:
            history = self.get_history(access_code)
            entry = dict(job)
            entry["saved_at"] = utc_now_iso()
            for position, item in enumerate(history):
                if item.get("job_id") == entry["job_id"]:
                    history[position] = entry
                    break
            else:
                history.insert(0, entry)
            self._write(access_code, history[: self.max_entries])

    def clear(self, access_code: str) -> None:
        if not access_code or not access_code.strip():
            return
        with self._lock:
            self._path(access_code).unlink(missing_ok=True)

    def _write(self, access_code: str, history: List[Dict[str, Any]]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(history, handle, ensure_ascii=False)
            os.replace(tmp_name, self._path(access_code))
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise


def merge_job_lists(
    server_jobs: Iterable[Mapping[str, Any]] | None,
    local_items: Iterable[Mapping[str, Any]],
) -> List[Dict[str, Any]]:
    """Combine the live server list with the local cache.

    Server entries win for any job id present in both. Local entries the server
    no longer knows are appended unchanged. ``server_jobs=None`` means the
    server call failed, in which case the local cache is shown alone.
    """
    merged: List[Dict[str, Any]] = []
    seen: set[str] = set()
    for job in server_jobs or []:
        job_id = job.get("job_id")
        if not job_id or job_id in seen:
            continue
        seen.add(job_id)
        merged.append(dict(job))
    for item in local_items:
        job_id = item.get("job_id")
        if not job_id or job_id in seen:
            continue
        seen.add(job_id)
        merged.append(dict(item))
    merged.sort(key=lambda job: str(job.get("created_at") or ""), reverse=True)
    return merged


__all__ = [
    "DEFAULT_MAX_ENTRIES",
    "HISTORY_KEY_PREFIX",
    "LocalHistoryCache",
    "history_key",
    "merge_job_lists",
]
