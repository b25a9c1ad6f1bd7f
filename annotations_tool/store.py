# annotations_tool/store.py
from __future__ import annotations

import json
import logging
import os
import tempfile
from typing import Any, Callable, Dict, List, Optional

from PyQt5.QtCore import QTimer


logger = logging.getLogger(__name__)

# scheduler(delay_ms, fn): run fn later on the event loop
Scheduler = Callable[[int, Callable[[], None]], None]
SuccessCallback = Callable[[Any], None]
ErrorCallback = Callable[[str], None]


def qt_scheduler(delay_ms: int, fn: Callable[[], None]) -> None:
    QTimer.singleShot(max(0, int(delay_ms)), fn)


class StoreError(Exception):
    """Raised (and reported through on_error) when a resource can't be read or written."""


# -----------------------------
# Atomic file helpers
# -----------------------------

def _atomic_write_text(path: str, text: str, encoding: str = "utf-8") -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    d = os.path.dirname(path)
    fd, tmp_path = tempfile.mkstemp(prefix=".tmp_", dir=d)
    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


def _atomic_write_json(path: str, payload: Any) -> None:
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    _atomic_write_text(path, text + "\n")


def _read_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


# -----------------------------
# Resource store
# -----------------------------

class JsonFileStore:
    """
    Resource store backed by JSON files under a data root.

    A resource URL such as "videos/3/tracks" maps to <root>/videos/3/tracks.json,
    a list of row dicts. Every operation completes asynchronously: the work runs
    inside a scheduled callback and the outcome goes to on_success or on_error.
    """

    def __init__(self, root_dir: str, scheduler: Optional[Scheduler] = None):
        if not root_dir:
            raise ValueError("JsonFileStore requires a root directory")
        self.root_dir = root_dir
        self._schedule: Scheduler = scheduler or qt_scheduler

    # ---------------- Paths ----------------

    def path_for(self, url: str) -> str:
        parts = [p for p in str(url).strip("/").split("/") if p]
        if not parts or any(p in (".", "..") for p in parts):
            raise StoreError(f"Invalid resource url: {url!r}")
        return os.path.join(self.root_dir, *parts) + ".json"

    def _read_rows(self, url: str) -> List[Dict]:
        path = self.path_for(url)
        if not os.path.exists(path):
            return []
        try:
            data = _read_json(path)
        except (OSError, ValueError) as e:
            raise StoreError(f"Can not read {path}: {e}") from e
        if not isinstance(data, list):
            raise StoreError(f"{path} does not contain a list")
        return data

    def _write_rows(self, url: str, rows: List[Dict]) -> None:
        try:
            _atomic_write_json(self.path_for(url), rows)
        except OSError as e:
            raise StoreError(f"Can not write {url}: {e}") from e

    # ---------------- Operations ----------------

    def fetch(self, url: str, on_success: SuccessCallback, on_error: ErrorCallback) -> None:
        self._run(lambda: self._read_rows(url), on_success, on_error)

    def create(self, url: str, payload: Dict, on_success: SuccessCallback, on_error: ErrorCallback) -> None:
        """POST: append the payload under a freshly assigned numeric id."""
        def work():
            rows = self._read_rows(url)
            ids = [int(r["id"]) for r in rows if isinstance(r.get("id"), int)]
            row = dict(payload)
            row["id"] = (max(ids) + 1) if ids else 1
            rows.append(row)
            self._write_rows(url, rows)
            return row

        self._run(work, on_success, on_error)

    def update(self, url: str, rid: Any, payload: Dict, on_success: SuccessCallback, on_error: ErrorCallback) -> None:
        """
        PUT: replace (or insert) the row stored under rid.

        A client-local (non-integer) rid is answered with the next numeric id, the
        way the server answers a PUT for a resource it hasn't stored yet.
        """
        def work():
            rows = self._read_rows(url)
            row = dict(payload)
            row["id"] = rid
            if not isinstance(rid, int):
                ids = [int(r["id"]) for r in rows if isinstance(r.get("id"), int)]
                row["id"] = (max(ids) + 1) if ids else 1
            for i, existing in enumerate(rows):
                if existing.get("id") == row["id"]:
                    rows[i] = row
                    break
            else:
                rows.append(row)
            self._write_rows(url, rows)
            return row

        self._run(work, on_success, on_error)

    def destroy(self, url: str, rid: Any, on_success: SuccessCallback, on_error: ErrorCallback) -> None:
        def work():
            rows = self._read_rows(url)
            kept = [r for r in rows if r.get("id") != rid]
            self._write_rows(url, kept)
            return len(rows) - len(kept)

        self._run(work, on_success, on_error)

    def _run(self, work: Callable[[], Any], on_success: SuccessCallback, on_error: ErrorCallback) -> None:
        def complete():
            try:
                result = work()
            except StoreError as e:
                logger.error("%s", e)
                on_error(str(e))
                return
            on_success(result)

        self._schedule(0, complete)
