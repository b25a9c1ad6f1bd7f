# annotations_tool/collection.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional

from PyQt5.QtCore import QObject, pyqtSignal

from .store import ErrorCallback, Scheduler, qt_scheduler


logger = logging.getLogger(__name__)


@dataclass
class LoadPolicy:
    """Bounded retry for collection loads: delay is backoff_ms * 2**attempt."""
    retries: int = 2
    backoff_ms: int = 250
    scheduler: Optional[Scheduler] = None

    def delay_for(self, attempt: int) -> int:
        return int(self.backoff_ms) * (2 ** max(0, int(attempt)))

    def schedule(self, delay_ms: int, fn: Callable[[], None]) -> None:
        (self.scheduler or qt_scheduler)(delay_ms, fn)


class ResourceCollection(QObject):
    """
    Ordered records scoped to a parent entity's identity.

    The URL (and the scope it was derived from) must be re-bound with set_url()
    whenever the parent identity changes; load() refuses any other scope.

    Signals:
      - added(record), removed(record), deleted(record)
      - changed(record): relayed from a record's own events
      - loaded(list[record]), load_failed(str)
    """
    added = pyqtSignal(object)
    removed = pyqtSignal(object)
    changed = pyqtSignal(object)
    deleted = pyqtSignal(object)
    loaded = pyqtSignal(object)
    load_failed = pyqtSignal(str)

    name = "records"
    model: Any = None

    def __init__(self, records=None, parent_entity=None, store=None, policy: Optional[LoadPolicy] = None):
        super().__init__()
        self._records: List[Any] = []
        self._store = store
        self.policy = policy or LoadPolicy()
        self.url: Optional[str] = None
        self.scope: Any = None

        if parent_entity is not None:
            self.set_url(parent_entity)
        for rec in (records or []):
            self.add(self._coerce(rec), silent=True)

    # ---------------- Scope ----------------

    def url_for(self, parent_entity) -> str:
        raise NotImplementedError

    def set_url(self, parent_entity) -> None:
        self.scope = getattr(parent_entity, "id", None)
        self.url = self.url_for(parent_entity)

    # ---------------- Access ----------------

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._records))

    def records(self) -> List[Any]:
        return list(self._records)

    def is_empty(self) -> bool:
        return not self._records

    def get(self, rid) -> Optional[Any]:
        if rid is None:
            return None
        for rec in self._records:
            if rec.id == rid:
                return rec
        return None

    # ---------------- Mutation ----------------

    def add(self, record, silent: bool = False):
        existing = self.get(getattr(record, "id", None))
        if existing is not None:
            return existing
        if any(r is record for r in self._records):
            return record

        self._records.append(record)
        events = getattr(record, "events", None)
        if events is not None:
            events.changed.connect(self.changed)
        self._adopt(record)
        if not silent:
            self.added.emit(record)
        return record

    def remove(self, record) -> bool:
        for i, rec in enumerate(self._records):
            if rec is record:
                del self._records[i]
                events = getattr(record, "events", None)
                if events is not None:
                    events.changed.disconnect(self.changed)
                self.removed.emit(record)
                return True
        return False

    def destroy(self, record, on_error: Optional[ErrorCallback] = None) -> None:
        """Remove locally, announce the deletion, then delete the stored row if persisted."""
        if not self.remove(record):
            return
        self.deleted.emit(record)
        events = getattr(record, "events", None)
        if events is not None:
            events.deleted.emit(record)

        if self._store is not None and record.id is not None and self.url:
            self._store.destroy(self.url, record.id, lambda _n: None, on_error or self._log_error)

    def _adopt(self, record) -> None:
        """Hook for subclasses: bind child resources of a newly added record."""

    @property
    def store(self):
        return self._store

    def bind_store(self, store, policy: Optional[LoadPolicy] = None) -> None:
        self._store = store
        if policy is not None:
            self.policy = policy

    def _build(self, row: Dict):
        return self.model.from_dict(row)

    def _coerce(self, rec):
        if isinstance(rec, dict):
            return self._build(rec)
        if self.model is not None and not isinstance(rec, self.model):
            raise ValueError(f"{self.name}: not a {self.model.__name__} nor a row: {rec!r}")
        return rec

    # ---------------- Loading ----------------

    def load(self, scope, on_success: Optional[Callable[[List[Any]], None]] = None,
             on_error: Optional[ErrorCallback] = None) -> None:
        if self.url is None or scope != self.scope:
            raise RuntimeError(
                f"{self.name} url is bound to {self.scope!r}, can not load for {scope!r}"
            )
        if self._store is None:
            raise RuntimeError(f"{self.name} has no store to load from")
        self._fetch(scope, 0, on_success, on_error)

    def _fetch(self, scope, attempt: int, on_success, on_error) -> None:
        url = self.url

        def succeeded(rows):
            if scope != self.scope:
                # Rebound while in flight: rows belong to a previous scope.
                finished(f"{self.name} load for {scope!r} superseded by {self.scope!r}")
                return
            try:
                self._merge_rows(rows)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                finished(f"{self.name}: malformed row ({e})")
                return
            self.loaded.emit(self.records())
            if on_success is not None:
                on_success(self.records())

        def failed(message: str):
            if attempt < self.policy.retries and scope == self.scope:
                delay = self.policy.delay_for(attempt)
                logger.warning("Loading %s failed (%s), retry %d in %d ms",
                               url, message, attempt + 1, delay)
                self.policy.schedule(delay, lambda: self._fetch(scope, attempt + 1, on_success, on_error))
                return
            finished(message)

        def finished(message: str):
            logger.error("Loading %s failed: %s", url, message)
            self.load_failed.emit(message)
            if on_error is not None:
                on_error(message)

        logger.debug("Loading %s (attempt %d)", url, attempt + 1)
        self._store.fetch(url, succeeded, failed)

    def _merge_rows(self, rows: List[Dict]) -> None:
        if rows is None:
            rows = []
        if not isinstance(rows, list):
            raise ValueError(f"expected a list of rows, got {type(rows).__name__}")
        for row in rows:
            if not isinstance(row, dict):
                raise ValueError(f"row is not an object: {row!r}")
            existing = self.get(row.get("id"))
            if existing is not None:
                existing.update_from_dict(row)
                if getattr(existing, "events", None) is None:
                    self.changed.emit(existing)
            else:
                self.add(self._build(row))

    def _log_error(self, message: str) -> None:
        logger.error("%s: %s", self.name, message)
