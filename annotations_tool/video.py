# annotations_tool/video.py
from __future__ import annotations

import itertools
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from PyQt5.QtCore import QObject, pyqtSignal

from .collection import LoadPolicy
from .domain import Access, Categories, Scales, Tracks, User, is_json_value, parse_json_string
from .readiness import ReadinessBarrier


logger = logging.getLogger(__name__)

_CLIENT_IDS = itertools.count(1)

DEPENDENTS = ("tracks", "categories", "scales")
TIMESTAMP_FIELDS = ("created_at", "updated_at", "deleted_at")
AUTHOR_FIELDS = ("created_by", "updated_by", "deleted_by")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _parse_timestamp(value: Any) -> Optional[float]:
    """ISO-8601 text -> epoch milliseconds. Numbers pass through, bad text is dropped."""
    if value is None or _is_number(value):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp() * 1000.0
    except ValueError:
        logger.warning("Can not parse timestamp %r", value)
        return None


class Video(QObject):
    """
    The video being annotated.

    Owns the tracks, categories and scales collections (each scoped to the video id)
    and the id lifecycle: a video built without an id gets a client-local one and is
    marked to_create; once the store answers with a persisted id, change_identity()
    rebinds the collections and the readiness barrier loads them.

    Signals:
      - ready(id): tracks, categories and scales are all loaded for id
      - load_failed(id, collection_name, message)
      - changed(video), invalid(message)
    """
    ready = pyqtSignal(object)
    load_failed = pyqtSignal(object, str, str)
    changed = pyqtSignal(object)
    invalid = pyqtSignal(str)

    url = "videos"

    def __init__(self, attrs: Optional[Dict] = None, store=None, policy: Optional[LoadPolicy] = None, parent=None):
        super().__init__(parent)
        attrs = dict(attrs or {})

        self.cid = f"c{next(_CLIENT_IDS)}"
        # Every save goes through PUT, also for a video the server hasn't seen yet.
        self.no_post = True
        self.to_create = attrs.get("id") is None
        self.id = self.cid if self.to_create else attrs.pop("id")
        attrs.pop("id", None)
        self._store = store

        self.attributes: Dict[str, Any] = {"access": Access.PUBLIC}

        self.tracks = self._dependent(Tracks, attrs.pop("tracks", None), store, policy)
        self.categories = self._dependent(Categories, attrs.pop("categories", None), store, policy)
        self.scales = self._dependent(Scales, attrs.pop("scales", None), store, policy)

        self.barrier = ReadinessBarrier(
            {"tracks": self.tracks, "categories": self.categories, "scales": self.scales}, self
        )
        self.barrier.ready.connect(self.ready)
        self.barrier.failed.connect(self.load_failed)

        error = self.validate(attrs)
        if error:
            raise ValueError(error)
        self.attributes.update(attrs)

    def _dependent(self, cls, given, store, policy):
        if isinstance(given, cls):
            given.bind_store(store, policy)
            given.set_url(self)
            return given
        records = given if isinstance(given, list) else []
        return cls(records=records, parent_entity=self, store=store, policy=policy)

    # ---------------- Attributes ----------------

    def get(self, key: str, default: Any = None) -> Any:
        if key == "id":
            return self.id
        if key in DEPENDENTS:
            return getattr(self, key)
        return self.attributes.get(key, default)

    def is_persisted(self) -> bool:
        return not self.to_create

    def validate(self, attrs: Dict) -> Optional[str]:
        """
        Checks candidate attributes without touching the video.
        Returns the first problem found as a message, or None when attrs are acceptable.
        """
        new_id = attrs.get("id")
        if new_id is not None and new_id != self.id and self.is_persisted():
            return "'id' attribute can not be modified once persisted!"

        for name, cls in (("tracks", Tracks), ("categories", Categories), ("scales", Scales)):
            value = attrs.get(name)
            if value is not None and not isinstance(value, cls):
                return f"'{name}' attribute must be an instance of '{cls.__name__}'"

        if "access" in attrs and attrs["access"] not in set(Access):
            return "'access' attribute must be one of the ACCESS values"

        if attrs.get("tags") and not is_json_value(attrs["tags"]):
            return "'tags' attribute must be a string or a JSON object"

        for key in AUTHOR_FIELDS:
            value = attrs.get(key)
            if value is not None and not (_is_number(value) or isinstance(value, User)):
                return f"'{key}' attribute must be a number or an instance of 'User'"

        created = attrs.get("created_at")
        if created is not None:
            current = self.attributes.get("created_at")
            if current is not None and current != created:
                return "'created_at' attribute can not be modified after initialization!"
            if not _is_number(created):
                return "'created_at' attribute must be a number!"

        for key in ("updated_at", "deleted_at"):
            value = attrs.get(key)
            if value is not None and not _is_number(value):
                return f"'{key}' attribute must be a number!"

        return None

    def set(self, attrs: Dict) -> Optional[str]:
        """Validate then apply attrs. Returns the validation message when rejected."""
        error = self.validate(attrs)
        if error:
            logger.warning("Rejected video attributes: %s", error)
            self.invalid.emit(error)
            return error

        attrs = dict(attrs)
        new_id = attrs.pop("id", None)
        if new_id is not None and new_id != self.id:
            self._check_identity_change(new_id, attrs)
        for name in DEPENDENTS:
            coll = attrs.pop(name, None)
            if coll is not None:
                self._replace_dependent(name, coll)
        if attrs.get("tags"):
            attrs["tags"] = parse_json_string(attrs["tags"])
        self.attributes.update(attrs)

        if new_id is not None and new_id != self.id:
            self.change_identity(new_id)
        self.changed.emit(self)
        return None

    def _replace_dependent(self, name: str, coll) -> None:
        coll.bind_store(self._store, getattr(self, name).policy)
        coll.set_url(self)
        setattr(self, name, coll)
        self.barrier.set_collection(name, coll)

    # ---------------- Identity ----------------

    def change_identity(self, new_id) -> None:
        """Adopt a persisted id, then reload tracks, categories and scales for it."""
        if new_id is None or new_id == self.id:
            return
        self._check_identity_change(new_id)
        old_id = self.id
        self.id = new_id
        self.to_create = False
        logger.info("Video %r persisted as %r", old_id, new_id)
        self.barrier.trigger(self, new_id)

    def _check_identity_change(self, new_id, attrs: Optional[Dict] = None) -> None:
        """Raises before anything changes when new_id can't be adopted or its dependents can't load."""
        if self.is_persisted():
            raise ValueError(f"Video {self.id!r} is persisted, its id can't become {new_id!r}")
        for name in DEPENDENTS:
            given = (attrs or {}).get(name)
            coll = given if given is not None else getattr(self, name)
            store = self._store if given is not None else coll.store
            if coll.is_empty() and store is None:
                raise RuntimeError(f"{name} of video {self.id!r} have no store to load from")

    def load_dependents(self) -> None:
        """Load tracks, categories and scales of an already persisted video."""
        if not self.is_persisted():
            raise RuntimeError("a video without a persisted id has nothing to load")
        self.barrier.trigger(self, self.id)

    def set_url(self) -> None:
        for name in DEPENDENTS:
            getattr(self, name).set_url(self)

    # ---------------- Serialization ----------------

    def parse(self, data: Dict) -> Dict:
        """Normalizes a stored/served row into attributes accepted by set()."""
        attrs = dict(data.get("attributes", data))
        for key in TIMESTAMP_FIELDS:
            if key in attrs:
                attrs[key] = _parse_timestamp(attrs[key])
        if "settings" in attrs:
            attrs["settings"] = parse_json_string(attrs["settings"])
        if attrs.get("tags"):
            attrs["tags"] = parse_json_string(attrs["tags"])
        return attrs

    def to_dict(self) -> Dict:
        """The video's own attributes; tracks, categories and scales are separate resources."""
        d: Dict[str, Any] = {"id": self.id}
        for key, value in self.attributes.items():
            if key in DEPENDENTS:
                continue
            d[key] = value.id if isinstance(value, User) else value
        d["access"] = int(d.get("access", Access.PUBLIC))
        return d

    def save(self, store=None, on_error=None) -> None:
        store = store or self._store
        if store is None:
            raise RuntimeError("video has no store to save to")

        def saved(row: Dict):
            # created_at is kept from the first save
            attrs = self.parse(row)
            if self.attributes.get("created_at") is not None:
                attrs.pop("created_at", None)
            self.set(attrs)

        def failed(message: str):
            logger.error("Saving video %r failed: %s", self.id, message)
            if on_error is not None:
                on_error(message)

        store.update(self.url, self.id, self.to_dict(), saved, failed)
