# annotations_tool/domain.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional

from PyQt5.QtCore import QObject, pyqtSignal

from .collection import ResourceCollection


logger = logging.getLogger(__name__)


class Access(IntEnum):
    PRIVATE = 0
    PUBLIC = 1
    SHARED_WITH_ADMIN = 2
    SHARED_WITH_EVERYONE = 3


def parse_json_string(value: Any) -> Optional[Any]:
    """
    Returns value as a structured object.

    Strings are decoded as JSON; dicts/lists pass through unchanged. Anything else,
    or a string that isn't valid JSON, yields None (the field is treated as absent).
    """
    if isinstance(value, str):
        if not value:
            return None
        try:
            return json.loads(value)
        except ValueError as e:
            logger.warning("Can not parse parameter %r: %s", value, e)
            return None
    if isinstance(value, (dict, list)):
        return value
    return None


def is_json_value(value: Any) -> bool:
    """True for a dict/list, or for a string holding any JSON text (including "null")."""
    if isinstance(value, (dict, list)):
        return True
    if not isinstance(value, str):
        return False
    try:
        json.loads(value)
    except ValueError:
        return False
    return True


# -----------------------------
# Users
# -----------------------------

@dataclass
class User:
    id: int
    nickname: str
    name: str = ""
    email: str = ""

    def to_dict(self) -> Dict:
        return {"id": int(self.id), "nickname": self.nickname, "name": self.name, "email": self.email}

    @staticmethod
    def from_dict(d: Dict) -> "User":
        return User(
            id=int(d["id"]),
            nickname=str(d.get("nickname", "")),
            name=str(d.get("name", "")),
            email=str(d.get("email", "")),
        )


# -----------------------------
# Categories / Scales
# -----------------------------

@dataclass(eq=False)
class Category:
    id: Optional[int] = None
    name: str = ""
    description: str = ""
    settings: Optional[Dict] = None
    access: int = Access.PUBLIC

    def to_dict(self) -> Dict:
        d = {
            "name": self.name,
            "description": self.description,
            "settings": json.dumps(self.settings) if self.settings is not None else None,
            "access": int(self.access),
        }
        if self.id is not None:
            d["id"] = self.id
        return d

    @staticmethod
    def from_dict(d: Dict) -> "Category":
        return Category(
            id=d.get("id"),
            name=str(d.get("name", "")),
            description=str(d.get("description", "")),
            settings=parse_json_string(d.get("settings")),
            access=int(d.get("access", Access.PUBLIC)),
        )

    def update_from_dict(self, d: Dict) -> None:
        other = Category.from_dict(d)
        self.name = other.name
        self.description = other.description
        self.settings = other.settings
        self.access = other.access


@dataclass(eq=False)
class Scale:
    id: Optional[int] = None
    name: str = ""
    description: str = ""
    access: int = Access.PUBLIC

    def to_dict(self) -> Dict:
        d = {"name": self.name, "description": self.description, "access": int(self.access)}
        if self.id is not None:
            d["id"] = self.id
        return d

    @staticmethod
    def from_dict(d: Dict) -> "Scale":
        return Scale(
            id=d.get("id"),
            name=str(d.get("name", "")),
            description=str(d.get("description", "")),
            access=int(d.get("access", Access.PUBLIC)),
        )

    def update_from_dict(self, d: Dict) -> None:
        other = Scale.from_dict(d)
        self.name = other.name
        self.description = other.description
        self.access = other.access


# -----------------------------
# Annotations
# -----------------------------

class AnnotationEvents(QObject):
    """
    Signals owned by one Annotation.

      - ready(annotation): once, when the annotation first gains an id
      - changed(annotation): after any attribute edit
      - deleted(annotation): after the owning collection destroyed it
    """
    ready = pyqtSignal(object)
    changed = pyqtSignal(object)
    deleted = pyqtSignal(object)


ANNOTATION_FIELDS = ("start", "duration", "text", "category_id", "created_by", "access", "is_mine")


@dataclass(eq=False)
class Annotation:
    """
    A single time-stamped annotation. start/duration are in seconds.
    id stays None until the annotation has been saved once.
    """
    id: Optional[int] = None
    start: float = 0.0
    duration: float = 0.0
    text: str = ""
    category_id: Optional[int] = None
    created_by: Optional[int] = None
    access: int = Access.PUBLIC
    is_mine: bool = True

    events: AnnotationEvents = field(default_factory=AnnotationEvents, repr=False)

    @property
    def end(self) -> float:
        return float(self.start) + max(0.0, float(self.duration))

    def set(self, **changes) -> None:
        if "id" in changes:
            raise ValueError("Annotation id is assigned by mark_persisted()")
        unknown = set(changes) - set(ANNOTATION_FIELDS)
        if unknown:
            raise KeyError(f"Unknown annotation attribute(s): {', '.join(sorted(unknown))}")

        dirty = False
        for key, value in changes.items():
            if getattr(self, key) != value:
                setattr(self, key, value)
                dirty = True
        if dirty:
            self.events.changed.emit(self)

    def mark_persisted(self, rid: int) -> None:
        if self.id is not None:
            return
        self.id = rid
        self.events.ready.emit(self)

    def to_dict(self) -> Dict:
        d = {
            "start": float(self.start),
            "duration": float(self.duration),
            "text": self.text,
            "category_id": self.category_id,
            "created_by": self.created_by,
            "access": int(self.access),
            "is_mine": bool(self.is_mine),
        }
        if self.id is not None:
            d["id"] = self.id
        return d

    @staticmethod
    def from_dict(d: Dict) -> "Annotation":
        return Annotation(
            id=d.get("id"),
            start=float(d.get("start", 0.0)),
            duration=float(d.get("duration", 0.0)),
            text=str(d.get("text", "")),
            category_id=d.get("category_id"),
            created_by=d.get("created_by"),
            access=int(d.get("access", Access.PUBLIC)),
            is_mine=bool(d.get("is_mine", False)),
        )

    def update_from_dict(self, d: Dict) -> None:
        other = Annotation.from_dict(d)
        self.set(**{k: getattr(other, k) for k in ANNOTATION_FIELDS if k in d})


class Annotations(ResourceCollection):
    name = "annotations"
    model = Annotation

    def url_for(self, track) -> Optional[str]:
        if getattr(track, "url", None) is None:
            return None
        return f"{track.url}/annotations"

    def create(self, annotation: Annotation, on_error=None) -> Annotation:
        """Add a new annotation locally and save it; it becomes ready once the store assigns an id."""
        if self._store is None or not self.url:
            raise RuntimeError("annotations are not bound to a stored track")
        self.add(annotation)

        def saved(row):
            annotation.mark_persisted(row["id"])

        self._store.create(self.url, annotation.to_dict(), saved, on_error or self._log_error)
        return annotation


# -----------------------------
# Tracks
# -----------------------------

@dataclass(eq=False)
class Track:
    id: Optional[int] = None
    name: str = ""
    description: str = ""
    access: int = Access.PUBLIC
    annotations: Annotations = field(default_factory=Annotations, repr=False)
    url: Optional[str] = field(default=None, repr=False)

    def to_dict(self) -> Dict:
        d = {"name": self.name, "description": self.description, "access": int(self.access)}
        if self.id is not None:
            d["id"] = self.id
        return d

    @staticmethod
    def from_dict(d: Dict) -> "Track":
        return Track(
            id=d.get("id"),
            name=str(d.get("name", "")),
            description=str(d.get("description", "")),
            access=int(d.get("access", Access.PUBLIC)),
            annotations=Annotations(records=list(d.get("annotations") or [])),
        )

    def update_from_dict(self, d: Dict) -> None:
        self.name = str(d.get("name", self.name))
        self.description = str(d.get("description", self.description))
        self.access = int(d.get("access", self.access))
        for row in d.get("annotations") or []:
            existing = self.annotations.get(row.get("id"))
            if existing is not None:
                existing.update_from_dict(row)
            else:
                self.annotations.add(Annotation.from_dict(row))


# -----------------------------
# Dependent collections of a video
# -----------------------------

class Tracks(ResourceCollection):
    name = "tracks"
    model = Track

    def url_for(self, video) -> str:
        return f"videos/{video.id}/tracks"

    def set_url(self, video) -> None:
        super().set_url(video)
        for track in self:
            self._adopt(track)

    def _adopt(self, track: Track) -> None:
        track.url = f"{self.url}/{track.id}" if (self.url and track.id is not None) else None
        track.annotations.bind_store(self._store, self.policy)
        track.annotations.set_url(track)


class Categories(ResourceCollection):
    name = "categories"
    model = Category

    def url_for(self, video) -> str:
        return f"videos/{video.id}/categories"


class Scales(ResourceCollection):
    name = "scales"
    model = Scale

    def url_for(self, video) -> str:
        return f"videos/{video.id}/scales"

