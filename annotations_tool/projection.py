# annotations_tool/projection.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from PyQt5.QtCore import QObject, pyqtSignal

from .context import ToolContext
from .domain import Annotation, Track


logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ProjectionEntry:
    """List row for one saved annotation, with its transient UI state."""
    record: Annotation
    track: Optional[Track] = None
    selected: bool = False
    collapsed: bool = False

    @property
    def id(self):
        return self.record.id

    @property
    def start(self) -> float:
        return float(self.record.start)

    @property
    def anchor(self) -> str:
        return f"annotation-{self.record.id}"


class AnnotationProjection(QObject):
    """
    Time-ordered, filtered list of the annotations of every track of a video.

    The projection keeps one entry per saved annotation. It follows the tracks
    collection and each track's annotations (add / remove / delete / change), the
    filters manager and the selection bus. Annotations without an id are held back
    until their ready signal.

    Rendering is coalesced: inside a batch (bulk import, filter reset) or while a
    render is being delivered, further render requests only mark the list dirty and
    a single render follows.

    Signals:
      - rendered(list[ProjectionEntry]): the entries to display, in order
      - selection_applied(list[ProjectionEntry]): entries now selected
      - anchor_changed(str): anchor of the first selected entry
      - collapse_changed(ProjectionEntry)
      - layout_changed(): list shown/hidden
    """
    rendered = pyqtSignal(object)
    selection_applied = pyqtSignal(object)
    anchor_changed = pyqtSignal(str)
    collapse_changed = pyqtSignal(object)
    layout_changed = pyqtSignal()

    def __init__(self, context: ToolContext, parent=None):
        super().__init__(parent)
        self._ctx = context
        self._tracks = context.video.tracks
        self._categories = context.video.categories
        self._filters = context.filters_manager
        self._bus = context.selection

        self._entries: List[ProjectionEntry] = []
        self._index: Dict[Any, ProjectionEntry] = {}
        self._selected: Dict[Any, ProjectionEntry] = {}
        self._collapsed: Dict[Any, ProjectionEntry] = {}
        self._expanded: Dict[Any, ProjectionEntry] = {}
        self._displayed: List[ProjectionEntry] = []
        self.anchor: Optional[str] = None
        self.visible = True

        self._connections: List[Tuple[Any, Callable]] = []
        self._track_connections: Dict[int, Tuple[Track, List[Tuple[Any, Callable]]]] = {}
        self._waiting: Dict[int, Tuple[Annotation, Optional[Track], Callable]] = {}

        self._batch_depth = 0
        self._rendering = False
        self._render_dirty = False

        self._listen(self._connections, self._filters.switched, self._on_filter_switched)
        self._listen(self._connections, self._categories.changed, self._on_categories_changed)
        self._listen(self._connections, self._tracks.added, self.on_track_added)
        self._listen(self._connections, self._tracks.removed, self.on_track_removed)
        self._listen(self._connections, self._bus.selection_changed, self._on_selection_changed)

        with self._batched():
            for track in self._tracks:
                self.on_track_added(track)
        self.render()

    # ---------------- Queries ----------------

    def entries(self) -> List[ProjectionEntry]:
        return list(self._entries)

    def displayed(self) -> List[ProjectionEntry]:
        return list(self._displayed)

    def entry_for(self, annotation_id) -> Optional[ProjectionEntry]:
        if annotation_id is None:
            return None
        return self._index.get(annotation_id)

    def selected_entries(self) -> List[ProjectionEntry]:
        return list(self._selected.values())

    # ---------------- Tracks ----------------

    def on_track_added(self, track: Track) -> None:
        key = id(track)
        if key in self._track_connections:
            return

        annotations = track.annotations
        conns: List[Tuple[Any, Callable]] = []
        self._listen(conns, annotations.added, lambda rec, t=track: self.on_annotation_added(rec, t))
        self._listen(conns, annotations.removed, lambda rec, t=track: self.on_annotation_removed(rec, t))
        self._listen(conns, annotations.deleted, self.on_annotation_destroyed)
        self._listen(conns, annotations.changed, self.on_annotation_changed)
        self._track_connections[key] = (track, conns)

        with self._batched():
            imported = 0
            for record in annotations.records():
                if self.on_annotation_added(record, track, bulk=True):
                    imported += 1
            if imported:
                self.resort()
                self.render()
        logger.debug("Track %r imported %d annotation(s)", track.id, imported)

    def on_track_removed(self, track: Track) -> None:
        _track, conns = self._track_connections.pop(id(track), (None, []))
        self._unlisten(conns)
        for key, (_record, waiting_track, _slot) in list(self._waiting.items()):
            if waiting_track is track:
                self._stop_waiting(key)

        dropped = [e for e in self._entries if e.track is track]
        for entry in dropped:
            self._drop(entry)
        if dropped:
            self.render()

    # ---------------- Annotations ----------------

    def on_annotation_added(self, record: Annotation, track: Optional[Track] = None, bulk: bool = False) -> bool:
        """Returns True when a new entry was created for record."""
        if record.id is None:
            self._wait_for_ready(record, track)
            return False

        existing = self._index.get(record.id)
        if existing is not None:
            # same annotation reached through another track (reassignment)
            existing.record = record
            if track is not None:
                existing.track = track
            return False

        entry = ProjectionEntry(record=record, track=track)
        self._entries.append(entry)
        self._index[record.id] = entry
        self._expanded[record.id] = entry

        if not bulk:
            with self._batched():
                self.resort()
                self.render()
            self._bus.set_selection([record], False)
        return True

    def on_annotation_removed(self, record: Annotation, track: Optional[Track] = None) -> None:
        waiting = self._waiting.get(id(record))
        if waiting is not None and (track is None or waiting[1] is track):
            self._stop_waiting(id(record))
        entry = self._index.get(record.id) if record.id is not None else None
        if entry is None or (track is not None and entry.track is not track):
            return
        self._drop(entry)
        self.render()

    def on_annotation_destroyed(self, record: Annotation) -> None:
        self._stop_waiting(id(record))
        entry = self._index.get(record.id) if record.id is not None else None
        if entry is None:
            return
        self._drop(entry)
        self.render()

    def on_annotation_changed(self, _record: Annotation = None) -> None:
        # any edit may have moved the start time
        with self._batched():
            self.resort()
            self.render()

    def _wait_for_ready(self, record: Annotation, track: Optional[Track]) -> None:
        key = id(record)
        if key in self._waiting:
            # reassigned before saving: follow the newest track
            _record, _old, slot = self._waiting[key]
            self._waiting[key] = (record, track, slot)
            return

        def ready(rec, k=key):
            _record, t, _slot = self._waiting.get(k, (rec, None, None))
            self._stop_waiting(k)
            self.on_annotation_added(rec, t)

        record.events.ready.connect(ready)
        self._waiting[key] = (record, track, ready)

    def _stop_waiting(self, key: int) -> None:
        waiting = self._waiting.pop(key, None)
        if waiting is None:
            return
        record, _track, slot = waiting
        self._unlisten([(record.events.ready, slot)])

    def _drop(self, entry: ProjectionEntry) -> None:
        self._entries = [e for e in self._entries if e is not entry]
        self._index.pop(entry.id, None)
        self._selected.pop(entry.id, None)
        self._collapsed.pop(entry.id, None)
        self._expanded.pop(entry.id, None)

    # ---------------- Ordering / rendering ----------------

    def resort(self) -> None:
        """Stable sort by start time: ties keep their current relative order."""
        self._entries.sort(key=lambda e: e.start)

    def render(self) -> List[ProjectionEntry]:
        if self._batch_depth or self._rendering:
            self._render_dirty = True
            return self.displayed()

        self._rendering = True
        try:
            while True:
                self._render_dirty = False
                shown = list(self._entries)
                for definition in self._filters.get_filters():
                    if definition.active:
                        shown = list(definition.filter(shown))
                self._displayed = shown
                logger.debug("Rendering %d of %d annotation(s)", len(shown), len(self._entries))
                self.rendered.emit(self.displayed())
                if not self._render_dirty:
                    break
        finally:
            self._rendering = False
        return self.displayed()

    @contextmanager
    def _batched(self):
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
        if self._batch_depth == 0 and self._render_dirty:
            self.render()

    # ---------------- Filters ----------------

    def switch_filter(self, filter_id: str, active: bool) -> None:
        self._filters.switch_filter(filter_id, active)

    def disable_filter(self) -> None:
        with self._batched():
            self._filters.disable_filters()
            self.render()

    def _on_filter_switched(self, _state: Dict) -> None:
        self.render()

    def _on_categories_changed(self, _category) -> None:
        self.render()

    # ---------------- Selection ----------------

    def select(self, annotations: List[Annotation]) -> None:
        self._clear_selection()

        picked: List[ProjectionEntry] = []
        for index, annotation in enumerate(annotations or []):
            entry = self.entry_for(getattr(annotation, "id", None))
            if entry is None:
                continue
            entry.selected = True
            self._selected[entry.id] = entry
            picked.append(entry)

            # Only scroll to the first item of the selection
            if index == 0:
                self.anchor = entry.anchor
                self.anchor_changed.emit(entry.anchor)

        self.selection_applied.emit(picked)

    def unselect(self) -> None:
        if self._clear_selection():
            self.selection_applied.emit([])

    def _clear_selection(self) -> bool:
        had_selection = bool(self._selected)
        for entry in self._selected.values():
            entry.selected = False
        self._selected.clear()
        return had_selection

    def _on_selection_changed(self, annotations: List[Annotation], _move_to: bool = False) -> None:
        self.select(annotations)

    # ---------------- Collapse / visibility ----------------

    def toggle_collapse(self, entry: ProjectionEntry) -> None:
        self._set_collapsed(entry, not entry.collapsed)

    def expand_all(self) -> None:
        for entry in list(self._collapsed.values()):
            self._set_collapsed(entry, False)

    def collapse_all(self) -> None:
        for entry in list(self._expanded.values()):
            self._set_collapsed(entry, True)

    def _set_collapsed(self, entry: ProjectionEntry, collapsed: bool) -> None:
        if entry.collapsed == collapsed:
            return
        entry.collapsed = collapsed
        if collapsed:
            self._collapsed[entry.id] = entry
            self._expanded.pop(entry.id, None)
        else:
            self._collapsed.pop(entry.id, None)
            self._expanded[entry.id] = entry
        self.collapse_changed.emit(entry)

    def toggle_visibility(self) -> bool:
        self.visible = not self.visible
        self.layout_changed.emit()
        return self.visible

    # ---------------- Teardown ----------------

    def reset(self) -> None:
        """Stop following every source and forget all entries. Annotations are untouched."""
        self._unlisten(self._connections)
        self._connections = []
        for _track, conns in self._track_connections.values():
            self._unlisten(conns)
        self._track_connections.clear()
        for key in list(self._waiting):
            self._stop_waiting(key)

        self._entries = []
        self._index.clear()
        self._selected.clear()
        self._collapsed.clear()
        self._expanded.clear()
        self._displayed = []
        self.anchor = None
        self._render_dirty = False
        self.rendered.emit([])

    # ---------------- Helpers ----------------

    @staticmethod
    def _listen(bucket: List[Tuple[Any, Callable]], signal, slot: Callable) -> None:
        signal.connect(slot)
        bucket.append((signal, slot))

    @staticmethod
    def _unlisten(bucket: List[Tuple[Any, Callable]]) -> None:
        for signal, slot in bucket:
            try:
                signal.disconnect(slot)
            except (TypeError, RuntimeError):
                # already disconnected, or the sender is gone
                continue
