# annotations_tool/filters.py
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable, Iterable, List, Optional

from PyQt5.QtCore import QObject, pyqtSignal


logger = logging.getLogger(__name__)

# entries -> entries (never mutates the entries it receives)
FilterFn = Callable[[List], List]


@dataclass
class FilterDefinition:
    id: str
    label: str
    filter: FilterFn
    active: bool = False


def mine_filter(entries: List) -> List:
    """Only the annotations created by the current user."""
    return [e for e in entries if e.record.is_mine]


def default_filters() -> List[FilterDefinition]:
    return [FilterDefinition(id="mine", label="Mine", filter=mine_filter)]


class FiltersManager(QObject):
    """
    Ordered, switchable list filters.

    A manager built from a base manager copies the base's definitions (and their
    current state) so each list can switch filters independently.

    Signals:
      - switched(dict): {"id": str, "active": bool} after every state change
    """
    switched = pyqtSignal(object)

    def __init__(self, base: Optional["FiltersManager"] = None,
                 filters: Optional[Iterable[FilterDefinition]] = None, parent=None):
        super().__init__(parent)
        if base is not None:
            source = base.get_filters()
        elif filters is not None:
            source = list(filters)
        else:
            source = default_filters()
        self._filters: List[FilterDefinition] = [replace(f) for f in source]

    def get_filters(self) -> List[FilterDefinition]:
        return list(self._filters)

    def get(self, filter_id: str) -> Optional[FilterDefinition]:
        return next((f for f in self._filters if f.id == filter_id), None)

    def add_filter(self, definition: FilterDefinition) -> None:
        if self.get(definition.id) is not None:
            raise ValueError(f"Filter {definition.id!r} is already defined")
        self._filters.append(definition)

    def active_ids(self) -> List[str]:
        return [f.id for f in self._filters if f.active]

    def switch_filter(self, filter_id: str, active: bool) -> None:
        definition = self.get(filter_id)
        if definition is None:
            logger.debug("Unknown filter %r", filter_id)
            return
        active = bool(active)
        if definition.active == active:
            return
        definition.active = active
        self.switched.emit({"id": definition.id, "active": active})

    def disable_filters(self) -> None:
        for definition in self._filters:
            self.switch_filter(definition.id, False)
