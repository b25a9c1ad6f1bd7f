# annotations_tool/context.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from PyQt5.QtCore import QObject, pyqtSignal

from .config import ToolConfig
from .domain import User
from .filters import FiltersManager


logger = logging.getLogger(__name__)


class SelectionBus(QObject):
    """
    Application-wide annotation selection.

    Signals:
      - selection_changed(list[Annotation], move_to: bool)
    """
    selection_changed = pyqtSignal(object, bool)

    def __init__(self, parent=None):
        super().__init__(parent)
        self._selection: List = []

    def selection(self) -> List:
        return list(self._selection)

    def set_selection(self, annotations: List, move_to: bool = False) -> None:
        self._selection = list(annotations or [])
        self.selection_changed.emit(self.selection(), bool(move_to))

    def clear(self) -> None:
        self.set_selection([])


class StatusChannel(QObject):
    """User-visible status reports (load failures, rejected edits)."""
    reported = pyqtSignal(str, str)  # level, message

    def report(self, level: str, message: str) -> None:
        log = logger.error if level == "error" else logger.warning if level == "warning" else logger.info
        log("%s", message)
        self.reported.emit(level, message)


@dataclass
class ToolContext:
    """Everything a component needs from the running tool, passed in explicitly."""
    video: object
    filters_manager: FiltersManager = field(default_factory=FiltersManager)
    selection: SelectionBus = field(default_factory=SelectionBus)
    status: StatusChannel = field(default_factory=StatusChannel)
    user: Optional[User] = None
    config: Optional[ToolConfig] = None
