# annotations_tool/widgets/filter_combo.py
from __future__ import annotations

from typing import List

from PyQt5.QtCore import Qt, pyqtSignal
from PyQt5.QtGui import QStandardItem, QStandardItemModel
from PyQt5.QtWidgets import QComboBox

from ..filters import FilterDefinition


class FilterComboBox(QComboBox):
    """
    A QComboBox that shows the list filters as a checklist popup and displays a
    summary like "Filters (1)" when collapsed.

    Signals:
      - filter_toggled(str, bool): the user checked/unchecked a filter
    """
    filter_toggled = pyqtSignal(str, bool)

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setCursor(Qt.PointingHandCursor)

        # Use the lineEdit area as a read-only display for the summary
        self.setEditable(True)
        if self.lineEdit():
            self.lineEdit().setReadOnly(True)
            self.lineEdit().setFocusPolicy(Qt.NoFocus)

        self._model = QStandardItemModel(self)
        self.setModel(self._model)
        self._model.itemChanged.connect(self._on_item_changed)
        self.currentIndexChanged.connect(self._on_current_index_changed)

        self._block = False
        self._refresh_display_text()

    # ---------------- Public API ----------------

    def set_filters(self, filters: List[FilterDefinition]) -> None:
        self._block = True
        try:
            self._model.clear()
            for definition in filters or []:
                it = QStandardItem(definition.label or definition.id)
                it.setData(definition.id, Qt.UserRole)
                it.setFlags(Qt.ItemIsEnabled | Qt.ItemIsUserCheckable)
                it.setData(Qt.Checked if definition.active else Qt.Unchecked, Qt.CheckStateRole)
                self._model.appendRow(it)
        finally:
            self._block = False

        self.setCurrentIndex(-1)
        self._refresh_display_text()

    def checked_ids(self) -> List[str]:
        out: List[str] = []
        for row in range(self._model.rowCount()):
            it = self._model.item(row)
            if it is not None and it.checkState() == Qt.Checked:
                out.append(str(it.data(Qt.UserRole)))
        return out

    def set_checked_ids(self, ids: List[str]) -> None:
        """Mirror the filters' state without emitting filter_toggled."""
        want = set(str(x) for x in (ids or []))
        self._block = True
        try:
            for row in range(self._model.rowCount()):
                it = self._model.item(row)
                if it is None:
                    continue
                it.setCheckState(Qt.Checked if str(it.data(Qt.UserRole)) in want else Qt.Unchecked)
        finally:
            self._block = False

        self.setCurrentIndex(-1)
        self._refresh_display_text()

    # ---------------- Internal behavior ----------------

    def _on_current_index_changed(self, _idx: int):
        if self._block:
            return
        self.setCurrentIndex(-1)
        self._refresh_display_text()

    def _on_item_changed(self, item: QStandardItem) -> None:
        if self._block:
            return
        self.setCurrentIndex(-1)
        self._refresh_display_text()
        self.filter_toggled.emit(str(item.data(Qt.UserRole)), item.checkState() == Qt.Checked)

    def _refresh_display_text(self) -> None:
        n = len(self.checked_ids())
        txt = "No filter" if n <= 0 else f"Filters ({n})"
        self.setEditText(txt)
