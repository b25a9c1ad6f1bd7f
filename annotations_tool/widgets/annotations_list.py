# annotations_tool/widgets/annotations_list.py
from __future__ import annotations

from typing import List, Optional

from PyQt5.QtCore import Qt, QEvent, pyqtSignal
from PyQt5.QtGui import QBrush, QColor
from PyQt5.QtWidgets import (
    QAbstractItemView,
    QMenu,
    QMessageBox,
    QTableWidget,
    QTableWidgetItem,
    QWidget,
)

from ..context import ToolContext
from ..projection import AnnotationProjection, ProjectionEntry
from ..timeutils import duration_str, seconds_to_time_str


LIST_COLUMNS = ["start", "end", "duration", "track", "category", "text"]
SELECTED_COLOR = "#FFE9A8"


class AnnotationsList(QTableWidget):
    """
    Read-only table showing the rows rendered by an AnnotationProjection.

    Rows are rebuilt on every render; selection and collapse changes only restyle
    the affected rows. Clicking a row publishes it on the selection bus.

    Signals:
      - entry_activated(ProjectionEntry): row double-clicked
    """
    entry_activated = pyqtSignal(object)

    def __init__(self, projection: AnnotationProjection, context: ToolContext, parent: Optional[QWidget] = None):
        super().__init__(0, len(LIST_COLUMNS), parent)
        self._projection = projection
        self._ctx = context
        self._rows: List[ProjectionEntry] = []

        self.setHorizontalHeaderLabels(LIST_COLUMNS)
        self.horizontalHeader().setStretchLastSection(True)
        self.horizontalHeader().setDefaultSectionSize(110)
        self.verticalHeader().setVisible(False)

        self.setSelectionMode(QAbstractItemView.NoSelection)
        self.setEditTriggers(QAbstractItemView.NoEditTriggers)
        self.setContextMenuPolicy(Qt.CustomContextMenu)
        self.customContextMenuRequested.connect(self._show_context_menu)
        self.cellClicked.connect(self._on_cell_clicked)
        self.cellDoubleClicked.connect(self._on_cell_double_clicked)

        projection.rendered.connect(self.show_entries)
        projection.selection_applied.connect(self.apply_selection)
        projection.anchor_changed.connect(self.scroll_to_anchor)
        projection.collapse_changed.connect(self.update_entry)
        projection.layout_changed.connect(self._on_layout_changed)

        # Hover affordance: rows are clickable
        self.setMouseTracking(True)
        self.viewport().setMouseTracking(True)
        self.viewport().installEventFilter(self)

        self.show_entries(projection.displayed())

    # ---------------- Public API ----------------

    def entries(self) -> List[ProjectionEntry]:
        return list(self._rows)

    def row_of(self, entry: ProjectionEntry) -> int:
        for row, shown in enumerate(self._rows):
            if shown is entry:
                return row
        return -1

    # ---------------- Rendering ----------------

    def show_entries(self, entries: List[ProjectionEntry]) -> None:
        self._rows = list(entries or [])
        self.setRowCount(0)
        for entry in self._rows:
            row = self.rowCount()
            self.insertRow(row)
            self._fill_row(row, entry)

    def _fill_row(self, row: int, entry: ProjectionEntry) -> None:
        rec = entry.record
        text = rec.text or ""
        if entry.collapsed:
            first = text.splitlines()[0] if text else ""
            text = first + (" ..." if first != (rec.text or "") else "")

        values = [
            seconds_to_time_str(rec.start),
            seconds_to_time_str(rec.end),
            duration_str(rec.duration),
            entry.track.name if entry.track is not None else "",
            self._category_name(rec.category_id),
            text,
        ]
        for col, val in enumerate(values):
            item = QTableWidgetItem(val)
            item.setToolTip(rec.text or val)
            item.setFlags(item.flags() & ~Qt.ItemIsEditable)
            self.setItem(row, col, item)
        self._style_row(row, entry)

    def _style_row(self, row: int, entry: ProjectionEntry) -> None:
        brush = QBrush(QColor(SELECTED_COLOR)) if entry.selected else QBrush()
        for col in range(self.columnCount()):
            item = self.item(row, col)
            if item is not None:
                item.setBackground(brush)

    def _category_name(self, category_id) -> str:
        if category_id is None:
            return ""
        category = self._ctx.video.categories.get(category_id)
        return category.name if category is not None else ""

    def apply_selection(self, _selected: List[ProjectionEntry]) -> None:
        # styling follows the entries' selected flags
        for row, entry in enumerate(self._rows):
            self._style_row(row, entry)

    def update_entry(self, entry: ProjectionEntry) -> None:
        row = self.row_of(entry)
        if row >= 0:
            self._fill_row(row, entry)

    def scroll_to_anchor(self, anchor: str) -> None:
        for row, entry in enumerate(self._rows):
            if entry.anchor == anchor:
                item = self.item(row, 0)
                if item is not None:
                    self.scrollToItem(item, QAbstractItemView.PositionAtCenter)
                return

    def _on_layout_changed(self) -> None:
        self.setVisible(self._projection.visible)

    # ---------------- Interaction ----------------

    def _entry_at_row(self, row: int) -> Optional[ProjectionEntry]:
        if 0 <= row < len(self._rows):
            return self._rows[row]
        return None

    def _on_cell_clicked(self, row: int, _col: int) -> None:
        entry = self._entry_at_row(row)
        if entry is not None:
            self._ctx.selection.set_selection([entry.record], True)

    def _on_cell_double_clicked(self, row: int, _col: int) -> None:
        entry = self._entry_at_row(row)
        if entry is not None:
            self.entry_activated.emit(entry)

    def _show_context_menu(self, pos):
        item = self.itemAt(pos)
        if item is None:
            return
        entry = self._entry_at_row(item.row())
        if entry is None:
            return

        menu = QMenu(self)
        collapse_action = menu.addAction("Expand" if entry.collapsed else "Collapse")
        delete_action = menu.addAction("Delete annotation")
        if entry.track is None or not entry.record.is_mine:
            delete_action.setEnabled(False)

        chosen = menu.exec_(self.viewport().mapToGlobal(pos))
        if chosen == collapse_action:
            self._projection.toggle_collapse(entry)
        elif chosen == delete_action:
            self.delete_entry(entry)

    def delete_entry(self, entry: ProjectionEntry) -> None:
        rec = entry.record
        resp = QMessageBox.question(
            self,
            "Delete annotation?",
            (
                "Delete this annotation?\n\n"
                f"{rec.text or '(no text)'}\n"
                f"Start: {rec.start:.3f}s   Duration: {rec.duration:.3f}s\n\n"
                "This cannot be undone."
            ),
            QMessageBox.Yes | QMessageBox.No,
            QMessageBox.No,
        )
        if resp != QMessageBox.Yes:
            return
        entry.track.annotations.destroy(rec, on_error=lambda msg: self._ctx.status.report("error", msg))

    # ---------------- Cursor feedback ----------------

    def eventFilter(self, obj, event):
        if obj is self.viewport():
            et = event.type()
            if et == QEvent.MouseMove:
                hand = self.itemAt(event.pos()) is not None
                self.viewport().setCursor(Qt.PointingHandCursor if hand else Qt.ArrowCursor)
            elif et in (QEvent.Leave, QEvent.HoverLeave):
                self.viewport().setCursor(Qt.ArrowCursor)
        return super().eventFilter(obj, event)
