# annotations_tool/main_window.py
from __future__ import annotations

from typing import Optional

from PyQt5.QtWidgets import (
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from .context import ToolContext
from .projection import AnnotationProjection
from .widgets.annotations_list import AnnotationsList
from .widgets.filter_combo import FilterComboBox


STATUS_TIMEOUT_MS = 8000


class MainWindow(QMainWindow):
    def __init__(self, context: ToolContext, projection: Optional[AnnotationProjection] = None):
        super().__init__()
        self.setWindowTitle("Annotations")
        self.resize(900, 700)

        self.ctx = context
        self.projection = projection or AnnotationProjection(context, self)

        self._build_ui()
        self._wire()

    # ---------------- UI ----------------

    def _build_ui(self):
        central = QWidget()
        self.setCentralWidget(central)

        main_layout = QVBoxLayout(central)
        main_layout.setContentsMargins(6, 6, 6, 6)
        main_layout.setSpacing(6)

        bar = QHBoxLayout()
        bar.setSpacing(8)
        main_layout.addLayout(bar)

        self.video_label = QLabel(f"Video {self.ctx.video.id}")
        self.combo_filters = FilterComboBox()
        self.combo_filters.set_filters(self.ctx.filters_manager.get_filters())
        self.btn_no_filter = QPushButton("No filter")
        self.btn_expand = QPushButton("Expand all")
        self.btn_collapse = QPushButton("Collapse all")
        self.btn_toggle = QPushButton("Collapse")

        bar.addWidget(self.video_label)
        bar.addStretch()
        bar.addWidget(self.combo_filters)
        bar.addWidget(self.btn_no_filter)
        bar.addWidget(self.btn_expand)
        bar.addWidget(self.btn_collapse)
        bar.addWidget(self.btn_toggle)

        self.list = AnnotationsList(self.projection, self.ctx)
        main_layout.addWidget(self.list, stretch=1)

        self.statusBar().showMessage("Loading annotations...")

    def _wire(self):
        self.combo_filters.filter_toggled.connect(self.projection.switch_filter)
        self.ctx.filters_manager.switched.connect(self._on_filter_switched)
        self.btn_no_filter.clicked.connect(self.projection.disable_filter)
        self.btn_expand.clicked.connect(self.projection.expand_all)
        self.btn_collapse.clicked.connect(self.projection.collapse_all)
        self.btn_toggle.clicked.connect(self.projection.toggle_visibility)
        self.projection.layout_changed.connect(self._on_layout_changed)

        self.ctx.status.reported.connect(self._show_status)
        self.ctx.video.ready.connect(self._on_video_ready)
        self.ctx.video.load_failed.connect(self._on_load_failed)
        self.ctx.video.invalid.connect(lambda msg: self.ctx.status.report("warning", msg))

    # ---------------- Slots ----------------

    def _on_filter_switched(self, _state):
        self.combo_filters.set_checked_ids(self.ctx.filters_manager.active_ids())

    def _on_layout_changed(self):
        self.btn_toggle.setText("Collapse" if self.projection.visible else "Expand")

    def _on_video_ready(self, video_id):
        self.video_label.setText(f"Video {video_id}")
        self.ctx.status.report("info", f"Annotations of video {video_id} loaded")

    def _on_load_failed(self, video_id, name: str, message: str):
        self.ctx.status.report("error", f"Loading {name} of video {video_id} failed: {message}")

    def _show_status(self, level: str, message: str):
        self.statusBar().showMessage(message, 0 if level == "error" else STATUS_TIMEOUT_MS)
