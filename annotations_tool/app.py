# annotations_tool/app.py
from __future__ import annotations

import logging
import sys
from typing import Optional

from PyQt5.QtWidgets import QApplication, QFileDialog

from .config import ToolConfig, load_config
from .context import ToolContext
from .filters import FiltersManager
from .main_window import MainWindow
from .store import JsonFileStore
from .video import Video


LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO), format=LOG_FORMAT)


def choose_root_dir(parent=None) -> Optional[str]:
    d = QFileDialog.getExistingDirectory(parent, "Select Data Root")
    return d or None


def build_context(cfg: ToolConfig, video_id=None, store=None) -> ToolContext:
    """Create the store, the video and the shared context for one annotated video."""
    store = store or JsonFileStore(cfg.data_root)
    attrs = {"id": video_id} if video_id is not None else {}
    video = Video(attrs, store=store, policy=cfg.load_policy())

    filters = FiltersManager()
    for filter_id in cfg.filters:
        filters.switch_filter(filter_id, True)

    return ToolContext(video=video, filters_manager=filters, user=cfg.user, config=cfg)


def run_app(root_dir: Optional[str] = None, video_id=None) -> int:
    app = QApplication(sys.argv)

    if not root_dir:
        root_dir = choose_root_dir()
    if not root_dir:
        return 1

    cfg = load_config(root_dir) or ToolConfig(data_root=root_dir)
    configure_logging(cfg.log_level)
    logging.getLogger(__name__).info("Data root: %s", root_dir)

    ctx = build_context(cfg, video_id)
    win = MainWindow(ctx)
    win.show()

    # Start loading only once the window listens for ready/failed
    if ctx.video.is_persisted():
        ctx.video.load_dependents()
    else:
        ctx.video.save(on_error=lambda msg: ctx.status.report("error", f"Saving video failed: {msg}"))

    return app.exec_()
