# annotations_tool/__init__.py
'''
annotations_tool/
    __init__.py
    __main__.py

    app.py                 # QApplication + logging + boot of store/context/video/window
    main_window.py         # QMainWindow: filter bar + annotations list + status bar
    config.py              # ToolConfig stored in <data_root>/config.json

    store.py               # JSON file resource store (fetch/create/update/destroy, async)
    collection.py          # ResourceCollection: url scoped to a parent id, load with retry
    domain.py              # Access, User, Category, Scale, Annotation, Track + their collections
    video.py               # Video: dependent collections, id lifecycle, validation
    readiness.py           # ReadinessBarrier: one "ready" per id transition
    filters.py             # FilterDefinition + FiltersManager
    context.py             # SelectionBus, StatusChannel, ToolContext
    projection.py          # AnnotationProjection: sorted/filtered list entries, selection
    timeutils.py           # time labels for the list

    widgets/
      annotations_list.py  # table rendering the projection + selection + context menu
      filter_combo.py      # combo box with checkable filters
'''

from __future__ import annotations

__version__ = "0.1.0"
