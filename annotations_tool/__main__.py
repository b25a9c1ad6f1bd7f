# annotations_tool/__main__.py
from __future__ import annotations

import argparse
from typing import List, Optional

from .app import run_app


def _video_id(value: str):
    return int(value) if value.isdigit() else value


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="annotations-tool", description="Annotate a video with tracks of time-stamped notes.")
    parser.add_argument("root", nargs="?", help="data root holding config.json and the stored resources")
    parser.add_argument("video", nargs="?", type=_video_id, help="id of a stored video (a new video is created when omitted)")
    args = parser.parse_args(argv)
    return run_app(root_dir=args.root, video_id=args.video)


if __name__ == "__main__":
    raise SystemExit(main())
