# annotations_tool/timeutils.py
from __future__ import annotations

from typing import Optional


# -----------------------------
# Time formatting
# -----------------------------

def ms_to_time_str(ms: Optional[int]) -> str:
    if ms is None:
        ms = 0
    ms = max(0, int(ms))
    s = ms // 1000
    m = s // 60
    h = m // 60
    s = s % 60
    if h:
        return f"{h:d}:{m % 60:02d}:{s:02d}"
    return f"{m:02d}:{s:02d}"


def seconds_to_time_str(sec: Optional[float]) -> str:
    if sec is None:
        sec = 0.0
    return ms_to_time_str(int(round(float(sec) * 1000.0)))


def duration_str(sec: Optional[float]) -> str:
    """Short duration label: "4.2s" below a minute, mm:ss above."""
    sec = max(0.0, float(sec or 0.0))
    if sec < 60.0:
        return f"{sec:.1f}s"
    return seconds_to_time_str(sec)
