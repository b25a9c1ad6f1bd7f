# annotations_tool/config.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .collection import LoadPolicy
from .domain import User
from .store import _atomic_write_json, _read_json


logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.json"


@dataclass
class ToolConfig:
    """
    Stored in <data_root>/config.json
    """
    data_root: str
    user: Optional[User] = None
    load_retries: int = 2
    retry_backoff_ms: int = 250
    log_level: str = "INFO"
    filters: List[str] = field(default_factory=list)  # filter ids active at start-up

    def load_policy(self) -> LoadPolicy:
        return LoadPolicy(retries=max(0, int(self.load_retries)), backoff_ms=max(0, int(self.retry_backoff_ms)))

    def to_dict(self) -> Dict:
        return {
            "data_root": self.data_root,
            "user": self.user.to_dict() if self.user is not None else None,
            "load_retries": int(self.load_retries),
            "retry_backoff_ms": int(self.retry_backoff_ms),
            "log_level": self.log_level,
            "filters": list(self.filters),
            "config_version": 1,
        }

    @staticmethod
    def from_dict(d: Dict) -> "ToolConfig":
        user = d.get("user")
        return ToolConfig(
            data_root=str(d.get("data_root") or ""),
            user=User.from_dict(user) if user else None,
            load_retries=int(d.get("load_retries", 2)),
            retry_backoff_ms=int(d.get("retry_backoff_ms", 250)),
            log_level=str(d.get("log_level", "INFO")).upper(),
            filters=[str(x) for x in (d.get("filters") or [])],
        )


def config_path(root_dir: str) -> str:
    return os.path.join(root_dir, CONFIG_FILENAME)


def load_config(root_dir: str) -> Optional[ToolConfig]:
    """
    Loads <root_dir>/config.json.

    If missing or invalid, returns None (caller should fall back to defaults).
    """
    if not root_dir:
        return None
    path = config_path(root_dir)
    if not os.path.exists(path):
        return None
    try:
        cfg = ToolConfig.from_dict(_read_json(path))
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.warning("Ignoring invalid config %s: %s", path, e)
        return None
    # Ensure correct root is used
    cfg.data_root = root_dir
    return cfg


def save_config(cfg: ToolConfig) -> None:
    if not cfg.data_root:
        raise ValueError("ToolConfig.data_root is required")
    _atomic_write_json(config_path(cfg.data_root), cfg.to_dict())
