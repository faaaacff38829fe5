"""
Backlog configuration loaded from backlog/config.yml (or config.yaml).

The parsed config is cached per file and reloaded when its mtime changes.
"""

import logging
import os
import threading
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from backlog_store.constants import (
    CONFIG_FILENAMES,
    DEFAULT_ACTIVE_BRANCH_DAYS,
    DEFAULT_RESOLUTION_STRATEGY,
    DEFAULT_STATUSES,
    DEFAULT_TASK_PREFIX,
    RESOLUTION_STRATEGIES,
)

logger = logging.getLogger(__name__)


@dataclass
class BacklogConfig:
    """Project configuration. Unknown keys are kept in ``extra``."""

    project_name: Optional[str] = None
    default_status: Optional[str] = None
    statuses: List[str] = field(default_factory=lambda: list(DEFAULT_STATUSES))
    labels: List[str] = field(default_factory=list)
    milestones: List[Any] = field(default_factory=list)
    date_format: Optional[str] = None
    task_prefix: str = DEFAULT_TASK_PREFIX
    check_active_branches: bool = False
    remote_operations: bool = False
    active_branch_days: int = DEFAULT_ACTIVE_BRANCH_DAYS
    task_resolution_strategy: str = DEFAULT_RESOLUTION_STRATEGY
    on_status_change: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def initial_status(self) -> str:
        """Status given to new tasks."""
        return self.default_status or (self.statuses[0] if self.statuses else DEFAULT_STATUSES[0])

    @property
    def milestone_names(self) -> List[str]:
        names = []
        for milestone in self.milestones:
            if isinstance(milestone, dict):
                name = milestone.get("name")
            else:
                name = milestone
            if name:
                names.append(str(name))
        return names

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BacklogConfig":
        """Create BacklogConfig from a decoded YAML mapping."""
        data = dict(data or {})
        if "onStatusChange" in data and "on_status_change" not in data:
            data["on_status_change"] = data.pop("onStatusChange")

        known = {f.name for f in fields(cls)} - {"extra"}
        config = cls(**{k: v for k, v in data.items() if k in known and v is not None})
        config.extra = {k: v for k, v in data.items() if k not in known}

        if not isinstance(config.statuses, list) or not config.statuses:
            config.statuses = list(DEFAULT_STATUSES)
        config.statuses = [str(s) for s in config.statuses]
        config.labels = [str(label) for label in config.labels or []]
        config.task_prefix = str(config.task_prefix or DEFAULT_TASK_PREFIX)
        try:
            config.active_branch_days = int(config.active_branch_days)
        except (TypeError, ValueError):
            logger.warning(f"Invalid active_branch_days {config.active_branch_days!r}, using default")
            config.active_branch_days = DEFAULT_ACTIVE_BRANCH_DAYS
        if config.task_resolution_strategy not in RESOLUTION_STRATEGIES:
            logger.warning(
                f"Unknown task_resolution_strategy {config.task_resolution_strategy!r}, "
                f"using {DEFAULT_RESOLUTION_STRATEGY}"
            )
            config.task_resolution_strategy = DEFAULT_RESOLUTION_STRATEGY
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert BacklogConfig to a plain mapping (extra keys included)."""
        data = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "extra"}
        data.update(self.extra)
        return data


_cache_lock = threading.Lock()
_cache: Dict[str, Tuple[int, BacklogConfig]] = {}


def find_config_file(backlog_root: Union[str, Path]) -> Optional[Path]:
    for name in CONFIG_FILENAMES:
        candidate = Path(backlog_root) / name
        if candidate.is_file():
            return candidate
    return None


def load_config(backlog_root: Union[str, Path]) -> BacklogConfig:
    """Load the backlog config, reusing the cached copy while the file is unchanged.

    A missing or unreadable config yields defaults; parse errors are logged.

    Args:
        backlog_root: The backlog/ directory.

    Returns:
        BacklogConfig instance.
    """
    path = find_config_file(backlog_root)
    if path is None:
        logger.debug(f"No config file in {backlog_root}, using defaults")
        return BacklogConfig()

    key = str(path)
    try:
        mtime = os.stat(key).st_mtime_ns
    except OSError:
        return BacklogConfig()

    with _cache_lock:
        cached = _cache.get(key)
        if cached is not None and cached[0] == mtime:
            return cached[1]

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Error reading config {path}: {e}")
        return BacklogConfig()

    if not isinstance(data, dict):
        logger.warning(f"Config {path} is not a mapping, using defaults")
        data = {}

    config = BacklogConfig.from_dict(data)
    with _cache_lock:
        _cache[key] = (mtime, config)
    return config


def clear_config_cache() -> None:
    with _cache_lock:
        _cache.clear()
