"""
Path helpers for the backlog folder layout.

Provides the per-folder paths of a backlog root and bootstrap of a fresh
backlog (directories plus config.yml).
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from backlog_store.constants import (
    ARCHIVE_DRAFTS_FOLDER,
    ARCHIVE_TASKS_FOLDER,
    BACKLOG_DIR_NAME,
    BACKLOG_DIRECTORIES,
    COMPLETED_FOLDER,
    DECISIONS_FOLDER,
    DEFAULT_STATUSES,
    DOCS_FOLDER,
    DRAFTS_FOLDER,
    TASKS_FOLDER,
)
from backlog_store.core.naming import validate_task_prefix

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BacklogPaths:
    """Absolute folder paths under one backlog root."""

    root: Path

    @classmethod
    def from_root(cls, root: Union[str, Path]) -> "BacklogPaths":
        return cls(root=Path(root).resolve())

    @property
    def workspace_root(self) -> Path:
        """Directory containing the backlog folder (git work tree root)."""
        return self.root.parent

    @property
    def tasks(self) -> Path:
        return self.root / TASKS_FOLDER

    @property
    def drafts(self) -> Path:
        return self.root / DRAFTS_FOLDER

    @property
    def completed(self) -> Path:
        return self.root / COMPLETED_FOLDER

    @property
    def archive_tasks(self) -> Path:
        return self.root / ARCHIVE_TASKS_FOLDER

    @property
    def archive_drafts(self) -> Path:
        return self.root / ARCHIVE_DRAFTS_FOLDER

    @property
    def docs(self) -> Path:
        return self.root / DOCS_FOLDER

    @property
    def decisions(self) -> Path:
        return self.root / DECISIONS_FOLDER

    def relative_to_workspace(self, path: Union[str, Path]) -> str:
        """Repository-relative posix path (as used by git plumbing)."""
        return Path(path).resolve().relative_to(self.workspace_root).as_posix()


def generate_config_yml(
    project_name: str,
    task_prefix: str = "task",
    statuses: Optional[List[str]] = None,
    check_active_branches: Optional[bool] = None,
    remote_operations: Optional[bool] = None,
    active_branch_days: Optional[int] = None,
    auto_commit: Optional[bool] = None,
    bypass_git_hooks: Optional[bool] = None,
    zero_padded_ids: Optional[int] = None,
    default_editor: Optional[str] = None,
    default_port: Optional[int] = None,
    auto_open_browser: Optional[bool] = None,
) -> str:
    """Render config.yml text.

    Field order matches what the Backlog.md tooling writes; optional fields are
    only emitted when explicitly set and task_prefix always comes last.
    """
    statuses = list(statuses or DEFAULT_STATUSES)

    def quote(value: str) -> str:
        return '"' + value.replace('"', '\\"') + '"'

    def flag(value: bool) -> str:
        return "true" if value else "false"

    lines = [
        f"project_name: {quote(project_name)}",
        f"default_status: {quote(statuses[0])}",
        f"statuses: [{', '.join(quote(s) for s in statuses)}]",
        "labels: []",
        "milestones: []",
        "date_format: yyyy-mm-dd",
        "max_column_width: 20",
    ]
    if default_editor:
        lines.append(f"default_editor: {quote(default_editor)}")
    if auto_open_browser is not None:
        lines.append(f"auto_open_browser: {flag(auto_open_browser)}")
    if default_port is not None:
        lines.append(f"default_port: {default_port}")
    if remote_operations is not None:
        lines.append(f"remote_operations: {flag(remote_operations)}")
    if auto_commit is not None:
        lines.append(f"auto_commit: {flag(auto_commit)}")
    if zero_padded_ids is not None:
        lines.append(f"zero_padded_ids: {zero_padded_ids}")
    if bypass_git_hooks is not None:
        lines.append(f"bypass_git_hooks: {flag(bypass_git_hooks)}")
    if check_active_branches is not None:
        lines.append(f"check_active_branches: {flag(check_active_branches)}")
    if active_branch_days is not None:
        lines.append(f"active_branch_days: {active_branch_days}")
    lines.append(f"task_prefix: {quote(task_prefix)}")
    lines.append("")
    return "\n".join(lines)


def initialize_backlog(workspace_root: Union[str, Path], project_name: str, **options) -> Path:
    """Create backlog/ with its folder layout and config.yml.

    Args:
        workspace_root: Directory that will contain backlog/.
        project_name: Project name written to config.yml.
        **options: Extra keyword arguments for generate_config_yml.

    Returns:
        Path to the created backlog directory.

    Raises:
        ValueError: If the task prefix is not letters only.
        FileExistsError: If backlog/ already exists.
    """
    task_prefix = options.get("task_prefix", "task")
    if not validate_task_prefix(task_prefix):
        raise ValueError(
            f'Invalid task prefix "{task_prefix}": must contain only letters (a-z, A-Z)'
        )

    backlog_path = Path(workspace_root) / BACKLOG_DIR_NAME
    if backlog_path.exists():
        raise FileExistsError(f"Backlog folder already exists at {backlog_path}")

    for folder in BACKLOG_DIRECTORIES:
        (backlog_path / folder).mkdir(parents=True, exist_ok=True)

    config_path = backlog_path / "config.yml"
    config_path.write_text(generate_config_yml(project_name, **options), encoding="utf-8")
    logger.info(f"Initialized backlog at {backlog_path}")
    return backlog_path
