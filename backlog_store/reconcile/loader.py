"""
Cross-branch task loading and resolution.

Index-first: each branch's tasks folder is listed with per-file commit times
(cheap), only the entries that could win are read with ``git show``, then every
task id is resolved to exactly one snapshot by the configured strategy.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from backlog_store.adapters.git import GitRuntimeError
from backlog_store.codec.records import parse_task
from backlog_store.constants import (
    BRANCH_BATCH_SIZE,
    DRAFT_STATUS,
    HYDRATE_BATCH_SIZE,
)
from backlog_store.core.models import Task
from backlog_store.core.naming import id_from_filename, id_sort_key
from backlog_store.support.config import BacklogConfig
from backlog_store.support.paths import BacklogPaths

logger = logging.getLogger(__name__)


@dataclass
class BranchInfo:
    name: str
    last_commit: int
    is_remote: bool = False


@dataclass
class IndexEntry:
    """A task file seen on a branch, before its content is read."""

    filename: str
    task_id: str
    branch: str
    last_modified: int
    is_remote: bool = False


@dataclass
class ReconciledView:
    """Result of cross-branch resolution.

    ``tasks`` holds exactly one snapshot per id. ``local_tasks`` keeps the
    current checkout's snapshot of every id that exists locally; those are the
    only writable records even when a branch snapshot won.
    """

    tasks: List[Task] = field(default_factory=list)
    local_tasks: Dict[str, Task] = field(default_factory=dict)
    branches: List[str] = field(default_factory=list)

    @classmethod
    def local_only(cls, tasks: Sequence[Task]) -> "ReconciledView":
        ordered = sorted(tasks, key=lambda t: id_sort_key(t.id))
        return cls(tasks=list(ordered), local_tasks={t.id: t for t in ordered})

    def get(self, task_id: str) -> Optional[Task]:
        return next((t for t in self.tasks if t.id == task_id), None)

    def writable_task(self, task_id: str) -> Optional[Task]:
        """The local snapshot that edits must target, if one exists."""
        return self.local_tasks.get(task_id)


def status_rank(status: Optional[str], statuses: Sequence[str]) -> int:
    """Progress rank of a status: Draft and unknown values rank lowest."""
    if not status or status.lower() == DRAFT_STATUS.lower():
        return 0
    for index, candidate in enumerate(statuses):
        if candidate.lower() == status.lower():
            return index + 1
    return 0


def _timestamp(task: Task) -> float:
    return task.last_modified.timestamp() if task.last_modified else 0.0


def resolve_snapshots(
    candidates: Sequence[Task], strategy: str, statuses: Sequence[str]
) -> Task:
    """Pick the winning snapshot for one task id.

    most_recent compares last-modified times; most_progressed compares status
    rank and ignores time. Ties go to the local snapshot, then to the
    alphabetically first branch.

    Raises:
        ValueError: If candidates is empty.
    """
    if not candidates:
        raise ValueError("No snapshots to resolve")

    def sort_key(task: Task) -> Tuple[float, int, str]:
        if strategy == "most_progressed":
            primary = float(-status_rank(task.status, statuses))
        else:
            primary = -_timestamp(task)
        return (primary, 0 if task.source == "local" else 1, task.branch or "")

    return min(candidates, key=sort_key)


class CrossBranchTaskLoader:
    """Loads one resolved task list across the active branches of a repository."""

    def __init__(
        self,
        vcs,
        config: BacklogConfig,
        paths: BacklogPaths,
        local_tasks: Sequence[Task],
        parser: Callable[..., Task] = parse_task,
    ):
        """
        Args:
            vcs: VcsPlumbing implementation (GitBranchService in production).
            config: Backlog configuration (strategy, branch window, statuses).
            paths: Backlog folder layout; the workspace root is the git root.
            local_tasks: Tasks parsed from the current checkout's tasks/ folder.
            parser: Task parser used for branch content.
        """
        self.vcs = vcs
        self.config = config
        self.paths = paths
        self.local_tasks = list(local_tasks)
        self.parser = parser
        self.tasks_path = paths.relative_to_workspace(paths.tasks)
        self.backlog_path = paths.relative_to_workspace(paths.root)

    # ------------------------------------------------------------------
    # Branch selection
    # ------------------------------------------------------------------

    def get_branches_to_scan(self, current_branch: str) -> List[BranchInfo]:
        """Active branches ordered current, main, then most recent first."""
        cutoff = datetime.now().timestamp() - self.config.active_branch_days * 24 * 60 * 60

        local = [BranchInfo(n, t) for n, t in self.vcs.list_local_branches()]
        candidates = [b for b in local if b.last_commit > cutoff or b.name == current_branch]
        if self.config.remote_operations:
            candidates += [
                BranchInfo(n, t, is_remote=True)
                for n, t in self.vcs.list_remote_branches()
                if t > cutoff
            ]

        main_branch = self.vcs.get_main_branch()

        def order(branch: BranchInfo):
            if branch.name == current_branch and not branch.is_remote:
                return (0, 0, branch.name)
            if branch.name == main_branch and not branch.is_remote:
                return (1, 0, branch.name)
            return (2, -branch.last_commit, branch.name)

        return sorted(candidates, key=order)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def build_branch_index(self, branch: BranchInfo) -> List[IndexEntry]:
        """Phase 1: list task files and their commit times on one branch."""
        if not self.vcs.path_exists_at_ref(branch.name, self.backlog_path):
            return []

        filenames = self.vcs.list_files_at_ref(branch.name, self.tasks_path)
        modified = self.vcs.get_file_modified_map(branch.name, self.tasks_path)

        entries = []
        for filename in filenames:
            if not filename.endswith(".md"):
                continue
            task_id = id_from_filename(filename)
            if task_id is None:
                continue
            entries.append(
                IndexEntry(
                    filename=filename,
                    task_id=task_id,
                    branch=branch.name,
                    last_modified=modified.get(filename, 0),
                    is_remote=branch.is_remote,
                )
            )
        return entries

    def should_hydrate(
        self, entry: IndexEntry, local_by_id: Dict[str, Task], strategy: str
    ) -> bool:
        """Phase 2: read content only when the branch snapshot could win."""
        local = local_by_id.get(entry.task_id)
        if local is None:
            return True
        if strategy == "most_progressed":
            return True
        return entry.last_modified > _timestamp(local)

    def hydrate(self, entry: IndexEntry) -> Optional[Task]:
        """Phase 3: read and parse one branch snapshot."""
        repo_path = f"{self.tasks_path}/{entry.filename}"
        try:
            content = self.vcs.read_file_at_ref(entry.branch, repo_path)
        except GitRuntimeError as e:
            logger.warning(f"Error reading {entry.filename} on {entry.branch}: {e}")
            return None

        task = self.parser(
            content,
            path=str(self.paths.workspace_root / repo_path),
            statuses=self.config.statuses,
        )
        task.source = "remote" if entry.is_remote else "local-branch"
        task.branch = entry.branch
        task.last_modified = datetime.fromtimestamp(entry.last_modified)
        return task

    def _run_batches(self, func, items: Sequence, batch_size: int) -> List:
        """Run func over items in bounded batches, keeping input order."""
        results: List = []
        for start in range(0, len(items), batch_size):
            batch = list(items[start : start + batch_size])
            outcomes: Dict[int, object] = {}
            with ThreadPoolExecutor(max_workers=batch_size) as executor:
                future_to_index = {
                    executor.submit(func, item): index for index, item in enumerate(batch)
                }
                for future in as_completed(future_to_index):
                    outcomes[future_to_index[future]] = future.result()
            results.extend(outcomes[index] for index in range(len(batch)))
        return results

    def _stamp_local(self, current_branch: str) -> None:
        try:
            modified = self.vcs.get_file_modified_map(current_branch, self.tasks_path)
        except GitRuntimeError as e:
            logger.warning(f"Could not read commit times on {current_branch}: {e}")
            modified = {}
        for task in self.local_tasks:
            task.source = "local"
            task.branch = current_branch
            stamp = modified.get(Path(task.file_path).name)
            if stamp:
                task.last_modified = datetime.fromtimestamp(stamp)

    def load(self) -> ReconciledView:
        """
        Resolve tasks across active branches.

        Returns:
            ReconciledView with one task per id.

        Raises:
            GitRuntimeError: If branch discovery fails (callers fall back).
        """
        current_branch = self.vcs.get_current_branch()
        branches = self.get_branches_to_scan(current_branch)
        self._stamp_local(current_branch)
        local_by_id = {task.id: task for task in self.local_tasks}

        others = [b for b in branches if b.is_remote or b.name != current_branch]
        branch_names = [b.name for b in branches]
        logger.info(f"Scanning {len(branches)} branches: {branch_names}")
        if not others:
            view = ReconciledView.local_only(self.local_tasks)
            view.branches = branch_names
            return view

        index: List[IndexEntry] = []
        for entries in self._run_batches(self.build_branch_index, others, BRANCH_BATCH_SIZE):
            index.extend(entries)

        strategy = self.config.task_resolution_strategy
        wanted = [e for e in index if self.should_hydrate(e, local_by_id, strategy)]
        logger.debug(f"Index: {len(index)} entries, hydrating {len(wanted)}")

        groups: Dict[str, List[Task]] = {task.id: [task] for task in self.local_tasks}
        for task in self._run_batches(self.hydrate, wanted, HYDRATE_BATCH_SIZE):
            if task is not None:
                groups.setdefault(task.id, []).append(task)

        resolved = [
            resolve_snapshots(candidates, strategy, self.config.statuses)
            for candidates in groups.values()
        ]
        resolved.sort(key=lambda t: id_sort_key(t.id))
        logger.info(f"Loaded {len(resolved)} tasks from {len(branches)} branches")
        return ReconciledView(tasks=resolved, local_tasks=local_by_id, branches=branch_names)
