"""
Tests for cross-branch loading and snapshot resolution.

Uses an in-memory VcsPlumbing fake; the real git adapter is covered in
tests/adapters/test_git_branch_service.py.
"""

import itertools
import time
from datetime import datetime

import pytest

from backlog_store.adapters.git import GitCommandError, GitRuntimeError
from backlog_store.core.models import Task
from backlog_store.reconcile import (
    CrossBranchTaskLoader,
    ReconciledView,
    resolve_snapshots,
    status_rank,
)
from backlog_store.store import TaskStore
from backlog_store.support.config import BacklogConfig
from backlog_store.support.paths import BacklogPaths
from conftest import write_record

NOW = int(time.time())
DAY = 24 * 60 * 60
STATUSES = ["To Do", "In Progress", "Done"]


def record(task_id, status, title="Task"):
    return f"---\nid: {task_id}\ntitle: {title}\nstatus: {status}\n---\n"


class FakeVcs:
    """In-memory branches: name -> (last commit, {filename: (content, stamp)})."""

    def __init__(self, current="main"):
        self.current = current
        self.branches = {}
        self.remotes = {}
        self.reads = []
        self.fail = False

    def add_branch(self, name, last_commit=NOW, files=None, remote=False):
        target = self.remotes if remote else self.branches
        target[name] = (last_commit, dict(files or {}))

    def _files(self, ref):
        if ref in self.branches:
            return self.branches[ref][1]
        return self.remotes[ref][1]

    def is_git_repository(self):
        return True

    def get_current_branch(self):
        if self.fail:
            raise GitCommandError(["rev-parse"], 128, "fatal: broken")
        return self.current

    def get_main_branch(self):
        return "main"

    def list_local_branches(self):
        return [(name, info[0]) for name, info in self.branches.items()]

    def list_remote_branches(self):
        return [(name, info[0]) for name, info in self.remotes.items()]

    def list_files_at_ref(self, ref, path):
        assert path == "backlog/tasks"
        return sorted(self._files(ref))

    def read_file_at_ref(self, ref, path):
        self.reads.append((ref, path))
        filename = path.rsplit("/", 1)[-1]
        return self._files(ref)[filename][0]

    def path_exists_at_ref(self, ref, path):
        return path == "backlog"

    def get_file_modified_map(self, ref, path):
        return {name: stamp for name, (_, stamp) in self._files(ref).items()}


@pytest.fixture
def vcs():
    return FakeVcs()


def make_store(backlog_root, vcs, **config):
    config = BacklogConfig(check_active_branches=True, **config)
    return TaskStore(backlog_root, config=config, vcs=vcs)


def add_local(backlog_root, vcs, task_id, status, stamp):
    """Write a task to the checkout and register its commit time on main."""
    filename = f"{task_id.lower()} - Task.md"
    content = record(task_id, status)
    write_record(backlog_root / "tasks", filename, content)
    vcs.branches.setdefault("main", (NOW, {}))[1][filename] = (content, stamp)


class TestMostRecent:
    """Default strategy: newest commit time wins."""

    def test_newer_branch_snapshot_wins(self, backlog_root, vcs):
        """Test a newer branch edit wins while the local copy stays writable."""
        add_local(backlog_root, vcs, "TASK-1", "To Do", stamp=1000)
        vcs.add_branch(
            "feature",
            files={"task-1 - Task.md": (record("TASK-1", "In Progress"), 2000)},
        )

        view = make_store(backlog_root, vcs).reconcile()

        winner = view.get("TASK-1")
        assert winner.status == "In Progress"
        assert winner.source == "local-branch"
        assert winner.branch == "feature"
        assert winner.is_read_only
        assert winner.last_modified == datetime.fromtimestamp(2000)

        local = view.writable_task("TASK-1")
        assert local.status == "To Do"
        assert local.source == "local"
        assert view.branches == ["main", "feature"]

    def test_older_branch_snapshot_is_not_read(self, backlog_root, vcs):
        """Test content of a snapshot that cannot win is never fetched."""
        add_local(backlog_root, vcs, "TASK-1", "To Do", stamp=5000)
        vcs.add_branch(
            "feature",
            files={"task-1 - Task.md": (record("TASK-1", "Done"), 1000)},
        )

        view = make_store(backlog_root, vcs).reconcile()
        assert view.get("TASK-1").status == "To Do"
        assert view.get("TASK-1").source == "local"
        assert vcs.reads == []

    def test_branch_only_task_is_included(self, backlog_root, vcs):
        add_local(backlog_root, vcs, "TASK-1", "To Do", stamp=1000)
        vcs.add_branch(
            "feature",
            files={
                "task-2 - Task.md": (record("TASK-2", "To Do"), 1500),
                "notes.txt": ("ignored", 1500),
            },
        )

        view = make_store(backlog_root, vcs).reconcile()
        assert [t.id for t in view.tasks] == ["TASK-1", "TASK-2"]
        assert view.get("TASK-2").branch == "feature"
        assert view.writable_task("TASK-2") is None
        assert vcs.reads == [("feature", "backlog/tasks/task-2 - Task.md")]

    def test_tie_goes_to_local(self, backlog_root, vcs):
        add_local(backlog_root, vcs, "TASK-1", "To Do", stamp=1000)
        vcs.add_branch(
            "feature",
            files={"task-1 - Task.md": (record("TASK-1", "Done"), 1000)},
        )
        view = make_store(backlog_root, vcs).reconcile()
        assert view.get("TASK-1").source == "local"

    def test_inactive_branch_is_skipped(self, backlog_root, vcs):
        """Test branches outside the active window are not scanned."""
        add_local(backlog_root, vcs, "TASK-1", "To Do", stamp=1000)
        vcs.add_branch(
            "stale",
            last_commit=NOW - 40 * DAY,
            files={"task-9 - Task.md": (record("TASK-9", "To Do"), NOW - 40 * DAY)},
        )

        view = make_store(backlog_root, vcs, active_branch_days=30).reconcile()
        assert [t.id for t in view.tasks] == ["TASK-1"]
        assert "stale" not in view.branches

    def test_remote_branches_need_remote_operations(self, backlog_root, vcs):
        add_local(backlog_root, vcs, "TASK-1", "To Do", stamp=1000)
        vcs.add_branch(
            "origin/feature",
            files={"task-3 - Task.md": (record("TASK-3", "To Do"), 3000)},
            remote=True,
        )

        assert [t.id for t in make_store(backlog_root, vcs).reconcile().tasks] == ["TASK-1"]

        view = make_store(backlog_root, vcs, remote_operations=True).reconcile()
        assert view.get("TASK-3").source == "remote"
        assert view.get("TASK-3").branch == "origin/feature"


class TestMostProgressed:
    """Status rank wins regardless of time."""

    def test_further_status_wins(self, backlog_root, vcs):
        add_local(backlog_root, vcs, "TASK-1", "Done", stamp=1000)
        add_local(backlog_root, vcs, "TASK-2", "To Do", stamp=9000)
        vcs.add_branch(
            "feature",
            files={
                "task-1 - Task.md": (record("TASK-1", "In Progress"), 9000),
                "task-2 - Task.md": (record("TASK-2", "In Progress"), 1000),
            },
        )

        view = make_store(
            backlog_root, vcs, task_resolution_strategy="most_progressed"
        ).reconcile()
        assert view.get("TASK-1").status == "Done"
        assert view.get("TASK-1").source == "local"
        assert view.get("TASK-2").status == "In Progress"
        assert view.get("TASK-2").branch == "feature"


class TestFallback:
    """Any git trouble degrades to the local view."""

    def test_git_failure_falls_back_to_local(self, backlog_root, vcs):
        add_local(backlog_root, vcs, "TASK-1", "To Do", stamp=1000)
        vcs.fail = True
        view = make_store(backlog_root, vcs).reconcile()
        assert [t.id for t in view.tasks] == ["TASK-1"]
        assert view.get("TASK-1").source == "local"

    def test_disabled_never_touches_vcs(self, backlog_root, vcs):
        add_local(backlog_root, vcs, "TASK-1", "To Do", stamp=1000)
        vcs.fail = True
        store = TaskStore(backlog_root, config=BacklogConfig(), vcs=vcs)
        assert [t.id for t in store.list_tasks_cross_branch()] == ["TASK-1"]

    def test_unreadable_snapshot_is_dropped(self, backlog_root, vcs, monkeypatch):
        """Test a failed git show drops only that snapshot."""
        add_local(backlog_root, vcs, "TASK-1", "To Do", stamp=1000)
        vcs.add_branch(
            "feature",
            files={"task-1 - Task.md": (record("TASK-1", "Done"), 2000)},
        )

        def broken_read(ref, path):
            raise GitCommandError(["show"], 128, "fatal: bad object")

        monkeypatch.setattr(vcs, "read_file_at_ref", broken_read)
        view = make_store(backlog_root, vcs).reconcile()
        assert view.get("TASK-1").source == "local"


class TestBranchSelection:
    """Order and filtering of branches to scan."""

    def test_current_then_main_then_recent(self, backlog_root):
        vcs = FakeVcs(current="work")
        vcs.add_branch("a-old", last_commit=NOW - 5 * DAY)
        vcs.add_branch("main", last_commit=NOW - 3 * DAY)
        vcs.add_branch("b-new", last_commit=NOW - DAY)
        vcs.add_branch("work", last_commit=NOW - 60 * DAY)

        loader = CrossBranchTaskLoader(
            vcs, BacklogConfig(), BacklogPaths.from_root(backlog_root), []
        )
        names = [b.name for b in loader.get_branches_to_scan("work")]
        assert names == ["work", "main", "b-new", "a-old"]


class TestResolution:
    """Pure resolution helpers."""

    def test_status_rank(self):
        assert status_rank("Draft", STATUSES) == 0
        assert status_rank("Blocked", STATUSES) == 0
        assert status_rank(None, STATUSES) == 0
        assert status_rank("to do", STATUSES) == 1
        assert status_rank("Done", STATUSES) == 3

    def test_branch_name_breaks_remaining_ties(self):
        stamp = datetime.fromtimestamp(1000)
        first = Task("TASK-1", "T", "To Do", source="local-branch", branch="b-feature", last_modified=stamp)
        second = Task("TASK-1", "T", "To Do", source="local-branch", branch="a-feature", last_modified=stamp)
        assert resolve_snapshots([first, second], "most_recent", STATUSES) is second

    def test_three_branch_snapshots(self):
        """Test each strategy picks its winner whatever the candidate order."""
        snapshots = [
            Task("TASK-1", "T", "Done", source="local-branch", branch="done-branch",
                 last_modified=datetime.fromtimestamp(1000)),
            Task("TASK-1", "T", "To Do", source="local-branch", branch="todo-branch",
                 last_modified=datetime.fromtimestamp(3000)),
            Task("TASK-1", "T", "In Progress", source="remote", branch="origin/wip",
                 last_modified=datetime.fromtimestamp(2000)),
        ]
        for ordering in itertools.permutations(snapshots):
            assert resolve_snapshots(ordering, "most_progressed", STATUSES).status == "Done"
            assert resolve_snapshots(ordering, "most_recent", STATUSES).status == "To Do"

    def test_empty_candidates(self):
        with pytest.raises(ValueError):
            resolve_snapshots([], "most_recent", STATUSES)

    def test_local_only_view(self):
        tasks = [Task("TASK-10", "T", "To Do"), Task("TASK-2", "T", "To Do")]
        view = ReconciledView.local_only(tasks)
        assert [t.id for t in view.tasks] == ["TASK-2", "TASK-10"]
        assert set(view.local_tasks) == {"TASK-2", "TASK-10"}


def test_git_errors_share_a_base():
    assert issubclass(GitCommandError, GitRuntimeError)
