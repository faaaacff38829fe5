"""
Task store: read API and mutation engine over a backlog folder of markdown records.

Every write goes through the content-hash conflict gate and an atomic
temp-file replace. Lifecycle transitions move files between folders.
"""

import copy
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from backlog_store.adapters.git import GitBranchService, GitRuntimeError
from backlog_store.codec.records import (
    parse_decision,
    parse_document,
    parse_task,
    serialize_decision,
    serialize_task,
    toggle_checklist_item as toggle_checklist_text,
)
from backlog_store.constants import (
    ARCHIVE_DRAFTS_FOLDER,
    ARCHIVE_TASKS_FOLDER,
    COMPLETED_FOLDER,
    DRAFT_PREFIX,
    DRAFT_STATUS,
    DRAFTS_FOLDER,
    TASKS_FOLDER,
)
from backlog_store.core.exceptions import (
    InvalidTaskDataError,
    ReadOnlyTaskError,
    StorageIOError,
    TaskNotFoundError,
)
from backlog_store.core.models import ChecklistItem, Decision, Document, Task
from backlog_store.core.naming import (
    id_sort_key,
    next_sequential_id,
    next_subtask_id,
    normalize_id,
    record_filename,
)
from backlog_store.reconcile.loader import CrossBranchTaskLoader, ReconciledView
from backlog_store.store.cache import RecordCache
from backlog_store.store.conflict import (
    atomic_write,
    checked_write,
    compute_state_token,
    read_text,
    read_with_token,
)
from backlog_store.store.sanitizer import sanitize_references
from backlog_store.support.callbacks import run_status_callback
from backlog_store.support.config import BacklogConfig, load_config
from backlog_store.support.paths import BacklogPaths

logger = logging.getLogger(__name__)

# Folder (relative to the backlog root) -> (Task.folder, Task.source)
FOLDER_KINDS: Dict[str, Tuple[str, str]] = {
    TASKS_FOLDER: ("tasks", "local"),
    DRAFTS_FOLDER: ("drafts", "local"),
    COMPLETED_FOLDER: ("completed", "completed"),
    ARCHIVE_TASKS_FOLDER: ("archive", "local"),
    ARCHIVE_DRAFTS_FOLDER: ("archive", "local"),
}

SCOPES: Dict[str, Tuple[str, ...]] = {
    "tasks": (TASKS_FOLDER,),
    "drafts": (DRAFTS_FOLDER,),
    "completed": (COMPLETED_FOLDER,),
    "archive": (ARCHIVE_TASKS_FOLDER, ARCHIVE_DRAFTS_FOLDER),
    "all": (
        TASKS_FOLDER,
        DRAFTS_FOLDER,
        COMPLETED_FOLDER,
        ARCHIVE_TASKS_FOLDER,
        ARCHIVE_DRAFTS_FOLDER,
    ),
}

# Folders whose ids share the task prefix namespace
TASK_ID_FOLDERS = (TASKS_FOLDER, COMPLETED_FOLDER, ARCHIVE_TASKS_FOLDER)
DRAFT_ID_FOLDERS = (DRAFTS_FOLDER, ARCHIVE_DRAFTS_FOLDER)

UPDATABLE_FIELDS = (
    "title",
    "status",
    "priority",
    "labels",
    "assignee",
    "reporter",
    "milestone",
    "dependencies",
    "parent_task_id",
    "subtasks",
    "references",
    "documentation",
    "type",
    "ordinal",
    "on_status_change",
    "created_date",
    "updated_date",
    "description",
    "acceptance_criteria",
    "definition_of_done",
    "implementation_plan",
    "implementation_notes",
    "final_summary",
)
LIST_FIELDS = ("labels", "assignee", "dependencies", "references", "documentation")


@dataclass
class CreatedTask:
    """Result of creating a record."""

    id: str
    path: str


def today() -> str:
    return datetime.now().strftime("%Y-%m-%d")


class TaskStore:
    """Task record store rooted at a backlog/ directory.

    Reads are served from an mtime-validated parse cache. Writes are checked
    against an optional state token and replace files atomically; the loser
    of a race gets ConflictError with the winner's content.
    """

    def __init__(
        self,
        backlog_root: Union[str, Path],
        config: Optional[BacklogConfig] = None,
        vcs=None,
        run_callbacks: bool = True,
    ):
        """
        Initialize the store.

        Args:
            backlog_root: Path to the backlog/ directory.
            config: Fixed configuration. If omitted, config.yml is (re)loaded
                on demand.
            vcs: Version-control plumbing for cross-branch loading. If omitted,
                a GitBranchService on the workspace root is created when needed.
            run_callbacks: Run onStatusChange hooks after status changes.
        """
        self.paths = BacklogPaths.from_root(backlog_root)
        self._config = config
        self._vcs = vcs
        self.run_callbacks = run_callbacks
        self._cache: RecordCache[Task] = RecordCache()
        self._lock = threading.RLock()

    @property
    def backlog_root(self) -> Path:
        return self.paths.root

    @property
    def config(self) -> BacklogConfig:
        if self._config is not None:
            return self._config
        return load_config(self.paths.root)

    # ========================================================================
    # Reading
    # ========================================================================

    def _folder_path(self, folder: str) -> Path:
        return self.paths.root / folder

    def _iter_record_files(self, folder: str) -> List[Path]:
        directory = self._folder_path(folder)
        if not directory.is_dir():
            return []
        return sorted(
            p for p in directory.glob("*.md") if p.is_file() and not p.name.startswith(".")
        )

    def _parse_file(self, path: str) -> Task:
        text = read_text(path)
        return parse_task(text, path=path, statuses=self.config.statuses)

    def _load_file(self, path: Path, folder: str) -> Optional[Task]:
        """Parse one record through the cache, tagging folder and source."""
        try:
            cached = self._cache.get(str(path), self._parse_file)
        except (OSError, StorageIOError, UnicodeDecodeError) as e:
            logger.warning(f"Skipping unreadable record {path}: {e}")
            return None

        task = copy.deepcopy(cached)
        task.folder, task.source = FOLDER_KINDS[folder]
        if folder == DRAFTS_FOLDER:
            task.status = DRAFT_STATUS
        try:
            task.last_modified = datetime.fromtimestamp(path.stat().st_mtime)
        except OSError:
            task.last_modified = None
        return task

    def _load_folder(self, folder: str) -> List[Task]:
        tasks = []
        for path in self._iter_record_files(folder):
            task = self._load_file(path, folder)
            if task is not None:
                tasks.append(task)
        logger.debug(f"Parsed {len(tasks)} records from {folder}")
        return tasks

    def list_tasks(self, scope: str = "tasks") -> List[Task]:
        """
        List tasks in a scope.

        Args:
            scope: One of "tasks", "drafts", "completed", "archive", "all".

        Returns:
            Tasks sorted by id.

        Raises:
            InvalidTaskDataError: If scope is unknown.
        """
        if scope not in SCOPES:
            raise InvalidTaskDataError(f"Unknown scope '{scope}'")
        tasks: List[Task] = []
        for folder in SCOPES[scope]:
            tasks.extend(self._load_folder(folder))
        return sorted(tasks, key=lambda t: id_sort_key(t.id))

    def _locate(
        self, task_id: str, folders: Iterable[str] = SCOPES["all"]
    ) -> Optional[Tuple[Path, str]]:
        wanted = normalize_id(task_id)
        for folder in folders:
            for path in self._iter_record_files(folder):
                task = self._load_file(path, folder)
                if task is not None and task.id == wanted:
                    return path, folder
        return None

    def _require(
        self, task_id: str, folders: Iterable[str] = SCOPES["all"]
    ) -> Tuple[Path, str]:
        located = self._locate(task_id, folders)
        if located is None:
            raise TaskNotFoundError(normalize_id(task_id))
        return located

    def get_task(self, task_id: str) -> Optional[Task]:
        """Return a task by id from any local folder, or None."""
        located = self._locate(task_id)
        if located is None:
            return None
        return self._load_file(*located)

    def get_state_token(self, task_id: str) -> str:
        """
        Get the current state token of a task's file.

        Raises:
            TaskNotFoundError: If no file backs the id.
        """
        path, _ = self._require(task_id)
        return compute_state_token(read_text(path))

    def read_task(self, task_id: str) -> Tuple[Task, str]:
        """Read a task and its state token from one read of the file."""
        path, folder = self._require(task_id)
        content, token = read_with_token(path)
        task = parse_task(content, path=str(path), statuses=self.config.statuses)
        task.folder, task.source = FOLDER_KINDS[folder]
        return task, token

    # ========================================================================
    # Checked writes
    # ========================================================================

    def _write_checked(
        self, path: Path, expected_token: Optional[str], mutator: Callable[[str], str]
    ) -> str:
        try:
            token = checked_write(path, expected_token, mutator)
        except FileNotFoundError as e:
            raise StorageIOError(str(path), e) from e
        finally:
            self._cache.invalidate(str(path))
        return token

    def checked_write(
        self, task_id: str, expected_token: Optional[str], mutator: Callable[[str], str]
    ) -> str:
        """
        Apply a raw-text mutator to a task file under the conflict gate.

        Args:
            task_id: Task to rewrite.
            expected_token: Token observed by the caller (None skips the check).
            mutator: Function from current file text to new file text.

        Returns:
            New state token.

        Raises:
            TaskNotFoundError: If the id has no file.
            ConflictError: If the file changed since expected_token was taken.
        """
        path, folder = self._require(task_id)
        self._ensure_writable(task_id, folder)
        return self._write_checked(path, expected_token, mutator)

    def _ensure_writable(self, task_id: str, folder: str) -> None:
        if FOLDER_KINDS[folder][1] != "local":
            raise ReadOnlyTaskError(f"Task {task_id} in {folder}/ is read-only")

    # ========================================================================
    # Field updates
    # ========================================================================

    def _validate_status(self, status: Any, folder: str) -> str:
        allowed = list(self.config.statuses)
        if folder in DRAFT_ID_FOLDERS:
            allowed.append(DRAFT_STATUS)
        for candidate in allowed:
            if str(status).strip().lower() == candidate.lower():
                return candidate
        raise InvalidTaskDataError(f"Invalid status '{status}'. Valid statuses: {allowed}")

    @staticmethod
    def _validate_priority(priority: Any) -> Optional[str]:
        if priority is None or priority == "":
            return None
        value = str(priority).strip().lower()
        if value not in Task.VALID_PRIORITIES:
            raise InvalidTaskDataError(
                f"Invalid priority '{priority}'. Valid priorities: {list(Task.VALID_PRIORITIES)}"
            )
        return value

    @staticmethod
    def _coerce_checklist(value: Any, existing: List[ChecklistItem]) -> List[ChecklistItem]:
        """Normalize a checklist update, giving new items ids that were never used."""
        if value is None:
            return []
        if not isinstance(value, (list, tuple)):
            raise InvalidTaskDataError("Checklist updates must be a list")

        items: List[Any] = []
        for entry in value:
            if isinstance(entry, ChecklistItem):
                items.append(ChecklistItem(entry.id, entry.text, entry.checked))
            elif isinstance(entry, dict):
                if "text" not in entry:
                    raise InvalidTaskDataError(f"Checklist item without text: {entry}")
                items.append(
                    ChecklistItem(
                        id=int(entry["id"]) if entry.get("id") is not None else 0,
                        text=str(entry["text"]),
                        checked=bool(entry.get("checked", False)),
                    )
                )
            else:
                items.append(ChecklistItem(id=0, text=str(entry)))

        used = [item.id for item in existing] + [item.id for item in items]
        next_id = max(used, default=0) + 1
        for item in items:
            if item.id <= 0:
                item.id = next_id
                next_id += 1
        return items

    def _apply_updates(self, task: Task, updates: Dict[str, Any], folder: str) -> None:
        unknown = [key for key in updates if key not in UPDATABLE_FIELDS]
        if unknown:
            raise InvalidTaskDataError(f"Fields cannot be updated: {unknown}")

        for key, value in updates.items():
            if key == "status":
                value = self._validate_status(value, folder)
            elif key == "priority":
                value = self._validate_priority(value)
            elif key in Task.CHECKLIST_FIELDS:
                value = self._coerce_checklist(value, getattr(task, key))
            elif key in LIST_FIELDS:
                value = [str(v).strip() for v in (value or []) if str(v).strip()]
            elif key == "parent_task_id" and value:
                value = normalize_id(value)
            elif key == "ordinal" and value is not None:
                value = float(value)
            elif key == "title" and not str(value or "").strip():
                raise InvalidTaskDataError("Title cannot be empty")
            setattr(task, key, value)

        task.dependencies = [d for d in task.dependencies if normalize_id(d) != task.id]

    def update_task(
        self,
        task_id: str,
        updates: Dict[str, Any],
        expected_token: Optional[str] = None,
        stamp_updated: bool = False,
    ) -> str:
        """
        Update fields of a task in place.

        Only the header entries and sections whose values change are rewritten.

        Args:
            task_id: Task to update.
            updates: Field name -> new value (Task attribute names).
            expected_token: State token the caller last saw.
            stamp_updated: Also set updated_date to today.

        Returns:
            New state token.

        Raises:
            TaskNotFoundError: If the task does not exist.
            ReadOnlyTaskError: If the task is not a local writable record.
            ConflictError: If the file changed since expected_token.
            InvalidTaskDataError: For invalid field values.
            MalformedRecordError: If the file's header cannot be parsed.
        """
        path, folder = self._require(task_id)
        self._ensure_writable(task_id, folder)
        updates = dict(updates)
        if stamp_updated and "updated_date" not in updates:
            updates["updated_date"] = today()

        statuses = self.config.statuses
        change: Dict[str, Any] = {}

        def mutate(current: str) -> str:
            task = parse_task(current, path=str(path), statuses=statuses, strict=True)
            change["old_status"] = task.status
            self._apply_updates(task, updates, folder)
            change["task"] = task
            return serialize_task(task, original=current, statuses=statuses)

        token = self._write_checked(path, expected_token, mutate)
        logger.info(f"Updated {normalize_id(task_id)}: {sorted(updates)}")

        if "status" in updates:
            task = change["task"]
            self._notify_status_change(task, change["old_status"], task.status)
        return token

    def _notify_status_change(self, task: Task, old_status: str, new_status: str) -> None:
        if not self.run_callbacks:
            return
        run_status_callback(
            self.paths.root,
            task.on_status_change,
            self.config.on_status_change,
            task_id=task.id,
            old_status=old_status,
            new_status=new_status,
            task_title=task.title,
        )

    def toggle_checklist_item(
        self,
        task_id: str,
        list_name: str,
        item_id: int,
        expected_token: Optional[str] = None,
    ) -> str:
        """
        Flip one checklist item.

        Only the checkbox character of the matching line(s) changes. Items
        without an explicit ``#N`` are rewritten with their assigned ids.

        Args:
            task_id: Task holding the checklist.
            list_name: "acceptance_criteria" or "definition_of_done".
            item_id: Checklist item id.
            expected_token: State token the caller last saw.

        Returns:
            New state token.

        Raises:
            InvalidTaskDataError: If the list name or item id is unknown.
        """
        if list_name not in Task.CHECKLIST_FIELDS:
            raise InvalidTaskDataError(f"Unknown checklist '{list_name}'")
        path, folder = self._require(task_id)
        self._ensure_writable(task_id, folder)
        statuses = self.config.statuses

        def mutate(current: str) -> str:
            updated, toggled = toggle_checklist_text(current, list_name, item_id, str(path))
            if toggled:
                return updated
            task = parse_task(current, path=str(path), statuses=statuses, strict=True)
            items = task.checklist(list_name)
            matches = [item for item in items if item.id == item_id]
            if not matches:
                raise InvalidTaskDataError(
                    f"Task {task.id} has no {list_name} item #{item_id}"
                )
            for item in matches:
                item.checked = not item.checked
            return serialize_task(task, original=current, statuses=statuses)

        token = self._write_checked(path, expected_token, mutate)
        logger.info(f"Toggled {list_name} #{item_id} on {normalize_id(task_id)}")
        return token

    def reorder_task(
        self, task_id: str, ordinal: float, expected_token: Optional[str] = None
    ) -> str:
        """Set a task's ordinal (position within its status column)."""
        return self.update_task(task_id, {"ordinal": ordinal}, expected_token=expected_token)

    # ========================================================================
    # Creation
    # ========================================================================

    def _existing_ids(self, folders: Iterable[str]) -> List[str]:
        ids = []
        for folder in folders:
            for path in self._iter_record_files(folder):
                task = self._load_file(path, folder)
                if task is not None:
                    ids.append(task.id)
        return ids

    def _build_task(self, task_id: str, fields: Dict[str, Any], status: str) -> Task:
        fields = dict(fields)
        title = str(fields.pop("title", "") or "").strip()
        if not title:
            raise InvalidTaskDataError("Title is required")

        task = Task(id=task_id, title=title, status=status, created_date=today())
        self._apply_updates(task, fields, TASKS_FOLDER if status != DRAFT_STATUS else DRAFTS_FOLDER)
        return task

    def _write_new(self, task: Task, folder: str) -> str:
        path = self._folder_path(folder) / record_filename(task.id, task.title)
        if path.exists():
            raise InvalidTaskDataError(f"File already exists: {path}")
        atomic_write(path, serialize_task(task))
        self._cache.invalidate(str(path))
        return str(path)

    def create_task(self, fields: Dict[str, Any]) -> CreatedTask:
        """
        Create a task in tasks/ with the next sequential id.

        Args:
            fields: Task attribute values; "title" is required. Checklist
                entries may be plain strings.

        Returns:
            CreatedTask with the new id and file path.

        Raises:
            InvalidTaskDataError: If a field value is invalid.
        """
        with self._lock:
            config = self.config
            status = fields.get("status") or config.initial_status
            status = self._validate_status(status, TASKS_FOLDER)
            task_id = next_sequential_id(config.task_prefix, self._existing_ids(TASK_ID_FOLDERS))
            task = self._build_task(task_id, {**fields, "status": status}, status)
            path = self._write_new(task, TASKS_FOLDER)

        logger.info(f"Created {task_id} at {path}")
        return CreatedTask(id=task_id, path=path)

    def create_draft(self, fields: Dict[str, Any]) -> CreatedTask:
        """Create a DRAFT-N record in drafts/ with status Draft."""
        with self._lock:
            task_id = next_sequential_id(DRAFT_PREFIX, self._existing_ids(DRAFT_ID_FOLDERS))
            fields = {k: v for k, v in fields.items() if k != "status"}
            task = self._build_task(task_id, {**fields, "status": DRAFT_STATUS}, DRAFT_STATUS)
            path = self._write_new(task, DRAFTS_FOLDER)

        logger.info(f"Created draft {task_id} at {path}")
        return CreatedTask(id=task_id, path=path)

    def create_subtask(self, parent_id: str, fields: Dict[str, Any]) -> CreatedTask:
        """
        Create a child task with a dotted id (TASK-5 -> TASK-5.1).

        The parent's subtasks list is extended through the checked-write path.

        Raises:
            TaskNotFoundError: If the parent is not an active task.
        """
        parent_path, _ = self._require(parent_id, (TASKS_FOLDER,))
        parent = self._load_file(parent_path, TASKS_FOLDER)

        with self._lock:
            config = self.config
            status = fields.get("status") or config.initial_status
            status = self._validate_status(status, TASKS_FOLDER)
            task_id = next_subtask_id(parent.id, self._existing_ids(TASK_ID_FOLDERS))
            task = self._build_task(
                task_id, {**fields, "status": status, "parent_task_id": parent.id}, status
            )
            path = self._write_new(task, TASKS_FOLDER)

        subtasks = list(parent.subtasks or [])
        if task_id not in subtasks:
            self.update_task(parent.id, {"subtasks": subtasks + [task_id]})
        logger.info(f"Created subtask {task_id} of {parent.id}")
        return CreatedTask(id=task_id, path=path)

    # ========================================================================
    # Lifecycle transitions
    # ========================================================================

    def _move(self, source: Path, target_folder: str, filename: Optional[str] = None) -> Path:
        target_dir = self._folder_path(target_folder)
        target = target_dir / (filename or source.name)
        if target.exists():
            raise InvalidTaskDataError(f"Target file already exists: {target}")
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            os.replace(source, target)
        except OSError as e:
            raise StorageIOError(str(source), e) from e
        finally:
            self._cache.invalidate(str(source))
        return target

    def archive_task(self, task_id: str) -> str:
        """
        Move a task (or draft) to the archive and sanitize references to it.

        Returns:
            New file path.

        Raises:
            TaskNotFoundError: If the id is not in tasks/ or drafts/.
        """
        path, folder = self._require(task_id, (TASKS_FOLDER, DRAFTS_FOLDER))
        archived_id = self._load_file(path, folder).id
        target_folder = ARCHIVE_TASKS_FOLDER if folder == TASKS_FOLDER else ARCHIVE_DRAFTS_FOLDER
        with self._lock:
            target = self._move(path, target_folder)
        logger.info(f"Archived {archived_id} to {target_folder}/")

        sanitize_references(self, archived_id)
        return str(target)

    def restore_task(self, task_id: str) -> str:
        """
        Move an archived or completed record back to its active folder.

        Returns:
            New file path.
        """
        path, folder = self._require(
            task_id, (ARCHIVE_TASKS_FOLDER, ARCHIVE_DRAFTS_FOLDER, COMPLETED_FOLDER)
        )
        target_folder = DRAFTS_FOLDER if folder == ARCHIVE_DRAFTS_FOLDER else TASKS_FOLDER
        restored_id = self._load_file(path, folder).id
        with self._lock:
            if self._locate(restored_id, (target_folder,)) is not None:
                raise InvalidTaskDataError(
                    f"Task {restored_id} already exists in {target_folder}/"
                )
            target = self._move(path, target_folder)
        logger.info(f"Restored {restored_id} from {folder}/")
        return str(target)

    def complete_task(self, task_id: str) -> str:
        """Move a task from tasks/ to completed/."""
        path, _ = self._require(task_id, (TASKS_FOLDER,))
        with self._lock:
            target = self._move(path, COMPLETED_FOLDER)
        logger.info(f"Completed {normalize_id(task_id)}")
        return str(target)

    def delete_task(self, task_id: str) -> None:
        """Permanently remove a task's file from whichever folder holds it."""
        path, _ = self._require(task_id)
        try:
            path.unlink()
        except OSError as e:
            raise StorageIOError(str(path), e) from e
        finally:
            self._cache.invalidate(str(path))
        logger.info(f"Deleted {normalize_id(task_id)} ({path.name})")

    def promote_draft(self, draft_id: str) -> str:
        """
        Turn a draft into a task with the next task id.

        The body and unrelated header fields are carried over unchanged; the id
        and status are rewritten and the file is renamed into tasks/.

        Returns:
            The new task id.
        """
        path, _ = self._require(draft_id, (DRAFTS_FOLDER,))
        statuses = self.config.statuses

        with self._lock:
            content = read_text(path)
            task = parse_task(content, path=str(path), statuses=statuses, strict=True)
            new_id = next_sequential_id(
                self.config.task_prefix, self._existing_ids(TASK_ID_FOLDERS)
            )
            task.id = new_id
            task.status = self.config.initial_status
            promoted = serialize_task(task, original=content, statuses=statuses)

            target = self._folder_path(TASKS_FOLDER) / record_filename(new_id, task.title)
            if target.exists():
                raise InvalidTaskDataError(f"Target file already exists: {target}")
            atomic_write(target, promoted)
            try:
                path.unlink()
            except OSError as e:
                raise StorageIOError(str(path), e) from e
            finally:
                self._cache.invalidate(str(path))

        logger.info(f"Promoted {normalize_id(draft_id)} to {new_id}")
        return new_id

    # ========================================================================
    # Queries
    # ========================================================================

    def get_blocked_by(self, task_id: str) -> List[str]:
        """Ids of active tasks that list task_id in their dependencies."""
        wanted = normalize_id(task_id)
        return [
            task.id
            for task in self.list_tasks("tasks")
            if wanted in (normalize_id(d) for d in task.dependencies)
        ]

    def get_statuses(self) -> List[str]:
        return list(self.config.statuses)

    def get_milestones(self) -> List[str]:
        return self.config.milestone_names

    def get_unique_labels(self) -> List[str]:
        """Labels from config plus every active task, sorted."""
        labels = set(self.config.labels)
        for task in self.list_tasks("tasks"):
            labels.update(task.labels)
        return sorted(labels)

    def get_unique_assignees(self) -> List[str]:
        assignees = set()
        for task in self.list_tasks("tasks"):
            assignees.update(task.assignee)
        return sorted(assignees)

    # ========================================================================
    # Cross-branch
    # ========================================================================

    def reconcile(self):
        """
        Build the resolved cross-branch view.

        Falls back to a local-only view when cross-branch checking is off, the
        workspace is not a git repository, or git fails.

        Returns:
            ReconciledView.
        """
        config = self.config
        local_tasks = self.list_tasks("tasks")
        if not config.check_active_branches:
            return ReconciledView.local_only(local_tasks)

        vcs = self._vcs or GitBranchService(self.paths.workspace_root)
        if not vcs.is_git_repository():
            logger.warning(f"{self.paths.workspace_root} is not a git repository, using local tasks")
            return ReconciledView.local_only(local_tasks)

        loader = CrossBranchTaskLoader(vcs, config, self.paths, local_tasks)
        try:
            return loader.load()
        except GitRuntimeError as e:
            logger.warning(f"Cross-branch loading failed, falling back to local: {e}")
            return ReconciledView.local_only(local_tasks)

    def list_tasks_cross_branch(self) -> List[Task]:
        """One resolved task per id across active branches."""
        return self.reconcile().tasks

    # ========================================================================
    # Documents and decisions
    # ========================================================================

    def list_documents(self) -> List[Document]:
        documents = []
        if not self.paths.docs.is_dir():
            return documents
        for path in sorted(self.paths.docs.rglob("*.md")):
            try:
                documents.append(parse_document(read_text(path), path=str(path)))
            except (OSError, StorageIOError, UnicodeDecodeError) as e:
                logger.warning(f"Skipping unreadable document {path}: {e}")
        return sorted(documents, key=lambda d: id_sort_key(d.id))

    def get_document(self, doc_id: str) -> Optional[Document]:
        wanted = normalize_id(doc_id)
        return next((d for d in self.list_documents() if d.id == wanted), None)

    def list_decisions(self) -> List[Decision]:
        decisions = []
        directory = self.paths.decisions
        if not directory.is_dir():
            return decisions
        for path in sorted(directory.glob("*.md")):
            try:
                decisions.append(parse_decision(read_text(path), path=str(path)))
            except (OSError, StorageIOError, UnicodeDecodeError) as e:
                logger.warning(f"Skipping unreadable decision {path}: {e}")
        return sorted(decisions, key=lambda d: id_sort_key(d.id))

    def get_decision(self, decision_id: str) -> Optional[Decision]:
        wanted = normalize_id(decision_id)
        return next((d for d in self.list_decisions() if d.id == wanted), None)

    def update_decision(
        self, decision_id: str, updates: Dict[str, Any], expected_token: Optional[str] = None
    ) -> str:
        """
        Update header fields or sections of a decision record.

        Raises:
            TaskNotFoundError: If the decision does not exist.
            ConflictError: If the file changed since expected_token.
        """
        decision = self.get_decision(decision_id)
        if decision is None:
            raise TaskNotFoundError(normalize_id(decision_id), f"Decision {decision_id} not found")
        allowed = ("title", "date", "status") + Decision.SECTION_FIELDS
        unknown = [key for key in updates if key not in allowed]
        if unknown:
            raise InvalidTaskDataError(f"Fields cannot be updated: {unknown}")

        def mutate(current: str) -> str:
            record = parse_decision(current, path=decision.file_path)
            for key, value in updates.items():
                setattr(record, key, value)
            return serialize_decision(record, current)

        try:
            return checked_write(decision.file_path, expected_token, mutate)
        except FileNotFoundError as e:
            raise StorageIOError(decision.file_path, e) from e


def compute_subtasks(tasks: List[Task]) -> None:
    """Fill each task's subtasks from the parent_task_id links of the others."""
    children: Dict[str, List[str]] = {}
    for task in tasks:
        if task.parent_task_id:
            children.setdefault(normalize_id(task.parent_task_id), []).append(task.id)
    for task in tasks:
        if task.id in children:
            task.subtasks = sorted(children[task.id], key=id_sort_key)


__all__ = ["CreatedTask", "TaskStore", "compute_subtasks"]
