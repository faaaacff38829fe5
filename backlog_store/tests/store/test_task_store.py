"""
Tests for the TaskStore mutation engine and read API.
"""

from pathlib import Path

import pytest

from backlog_store.core.exceptions import (
    ConflictError,
    InvalidTaskDataError,
    MalformedRecordError,
    ReadOnlyTaskError,
    TaskNotFoundError,
)
from backlog_store.core.models import ChecklistItem
from backlog_store.store import TaskStore, compute_state_token, compute_subtasks
from backlog_store.store.repository import today
from backlog_store.store.sanitizer import sanitize_references, strip_reference
from backlog_store.support.config import BacklogConfig
from conftest import read_record, write_record


def task_file(backlog_root, task_id, title="Task", extra=""):
    """Write a minimal task record to tasks/."""
    content = f"---\nid: {task_id}\ntitle: {title}\nstatus: To Do\n{extra}---\n"
    filename = f"{task_id.lower()} - {title}.md"
    return write_record(backlog_root / "tasks", filename, content)


class TestCreate:
    """Creating tasks, drafts and subtasks."""

    def test_create_first_task(self, store, backlog_root):
        """Test the first task gets id TASK-1 and the initial status."""
        created = store.create_task({"title": "First task", "labels": ["a"]})
        assert created.id == "TASK-1"
        assert created.path.endswith("task-1 - First-task.md")

        task = store.get_task("task-1")
        assert task.title == "First task"
        assert task.status == "To Do"
        assert task.labels == ["a"]
        assert task.created_date == today()
        assert task.folder == "tasks"
        assert task.source == "local"

    def test_next_id_uses_highest_across_folders(self, store, backlog_root):
        """Test gaps are never filled and all task folders are counted."""
        task_file(backlog_root, "TASK-1")
        write_record(
            backlog_root / "completed", "task-5 - Done.md", "---\nid: TASK-5\ntitle: Done\n---\n"
        )
        write_record(
            backlog_root / "archive" / "tasks",
            "task-3 - Old.md",
            "---\nid: TASK-3\ntitle: Old\n---\n",
        )
        assert store.create_task({"title": "Next"}).id == "TASK-6"

    def test_title_required(self, store):
        with pytest.raises(InvalidTaskDataError, match="Title"):
            store.create_task({"title": "  "})

    def test_invalid_status_rejected(self, store, backlog_root):
        """Test a status outside the configured list is refused."""
        with pytest.raises(InvalidTaskDataError, match="Invalid status"):
            store.create_task({"title": "X", "status": "Blocked"})
        assert list((backlog_root / "tasks").iterdir()) == []

    def test_checklist_strings_get_ids(self, store):
        """Test plain strings become checklist items numbered from 1."""
        store.create_task({"title": "X", "acceptance_criteria": ["A", "B"]})
        task = store.get_task("TASK-1")
        assert task.acceptance_criteria == [ChecklistItem(1, "A"), ChecklistItem(2, "B")]

    def test_create_draft(self, store):
        """Test drafts use their own id sequence and the Draft status."""
        store.create_task({"title": "Real"})
        created = store.create_draft({"title": "Idea", "status": "In Progress"})
        assert created.id == "DRAFT-1"

        drafts = store.list_tasks("drafts")
        assert [d.id for d in drafts] == ["DRAFT-1"]
        assert drafts[0].status == "Draft"
        assert drafts[0].folder == "drafts"

    def test_create_subtask(self, store):
        """Test a child gets a dotted id and the parent lists it."""
        store.create_task({"title": "Parent"})
        first = store.create_subtask("TASK-1", {"title": "Child one"})
        second = store.create_subtask("TASK-1", {"title": "Child two"})
        assert (first.id, second.id) == ("TASK-1.1", "TASK-1.2")

        assert store.get_task("TASK-1.1").parent_task_id == "TASK-1"
        assert store.get_task("TASK-1").subtasks == ["TASK-1.1", "TASK-1.2"]
        assert store.create_task({"title": "Sibling"}).id == "TASK-2"

    def test_subtask_of_missing_parent(self, store):
        with pytest.raises(TaskNotFoundError):
            store.create_subtask("TASK-9", {"title": "Orphan"})


class TestUpdate:
    """Field updates through the checked-write path."""

    def test_status_update_rewrites_one_line(self, store, backlog_root, sample_task_text):
        """Test untouched bytes of a hand-written record survive an update."""
        path = write_record(backlog_root / "tasks", "task-7 - Fix-login-flow.md", sample_task_text)
        store.update_task("TASK-7", {"status": "done"})
        assert read_record(path) == sample_task_text.replace(
            "status: In Progress", "status: Done"
        )

    def test_returned_token_matches_file(self, store):
        store.create_task({"title": "X"})
        token = store.update_task("TASK-1", {"priority": "HIGH"})
        assert token == store.get_state_token("TASK-1")
        assert store.get_task("TASK-1").priority == "high"

    def test_update_with_current_token(self, store):
        """Test an update passes when the token is current."""
        store.create_task({"title": "X"})
        task, token = store.read_task("TASK-1")
        assert token == store.get_state_token("TASK-1")
        store.update_task("TASK-1", {"description": "Body"}, expected_token=token)
        assert store.get_task("TASK-1").description == "Body"

    def test_stale_token_raises_conflict(self, store, backlog_root):
        """Test a concurrent external edit makes the stale writer fail."""
        created = store.create_task({"title": "X"})
        _, token = store.read_task("TASK-1")

        external = read_record(created.path).replace("status: To Do", "status: In Progress")
        write_record(backlog_root / "tasks", "task-1 - X.md", external)

        with pytest.raises(ConflictError) as exc_info:
            store.update_task("TASK-1", {"status": "Done"}, expected_token=token)

        error = exc_info.value
        assert error.current_content == external
        assert error.current_token == compute_state_token(external)
        assert error.expected_token == token
        assert read_record(created.path) == external

    def test_self_dependency_dropped(self, store):
        store.create_task({"title": "A"})
        store.create_task({"title": "B"})
        store.update_task("TASK-1", {"dependencies": ["task-1", "TASK-2"]})
        assert store.get_task("TASK-1").dependencies == ["TASK-2"]

    def test_checklist_ids_are_never_reused(self, store):
        """Test a new item gets an id above every id ever seen in the list."""
        store.create_task({"title": "X", "acceptance_criteria": ["A", "B"]})
        first = store.get_task("TASK-1").acceptance_criteria[0]
        store.update_task("TASK-1", {"acceptance_criteria": [first, "C"]})
        assert store.get_task("TASK-1").acceptance_criteria == [
            ChecklistItem(1, "A"),
            ChecklistItem(3, "C"),
        ]

    def test_stamp_updated(self, store):
        store.create_task({"title": "X"})
        store.update_task("TASK-1", {"title": "Y"}, stamp_updated=True)
        task = store.get_task("TASK-1")
        assert task.title == "Y"
        assert task.updated_date == today()

    def test_unknown_field_rejected(self, store):
        store.create_task({"title": "X"})
        with pytest.raises(InvalidTaskDataError, match="cannot be updated"):
            store.update_task("TASK-1", {"id": "TASK-9"})

    def test_invalid_priority_rejected(self, store):
        store.create_task({"title": "X"})
        with pytest.raises(InvalidTaskDataError, match="Invalid priority"):
            store.update_task("TASK-1", {"priority": "urgent"})

    def test_missing_task(self, store):
        with pytest.raises(TaskNotFoundError):
            store.update_task("TASK-404", {"status": "Done"})

    def test_malformed_header_is_not_overwritten(self, store, backlog_root):
        """Test a write against a broken header fails and leaves the file alone."""
        broken = "---\nid: TASK-1\ntitle: [oops\n---\nbody\n"
        path = write_record(backlog_root / "tasks", "task-1 - Broken.md", broken)
        with pytest.raises(MalformedRecordError):
            store.update_task("TASK-1", {"status": "Done"})
        assert read_record(path) == broken

    def test_update_with_repeated_header_key(self, store):
        """Test an edit to a key written twice is the value read back."""
        path = Path(store.create_task({"title": "Twice"}).path)
        doubled = read_record(path).replace("status: To Do\n", "status: To Do\nstatus: To Do\n")
        write_record(path.parent, path.name, doubled)

        store.update_task("TASK-1", {"status": "Done"})
        assert store.get_task("TASK-1").status == "Done"
        assert read_record(path).count("status:") == 1

    def test_reorder(self, store):
        store.create_task({"title": "X"})
        store.reorder_task("TASK-1", 1500)
        assert store.get_task("TASK-1").ordinal == 1500.0


class TestChecklistToggle:
    """Toggling checklist items in stored files."""

    def test_toggle_flips_one_character(self, store):
        created = store.create_task({"title": "X", "acceptance_criteria": ["A", "B"]})
        before = read_record(created.path)
        token = store.toggle_checklist_item("TASK-1", "acceptance_criteria", 2)

        after = read_record(created.path)
        assert after == before.replace("- [ ] #2 B", "- [x] #2 B")
        assert token == compute_state_token(after)

    def test_toggle_legacy_items_rewrites_with_ids(self, store, backlog_root):
        """Test items without ids are rewritten with their assigned ids."""
        path = task_file(backlog_root, "TASK-1")
        write_record(
            backlog_root / "tasks",
            path.name,
            read_record(path) + "\n## Acceptance Criteria\n- [ ] First\n- [ ] Second\n",
        )
        store.toggle_checklist_item("TASK-1", "acceptance_criteria", 2)
        content = read_record(path)
        assert "- [ ] #1 First" in content
        assert "- [x] #2 Second" in content

    def test_unknown_item(self, store):
        created = store.create_task({"title": "X", "acceptance_criteria": ["A"]})
        before = read_record(created.path)
        with pytest.raises(InvalidTaskDataError, match="#7"):
            store.toggle_checklist_item("TASK-1", "acceptance_criteria", 7)
        assert read_record(created.path) == before

    def test_unknown_list(self, store):
        store.create_task({"title": "X"})
        with pytest.raises(InvalidTaskDataError, match="Unknown checklist"):
            store.toggle_checklist_item("TASK-1", "todo_list", 1)


class TestLifecycle:
    """Archive, restore, complete, delete and promote."""

    def test_archive_sanitizes_active_references(self, store, backlog_root):
        """Test archiving removes exact mentions from active tasks only."""
        store.create_task({"title": "Target"})
        store.create_task(
            {
                "title": "Dependent",
                "dependencies": ["TASK-1", "TASK-10"],
                "references": ["task-1", "https://example.com/TASK-1"],
            }
        )
        store.create_draft({"title": "Idea", "dependencies": ["TASK-1"]})

        target = store.archive_task("TASK-1")
        assert "archive/tasks" in target.replace("\\", "/")
        assert store.get_task("TASK-1").folder == "archive"

        dependent = store.get_task("TASK-2")
        assert dependent.dependencies == ["TASK-10"]
        assert dependent.references == ["https://example.com/TASK-1"]
        assert store.get_task("DRAFT-1").dependencies == ["TASK-1"]

    def test_archive_removes_lower_case_dependency(self, store):
        store.create_task({"title": "Target"})
        store.create_task({"title": "Dependent", "dependencies": ["task-1", "task-12"]})
        assert store.get_blocked_by("TASK-1") == ["TASK-2"]

        store.archive_task("TASK-1")
        assert store.get_task("TASK-2").dependencies == ["task-12"]
        assert store.get_blocked_by("TASK-1") == []

    def test_archive_draft(self, store):
        store.create_draft({"title": "Idea"})
        store.archive_task("DRAFT-1")
        assert store.list_tasks("drafts") == []
        assert [t.id for t in store.list_tasks("archive")] == ["DRAFT-1"]

    def test_restore(self, store):
        store.create_task({"title": "X"})
        store.archive_task("TASK-1")
        store.restore_task("TASK-1")
        assert [t.id for t in store.list_tasks("tasks")] == ["TASK-1"]
        assert store.list_tasks("archive") == []

    def test_completed_tasks_are_read_only(self, store):
        """Test completed records can be read but not edited."""
        store.create_task({"title": "X"})
        store.complete_task("TASK-1")

        task = store.get_task("TASK-1")
        assert task.folder == "completed"
        assert task.is_read_only
        with pytest.raises(ReadOnlyTaskError):
            store.update_task("TASK-1", {"status": "Done"})

        store.restore_task("TASK-1")
        assert store.get_task("TASK-1").folder == "tasks"

    def test_delete(self, store, backlog_root):
        store.create_task({"title": "X"})
        store.delete_task("TASK-1")
        assert store.get_task("TASK-1") is None
        assert list((backlog_root / "tasks").glob("*.md")) == []
        with pytest.raises(TaskNotFoundError):
            store.delete_task("TASK-1")

    def test_promote_draft(self, store, backlog_root):
        """Test promotion assigns the next task id and keeps the body."""
        store.create_task({"title": "Existing"})
        store.create_draft({"title": "Idea", "description": "Keep this text"})

        new_id = store.promote_draft("DRAFT-1")
        assert new_id == "TASK-2"
        assert store.list_tasks("drafts") == []

        task = store.get_task("TASK-2")
        assert task.status == "To Do"
        assert task.description == "Keep this text"
        assert (backlog_root / "tasks" / "task-2 - Idea.md").exists()


class TestReads:
    """Listing, caching and queries."""

    def test_scopes(self, store):
        store.create_task({"title": "A"})
        store.create_task({"title": "B"})
        store.create_draft({"title": "C"})
        store.complete_task("TASK-2")
        assert [t.id for t in store.list_tasks()] == ["TASK-1"]
        assert [t.id for t in store.list_tasks("all")] == ["DRAFT-1", "TASK-1", "TASK-2"]
        with pytest.raises(InvalidTaskDataError):
            store.list_tasks("everything")

    def test_numeric_id_order(self, store, backlog_root):
        for task_id in ("TASK-10", "TASK-2", "TASK-1"):
            task_file(backlog_root, task_id)
        assert [t.id for t in store.list_tasks()] == ["TASK-1", "TASK-2", "TASK-10"]

    def test_external_edit_is_seen(self, store, backlog_root):
        """Test the parse cache notices a changed file."""
        path = task_file(backlog_root, "TASK-1")
        assert store.get_task("TASK-1").status == "To Do"
        write_record(
            backlog_root / "tasks",
            path.name,
            read_record(path).replace("status: To Do", "status: In Progress"),
        )
        assert store.get_task("TASK-1").status == "In Progress"

    def test_returned_tasks_are_copies(self, store, backlog_root):
        task_file(backlog_root, "TASK-1")
        first = store.get_task("TASK-1")
        first.labels.append("mutated")
        assert store.get_task("TASK-1").labels == []

    def test_unreadable_header_degrades(self, store, backlog_root):
        """Test a broken record still lists with a fallback id."""
        write_record(backlog_root / "tasks", "task-4 - Broken.md", "---\ntitle: [x\n---\n")
        tasks = store.list_tasks()
        assert [t.id for t in tasks] == ["TASK-4"]

    def test_blocked_by(self, store):
        store.create_task({"title": "A"})
        store.create_task({"title": "B", "dependencies": ["TASK-1"]})
        store.create_task({"title": "C", "dependencies": ["task-1"]})
        assert store.get_blocked_by("TASK-1") == ["TASK-2", "TASK-3"]

    def test_labels_and_assignees(self, store):
        store.create_task({"title": "A", "labels": ["ui"], "assignee": ["@bo"]})
        store.create_task({"title": "B", "labels": ["api", "ui"], "assignee": ["@al"]})
        assert store.get_unique_labels() == ["api", "ui"]
        assert store.get_unique_assignees() == ["@al", "@bo"]
        assert store.get_statuses() == ["To Do", "In Progress", "Done"]

    def test_fixed_config(self, backlog_root):
        """Test a config passed in overrides config.yml."""
        config = BacklogConfig(statuses=["Open", "Closed"])
        store = TaskStore(backlog_root, config=config)
        store.create_task({"title": "X"})
        assert store.get_task("TASK-1").status == "Open"

    def test_reconcile_disabled_is_local_only(self, store):
        store.create_task({"title": "A"})
        view = store.reconcile()
        assert [t.id for t in view.tasks] == ["TASK-1"]
        assert view.writable_task("TASK-1") is not None


class TestStatusCallback:
    """onStatusChange hooks run after a successful status change."""

    def test_task_callback_runs(self, store, backlog_root):
        hook = 'echo "$TASK_ID $OLD_STATUS->$NEW_STATUS" > hook.txt'
        store.create_task({"title": "X", "on_status_change": hook})
        store.update_task("TASK-1", {"status": "Done"})

        output = backlog_root.parent / "hook.txt"
        assert output.read_text().strip() == "TASK-1 To Do->Done"

    def test_callback_not_run_without_status_change(self, store, backlog_root):
        store.create_task({"title": "X", "on_status_change": "touch hook.txt"})
        store.update_task("TASK-1", {"title": "Y"})
        store.update_task("TASK-1", {"status": "To Do"})
        assert not (backlog_root.parent / "hook.txt").exists()

    def test_failing_callback_does_not_fail_update(self, store):
        store.create_task({"title": "X", "on_status_change": "exit 3"})
        store.update_task("TASK-1", {"status": "Done"})
        assert store.get_task("TASK-1").status == "Done"

    def test_callbacks_disabled(self, backlog_root):
        store = TaskStore(backlog_root, run_callbacks=False)
        store.create_task({"title": "X", "on_status_change": "touch hook.txt"})
        store.update_task("TASK-1", {"status": "Done"})
        assert not (backlog_root.parent / "hook.txt").exists()


class TestDocumentsAndDecisions:
    """docs/ and decisions/ records."""

    def test_documents(self, store, backlog_root):
        write_record(
            backlog_root / "docs" / "guides",
            "doc-2 - Setup.md",
            "---\nid: doc-2\ntitle: Setup\n---\n\nSteps\n",
        )
        write_record(backlog_root / "docs", "doc-1 - Intro.md", "---\nid: doc-1\ntitle: Intro\n---\n")
        assert [d.id for d in store.list_documents()] == ["DOC-1", "DOC-2"]
        assert store.get_document("doc-2").content == "Steps"
        assert store.get_document("DOC-9") is None

    def test_update_decision(self, store, backlog_root):
        path = write_record(
            backlog_root / "decisions",
            "decision-1 - Use-YAML.md",
            "---\nid: decision-1\ntitle: Use YAML\nstatus: proposed\n---\n\n## Context\n\nWhy\n",
        )
        token = compute_state_token(read_record(path))
        store.update_decision("DECISION-1", {"status": "accepted"}, expected_token=token)
        assert store.get_decision("decision-1").status == "accepted"
        assert read_record(path).endswith("## Context\n\nWhy\n")

        with pytest.raises(ConflictError):
            store.update_decision("DECISION-1", {"status": "rejected"}, expected_token=token)


class TestSanitizer:
    """Reference removal helpers."""

    def test_strip_reference_exact_only(self):
        dependencies, references = strip_reference(
            ["TASK-1", "TASK-11", " TASK-1 ", "task-1"],
            ["task-1", "TASK-1.md", "see TASK-1"],
            "task-1",
        )
        assert dependencies == ["TASK-11"]
        assert references == ["TASK-1.md", "see TASK-1"]

    def test_sanitize_returns_updated_ids(self, store):
        store.create_task({"title": "A"})
        store.create_task({"title": "B", "dependencies": ["TASK-1"]})
        store.create_task({"title": "C"})
        assert sanitize_references(store, "TASK-1") == ["TASK-2"]
        assert sanitize_references(store, "TASK-1") == []

    def test_sanitize_skips_conflicting_task(self, store, monkeypatch):
        """Test a task that changes concurrently is skipped, others proceed."""
        store.create_task({"title": "A"})
        store.create_task({"title": "B", "dependencies": ["TASK-1"]})
        store.create_task({"title": "C", "dependencies": ["TASK-1"]})
        update_task = store.update_task

        def racing_update(task_id, updates, expected_token=None, stamp_updated=False):
            if task_id == "TASK-2":
                raise ConflictError("task-2", current_content="", current_token="other")
            return update_task(task_id, updates, expected_token=expected_token)

        monkeypatch.setattr(store, "update_task", racing_update)
        assert sanitize_references(store, "TASK-1") == ["TASK-3"]
        assert store.get_task("TASK-2").dependencies == ["TASK-1"]


def test_compute_subtasks(store):
    store.create_task({"title": "Parent"})
    store.create_task({"title": "Child", "parent_task_id": "task-1"})
    tasks = store.list_tasks()
    for task in tasks:
        task.subtasks = None
    compute_subtasks(tasks)
    assert tasks[0].subtasks == ["TASK-2"]
    assert tasks[1].subtasks is None
