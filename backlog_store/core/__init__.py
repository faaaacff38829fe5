"""Core package: domain model, exceptions, id naming helpers, and ordinals."""

from backlog_store.core.models import ChecklistItem, Decision, Document, Task
from backlog_store.core.exceptions import (
    BacklogError,
    ConflictError,
    InvalidTaskDataError,
    MalformedRecordError,
    ReadOnlyTaskError,
    StorageIOError,
    TaskNotFoundError,
)
from backlog_store.core.naming import (
    normalize_id,
    next_sequential_id,
    next_subtask_id,
    record_filename,
)

__all__ = [
    "ChecklistItem",
    "Decision",
    "Document",
    "Task",
    "BacklogError",
    "ConflictError",
    "InvalidTaskDataError",
    "MalformedRecordError",
    "ReadOnlyTaskError",
    "StorageIOError",
    "TaskNotFoundError",
    "normalize_id",
    "next_sequential_id",
    "next_subtask_id",
    "record_filename",
]
