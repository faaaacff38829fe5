"""
Store layer for task record persistence.

Canonical exports:
- TaskStore: Read API and mutation engine over a backlog folder
- CreatedTask: Result of a create operation
- compute_state_token / checked_write: Content-hash conflict gate
- sanitize_references: Archive-time cross-reference cleanup
"""

from backlog_store.store.conflict import checked_write, compute_state_token
from backlog_store.store.repository import CreatedTask, TaskStore, compute_subtasks
from backlog_store.store.sanitizer import sanitize_references

__all__ = [
    "CreatedTask",
    "TaskStore",
    "checked_write",
    "compute_state_token",
    "compute_subtasks",
    "sanitize_references",
]
