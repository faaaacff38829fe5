"""Backlog store: markdown task records with conflict-safe writes and branch reconciliation."""

from backlog_store.core.models import ChecklistItem, Decision, Document, Task
from backlog_store.reconcile import ReconciledView
from backlog_store.store import CreatedTask, TaskStore
from backlog_store import adapters

__all__ = [
    "ChecklistItem",
    "CreatedTask",
    "Decision",
    "Document",
    "ReconciledView",
    "Task",
    "TaskStore",
    "adapters",
]
