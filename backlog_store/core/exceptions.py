"""Core exceptions: typed failures surfaced by the task record store."""

from typing import Optional


class BacklogError(Exception):
    """Base exception for task record store errors."""

    pass


class TaskNotFoundError(BacklogError):
    """Raised when a record id has no backing file."""

    def __init__(self, task_id: str, message: str = ""):
        self.task_id = task_id
        super().__init__(message or f"Task {task_id} not found")


class ConflictError(BacklogError):
    """Raised when a checked write finds the file changed since it was read.

    Carries the competing content so the caller can reload, overwrite or diff.
    """

    def __init__(
        self,
        path: str,
        current_content: str,
        current_token: str,
        expected_token: Optional[str] = None,
    ):
        self.path = path
        self.current_content = current_content
        self.current_token = current_token
        self.expected_token = expected_token
        super().__init__(f"File was modified externally: {path}")


class MalformedRecordError(BacklogError):
    """Raised when a header cannot be parsed on a write path."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"Malformed record {path}: {message}")


class StorageIOError(BacklogError):
    """Raised when the filesystem refuses a read, write, move or delete."""

    def __init__(self, path: str, error: OSError):
        self.path = path
        self.error = error
        super().__init__(f"I/O failure on {path}: {error}")


class ReadOnlyTaskError(BacklogError):
    """Raised when a write targets a snapshot that is not a local file."""

    pass


class InvalidTaskDataError(BacklogError, ValueError):
    """Raised for invalid field values (ids, statuses, priorities, list names)."""

    pass
