"""
Content-hash optimistic concurrency for record files.

A state token is the SHA-256 hex digest of a file's exact bytes. A checked
write re-reads the file, compares tokens, and only then replaces it atomically.
"""

import hashlib
import logging
import os
from pathlib import Path
from typing import Callable, Optional, Tuple, Union

from backlog_store.core.exceptions import ConflictError, StorageIOError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def compute_state_token(content: Union[str, bytes]) -> str:
    """Return the content token for text or raw bytes."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def read_text(path: PathLike) -> str:
    """Read a record file exactly (no newline translation).

    Raises:
        FileNotFoundError: When the file does not exist.
        StorageIOError: On any other OS-level failure.
    """
    try:
        with open(path, "r", encoding="utf-8", newline="") as f:
            return f.read()
    except FileNotFoundError:
        raise
    except OSError as e:
        raise StorageIOError(str(path), e) from e


def read_with_token(path: PathLike) -> Tuple[str, str]:
    """Read a file and return (content, state_token)."""
    content = read_text(path)
    return content, compute_state_token(content)


def atomic_write(path: PathLike, content: str) -> None:
    """Write content to a temp file beside the target, then rename over it.

    Raises:
        StorageIOError: When the write or rename fails (the target is untouched).
    """
    target = Path(path)
    temp_file = target.with_name(f".{target.name}.{os.getpid()}.tmp")
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(temp_file, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        temp_file.replace(target)
    except OSError as e:
        if temp_file.exists():
            temp_file.unlink()
        raise StorageIOError(str(target), e) from e


def checked_write(
    path: PathLike,
    expected_token: Optional[str],
    mutator: Callable[[str], str],
) -> str:
    """Apply mutator to the current content and write it if nothing changed.

    Args:
        path: Record file to rewrite.
        expected_token: Token observed by the caller; None skips the check.
        mutator: Function from current text to new text.

    Returns:
        State token of the written content.

    Raises:
        ConflictError: When the current token differs from expected_token.
        FileNotFoundError: When the file is gone.
    """
    current, current_token = read_with_token(path)
    if expected_token is not None and expected_token != current_token:
        logger.info(f"Conflict on {path}: expected {expected_token[:12]}, found {current_token[:12]}")
        raise ConflictError(
            str(path),
            current_content=current,
            current_token=current_token,
            expected_token=expected_token,
        )

    updated = mutator(current)
    if updated == current:
        return current_token
    atomic_write(path, updated)
    return compute_state_token(updated)
