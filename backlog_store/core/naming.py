"""Naming helpers: record ids, filenames, and sequential id allocation."""

import re
from typing import Iterable, Optional, Tuple

ID_PATTERN = re.compile(r"^([a-zA-Z]+)-(\d+(?:\.\d+)*)$")
FILENAME_ID_PATTERN = re.compile(r"^([a-zA-Z]+-\d+(?:\.\d+)*)", re.IGNORECASE)
PREFIX_PATTERN = re.compile(r"^[a-zA-Z]+$")


def normalize_id(value: str) -> str:
    """Normalize a record id to its canonical upper-case form.

    Example: "task-5.2" -> "TASK-5.2"
    """
    return str(value).strip().upper()


def split_id(record_id: str) -> Optional[Tuple[str, Tuple[int, ...]]]:
    """Split an id into its prefix and numeric path.

    Args:
        record_id: Id such as "TASK-5" or "TASK-5.2".

    Returns:
        ("TASK", (5, 2)) or None when the id is not prefix-number shaped.
    """
    match = ID_PATTERN.match(record_id.strip())
    if not match:
        return None
    numbers = tuple(int(part) for part in match.group(2).split("."))
    return match.group(1).upper(), numbers


def id_from_filename(filename: str) -> Optional[str]:
    """Extract an upper-cased record id from a filename.

    Example: "task-1 - Test-task.md" -> "TASK-1"
    """
    match = FILENAME_ID_PATTERN.match(filename)
    if not match:
        return None
    return match.group(1).upper()


def title_from_filename(filename: str) -> str:
    """Derive a readable title from a "<id> - <Slug>.md" filename."""
    stem = filename[:-3] if filename.endswith(".md") else filename
    if " - " in stem:
        stem = stem.split(" - ", 1)[1]
    return stem.replace("-", " ").strip()


def slugify_title(title: str) -> str:
    """Make a title safe for use in a filename.

    Example: "Fix: bug #123 (urgent!)" -> "Fix-bug-123-urgent"
    """
    slug = re.sub(r"[^A-Za-z0-9]+", "-", title).strip("-")
    return slug or "untitled"


def record_filename(record_id: str, title: str) -> str:
    """Build the canonical filename for a record."""
    return f"{record_id.lower()} - {slugify_title(title)}.md"


def next_sequential_id(prefix: str, existing_ids: Iterable[str]) -> str:
    """Allocate the next top-level id for a prefix.

    The highest existing number wins; gaps are never filled.

    Args:
        prefix: Id prefix (case-insensitive), e.g. "task".
        existing_ids: Ids already in use.

    Returns:
        Next id, e.g. "TASK-6" when "TASK-5" is the highest.
    """
    wanted = prefix.upper()
    highest = 0
    for record_id in existing_ids:
        parts = split_id(record_id)
        if parts and parts[0] == wanted:
            highest = max(highest, parts[1][0])
    return f"{wanted}-{highest + 1}"


def next_subtask_id(parent_id: str, existing_ids: Iterable[str]) -> str:
    """Allocate the next dotted child id under a parent.

    Example: parent "TASK-5" with "TASK-5.1" existing -> "TASK-5.2"
    """
    parent = split_id(parent_id)
    if parent is None:
        raise ValueError(f"Invalid parent id '{parent_id}'")
    prefix, parent_numbers = parent
    depth = len(parent_numbers)
    highest = 0
    for record_id in existing_ids:
        parts = split_id(record_id)
        if not parts or parts[0] != prefix:
            continue
        numbers = parts[1]
        if len(numbers) == depth + 1 and numbers[:depth] == parent_numbers:
            highest = max(highest, numbers[depth])
    parent_path = ".".join(str(n) for n in parent_numbers)
    return f"{prefix}-{parent_path}.{highest + 1}"


def validate_task_prefix(prefix: str) -> bool:
    """Task prefixes contain letters only."""
    return bool(PREFIX_PATTERN.match(prefix))


def id_sort_key(record_id: str):
    """Sort key ordering ids numerically (TASK-2 before TASK-10)."""
    parts = split_id(record_id)
    if parts is None:
        return ("~", (), record_id)
    return (parts[0], parts[1], record_id)
