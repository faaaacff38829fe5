"""
Reference sanitizer run when a task is archived.

Removes exact mentions of the archived id from the dependencies and
references of tasks in the active tasks/ folder. Drafts, completed and
archived records are never touched.
"""

import logging
from typing import List, Tuple

from backlog_store.core.exceptions import BacklogError
from backlog_store.core.naming import normalize_id

logger = logging.getLogger(__name__)


def strip_reference(
    dependencies: List[str], references: List[str], archived_id: str
) -> Tuple[List[str], List[str]]:
    """Return dependencies and references without the archived id.

    Both lists match the whole id case-insensitively, the way the store looks
    ids up. Values that merely contain the id are kept.
    """
    wanted = normalize_id(archived_id)
    kept_dependencies = [d for d in dependencies if normalize_id(d) != wanted]
    kept_references = [r for r in references if r.strip().lower() != wanted.lower()]
    return kept_dependencies, kept_references


def sanitize_references(store, archived_id: str) -> List[str]:
    """Drop the archived id from every active task that mentions it.

    Each affected task is written through the store's checked-write path
    using the state token read alongside it. A task that changes concurrently
    is skipped with a warning.

    Args:
        store: TaskStore holding the active tasks.
        archived_id: Id of the task that was just archived.

    Returns:
        Ids of tasks that were rewritten.
    """
    updated = []
    for candidate in store.list_tasks("tasks"):
        dependencies, references = strip_reference(
            candidate.dependencies, candidate.references, archived_id
        )
        if dependencies == candidate.dependencies and references == candidate.references:
            continue

        try:
            task, token = store.read_task(candidate.id)
            dependencies, references = strip_reference(
                task.dependencies, task.references, archived_id
            )
            changes = {}
            if dependencies != task.dependencies:
                changes["dependencies"] = dependencies
            if references != task.references:
                changes["references"] = references
            if not changes:
                continue
            store.update_task(task.id, changes, expected_token=token)
        except BacklogError as e:
            logger.warning(f"Could not remove {archived_id} from {candidate.id}: {e}")
            continue

        updated.append(candidate.id)
        logger.info(f"Removed references to {archived_id} from {candidate.id}")
    return updated
