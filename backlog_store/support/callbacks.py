"""
Status-change callbacks.

A task's ``onStatusChange`` value (or the global ``on_status_change`` from
config.yml) is a shell command run after a successful status change.
"""

import logging
import subprocess
from pathlib import Path
from typing import Optional, Union

from backlog_store.constants import STATUS_CALLBACK_TIMEOUT_SEC
from backlog_store.support.env import build_callback_env

logger = logging.getLogger(__name__)


def render_callback_command(
    template: str, task_id: str, old_status: str, new_status: str, task_title: str
) -> str:
    """Substitute $TASK_ID, $OLD_STATUS, $NEW_STATUS and $TASK_TITLE."""
    return (
        template.replace("$TASK_ID", task_id)
        .replace("$OLD_STATUS", old_status)
        .replace("$NEW_STATUS", new_status)
        .replace("$TASK_TITLE", task_title)
    )


def run_status_callback(
    backlog_root: Union[str, Path],
    task_callback: Optional[str],
    global_callback: Optional[str],
    task_id: str,
    old_status: str,
    new_status: str,
    task_title: str,
    timeout: int = STATUS_CALLBACK_TIMEOUT_SEC,
) -> bool:
    """Run the status-change callback if one is configured.

    The per-task callback overrides the global one. Nothing runs when the
    status did not change. Failures are logged and never raised.

    Args:
        backlog_root: The backlog/ directory; its parent is the working dir.
        task_callback: Per-task onStatusChange value.
        global_callback: Global on_status_change from config.
        task_id: Task id.
        old_status: Status before the change.
        new_status: Status after the change.
        task_title: Task title.
        timeout: Seconds before the command is killed.

    Returns:
        True if a command ran and exited 0, False otherwise.
    """
    template = task_callback or global_callback
    if not template or old_status == new_status:
        return False

    command = render_callback_command(template, task_id, old_status, new_status, task_title)
    cwd = Path(backlog_root).resolve().parent
    env = build_callback_env(
        {
            "TASK_ID": task_id,
            "OLD_STATUS": old_status,
            "NEW_STATUS": new_status,
            "TASK_TITLE": task_title,
        }
    )

    logger.debug(f"Running onStatusChange for {task_id}: {command}")
    try:
        result = subprocess.run(
            command,
            shell=True,
            cwd=str(cwd),
            env=env,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        logger.error(f"onStatusChange callback for {task_id} timed out after {timeout}s")
        return False
    except OSError as e:
        logger.error(f"onStatusChange callback for {task_id} failed to start: {e}")
        return False

    if result.returncode != 0:
        logger.error(
            f"onStatusChange callback for {task_id} failed "
            f"(exit {result.returncode}): {result.stderr.strip()}"
        )
        return False
    return True
