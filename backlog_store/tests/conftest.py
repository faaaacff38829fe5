"""
Shared fixtures for the backlog_store test suite.

This conftest.py provides the backlog folders and store instances used by the
codec, store, reconcile and support tests. Category-specific fixtures live in
the test modules that need them.
"""

import subprocess
from pathlib import Path

import pytest

from backlog_store.store import TaskStore
from backlog_store.support.config import clear_config_cache
from backlog_store.support.paths import initialize_backlog


SAMPLE_TASK = """---
id: TASK-7
title: Fix login flow
status: In Progress
assignee:
  - '@alice'
labels: [auth, bug]
created_date: '2025-06-08 10:30'
dependencies: [TASK-3]
custom_key: keep me   # trailing comment
---

## Description

<!-- SECTION:DESCRIPTION:BEGIN -->
Users cannot log in.
<!-- SECTION:DESCRIPTION:END -->

## Acceptance Criteria
<!-- AC:BEGIN -->
- [ ] #1 Login works
- [x] #2 Error shown
<!-- AC:END -->

## Notes on design

```
## Description
<!-- AC:BEGIN -->
```

## Implementation Notes

<!-- SECTION:NOTES:BEGIN -->
Checked the session code.
<!-- SECTION:NOTES:END -->
"""


def write_record(folder: Path, filename: str, content: str) -> Path:
    """Write a record file exactly as given (no newline translation)."""
    folder.mkdir(parents=True, exist_ok=True)
    path = folder / filename
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(content)
    return path


def read_record(path) -> str:
    with open(path, "r", encoding="utf-8", newline="") as f:
        return f.read()


def git(cwd, *args, env=None):
    """Run a git command in cwd, failing the test on error."""
    return subprocess.run(
        ["git"] + list(args),
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
        env=env,
    )


@pytest.fixture(autouse=True)
def fresh_config_cache():
    """Config is cached per path; start every test clean."""
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def sample_task_text():
    return SAMPLE_TASK


@pytest.fixture
def backlog_root(tmp_path):
    """Initialized backlog/ folder inside a temporary workspace."""
    return initialize_backlog(tmp_path, "Test Project")


@pytest.fixture
def store(backlog_root):
    """TaskStore over the temporary backlog."""
    return TaskStore(backlog_root)
