"""
Environment variable helpers for subprocess management.

Provides environment builders for git plumbing calls and status-change
callbacks.
"""

import os
from typing import Dict, List, Optional


def build_safe_env(extra_keys: Optional[List[str]] = None) -> Dict[str, str]:
    """Build safe environment variables for subprocess execution.

    Filters the environment to essential keys plus any requested extra keys.

    Args:
        extra_keys: Additional environment keys to include if present.

    Returns:
        Dictionary of safe environment variables suitable for subprocess.run().
    """
    safe_keys = [
        "PATH",
        "HOME",
        "USER",
        "SHELL",
        "TERM",
        "LANG",
        "LC_ALL",
        "PWD",
        "TMPDIR",
    ]
    if extra_keys:
        safe_keys.extend(extra_keys)
    return {k: os.environ.get(k, "") for k in safe_keys if k in os.environ}


def build_git_env() -> Dict[str, str]:
    """Build environment for read-only git plumbing commands.

    Keeps GIT_* variables (alternate config, object dirs) and disables any
    interactive credential prompt.
    """
    git_keys = [k for k in os.environ if k.startswith("GIT_") or k.startswith("XDG_")]
    env = build_safe_env(extra_keys=git_keys)
    env["GIT_TERMINAL_PROMPT"] = "0"
    return env


def build_callback_env(variables: Dict[str, str]) -> Dict[str, str]:
    """Build environment for a status-change callback.

    The callback inherits the full process environment; the substitution
    variables are also exported so scripts can read them unquoted.
    """
    env = dict(os.environ)
    env.update(variables)
    return env
