"""Adapter protocol for version-control plumbing.

Defines the narrow interface the branch reconciler consumes. The git adapter
implements it with subprocess calls; tests substitute an in-memory fake.
"""

from typing import Dict, List, Protocol, Tuple


# ============================================================================
# Base Exception Protocols
# ============================================================================


class AdapterException(Exception):
    """Base exception for all adapter errors."""

    pass


class GitAdapterException(AdapterException):
    """Base for git adapter errors."""

    pass


# ============================================================================
# Plumbing interface
# ============================================================================


class VcsPlumbing(Protocol):
    """Read-only access to branches and files at refs.

    Paths are repository-relative posix paths. Timestamps are unix seconds.
    """

    def is_git_repository(self) -> bool:
        ...

    def get_current_branch(self) -> str:
        ...

    def get_main_branch(self) -> str:
        ...

    def list_local_branches(self) -> List[Tuple[str, int]]:
        """(branch name, last commit unix time) for refs/heads."""
        ...

    def list_remote_branches(self) -> List[Tuple[str, int]]:
        """(remote/branch name, last commit unix time) for refs/remotes."""
        ...

    def list_files_at_ref(self, ref: str, path: str) -> List[str]:
        """Names of files directly under path at ref (empty if path is absent)."""
        ...

    def read_file_at_ref(self, ref: str, path: str) -> str:
        ...

    def path_exists_at_ref(self, ref: str, path: str) -> bool:
        ...

    def get_file_modified_map(self, ref: str, path: str) -> Dict[str, int]:
        """Last commit unix time of every file under path at ref."""
        ...
