"""Version-control adapters for the branch reconciler.

- backlog_store.adapters.protocol: VcsPlumbing interface and adapter exceptions
- backlog_store.adapters.git: GitBranchService, the git executable implementation
"""

from backlog_store.adapters import protocol
from backlog_store.adapters.git import GitBranchService, GitRuntimeError
from backlog_store.adapters.protocol import VcsPlumbing

__all__ = [
    "protocol",
    "GitBranchService",
    "GitRuntimeError",
    "VcsPlumbing",
]
