"""Git branch plumbing helpers.

Read-only access to branches and to files at other refs via the git
executable. Every call goes through one bounded semaphore and carries a
timeout; failures surface as GitRuntimeError.
"""

import logging
import subprocess
import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from backlog_store.adapters.protocol import GitAdapterException
from backlog_store.constants import GIT_COMMAND_TIMEOUT_SEC, GIT_MAX_CONCURRENT_COMMANDS
from backlog_store.support.env import build_git_env

logger = logging.getLogger(__name__)

# Shared across services so parallel branch batches cannot fork unbounded git processes
_git_slots = threading.BoundedSemaphore(GIT_MAX_CONCURRENT_COMMANDS)


class GitRuntimeError(GitAdapterException):
    """Base exception for git runtime errors."""

    pass


class GitCommandError(GitRuntimeError):
    """Raised when a git command exits non-zero."""

    def __init__(self, args: List[str], returncode: int, stderr: str):
        self.args_list = args
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"git {' '.join(args)} failed ({returncode}): {stderr.strip()}")


class GitTimeoutError(GitRuntimeError):
    """Raised when a git command exceeds its timeout."""

    pass


def _normalize_path(path: str) -> str:
    return path.replace("\\", "/").strip("/")


class GitBranchService:
    """Cross-branch git operations for one work tree."""

    def __init__(
        self,
        workspace_root: Union[str, Path],
        timeout: int = GIT_COMMAND_TIMEOUT_SEC,
    ):
        self.workspace_root = Path(workspace_root)
        self.timeout = timeout

    def _run(self, args: List[str], check: bool = True) -> subprocess.CompletedProcess:
        """Run git with the concurrency gate and timeout.

        Raises:
            GitTimeoutError: If the command times out.
            GitCommandError: If check is set and the command fails.
            GitRuntimeError: If git cannot be started.
        """
        with _git_slots:
            try:
                result = subprocess.run(
                    ["git"] + args,
                    cwd=str(self.workspace_root),
                    env=build_git_env(),
                    capture_output=True,
                    text=True,
                    encoding="utf-8",
                    timeout=self.timeout,
                )
            except subprocess.TimeoutExpired:
                raise GitTimeoutError(f"Timeout running git {' '.join(args)} in {self.workspace_root}")
            except OSError as e:
                raise GitRuntimeError(f"Failed to run git: {e}") from e

        if check and result.returncode != 0:
            raise GitCommandError(args, result.returncode, result.stderr)
        return result

    # ------------------------------------------------------------------
    # Repository and branches
    # ------------------------------------------------------------------

    def is_git_repository(self) -> bool:
        try:
            return self._run(["rev-parse", "--git-dir"], check=False).returncode == 0
        except GitRuntimeError:
            return False

    def get_current_branch(self) -> str:
        return self._run(["rev-parse", "--abbrev-ref", "HEAD"]).stdout.strip()

    def _list_refs(self, namespace: str) -> List[Tuple[str, int]]:
        output = self._run(
            ["for-each-ref", "--format=%(refname:short) %(committerdate:unix)", namespace]
        ).stdout
        branches = []
        for line in output.splitlines():
            line = line.strip()
            if not line:
                continue
            name, _, stamp = line.rpartition(" ")
            try:
                branches.append((name, int(stamp)))
            except ValueError:
                logger.debug(f"Skipping unparseable ref line: {line!r}")
        return branches

    def list_local_branches(self) -> List[Tuple[str, int]]:
        """Local branches with their last commit unix time."""
        return self._list_refs("refs/heads/")

    def list_remote_branches(self) -> List[Tuple[str, int]]:
        """Remote-tracking branches (symbolic HEAD refs excluded)."""
        return [
            (name, stamp)
            for name, stamp in self._list_refs("refs/remotes/")
            if not name.endswith("/HEAD") and "/" in name
        ]

    def get_main_branch(self) -> str:
        """main, else master, else the first local branch."""
        names = [name for name, _ in self.list_local_branches()]
        if "main" in names:
            return "main"
        if "master" in names:
            return "master"
        return names[0] if names else "main"

    # ------------------------------------------------------------------
    # Files at refs
    # ------------------------------------------------------------------

    def read_file_at_ref(self, ref: str, path: str) -> str:
        """Content of path at ref.

        Raises:
            GitCommandError: If the file does not exist at ref.
        """
        return self._run(["show", f"{ref}:{_normalize_path(path)}"]).stdout

    def list_files_at_ref(self, ref: str, path: str) -> List[str]:
        """Names of entries directly under a directory at ref."""
        result = self._run(
            ["ls-tree", "--name-only", ref, _normalize_path(path) + "/"], check=False
        )
        if result.returncode != 0:
            return []
        return [line.rsplit("/", 1)[-1] for line in result.stdout.splitlines() if line.strip()]

    def path_exists_at_ref(self, ref: str, path: str) -> bool:
        result = self._run(["cat-file", "-e", f"{ref}:{_normalize_path(path)}"], check=False)
        return result.returncode == 0

    def get_file_modified_map(self, ref: str, path: str) -> Dict[str, int]:
        """Last commit unix time of every file under a directory at ref.

        One ``git log --name-only`` walk; the first (newest) commit seen for a
        file wins. Keys are file names relative to the directory.
        """
        prefix = _normalize_path(path) + "/"
        result = self._run(
            ["log", "--format=%x00%ct", "--name-only", ref, "--", prefix], check=False
        )
        if result.returncode != 0:
            return {}

        modified: Dict[str, int] = {}
        stamp: Optional[int] = None
        for line in result.stdout.splitlines():
            if line.startswith("\x00"):
                value = line[1:].strip()
                stamp = int(value) if value.isdigit() else None
                continue
            name = line.strip()
            if not name or stamp is None or not name.startswith(prefix):
                continue
            relative = name[len(prefix) :]
            if "/" in relative:
                continue
            modified.setdefault(relative, stamp)
        return modified
