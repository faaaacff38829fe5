"""Parse cache keyed by path and validated against (mtime_ns, size)."""

import os
import threading
from typing import Callable, Dict, Generic, Optional, Tuple, TypeVar

T = TypeVar("T")


class RecordCache(Generic[T]):
    """Thread-safe cache of parsed records.

    An entry is reused only while the file's modification time and size are
    unchanged, so edits from outside the store are picked up on the next read.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[Tuple[int, int], T]] = {}

    @staticmethod
    def _stamp(path: str) -> Optional[Tuple[int, int]]:
        try:
            stat = os.stat(path)
        except OSError:
            return None
        return stat.st_mtime_ns, stat.st_size

    def get(self, path: str, loader: Callable[[str], T]) -> T:
        """Return the cached value for path, loading it when stale."""
        stamp = self._stamp(path)
        with self._lock:
            entry = self._entries.get(path)
            if stamp is not None and entry is not None and entry[0] == stamp:
                return entry[1]

        value = loader(path)
        if stamp is not None:
            with self._lock:
                self._entries[path] = (stamp, value)
        return value

    def invalidate(self, path: Optional[str] = None) -> None:
        """Drop one entry, or all entries when path is None."""
        with self._lock:
            if path is None:
                self._entries.clear()
            else:
                self._entries.pop(path, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
