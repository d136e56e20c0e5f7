"""Traversal-scoped visited-set tracking.

One VisitedTracker exists per top-level root. Its only job is the
at-most-once guarantee: a group key is admitted for expansion exactly
once, and check-and-mark is a single atomic step so concurrent expanders
cannot both win.
"""

import threading
from typing import Dict, Iterable, List

from .node import DirectoryObjectRef


class VisitedTracker:
    """Set of group keys already admitted for expansion.

    Groups are marked *before* their members are listed. A group that
    reappears as its own direct or transitive member is therefore already
    marked and is skipped, which is what breaks cycles.
    """

    def __init__(self, seed: Iterable[DirectoryObjectRef] = ()):
        """Initialize tracker.

        Args:
            seed: Groups to treat as already visited
        """
        self._lock = threading.Lock()
        self._visited: Dict[str, DirectoryObjectRef] = {}
        self._pending: Dict[str, DirectoryObjectRef] = {}
        for group in seed:
            self._visited[group.key] = group
        self._seeded = len(self._visited)

    def try_mark(self, group: DirectoryObjectRef) -> bool:
        """Atomically mark a group visited.

        Returns:
            True if the caller now owns the group's expansion,
            False if it was already marked
        """
        with self._lock:
            if group.key in self._visited:
                return False
            self._visited[group.key] = group
            self._pending[group.key] = group
            return True

    def finish(self, group: DirectoryObjectRef) -> None:
        """Record that a marked group's members have been listed."""
        with self._lock:
            self._pending.pop(group.key, None)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._visited

    def __len__(self) -> int:
        with self._lock:
            return len(self._visited)

    def pending(self) -> List[DirectoryObjectRef]:
        """Groups marked but not yet listed, in marking order."""
        with self._lock:
            return list(self._pending.values())

    def expanded_count(self) -> int:
        """Number of groups whose listing has finished."""
        with self._lock:
            return len(self._visited) - len(self._pending) - self._seeded
