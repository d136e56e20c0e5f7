"""Result accumulation and shaping.

Collectors gather what a traversal discovers; the shaping functions turn a
finished TraversalResult into caller-facing records. Nothing here performs
directory I/O.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ...config import OutputIdentifier, TraversalMode
from .node import DirectoryObjectRef, MembershipEdge


@dataclass(frozen=True)
class FlatMember:
    """A distinct user reached from a root, tagged with how it was found.

    Attributes:
        root: Root group of the traversal
        member: The user
        via: Group chain from the root to the group that first listed the user
    """
    root: DirectoryObjectRef
    member: DirectoryObjectRef
    via: Tuple[DirectoryObjectRef, ...]

    @property
    def discovered_by(self) -> DirectoryObjectRef:
        return self.via[-1] if self.via else self.root


@dataclass(frozen=True)
class BranchFailure:
    """A nested group that was skipped because it could not be expanded."""
    group: DirectoryObjectRef
    error: Exception

    @property
    def error_type(self) -> str:
        return type(self.error).__name__


@dataclass
class TraversalResult:
    """Outcome of expanding one root group.

    Exactly one of ``members`` (flat mode) or ``edges`` (expanded mode) is
    populated. ``complete`` is False whenever the walk was interrupted;
    ``frontier`` then lists the groups that were discovered but never
    expanded, so the run can be resumed or its gap reported.
    """
    root_identifier: str
    root: Optional[DirectoryObjectRef]
    mode: TraversalMode
    members: List[FlatMember] = field(default_factory=list)
    edges: List[MembershipEdge] = field(default_factory=list)
    complete: bool = True
    incomplete_reason: Optional[str] = None
    frontier: List[DirectoryObjectRef] = field(default_factory=list)
    next_level: Optional[int] = None
    failures: List[BranchFailure] = field(default_factory=list)
    expanded_count: int = 0
    error: Optional[Exception] = None  # Why a batch root produced nothing

    @property
    def member_keys(self) -> List[str]:
        """Keys of the users (flat) or members (expanded) discovered."""
        if self.mode is TraversalMode.FLAT:
            return [m.member.key for m in self.members]
        return [e.member.key for e in self.edges]

    def __len__(self) -> int:
        return len(self.members) if self.mode is TraversalMode.FLAT else len(self.edges)


class MembershipCollector(ABC):
    """Abstract base class for traversal collectors.

    Collectors are shared by every concurrent expansion of one root, so
    implementations guard their state with a lock.
    """

    def __init__(self):
        """Initialize collector with empty state."""
        self._lock = threading.Lock()
        self.reset()

    @abstractmethod
    def reset(self):
        """Reset collector state."""
        pass

    @abstractmethod
    def get_result(self) -> List[Any]:
        """Get collected items in discovery order."""
        pass


class FlatMemberCollector(MembershipCollector):
    """Deduplicated users keyed by object key, first writer wins."""

    def __init__(self, root: DirectoryObjectRef):
        self.root = root
        super().__init__()

    def reset(self):
        self._members: Dict[str, FlatMember] = {}

    def collect(self, member: DirectoryObjectRef, via: Tuple[DirectoryObjectRef, ...]) -> bool:
        """Record a user unless it was already recorded.

        Returns:
            True if this call recorded the user
        """
        with self._lock:
            if member.key in self._members:
                return False
            self._members[member.key] = FlatMember(self.root, member, via)
            return True

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._members

    def get_result(self) -> List[FlatMember]:
        with self._lock:
            return list(self._members.values())


class EdgeCollector(MembershipCollector):
    """Every discovered edge, in emission order."""

    def reset(self):
        self._edges: List[MembershipEdge] = []

    def collect(self, edge: MembershipEdge) -> None:
        with self._lock:
            self._edges.append(edge)

    def get_result(self) -> List[MembershipEdge]:
        with self._lock:
            return list(self._edges)


def sort_edges(
    edges: Iterable[MembershipEdge],
    output_identifier: OutputIdentifier = OutputIdentifier.GUID
) -> List[MembershipEdge]:
    """Order edges by level, then parent, then member."""
    return sorted(
        edges,
        key=lambda e: (
            e.level,
            e.parent.label(output_identifier).lower(),
            e.member.label(output_identifier).lower(),
        )
    )


def to_records(
    result: TraversalResult,
    output_identifier: OutputIdentifier = OutputIdentifier.GUID
) -> List[Dict[str, Any]]:
    """Shape a result into flat dictionaries.

    Flat mode yields ``RootGroup, MemberKey, MemberType`` per distinct user.
    Expanded mode yields ``ParentGroup, MemberKey, MemberType, Level,
    MembershipKind`` per edge, sorted for deterministic output.
    """
    if result.mode is TraversalMode.FLAT:
        return [
            {
                'RootGroup': m.root.label(output_identifier),
                'MemberKey': m.member.label(output_identifier),
                'MemberType': m.member.kind.value,
            }
            for m in result.members
        ]

    return [
        {
            'ParentGroup': e.parent.label(output_identifier),
            'MemberKey': e.member.label(output_identifier),
            'MemberType': e.member.kind.value,
            'Level': e.level,
            'MembershipKind': e.kind.value,
        }
        for e in sort_edges(result.edges, output_identifier)
    ]


def collapse_flat_records(
    results: Iterable[TraversalResult],
    output_identifier: OutputIdentifier = OutputIdentifier.GUID,
    separator: str = ';'
) -> List[Dict[str, Any]]:
    """Compress flat results into one record per root group.

    Results for the same root (e.g. the root listed twice in a batch) are
    merged; member keys are deduplicated and sorted.
    """
    merged: Dict[str, set] = {}
    for result in results:
        if result.mode is not TraversalMode.FLAT:
            raise ValueError("collapse_flat_records only accepts flat-mode results")
        if result.root is None:
            continue
        root_label = result.root.label(output_identifier)
        keys = merged.setdefault(root_label, set())
        keys.update(m.member.label(output_identifier) for m in result.members)

    return [
        {
            'RootGroup': root_label,
            'MemberKeys': separator.join(sorted(keys, key=str.lower)),
            'MemberCount': len(keys),
        }
        for root_label, keys in merged.items()
    ]
