"""Core abstractions for async membership expansion.

This module defines the directory object model, the directory client
interface, and the traversal engine that walks group membership.
"""

from .node import DirectoryObjectRef, MembershipEdge, MembershipKind, ObjectKind
from .adapter import AsyncDirectoryClient
from .visited import VisitedTracker
from .collector import (
    BranchFailure,
    EdgeCollector,
    FlatMember,
    FlatMemberCollector,
    MembershipCollector,
    TraversalResult,
    collapse_flat_records,
    sort_edges,
    to_records,
)
from .traverser import (
    DepthFirstMembershipTraverser,
    LevelOrderMembershipTraverser,
    MembershipTraverser,
    TraversalContext,
    create_traverser,
    gather_or_cancel,
)

__all__ = [
    # Nodes
    'DirectoryObjectRef',
    'MembershipEdge',
    'MembershipKind',
    'ObjectKind',
    # Client
    'AsyncDirectoryClient',
    # Visited set
    'VisitedTracker',
    # Collectors
    'BranchFailure',
    'EdgeCollector',
    'FlatMember',
    'FlatMemberCollector',
    'MembershipCollector',
    'TraversalResult',
    'collapse_flat_records',
    'sort_edges',
    'to_records',
    # Traversers
    'DepthFirstMembershipTraverser',
    'LevelOrderMembershipTraverser',
    'MembershipTraverser',
    'TraversalContext',
    'create_traverser',
    'gather_or_cancel',
]
