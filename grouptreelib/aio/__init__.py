"""Asynchronous implementation of GroupTreeLib.

This package contains the async membership-expansion engine, the
directory clients it runs against, and the high-level API. Directory
calls are the only suspension points; all fan-out is bounded.
"""

# Core abstractions
from .core import (
    AsyncDirectoryClient,
    BranchFailure,
    DepthFirstMembershipTraverser,
    DirectoryObjectRef,
    FlatMember,
    LevelOrderMembershipTraverser,
    MembershipEdge,
    MembershipKind,
    ObjectKind,
    TraversalResult,
    VisitedTracker,
    create_traverser,
)

# Clients
from .adapters import InMemoryDirectoryClient, LdapDirectoryClient
from .caching import CachingDirectoryClient

# Error policies
from .error_policies import (
    ErrorPolicy,
    FailFastPolicy,
    SkipBranchPolicy,
    ThresholdPolicy,
)

# High-level API
from .api import (
    collapse_flat_records,
    expand_group,
    expand_group_edges,
    expand_group_members,
    expand_groups,
    resume_group_edges,
    sort_edges,
    to_records,
)

__all__ = [
    # Core abstractions
    'AsyncDirectoryClient',
    'DirectoryObjectRef',
    'MembershipEdge',
    'MembershipKind',
    'ObjectKind',
    'VisitedTracker',
    # Results
    'TraversalResult',
    'FlatMember',
    'BranchFailure',
    # Traversers
    'DepthFirstMembershipTraverser',
    'LevelOrderMembershipTraverser',
    'create_traverser',
    # Clients
    'InMemoryDirectoryClient',
    'LdapDirectoryClient',
    'CachingDirectoryClient',
    # Error policies
    'ErrorPolicy',
    'FailFastPolicy',
    'SkipBranchPolicy',
    'ThresholdPolicy',
    # High-level API
    'expand_group',
    'expand_group_members',
    'expand_group_edges',
    'expand_groups',
    'resume_group_edges',
    'to_records',
    'sort_edges',
    'collapse_flat_records',
]
