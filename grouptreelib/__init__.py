"""GroupTreeLib - Recursive directory group membership expansion.

GroupTreeLib enumerates the membership of directory groups (security
groups, distribution groups and dynamic/query-based groups) across a
multi-domain forest, following nested groups with cycle and redundancy
handling.

Two output shapes:
    Flat:      every distinct user reachable from a root
    Expanded:  every parent/member edge with its level and kind

    from grouptreelib.aio import expand_group_members, expand_group_edges
"""

import logging

__version__ = "0.4.0"

# Library logging stays silent unless the application configures it
logging.getLogger(__name__).addHandler(logging.NullHandler())

from .config import ExpansionConfig, OutputIdentifier, TraversalMode
from .exceptions import (
    Ambiguous,
    BranchError,
    DirectoryUnauthorized,
    DirectoryUnavailable,
    ErrorThresholdExceeded,
    FatalDirectoryError,
    GroupTreeError,
    MalformedIdentifier,
    NotFound,
    TraversalAborted,
)
from .routing import DomainRouter, RoutingHint, route_for
from . import aio

__all__ = [
    "__version__",
    "aio",
    # Configuration
    "ExpansionConfig",
    "OutputIdentifier",
    "TraversalMode",
    # Routing
    "DomainRouter",
    "RoutingHint",
    "route_for",
    # Errors
    "GroupTreeError",
    "BranchError",
    "NotFound",
    "Ambiguous",
    "MalformedIdentifier",
    "FatalDirectoryError",
    "DirectoryUnavailable",
    "DirectoryUnauthorized",
    "ErrorThresholdExceeded",
    "TraversalAborted",
]
