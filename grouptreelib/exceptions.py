"""Exception hierarchy for GroupTreeLib.

Errors fall into two families that the traversal engine treats differently:

- ``BranchError``: one object could not be resolved or listed. On a nested
  group the configured error policy decides (skip by default); on the root
  the error propagates to the caller.
- ``FatalDirectoryError``: the directory service itself failed. The core
  never retries these; the traversal is aborted with ``TraversalAborted``.
"""

from typing import Any, Optional


class GroupTreeError(Exception):
    """Base class for all GroupTreeLib errors."""


class BranchError(GroupTreeError):
    """An error confined to a single group or identifier."""

    def __init__(self, message: str, identifier: Optional[str] = None):
        super().__init__(message)
        self.identifier = identifier


class NotFound(BranchError):
    """Identifier does not resolve to any directory object."""


class Ambiguous(BranchError):
    """Identifier resolves to more than one directory object."""

    def __init__(self, message: str, identifier: Optional[str] = None, matches: int = 0):
        super().__init__(message, identifier)
        self.matches = matches


class MalformedIdentifier(BranchError):
    """Identifier cannot be interpreted (e.g. a DN without DC= components)."""


class FatalDirectoryError(GroupTreeError):
    """Directory service failure that invalidates the whole traversal."""


class DirectoryUnavailable(FatalDirectoryError):
    """Connectivity loss, throttling or a busy/unavailable directory."""


class DirectoryUnauthorized(FatalDirectoryError):
    """The bound identity may not read the requested objects."""


class ErrorThresholdExceeded(GroupTreeError):
    """Raised by ThresholdPolicy once too many branches have failed."""


class TraversalAborted(GroupTreeError):
    """A traversal stopped on a fatal directory error.

    Attributes:
        group: The group being expanded when the failure occurred
        result: Partial TraversalResult marked incomplete, with frontier
    """

    def __init__(self, group: Any, cause: Exception, result: Any = None):
        label = getattr(group, 'identifier', group)
        super().__init__(f"Traversal aborted while expanding '{label}': {cause}")
        self.group = group
        self.cause = cause
        self.result = result
