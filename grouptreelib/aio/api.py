"""High-level async API for GroupTreeLib.

This module provides the user-facing entry points: expand one group into
its distinct users or into its level-annotated edges, expand a batch of
groups, and resume a depth-bounded expansion where it stopped.
"""

import asyncio
import logging
from dataclasses import replace
from typing import List, Optional, Sequence, Union

from ..config import DEFAULT_LEVELS_DEEP_TO_GO, ExpansionConfig, TraversalMode
from ..exceptions import Ambiguous, BranchError, MalformedIdentifier, NotFound
from ..routing import DomainRouter
from .core import (
    AsyncDirectoryClient,
    DirectoryObjectRef,
    TraversalResult,
    collapse_flat_records,
    create_traverser,
    gather_or_cancel,
    sort_edges,
    to_records,
)


logger = logging.getLogger(__name__)

RootSpec = Union[str, DirectoryObjectRef]

_ROOT_FAILURE_REASONS = (
    (NotFound, 'root_not_found'),
    (Ambiguous, 'root_ambiguous'),
    (MalformedIdentifier, 'root_malformed'),
)


def _check_config(config: ExpansionConfig) -> ExpansionConfig:
    errors = config.validate()
    if errors:
        raise ValueError("Invalid expansion configuration: " + "; ".join(errors))
    return config


def _root_label(root: RootSpec) -> str:
    return root.identifier if isinstance(root, DirectoryObjectRef) else root


async def _resolve_root(client: AsyncDirectoryClient, root: RootSpec) -> DirectoryObjectRef:
    ref = root if isinstance(root, DirectoryObjectRef) else await client.resolve_group(root)
    if not ref.is_group:
        raise MalformedIdentifier(f"'{_root_label(root)}' is not a group", _root_label(root))
    return ref


async def expand_group(
    client: AsyncDirectoryClient,
    root: RootSpec,
    config: Optional[ExpansionConfig] = None,
    router: Optional[DomainRouter] = None,
    cancel_event: Optional[asyncio.Event] = None
) -> TraversalResult:
    """Expand one group in the mode named by ``config``.

    Args:
        client: Directory client
        root: Identifier the client can resolve, or a resolved group
        config: Expansion configuration (flat mode if None)
        router: Optional shared domain router
        cancel_event: Setting this event stops the traversal

    Returns:
        TraversalResult for the root

    Raises:
        ValueError: If the configuration is invalid
        BranchError: If the root cannot be resolved or listed
        TraversalAborted: On a fatal directory error
    """
    config = _check_config(config or ExpansionConfig())
    ref = await _resolve_root(client, root)
    traverser = create_traverser(client, config, router)
    return await traverser.run(ref, root_identifier=_root_label(root), cancel_event=cancel_event)


async def expand_group_members(
    client: AsyncDirectoryClient,
    root: RootSpec,
    config: Optional[ExpansionConfig] = None,
    router: Optional[DomainRouter] = None,
    cancel_event: Optional[asyncio.Event] = None
) -> TraversalResult:
    """Expand a group into the distinct users reachable from it.

    Example:
        >>> result = await expand_group_members(client, 'CN=Staff,OU=Groups,DC=contoso,DC=com')
        >>> for record in to_records(result):
        ...     print(record['MemberKey'])
    """
    config = replace(config, mode=TraversalMode.FLAT) if config else ExpansionConfig.flat()
    return await expand_group(client, root, config, router, cancel_event)


async def expand_group_edges(
    client: AsyncDirectoryClient,
    root: RootSpec,
    levels_deep_to_go: int = DEFAULT_LEVELS_DEEP_TO_GO,
    starting_level: int = 1,
    config: Optional[ExpansionConfig] = None,
    router: Optional[DomainRouter] = None,
    cancel_event: Optional[asyncio.Event] = None
) -> TraversalResult:
    """Expand a group into every parent/member edge up to a depth.

    Args:
        client: Directory client
        root: Identifier the client can resolve, or a resolved group
        levels_deep_to_go: Deepest level to record edges for
        starting_level: Level assigned to the root's direct members
        config: Base configuration for the remaining options

    Returns:
        Expanded-mode TraversalResult; ``frontier`` and ``next_level``
        describe where a deeper run would continue
    """
    config = replace(
        config or ExpansionConfig(),
        mode=TraversalMode.EXPANDED,
        levels_deep_to_go=levels_deep_to_go,
        starting_level=starting_level,
    )
    return await expand_group(client, root, config, router, cancel_event)


def _failed_result(root: RootSpec, config: ExpansionConfig, error: BranchError) -> TraversalResult:
    reason = next(
        (name for error_type, name in _ROOT_FAILURE_REASONS if isinstance(error, error_type)),
        'root_not_found'
    )
    return TraversalResult(
        root_identifier=_root_label(root),
        root=root if isinstance(root, DirectoryObjectRef) else None,
        mode=config.mode,
        complete=False,
        incomplete_reason=reason,
        error=error,
    )


async def expand_groups(
    client: AsyncDirectoryClient,
    roots: Sequence[RootSpec],
    config: Optional[ExpansionConfig] = None,
    max_parallel_roots: int = 1,
    router: Optional[DomainRouter] = None,
    cancel_event: Optional[asyncio.Event] = None
) -> List[TraversalResult]:
    """Expand many groups, each with its own visited set.

    A root that cannot be resolved (or listed) yields a failed result
    instead of stopping the batch. Fatal directory errors still abort the
    whole batch.

    Args:
        client: Directory client (wrap in CachingDirectoryClient to share
            listings across roots)
        roots: Root identifiers or resolved groups
        config: Expansion configuration shared by every root
        max_parallel_roots: Roots expanded at once

    Returns:
        One TraversalResult per root, in input order
    """
    if max_parallel_roots < 1:
        raise ValueError("max_parallel_roots must be positive")
    config = _check_config(config or ExpansionConfig())
    router = router or DomainRouter()
    semaphore = asyncio.Semaphore(max_parallel_roots)

    async def expand_one(root: RootSpec) -> TraversalResult:
        async with semaphore:
            try:
                return await expand_group(client, root, config, router, cancel_event)
            except BranchError as error:
                logger.warning("Root '%s' could not be expanded: %s", _root_label(root), error)
                return _failed_result(root, config, error)

    if max_parallel_roots == 1:
        return [await expand_one(root) for root in roots]
    return await gather_or_cancel(expand_one(root) for root in roots)


async def resume_group_edges(
    client: AsyncDirectoryClient,
    previous: TraversalResult,
    levels_deep_to_go: int,
    config: Optional[ExpansionConfig] = None,
    router: Optional[DomainRouter] = None,
    cancel_event: Optional[asyncio.Event] = None
) -> TraversalResult:
    """Continue an expanded traversal from where ``previous`` stopped.

    Starts from the previous result's frontier at its ``next_level``. The
    root and the frontier groups count as already reported; other groups
    expanded by the previous run are not known to this one, so a group
    reachable both above and below the old bound can appear again.

    Args:
        client: Directory client
        previous: Expanded-mode result of an earlier run
        levels_deep_to_go: New deepest level
        config: Base configuration for the remaining options

    Returns:
        TraversalResult holding only the new edges
    """
    if previous.mode is not TraversalMode.EXPANDED:
        raise ValueError("Only expanded-mode results can be resumed")
    if previous.root is None or previous.next_level is None:
        raise ValueError(f"Result for '{previous.root_identifier}' has nothing to resume")

    config = _check_config(replace(
        config or ExpansionConfig(),
        mode=TraversalMode.EXPANDED,
        levels_deep_to_go=levels_deep_to_go,
        starting_level=previous.next_level,
    ))
    traverser = create_traverser(client, config, router)
    return await traverser.run(
        previous.root,
        root_identifier=previous.root_identifier,
        cancel_event=cancel_event,
        frontier=list(previous.frontier),
        starting_level=previous.next_level,
    )


__all__ = [
    'expand_group',
    'expand_group_members',
    'expand_group_edges',
    'expand_groups',
    'resume_group_edges',
    'to_records',
    'sort_edges',
    'collapse_flat_records',
]
