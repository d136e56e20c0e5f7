"""Async membership traversal strategies.

Implements the two disciplines used to expand directory groups:

- ``DepthFirstMembershipTraverser``: unbounded (or optionally bounded)
  depth-first walk producing each distinct user once per root.
- ``LevelOrderMembershipTraverser``: level-bounded breadth-first walk
  recording every edge with its level and membership kind.

Both share the visited-set, routing and error handling logic in
``MembershipTraverser``. All per-root state lives in a ``TraversalContext``
created for each run, so one traverser can expand many roots, including
concurrently.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Dict, Iterable, List, Optional, Set

from ...config import ExpansionConfig, TraversalMode
from ...exceptions import BranchError, FatalDirectoryError, TraversalAborted
from ...routing import DomainRouter, RoutingHint
from .adapter import AsyncDirectoryClient
from .collector import (
    BranchFailure,
    EdgeCollector,
    FlatMemberCollector,
    MembershipCollector,
    TraversalResult,
)
from .node import DirectoryObjectRef, MembershipEdge, MembershipKind
from .visited import VisitedTracker


logger = logging.getLogger(__name__)


async def gather_or_cancel(aws: Iterable[Awaitable]) -> list:
    """Run awaitables concurrently; if one fails, cancel the rest.

    Plain ``asyncio.gather`` leaves siblings running after the first
    failure, which would keep issuing directory calls for a traversal
    that is already lost.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class TraversalContext:
    """Mutable state for expanding one root.

    Replaces process-wide memo tables: the visited set, the accumulator and
    the skipped-branch list are created per run and discarded with it.
    """

    def __init__(
        self,
        root: DirectoryObjectRef,
        root_identifier: str,
        collector: MembershipCollector,
        max_concurrent: int,
        starting_level: int = 1,
        frontier: Optional[List[DirectoryObjectRef]] = None
    ):
        self.root = root
        self.root_identifier = root_identifier
        self.collector = collector
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self.failures: List[BranchFailure] = []
        self.deferred: Dict[str, DirectoryObjectRef] = {}
        self.waiting: List[Dict[str, DirectoryObjectRef]] = []
        self.level = starting_level

        # A resumed run starts from a saved frontier. Unless the root itself is
        # still in it, the root was expanded and the frontier groups were
        # already reported as members by the run being resumed.
        if frontier is None:
            self.visited = VisitedTracker()
            self.frontier = [root]
            self.root_keys = {root.key}
            self.emitted: Set[str] = set()
        else:
            self.frontier = list(frontier)
            frontier_keys = {group.key for group in self.frontier}
            self.root_keys = frontier_keys & {root.key}
            self.emitted = frontier_keys - {root.key}
            self.visited = VisitedTracker(seed=[] if self.root_keys else [root])

    def defer(self, group: DirectoryObjectRef) -> None:
        """Remember a group left unexpanded at the depth bound."""
        self.deferred.setdefault(group.key, group)


class MembershipTraverser(ABC):
    """Abstract base class for membership traversers.

    Subclasses implement ``_walk`` for a specific discipline and
    ``_build_result`` for its output shape.
    """

    mode: TraversalMode

    def __init__(
        self,
        client: AsyncDirectoryClient,
        config: Optional[ExpansionConfig] = None,
        router: Optional[DomainRouter] = None,
        error_policy=None
    ):
        """Initialize traverser.

        Args:
            client: Directory client used to list members
            config: Expansion configuration
            router: Domain router (a fresh one if None)
            error_policy: Policy for failed nested groups (from config if None)
        """
        self.client = client
        self.config = config or ExpansionConfig(mode=self.mode)
        self.router = router or DomainRouter()
        self.error_policy = error_policy or self.config.create_error_policy()

    @abstractmethod
    def create_collector(self, root: DirectoryObjectRef) -> MembershipCollector:
        pass

    @abstractmethod
    async def _walk(self, ctx: TraversalContext) -> None:
        pass

    @abstractmethod
    def _build_result(
        self,
        ctx: TraversalContext,
        complete: bool,
        reason: Optional[str] = None
    ) -> TraversalResult:
        pass

    @property
    def sequential(self) -> bool:
        """Whether expansions run one at a time, in discovery order."""
        return self.config.max_concurrent == 1

    def routing_hint(self, group: DirectoryObjectRef) -> Optional[RoutingHint]:
        """Routing hint for a group, or None if the client does not route.

        Raises:
            MalformedIdentifier: If the group's DN carries no domain
        """
        if not self.config.route_by_domain:
            return None
        if not self.client.supports_capability('domain_routing'):
            return None
        return self.router.route(group.identifier)

    async def list_members(
        self,
        ctx: TraversalContext,
        group: DirectoryObjectRef
    ) -> Optional[List[DirectoryObjectRef]]:
        """Expand one group: route it and read all of its members.

        Branch errors on the root propagate. On any other group they go to
        the error policy and the branch is skipped. Fatal directory errors
        abort the traversal, naming the group being expanded.

        Returns:
            Members, or None if the branch was skipped
        """
        try:
            hint = self.routing_hint(group)
            async with ctx.semaphore:
                members = [m async for m in self.client.get_members(group, hint)]
        except BranchError as error:
            if group.key in ctx.root_keys:
                raise
            ctx.visited.finish(group)
            ctx.failures.append(BranchFailure(group, error))
            await self.error_policy.handle(error, group)
            return None
        except FatalDirectoryError as error:
            raise TraversalAborted(group, error) from error

        ctx.visited.finish(group)
        return members

    async def _list_level(
        self,
        ctx: TraversalContext,
        parents: List[DirectoryObjectRef]
    ) -> List[Optional[List[DirectoryObjectRef]]]:
        if self.sequential:
            listings = []
            for parent in parents:
                listings.append(await self.list_members(ctx, parent))
            return listings
        return await gather_or_cancel(self.list_members(ctx, p) for p in parents)

    def create_context(
        self,
        root: DirectoryObjectRef,
        root_identifier: Optional[str] = None,
        frontier: Optional[List[DirectoryObjectRef]] = None,
        starting_level: Optional[int] = None
    ) -> TraversalContext:
        return TraversalContext(
            root=root,
            root_identifier=root_identifier or root.identifier,
            collector=self.create_collector(root),
            max_concurrent=self.config.max_concurrent,
            starting_level=starting_level or self.config.starting_level,
            frontier=frontier,
        )

    async def run(
        self,
        root: DirectoryObjectRef,
        root_identifier: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
        frontier: Optional[List[DirectoryObjectRef]] = None,
        starting_level: Optional[int] = None
    ) -> TraversalResult:
        """Expand a resolved root group.

        Args:
            root: Root group
            root_identifier: Identifier the caller supplied for the root
            cancel_event: Setting this event stops the traversal
            frontier: Groups to start from instead of the root (resume)
            starting_level: Level of the first expanded groups' members

        Returns:
            TraversalResult; ``complete`` is False after timeout or cancel

        Raises:
            BranchError: If the root itself cannot be expanded
            TraversalAborted: On a fatal directory error, carrying the
                partial result
        """
        ctx = self.create_context(root, root_identifier, frontier, starting_level)
        logger.info(
            "Expanding '%s' (%s mode, depth %s)",
            ctx.root_identifier, self.mode.value,
            self.config.effective_depth() or 'unbounded'
        )

        walk = asyncio.ensure_future(self._walk(ctx))
        waiters = {walk}
        stop = None
        if cancel_event is not None:
            stop = asyncio.ensure_future(cancel_event.wait())
            waiters.add(stop)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=self.config.timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            walk.cancel()
            raise
        finally:
            if stop is not None:
                stop.cancel()

        if walk not in done:
            walk.cancel()
            await asyncio.gather(walk, return_exceptions=True)
            stopped = cancel_event is not None and cancel_event.is_set()
            reason = 'cancelled' if stopped else 'timeout'
            result = self._build_result(ctx, complete=False, reason=reason)
            logger.warning(
                "Expansion of '%s' interrupted (%s) with %d groups unexpanded",
                ctx.root_identifier, reason, len(result.frontier)
            )
            return result

        try:
            walk.result()
        except TraversalAborted as aborted:
            aborted.result = self._build_result(ctx, complete=False, reason='unavailable')
            logger.error("%s", aborted)
            raise

        result = self._build_result(ctx, complete=True)
        logger.info(
            "Expanded '%s': %d groups, %d records, %d skipped",
            ctx.root_identifier, result.expanded_count, len(result), len(result.failures)
        )
        return result


class DepthFirstMembershipTraverser(MembershipTraverser):
    """Depth-first expansion into a deduplicated set of users.

    Each group is marked visited when it is discovered, before it is
    expanded, so a group nested inside itself is never re-entered. Users
    keep the group chain that reached them first.

    With a depth bound the walk proceeds one level at a time instead, so
    every group is expanded at the shallowest level it can be reached.
    """

    mode = TraversalMode.FLAT

    def create_collector(self, root: DirectoryObjectRef) -> FlatMemberCollector:
        return FlatMemberCollector(root)

    async def _walk(self, ctx: TraversalContext) -> None:
        bound = self.config.effective_depth()
        if bound is not None:
            await self._walk_levels(ctx, bound)
            return
        ctx.visited.try_mark(ctx.root)
        await self._expand(ctx, ctx.root, (ctx.root,))

    def _admit(self, ctx: TraversalContext, group: DirectoryObjectRef) -> bool:
        """Claim a discovered group for expansion by this caller."""
        if not ctx.visited.try_mark(group):
            logger.debug("Skipping '%s': already expanded", group.identifier)
            return False
        return True

    async def _expand(
        self,
        ctx: TraversalContext,
        group: DirectoryObjectRef,
        via: tuple
    ) -> None:
        members = await self.list_members(ctx, group)
        if members is None:
            return

        groups = []
        for member in members:
            if member.is_group:
                groups.append(member)
            else:
                ctx.collector.collect(member, via)

        if self.sequential:
            await self._expand_in_order(ctx, groups, via)
            return

        children = [g for g in groups if self._admit(ctx, g)]
        if children:
            await gather_or_cancel(
                self._expand(ctx, child, via + (child,))
                for child in children
            )

    async def _expand_in_order(
        self,
        ctx: TraversalContext,
        groups: List[DirectoryObjectRef],
        via: tuple
    ) -> None:
        # Children not yet started stay on ctx.waiting until their turn
        waiting = {g.key: g for g in groups}
        ctx.waiting.append(waiting)
        for group in groups:
            waiting.pop(group.key, None)
            if self._admit(ctx, group):
                await self._expand(ctx, group, via + (group,))
        ctx.waiting.pop()

    async def _walk_levels(self, ctx: TraversalContext, bound: int) -> None:
        paths = {ctx.root.key: (ctx.root,)}

        while ctx.frontier:
            parents = [g for g in ctx.frontier if ctx.visited.try_mark(g)]
            listings = await self._list_level(ctx, parents)

            next_frontier = []
            for parent, members in zip(parents, listings):
                if members is None:
                    continue
                via = paths[parent.key]
                for member in members:
                    if not member.is_group:
                        ctx.collector.collect(member, via)
                    elif member.key in paths:
                        logger.debug("Skipping '%s': already reached", member.identifier)
                    elif ctx.level >= bound:
                        # Its members would sit below the deepest level requested
                        ctx.defer(member)
                    else:
                        paths[member.key] = via + (member,)
                        next_frontier.append(member)

            ctx.frontier = next_frontier
            ctx.level += 1

    def _unfinished(self, ctx: TraversalContext) -> List[DirectoryObjectRef]:
        """Groups an interrupted walk still owed an expansion."""
        if self.config.effective_depth() is not None:
            return list(ctx.frontier)
        groups = {g.key: g for g in ctx.visited.pending()}
        for waiting in ctx.waiting:
            for key, group in waiting.items():
                if key not in ctx.visited:
                    groups.setdefault(key, group)
        return list(groups.values())

    def _build_result(
        self,
        ctx: TraversalContext,
        complete: bool,
        reason: Optional[str] = None
    ) -> TraversalResult:
        frontier = list(ctx.deferred.values())
        if not complete:
            frontier = self._unfinished(ctx) + frontier
        return TraversalResult(
            root_identifier=ctx.root_identifier,
            root=ctx.root,
            mode=self.mode,
            members=ctx.collector.get_result(),
            complete=complete,
            incomplete_reason=reason,
            frontier=frontier,
            failures=list(ctx.failures),
            expanded_count=ctx.visited.expanded_count(),
        )


class LevelOrderMembershipTraverser(MembershipTraverser):
    """Level-bounded breadth-first expansion recording every edge.

    All parents of one level are listed (concurrently, bounded) before any
    edge of that level is emitted; emission then follows frontier order, so
    output and redundancy classification are deterministic.
    """

    mode = TraversalMode.EXPANDED

    def create_collector(self, root: DirectoryObjectRef) -> EdgeCollector:
        return EdgeCollector()

    async def _walk(self, ctx: TraversalContext) -> None:
        bound = self.config.effective_depth()
        emitted = ctx.emitted

        while ctx.frontier and ctx.level <= bound:
            parents = [g for g in ctx.frontier if ctx.visited.try_mark(g)]
            listings = await self._list_level(ctx, parents)

            next_frontier = []
            for parent, members in zip(parents, listings):
                if members is None:
                    continue
                for member in members:
                    if member.key in emitted:
                        kind = MembershipKind.REDUNDANTLY_NESTED
                    elif member.key in ctx.visited:
                        # Listed group is the starting point of this walk
                        logger.debug(
                            "Cycle: '%s' lists '%s'", parent.identifier, member.identifier
                        )
                        if member.key == parent.key:
                            continue
                        emitted.add(member.key)
                        kind = MembershipKind.REDUNDANTLY_NESTED
                    else:
                        emitted.add(member.key)
                        kind = MembershipKind.DIRECT if ctx.level == 1 else MembershipKind.NESTED
                        if member.is_group:
                            next_frontier.append(member)

                    ctx.collector.collect(MembershipEdge(parent, member, ctx.level, kind))

            ctx.frontier = next_frontier
            ctx.level += 1

    def _build_result(
        self,
        ctx: TraversalContext,
        complete: bool,
        reason: Optional[str] = None
    ) -> TraversalResult:
        return TraversalResult(
            root_identifier=ctx.root_identifier,
            root=ctx.root,
            mode=self.mode,
            edges=ctx.collector.get_result(),
            complete=complete,
            incomplete_reason=reason,
            frontier=list(ctx.frontier),
            next_level=ctx.level,
            failures=list(ctx.failures),
            expanded_count=ctx.visited.expanded_count(),
        )


def create_traverser(
    client: AsyncDirectoryClient,
    config: Optional[ExpansionConfig] = None,
    router: Optional[DomainRouter] = None,
    error_policy=None
) -> MembershipTraverser:
    """Factory function to create the traverser for a configuration.

    Args:
        client: Directory client
        config: Expansion configuration (flat mode if None)
        router: Optional shared domain router
        error_policy: Optional error policy override

    Returns:
        Traverser matching ``config.mode``
    """
    config = config or ExpansionConfig()
    if config.mode is TraversalMode.FLAT:
        return DepthFirstMembershipTraverser(client, config, router, error_policy)
    if config.mode is TraversalMode.EXPANDED:
        return LevelOrderMembershipTraverser(client, config, router, error_policy)
    raise ValueError(f"Unknown traversal mode: {config.mode}")
