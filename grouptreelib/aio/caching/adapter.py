"""
Caching client implementation for GroupTreeLib.

Provides a transparent caching layer that can wrap any directory client.
Within one traversal the visited set already guarantees a group is listed
once; this layer extends the saving across the roots of a batch, where the
same nested groups tend to recur under many top-level groups.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Set

from cachetools import TTLCache

from ...routing import RoutingHint
from ..core import AsyncDirectoryClient, DirectoryObjectRef


logger = logging.getLogger(__name__)


class CachingDirectoryClient(AsyncDirectoryClient):
    """
    Optional caching layer for any directory client.

    Caches identifier resolution and the member lists of static groups.
    Uses Future-based coordination so concurrent requests for the same
    group share one directory call. Dynamic-group evaluation is never
    cached: the filter can match different objects from one run to the next.

    Example:
        base_client = LdapDirectoryClient(...)
        cached_client = CachingDirectoryClient(base_client, max_size=50000)

        results = await expand_groups(cached_client, roots)
    """

    def __init__(
        self,
        base_client: AsyncDirectoryClient,
        max_size: int = 10000,
        ttl: float = 300.0  # 5 minutes
    ):
        """
        Initialize caching client.

        Args:
            base_client: The underlying directory client to wrap
            max_size: Maximum number of entries per cache
            ttl: Time-to-live for cache entries in seconds
        """
        self._client = base_client
        super().__init__(base_client.max_concurrent)
        self._members_cache = TTLCache(maxsize=max_size, ttl=ttl)
        self._resolve_cache = TTLCache(maxsize=max_size, ttl=ttl)
        self._listings_in_progress: Dict[Any, asyncio.Future] = {}

        # Statistics
        self.cache_hits = 0
        self.cache_misses = 0
        self.concurrent_waits = 0

    def _define_capabilities(self) -> Set[str]:
        return self._client._define_capabilities() | {'caching'}

    async def resolve_group(self, identifier: str) -> DirectoryObjectRef:
        cache_key = identifier.lower()
        if cache_key in self._resolve_cache:
            self.cache_hits += 1
            return self._resolve_cache[cache_key]

        self.cache_misses += 1
        ref = await self._client.resolve_group(identifier)
        self._resolve_cache[cache_key] = ref
        return ref

    async def list_direct_members(
        self,
        group: DirectoryObjectRef,
        hint: Optional[RoutingHint] = None
    ) -> AsyncIterator[DirectoryObjectRef]:
        """
        List members with caching and async coordination.

        This method:
        1. Checks if another task is already listing this group
        2. Checks the cache for existing results
        3. Performs the listing if needed
        4. Shares results with all waiting tasks
        """
        cache_key = self._get_cache_key(group, hint)

        # 1. Check if a listing is already in progress
        if cache_key in self._listings_in_progress:
            self.concurrent_waits += 1
            members = await self._listings_in_progress[cache_key]
            for member in members:
                yield member
            return

        # 2. Check cache
        if cache_key in self._members_cache:
            self.cache_hits += 1
            logger.debug("Cache hit for '%s'", group.identifier)
            for member in self._members_cache[cache_key]:
                yield member
            return

        # 3. Cache miss - list from the directory
        self.cache_misses += 1
        future = asyncio.get_running_loop().create_future()
        self._listings_in_progress[cache_key] = future

        try:
            members: List[DirectoryObjectRef] = []
            async for member in self._client.list_direct_members(group, hint):
                members.append(member)

            self._members_cache[cache_key] = members
            future.set_result(members)
        except Exception as e:
            future.set_exception(e)
            # Waiters re-raise it; mark retrieved for when there are none
            future.exception()
            raise
        except BaseException:
            future.cancel()
            raise
        finally:
            self._listings_in_progress.pop(cache_key, None)

        for member in members:
            yield member

    async def evaluate_dynamic_membership(
        self,
        recipient_filter: str,
        scope_container: Optional[str],
        hint: Optional[RoutingHint] = None
    ) -> AsyncIterator[DirectoryObjectRef]:
        async for member in self._client.evaluate_dynamic_membership(
            recipient_filter, scope_container, hint
        ):
            yield member

    @staticmethod
    def _get_cache_key(group: DirectoryObjectRef, hint: Optional[RoutingHint]) -> Any:
        return (group.key, hint.domain.lower() if hint else None)

    def get_cache_stats(self) -> dict:
        """
        Get cache statistics for monitoring and debugging.
        """
        total_requests = self.cache_hits + self.cache_misses
        hit_rate = self.cache_hits / total_requests if total_requests > 0 else 0

        return {
            'cache_hits': self.cache_hits,
            'cache_misses': self.cache_misses,
            'hit_rate': hit_rate,
            'concurrent_waits': self.concurrent_waits,
            'members_cache_size': len(self._members_cache),
            'resolve_cache_size': len(self._resolve_cache),
            'max_size': self._members_cache.maxsize,
            'ttl': self._members_cache.ttl,
        }

    def clear_cache(self) -> None:
        """
        Clear all cached entries.
        """
        self._members_cache.clear()
        self._resolve_cache.clear()
        self.cache_hits = 0
        self.cache_misses = 0
        self.concurrent_waits = 0

    async def get_stats(self) -> dict:
        stats = await self._client.get_stats()
        stats.update(self.get_cache_stats())
        return stats

    async def close(self):
        await self._client.close()
