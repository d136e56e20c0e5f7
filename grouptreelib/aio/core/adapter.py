"""Async directory client abstraction.

Defines how directory services are adapted into the membership graph
the traversal engine walks. Members are streamed as AsyncIterators so
large groups never have to be materialized by the client itself.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional, Set

from ...exceptions import MalformedIdentifier
from ...routing import RoutingHint
from .node import DirectoryObjectRef, ObjectKind


class AsyncDirectoryClient(ABC):
    """Abstract base class for async directory clients.

    Clients bridge between the generic expansion logic and a concrete
    directory (AD over LDAP, an Exchange recipient API, an in-memory
    fixture). Every remote call is a suspension point; the semaphore bounds
    how many run at once so directory throttling limits are respected.
    """

    def __init__(self, max_concurrent: int = 100):
        """Initialize client with concurrency control.

        Args:
            max_concurrent: Maximum concurrent directory operations
        """
        self.max_concurrent = max_concurrent
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self._capabilities = self._define_capabilities()

    @abstractmethod
    async def resolve_group(self, identifier: str) -> DirectoryObjectRef:
        """Resolve an identifier to a directory object.

        Args:
            identifier: GUID, distinguished name, primary address or name

        Returns:
            The single matching object

        Raises:
            NotFound: Nothing matches
            Ambiguous: More than one object matches
        """
        pass

    @abstractmethod
    async def list_direct_members(
        self,
        group: DirectoryObjectRef,
        hint: Optional[RoutingHint] = None
    ) -> AsyncIterator[DirectoryObjectRef]:
        """Stream the stored direct members of a static group.

        The stream is finite and not restartable; call again to re-read.

        Args:
            group: Group to list
            hint: Domain that should service the query

        Yields:
            Member references one at a time
        """
        pass

    @abstractmethod
    async def evaluate_dynamic_membership(
        self,
        recipient_filter: str,
        scope_container: Optional[str],
        hint: Optional[RoutingHint] = None
    ) -> AsyncIterator[DirectoryObjectRef]:
        """Stream the objects a dynamic group's filter currently matches.

        Args:
            recipient_filter: The group's stored filter
            scope_container: Container the filter is applied under
            hint: Domain that should service the query

        Yields:
            Matching object references
        """
        pass

    async def get_members(
        self,
        group: DirectoryObjectRef,
        hint: Optional[RoutingHint] = None
    ) -> AsyncIterator[DirectoryObjectRef]:
        """Stream a group's members, whatever kind of group it is.

        Dynamic groups have no stored membership; their filter is evaluated
        instead. Everything downstream treats both the same way.
        """
        if group.kind is ObjectKind.DYNAMIC_GROUP:
            if not group.recipient_filter:
                raise MalformedIdentifier(
                    f"Dynamic group '{group.identifier}' has no recipient filter",
                    group.identifier,
                )
            async for member in self.evaluate_dynamic_membership(
                group.recipient_filter, group.scope_container, hint
            ):
                yield member
        else:
            async for member in self.list_direct_members(group, hint):
                yield member

    def supports_capability(self, capability: str) -> bool:
        """Check if client supports a specific capability.

        Args:
            capability: Capability name

        Returns:
            True if capability is supported
        """
        return capability in self._capabilities

    def _define_capabilities(self) -> Set[str]:
        """Define client capabilities.

        Override in subclasses to declare supported features. Clients that
        address individual domains add ``'domain_routing'`` so the engine
        computes routing hints for them.

        Returns:
            Set of capability names
        """
        return {
            'resolve_group',
            'list_direct_members',
            'evaluate_dynamic_membership',
            'streaming',
        }

    async def get_stats(self) -> dict:
        """Get client statistics.

        Returns:
            Dictionary of statistics (call counts, cache hits, etc.)
        """
        return {
            'max_concurrent': self.max_concurrent,
            'available_permits': getattr(self.semaphore, '_value', None),
        }

    async def close(self):
        """Clean up client resources.

        Override if the client holds connections.
        """
        pass

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
