"""In-memory directory client.

Holds a whole membership graph in dictionaries. Useful for tests, for
replaying an exported directory snapshot, and for reasoning about how an
expansion will behave before pointing it at a production forest.
"""

import asyncio
from collections import Counter
from typing import AsyncIterator, Callable, Dict, Iterable, List, Optional, Set, Tuple

from ...exceptions import Ambiguous, NotFound
from ...routing import RoutingHint
from ..core import AsyncDirectoryClient, DirectoryObjectRef


FilterPredicate = Callable[[DirectoryObjectRef], bool]


class InMemoryDirectoryClient(AsyncDirectoryClient):
    """Directory client backed by dictionaries.

    Dynamic-group filters are looked up by their filter string in
    ``filters`` and applied to every object whose identifier lies under the
    scope container (DN suffix match). The client counts how often each
    group is expanded and which routing hint was used, so traversal
    guarantees can be checked directly.

    Example:
        client = InMemoryDirectoryClient()
        client.add_object(group)
        client.add_object(user)
        client.add_member(group.key, user.key)
    """

    def __init__(
        self,
        objects: Iterable[DirectoryObjectRef] = (),
        memberships: Optional[Dict[str, List[str]]] = None,
        filters: Optional[Dict[str, FilterPredicate]] = None,
        max_concurrent: int = 100,
        latency: float = 0.0
    ):
        """Initialize in-memory client.

        Args:
            objects: Objects in the directory
            memberships: Group key -> ordered list of member keys
            filters: Dynamic filter string -> predicate
            max_concurrent: Maximum concurrent operations
            latency: Simulated seconds per directory call
        """
        super().__init__(max_concurrent)
        self.objects: Dict[str, DirectoryObjectRef] = {}
        self.memberships: Dict[str, List[str]] = {}
        self.filters: Dict[str, FilterPredicate] = dict(filters or {})
        self.latency = latency
        self.failures: Dict[str, Exception] = {}

        # Call accounting
        self.expansion_counts: Counter = Counter()
        self.filter_evaluations: Counter = Counter()
        self.routing_hints: List[Tuple[str, Optional[RoutingHint]]] = []
        self.in_flight = 0
        self.peak_in_flight = 0

        for obj in objects:
            self.add_object(obj)
        for group_key, member_keys in (memberships or {}).items():
            for member_key in member_keys:
                self.add_member(group_key, member_key)

    def _define_capabilities(self) -> Set[str]:
        return super()._define_capabilities() | {'domain_routing'}

    def add_object(self, obj: DirectoryObjectRef) -> None:
        self.objects[obj.key] = obj
        if obj.is_group:
            self.memberships.setdefault(obj.key, [])

    def add_member(self, group_key: str, member_key: str) -> None:
        self.memberships.setdefault(group_key, []).append(member_key)

    def add_filter(self, recipient_filter: str, predicate: FilterPredicate) -> None:
        self.filters[recipient_filter] = predicate

    def fail_on(self, key_or_filter: str, error: Exception) -> None:
        """Make every expansion of a group (or filter) raise ``error``."""
        self.failures[key_or_filter] = error

    async def _simulate_call(self) -> None:
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.latency)
        finally:
            self.in_flight -= 1

    async def resolve_group(self, identifier: str) -> DirectoryObjectRef:
        async with self.semaphore:
            await self._simulate_call()

        if identifier in self.objects:
            return self.objects[identifier]

        wanted = identifier.lower()
        matches = [
            obj for obj in self.objects.values()
            if obj.identifier.lower() == wanted
            or (obj.display_name or '').lower() == wanted
        ]
        if not matches:
            raise NotFound(f"No object matches '{identifier}'", identifier)
        if len(matches) > 1:
            raise Ambiguous(
                f"{len(matches)} objects match '{identifier}'", identifier, len(matches)
            )
        return matches[0]

    async def list_direct_members(
        self,
        group: DirectoryObjectRef,
        hint: Optional[RoutingHint] = None
    ) -> AsyncIterator[DirectoryObjectRef]:
        self.expansion_counts[group.key] += 1
        self.routing_hints.append((group.key, hint))

        async with self.semaphore:
            await self._simulate_call()
            if group.key in self.failures:
                raise self.failures[group.key]
            if group.key not in self.memberships:
                raise NotFound(f"Group '{group.identifier}' no longer exists", group.identifier)
            member_keys = list(self.memberships[group.key])

        for member_key in member_keys:
            member = self.objects.get(member_key)
            if member is None:
                raise NotFound(
                    f"Member '{member_key}' of '{group.identifier}' does not resolve",
                    member_key,
                )
            yield member

    async def evaluate_dynamic_membership(
        self,
        recipient_filter: str,
        scope_container: Optional[str],
        hint: Optional[RoutingHint] = None
    ) -> AsyncIterator[DirectoryObjectRef]:
        self.filter_evaluations[recipient_filter] += 1
        self.routing_hints.append((recipient_filter, hint))

        async with self.semaphore:
            await self._simulate_call()
            if recipient_filter in self.failures:
                raise self.failures[recipient_filter]
            predicate = self.filters.get(recipient_filter)
            if predicate is None:
                raise NotFound(f"Unknown recipient filter '{recipient_filter}'", recipient_filter)
            candidates = [
                obj for obj in self.objects.values()
                if self._in_scope(obj, scope_container) and predicate(obj)
            ]

        for obj in candidates:
            yield obj

    @staticmethod
    def _in_scope(obj: DirectoryObjectRef, scope_container: Optional[str]) -> bool:
        if not scope_container:
            return True
        identifier = obj.identifier.lower()
        scope = scope_container.lower()
        return identifier == scope or identifier.endswith(',' + scope)

    async def get_stats(self) -> dict:
        stats = await super().get_stats()
        stats.update({
            'objects': len(self.objects),
            'groups': len(self.memberships),
            'expansions': sum(self.expansion_counts.values()),
            'filter_evaluations': sum(self.filter_evaluations.values()),
            'peak_in_flight': self.peak_in_flight,
        })
        return stats
