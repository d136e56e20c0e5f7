"""Test fixtures for GroupTreeLib consumers.

Builds small in-memory directories from plain names, so a test can say
"Staff contains Engineering and alice" instead of assembling GUIDs and
distinguished names by hand. Every object gets ``display_name`` set to
its name, which the in-memory client also resolves.
"""

import uuid
from typing import Callable, Dict, List, Optional, Set, Tuple, Union

from ..aio.adapters.memory import InMemoryDirectoryClient
from ..aio.core import DirectoryObjectRef, ObjectKind, TraversalResult


# Fixed namespace so keys are stable across runs
FIXTURE_NAMESPACE = uuid.UUID('6f1c2a9e-3b7d-4e58-9a0c-2d4b8e7f1a35')

MemberSpec = Union[str, DirectoryObjectRef]


def object_key(distinguished_name: str) -> str:
    """Deterministic GUID-style key for a fixture DN."""
    return str(uuid.uuid5(FIXTURE_NAMESPACE, distinguished_name.lower()))


def _naming_context(domain: str) -> str:
    return ','.join(f"DC={label}" for label in domain.split('.'))


class DirectoryBuilder:
    """Fluent builder for an InMemoryDirectoryClient.

    Example:
        builder = DirectoryBuilder()
        builder.user('alice')
        builder.group('Engineering', 'alice')
        builder.group('Staff', 'Engineering')
        builder.add('Engineering', 'Staff')   # cycle
        client = builder.build()
    """

    def __init__(self, domain: str = 'contoso.com'):
        self.domain = domain
        self.objects: Dict[str, DirectoryObjectRef] = {}
        self.memberships: Dict[str, List[str]] = {}
        self.filters: Dict[str, Callable[[DirectoryObjectRef], bool]] = {}

    def dn(self, name: str, ou: str, domain: Optional[str] = None) -> str:
        return f"CN={name},OU={ou},{_naming_context(domain or self.domain)}"

    def _register(self, name: str, ref: DirectoryObjectRef) -> DirectoryObjectRef:
        if name in self.objects:
            raise ValueError(f"Duplicate fixture name: {name}")
        self.objects[name] = ref
        if ref.is_group:
            self.memberships[ref.key] = []
        return ref

    def user(self, name: str, domain: Optional[str] = None) -> DirectoryObjectRef:
        dn = self.dn(name, 'Users', domain)
        return self._register(name, DirectoryObjectRef(
            key=object_key(dn), identifier=dn, kind=ObjectKind.USER, display_name=name
        ))

    def users(self, *names: str, domain: Optional[str] = None) -> List[DirectoryObjectRef]:
        return [self.user(name, domain) for name in names]

    def group(self, name: str, *members: MemberSpec, domain: Optional[str] = None) -> DirectoryObjectRef:
        """Create a static group; members must already exist."""
        dn = self.dn(name, 'Groups', domain)
        ref = self._register(name, DirectoryObjectRef(
            key=object_key(dn), identifier=dn, kind=ObjectKind.STATIC_GROUP, display_name=name
        ))
        self.add(name, *members)
        return ref

    def dynamic_group(
        self,
        name: str,
        recipient_filter: str,
        predicate: Callable[[DirectoryObjectRef], bool],
        scope_container: Optional[str] = None,
        domain: Optional[str] = None
    ) -> DirectoryObjectRef:
        """Create a dynamic group whose filter is evaluated with ``predicate``."""
        dn = self.dn(name, 'Groups', domain)
        self.filters[recipient_filter] = predicate
        return self._register(name, DirectoryObjectRef(
            key=object_key(dn),
            identifier=dn,
            kind=ObjectKind.DYNAMIC_GROUP,
            recipient_filter=recipient_filter,
            scope_container=scope_container,
            display_name=name,
        ))

    def add(self, group: str, *members: MemberSpec) -> None:
        """Append members to an existing group, in order."""
        group_key = self[group].key
        for member in members:
            ref = member if isinstance(member, DirectoryObjectRef) else self[member]
            self.memberships[group_key].append(ref.key)

    def __getitem__(self, name: str) -> DirectoryObjectRef:
        return self.objects[name]

    def build(self, **client_kwargs) -> InMemoryDirectoryClient:
        return InMemoryDirectoryClient(
            objects=self.objects.values(),
            memberships={k: list(v) for k, v in self.memberships.items()},
            filters=dict(self.filters),
            **client_kwargs
        )


def member_names(result: TraversalResult) -> Set[str]:
    """Display names of the users in a flat result."""
    return {m.member.display_name or m.member.identifier for m in result.members}


def edge_tuples(result: TraversalResult) -> List[Tuple[str, str, int, str]]:
    """Edges of an expanded result as (parent, member, level, kind) names."""
    return [
        (
            e.parent.display_name or e.parent.identifier,
            e.member.display_name or e.member.identifier,
            e.level,
            e.kind.value,
        )
        for e in result.edges
    ]
