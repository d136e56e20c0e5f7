"""Directory object and membership edge types.

These are the nodes and edges of the membership graph. Both are immutable
once created; a traversal only ever builds new ones.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ...config import OutputIdentifier


class ObjectKind(Enum):
    """What kind of directory object a reference points at."""
    USER = "User"
    STATIC_GROUP = "StaticGroup"
    DYNAMIC_GROUP = "DynamicGroup"

    @property
    def is_group(self) -> bool:
        return self is not ObjectKind.USER


class MembershipKind(Enum):
    """How a member was reached, for level-annotated output."""
    DIRECT = "Direct"
    NESTED = "Nested"
    REDUNDANTLY_NESTED = "RedundantlyNested"


@dataclass(frozen=True)
class DirectoryObjectRef:
    """Reference to a resolved directory object.

    Identity is the stable ``key`` (GUID or equivalent) plus ``kind``;
    the human-readable identifier can change (renames, moves) without
    making two references unequal.

    Attributes:
        key: Stable unique key, typically the object GUID
        identifier: Distinguished name or primary address
        kind: User, static group or dynamic group
        recipient_filter: Stored filter of a dynamic group
        scope_container: Container a dynamic group's filter is applied to
        display_name: Optional friendly name
    """
    key: str
    identifier: str = field(compare=False)
    kind: ObjectKind = ObjectKind.USER
    recipient_filter: Optional[str] = field(default=None, compare=False)
    scope_container: Optional[str] = field(default=None, compare=False)
    display_name: Optional[str] = field(default=None, compare=False)

    @property
    def is_group(self) -> bool:
        return self.kind.is_group

    def label(self, output_identifier: OutputIdentifier = OutputIdentifier.GUID) -> str:
        """Identifier to show in output records."""
        if output_identifier is OutputIdentifier.DISTINGUISHED_NAME:
            return self.identifier
        return self.key

    def __repr__(self) -> str:
        return f"DirectoryObjectRef({self.kind.value}, {self.identifier!r})"


@dataclass(frozen=True)
class MembershipEdge:
    """One discovered parent -> member relationship.

    Attributes:
        parent: Group whose membership listed the member
        member: The member object
        level: 1 for the root's direct members, +1 per nesting
        kind: Direct, Nested or RedundantlyNested
    """
    parent: DirectoryObjectRef
    member: DirectoryObjectRef
    level: int
    kind: MembershipKind

    def __post_init__(self):
        if self.level < 1:
            raise ValueError(f"Edge level must be positive, got {self.level}")
