"""Domain routing for multi-domain forests.

No single directory endpoint sees every partition of a forest, so each
group must be queried against the domain that owns it. The owning domain
is encoded in the trailing ``DC=`` components of the object's
distinguished name; deriving it is a string transformation, not a lookup.
"""

import re
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from cachetools import LRUCache

from .exceptions import MalformedIdentifier


# RDN separators are commas not preceded by a backslash escape
_RDN_SPLIT = re.compile(r'(?<!\\),')


@dataclass(frozen=True)
class RoutingHint:
    """Advisory hint naming the domain that services an object.

    Attributes:
        domain: Dotted domain name, e.g. ``child.contoso.com``
        naming_context: Domain naming context, e.g. ``DC=child,DC=contoso,DC=com``
    """
    domain: str
    naming_context: str

    def __str__(self) -> str:
        return self.domain


def split_rdns(dn: str) -> List[str]:
    """Split a distinguished name into its RDN components."""
    return [part.strip() for part in _RDN_SPLIT.split(dn) if part.strip()]


def route_for(distinguished_name: str) -> RoutingHint:
    """Derive the routing hint for a distinguished name.

    Everything before the first ``DC=`` component is discarded and the
    remaining ``DC=x,DC=y,...`` sequence is joined with dots:

        >>> route_for('CN=Group1,OU=Groups,DC=child,DC=contoso,DC=com').domain
        'child.contoso.com'

    Args:
        distinguished_name: DN expected to contain one or more DC= components

    Returns:
        RoutingHint for the owning domain

    Raises:
        MalformedIdentifier: If the DN has no (or an empty) DC= component
    """
    if not distinguished_name:
        raise MalformedIdentifier("Empty distinguished name", distinguished_name)

    rdns = split_rdns(distinguished_name)
    labels = []
    for rdn in rdns:
        attr, sep, value = rdn.partition('=')
        if attr.strip().upper() == 'DC' and sep:
            labels.append(value.strip())
        elif labels:
            # DC components must be contiguous at the end of the DN
            break

    if not labels:
        raise MalformedIdentifier(
            f"No DC= component in '{distinguished_name}'", distinguished_name
        )
    if not all(labels):
        raise MalformedIdentifier(
            f"Empty DC= component in '{distinguished_name}'", distinguished_name
        )

    return RoutingHint(
        domain='.'.join(labels),
        naming_context=','.join(f"DC={label}" for label in labels),
    )


class DomainRouter:
    """Memoizing router from distinguished names to query endpoints.

    Large forests route the same handful of domains millions of times, so
    derived hints are kept in a bounded LRU cache. Endpoints default to the
    domain name itself (DNS resolves a domain name to one of its domain
    controllers) unless an explicit override is configured.

    Example:
        router = DomainRouter(endpoints={'child.contoso.com': 'dc01.child.contoso.com'})
        hint = router.route('CN=G,DC=child,DC=contoso,DC=com')
        router.endpoint_for(hint)  # 'dc01.child.contoso.com'
    """

    def __init__(
        self,
        endpoints: Optional[Dict[str, str]] = None,
        cache_size: int = 4096
    ):
        """Initialize router.

        Args:
            endpoints: Optional domain -> server overrides
            cache_size: Maximum number of memoized DN -> hint entries
        """
        self._endpoints = {k.lower(): v for k, v in (endpoints or {}).items()}
        self._cache = LRUCache(maxsize=cache_size)
        self._lock = threading.Lock()
        self.cache_hits = 0
        self.cache_misses = 0

    def route(self, distinguished_name: str) -> RoutingHint:
        """Route a DN, memoizing the result.

        Raises:
            MalformedIdentifier: If the DN carries no domain components
        """
        cache_key = distinguished_name.lower()
        with self._lock:
            hint = self._cache.get(cache_key)
            if hint is not None:
                self.cache_hits += 1
                return hint

        hint = route_for(distinguished_name)

        with self._lock:
            self.cache_misses += 1
            self._cache[cache_key] = hint
        return hint

    def endpoint_for(self, hint: RoutingHint) -> str:
        """Server to contact for a routed domain."""
        return self._endpoints.get(hint.domain.lower(), hint.domain)

    def get_stats(self) -> dict:
        """Get router cache statistics."""
        with self._lock:
            return {
                'cache_hits': self.cache_hits,
                'cache_misses': self.cache_misses,
                'cache_size': len(self._cache),
                'max_size': self._cache.maxsize,
                'endpoint_overrides': len(self._endpoints),
            }
