"""Directory clients for concrete directory services.

This module contains clients that bridge specific directories (Active
Directory over LDAP, in-memory snapshots) to the generic async client
interface.
"""

from .memory import InMemoryDirectoryClient
from .ldap import LdapDirectoryClient

__all__ = [
    'InMemoryDirectoryClient',
    'LdapDirectoryClient',
]
