"""Active Directory client over LDAP.

Reads group membership from the ``member`` attribute and evaluates
Exchange dynamic distribution lists (``msExchDynamicDistributionList``)
from their stored LDAP filter. Each domain of the forest gets its own
connection; every object, including each member of a group, is looked up
against the domain that owns it, because no single domain controller
holds every partition.

ldap3 is synchronous, so each call runs in a worker thread. A connection
is used by one thread at a time; different domains proceed in parallel.
"""

import asyncio
import logging
import threading
import uuid
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Set, Tuple

from ldap3 import BASE, NONE, NTLM, SUBTREE, Connection, Server
from ldap3.core.exceptions import (
    LDAPBindError,
    LDAPBusyResult,
    LDAPCommunicationError,
    LDAPException,
    LDAPInsufficientAccessRightsResult,
    LDAPInvalidCredentialsResult,
    LDAPInvalidDNSyntaxResult,
    LDAPInvalidFilterError,
    LDAPNoSuchObjectResult,
    LDAPReferralResult,
    LDAPTimeLimitExceededResult,
    LDAPUnavailableResult,
)
from ldap3.utils.conv import escape_bytes, escape_filter_chars

from ...exceptions import (
    Ambiguous,
    BranchError,
    DirectoryUnauthorized,
    DirectoryUnavailable,
    MalformedIdentifier,
    NotFound,
)
from ...routing import DomainRouter, RoutingHint
from ..core import AsyncDirectoryClient, DirectoryObjectRef, ObjectKind


logger = logging.getLogger(__name__)


OBJECT_ATTRIBUTES = [
    'objectClass',
    'objectGUID',
    'displayName',
    'msExchDynamicDLFilter',
    'msExchDynamicDLBaseDN',
]

GROUP_CLASS_FILTER = '(|(objectClass=group)(objectClass=msExchDynamicDistributionList))'

_UNAUTHORIZED = (
    LDAPBindError,
    LDAPInvalidCredentialsResult,
    LDAPInsufficientAccessRightsResult,
)
_UNAVAILABLE = (
    LDAPCommunicationError,
    LDAPBusyResult,
    LDAPUnavailableResult,
    LDAPTimeLimitExceededResult,
)
_MALFORMED = (
    LDAPInvalidDNSyntaxResult,
    LDAPInvalidFilterError,
)


def _values(attributes: Dict[str, Any], name: str) -> List[Any]:
    value = attributes.get(name)
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _first(attributes: Dict[str, Any], name: str) -> Optional[str]:
    values = _values(attributes, name)
    if not values:
        return None
    value = values[0]
    if isinstance(value, bytes):
        value = value.decode('utf-8')
    return str(value)


def _object_key(entry: Dict[str, Any]) -> str:
    """Stable key for an entry: its objectGUID, else its lowercased DN."""
    raw = _values(entry.get('raw_attributes', {}), 'objectGUID')
    if raw and isinstance(raw[0], bytes) and len(raw[0]) == 16:
        return str(uuid.UUID(bytes_le=raw[0]))
    formatted = _first(entry.get('attributes', {}), 'objectGUID')
    if formatted:
        return formatted.strip('{}').lower()
    return entry['dn'].lower()


def _naming_context(domain: str) -> str:
    return ','.join(f"DC={label}" for label in domain.split('.') if label)


class LdapDirectoryClient(AsyncDirectoryClient):
    """Directory client for Active Directory forests via ldap3.

    Example:
        client = LdapDirectoryClient(
            default_domain='contoso.com',
            user='CONTOSO\\\\auditor',
            password='...',
            router=DomainRouter(endpoints={'child.contoso.com': 'dc01.child.contoso.com'})
        )
        async with client:
            result = await expand_group_members(client, 'CN=Staff,OU=Groups,DC=contoso,DC=com')
    """

    def __init__(
        self,
        default_domain: str,
        user: Optional[str] = None,
        password: Optional[str] = None,
        authentication: str = NTLM,
        use_ssl: bool = False,
        router: Optional[DomainRouter] = None,
        page_size: int = 500,
        max_concurrent: int = 8,
        connection_factory: Optional[Callable[[str], Connection]] = None
    ):
        """Initialize LDAP client.

        Args:
            default_domain: Domain used for identifiers that are not DNs
            user: Bind user (DOMAIN\\\\user for NTLM)
            password: Bind password
            authentication: ldap3 authentication method
            use_ssl: Use LDAPS (636)
            router: Domain router mapping domains to servers
            page_size: Page size for dynamic-filter searches
            max_concurrent: Maximum concurrent LDAP operations
            connection_factory: Callable endpoint -> bound Connection
        """
        super().__init__(max_concurrent)
        self.default_domain = default_domain
        self.user = user
        self.password = password
        self.authentication = authentication
        self.use_ssl = use_ssl
        self.router = router or DomainRouter()
        self.page_size = page_size
        self._connection_factory = connection_factory
        self._connections: Dict[str, Tuple[Connection, threading.Lock]] = {}
        self._connections_lock = threading.Lock()
        self._opening: Dict[str, threading.Lock] = {}
        self.operation_count = 0

    def _define_capabilities(self) -> Set[str]:
        return super()._define_capabilities() | {'domain_routing'}

    @property
    def default_hint(self) -> RoutingHint:
        return RoutingHint(self.default_domain, _naming_context(self.default_domain))

    # Connection management (runs in worker threads)

    def _open_connection(self, endpoint: str) -> Connection:
        if self._connection_factory is not None:
            return self._connection_factory(endpoint)
        server = Server(endpoint, use_ssl=self.use_ssl, get_info=NONE)
        return Connection(
            server,
            user=self.user,
            password=self.password,
            authentication=self.authentication,
            auto_bind=True,
            read_only=True,
            raise_exceptions=True,
            auto_referrals=False,
        )

    def _connection_for(self, hint: Optional[RoutingHint]) -> Tuple[Connection, threading.Lock]:
        hint = hint or self.default_hint
        endpoint = self.router.endpoint_for(hint)
        key = endpoint.lower()
        with self._connections_lock:
            slot = self._connections.get(key)
            if slot is not None:
                return slot
            opening = self._opening.setdefault(key, threading.Lock())

        # Bind outside the shared lock; only callers of this endpoint wait
        with opening:
            with self._connections_lock:
                slot = self._connections.get(key)
            if slot is None:
                logger.debug("Connecting to '%s' for domain '%s'", endpoint, hint.domain)
                slot = (self._open_connection(endpoint), threading.Lock())
                with self._connections_lock:
                    self._connections[key] = slot
        return slot

    def _search(
        self,
        hint: Optional[RoutingHint],
        search_base: str,
        search_filter: str,
        search_scope: str,
        attributes: List[str]
    ) -> List[Dict[str, Any]]:
        connection, lock = self._connection_for(hint)
        with lock:
            connection.search(
                search_base=search_base,
                search_filter=search_filter,
                search_scope=search_scope,
                attributes=attributes,
            )
            response = list(connection.response or [])
        return [e for e in response if e.get('type') == 'searchResEntry']

    def _paged_search(
        self,
        hint: Optional[RoutingHint],
        search_base: str,
        search_filter: str,
        attributes: List[str]
    ) -> List[Dict[str, Any]]:
        connection, lock = self._connection_for(hint)
        with lock:
            response = connection.extend.standard.paged_search(
                search_base=search_base,
                search_filter=search_filter,
                search_scope=SUBTREE,
                attributes=attributes,
                paged_size=self.page_size,
                generator=False,
            )
        return [e for e in response if e.get('type') == 'searchResEntry']

    async def _call(self, func: Callable, *args, identifier: Optional[str] = None) -> Any:
        """Run a blocking LDAP operation and map its errors."""
        async with self.semaphore:
            self.operation_count += 1
            try:
                return await asyncio.to_thread(func, *args)
            except LDAPNoSuchObjectResult as e:
                raise NotFound(f"'{identifier}' does not exist", identifier) from e
            except LDAPReferralResult as e:
                raise NotFound(f"'{identifier}' is held by another partition", identifier) from e
            except _MALFORMED as e:
                raise MalformedIdentifier(f"'{identifier}' rejected: {e}", identifier) from e
            except _UNAUTHORIZED as e:
                raise DirectoryUnauthorized(str(e)) from e
            except _UNAVAILABLE as e:
                raise DirectoryUnavailable(str(e)) from e
            except LDAPException as e:
                raise DirectoryUnavailable(f"LDAP error on '{identifier}': {e}") from e

    # Object classification

    def _to_ref(self, entry: Dict[str, Any]) -> DirectoryObjectRef:
        attributes = entry.get('attributes', {})
        classes = {str(c).lower() for c in _values(attributes, 'objectClass')}
        common = dict(
            key=_object_key(entry),
            identifier=entry['dn'],
            display_name=_first(attributes, 'displayName'),
        )
        if 'msexchdynamicdistributionlist' in classes:
            return DirectoryObjectRef(
                kind=ObjectKind.DYNAMIC_GROUP,
                recipient_filter=_first(attributes, 'msExchDynamicDLFilter'),
                scope_container=_first(attributes, 'msExchDynamicDLBaseDN'),
                **common
            )
        if 'group' in classes:
            return DirectoryObjectRef(kind=ObjectKind.STATIC_GROUP, **common)
        # Users, contacts, computers and foreign principals are all leaves
        return DirectoryObjectRef(kind=ObjectKind.USER, **common)

    def _identifier_query(self, identifier: str) -> Tuple[Optional[RoutingHint], str, str, str]:
        """Translate an identifier into (hint, base, scope, filter)."""
        try:
            guid = uuid.UUID(identifier.strip('{}'))
        except ValueError:
            guid = None

        if guid is not None:
            id_filter = f"(objectGUID={escape_bytes(guid.bytes_le)})"
            hint = self.default_hint
            return hint, hint.naming_context, SUBTREE, f"(&{GROUP_CLASS_FILTER}{id_filter})"

        if '=' in identifier:
            hint = self.router.route(identifier)
            return hint, identifier, BASE, GROUP_CLASS_FILTER

        value = escape_filter_chars(identifier)
        if '@' in identifier:
            id_filter = f"(|(mail={value})(proxyAddresses=smtp:{value}))"
        else:
            id_filter = f"(|(sAMAccountName={value})(mailNickname={value}))"
        hint = self.default_hint
        return hint, hint.naming_context, SUBTREE, f"(&{GROUP_CLASS_FILTER}{id_filter})"

    # AsyncDirectoryClient interface

    async def resolve_group(self, identifier: str) -> DirectoryObjectRef:
        hint, base, scope, search_filter = self._identifier_query(identifier)
        entries = await self._call(
            self._search, hint, base, search_filter, scope, OBJECT_ATTRIBUTES,
            identifier=identifier
        )
        if not entries:
            raise NotFound(f"No group matches '{identifier}'", identifier)
        if len(entries) > 1:
            raise Ambiguous(
                f"{len(entries)} groups match '{identifier}'", identifier, len(entries)
            )
        return self._to_ref(entries[0])

    async def _lookup_member(self, dn: str) -> Optional[DirectoryObjectRef]:
        """Classify one member DN against its own domain.

        Returns None for references that no longer resolve (deleted
        objects, unreachable foreign principals); the rest of the group
        is still listed.
        """
        try:
            hint = self.router.route(dn)
            entries = await self._call(
                self._search, hint, dn, '(objectClass=*)', BASE, OBJECT_ATTRIBUTES,
                identifier=dn
            )
        except BranchError as e:
            logger.warning("Skipping member '%s': %s", dn, e)
            return None
        if not entries:
            logger.warning("Skipping member '%s': not returned by its domain", dn)
            return None
        return self._to_ref(entries[0])

    async def list_direct_members(
        self,
        group: DirectoryObjectRef,
        hint: Optional[RoutingHint] = None
    ) -> AsyncIterator[DirectoryObjectRef]:
        entries = await self._call(
            self._search, hint, group.identifier, '(objectClass=*)', BASE, ['member'],
            identifier=group.identifier
        )
        if not entries:
            raise NotFound(f"Group '{group.identifier}' not returned", group.identifier)

        member_dns = [
            dn.decode('utf-8') if isinstance(dn, bytes) else str(dn)
            for dn in _values(entries[0].get('attributes', {}), 'member')
        ]
        for dn in member_dns:
            member = await self._lookup_member(dn)
            if member is not None:
                yield member

    async def evaluate_dynamic_membership(
        self,
        recipient_filter: str,
        scope_container: Optional[str],
        hint: Optional[RoutingHint] = None
    ) -> AsyncIterator[DirectoryObjectRef]:
        if scope_container:
            # The recipient container may live in another domain than the list
            hint = self.router.route(scope_container)
            base = scope_container
        else:
            hint = hint or self.default_hint
            base = hint.naming_context

        entries = await self._call(
            self._paged_search, hint, base, recipient_filter, OBJECT_ATTRIBUTES,
            identifier=recipient_filter
        )
        for entry in entries:
            yield self._to_ref(entry)

    async def get_stats(self) -> dict:
        stats = await super().get_stats()
        with self._connections_lock:
            stats['connections'] = sorted(self._connections)
        stats['operations'] = self.operation_count
        return stats

    async def close(self):
        with self._connections_lock:
            slots = list(self._connections.values())
            self._connections.clear()
        for connection, _ in slots:
            await asyncio.to_thread(connection.unbind)
