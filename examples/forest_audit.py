#!/usr/bin/env python3
"""
Audit the effective membership of groups in an Active Directory forest.

This example demonstrates:
- Connecting to a multi-domain forest with LdapDirectoryClient
- Sharing listings across many roots with CachingDirectoryClient
- Collapsing flat results into one row per group
- Reporting skipped branches and interrupted expansions

Usage:
    python forest_audit.py contoso.com CONTOSO\\auditor "CN=Staff,OU=Groups,DC=contoso,DC=com" ...

The password is read from the GROUPTREE_PASSWORD environment variable.
"""

import asyncio
import logging
import os
import sys
from pathlib import Path

# Add parent directory to path for development
sys.path.insert(0, str(Path(__file__).parent.parent))

from grouptreelib import ExpansionConfig, TraversalAborted
from grouptreelib.aio import (
    CachingDirectoryClient,
    LdapDirectoryClient,
    collapse_flat_records,
    expand_groups,
)


async def main():
    """Expand every group named on the command line."""
    if len(sys.argv) < 4:
        print(__doc__)
        return 2

    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    domain, user, roots = sys.argv[1], sys.argv[2], sys.argv[3:]

    ldap_client = LdapDirectoryClient(
        default_domain=domain,
        user=user,
        password=os.environ.get('GROUPTREE_PASSWORD'),
        max_concurrent=4,
    )
    config = ExpansionConfig.flat(max_concurrent=4, timeout_seconds=300)

    async with CachingDirectoryClient(ldap_client, max_size=50000) as client:
        try:
            results = await expand_groups(client, roots, config, max_parallel_roots=2)
        except TraversalAborted as aborted:
            print(f"Audit stopped: {aborted}")
            return 1

        for row in collapse_flat_records(results):
            print(f"{row['RootGroup']}: {row['MemberCount']} members")

        for result in results:
            if not result.complete:
                print(f"INCOMPLETE {result.root_identifier}: {result.incomplete_reason}")
            for failure in result.failures:
                print(f"SKIPPED {failure.group.identifier}: {failure.error_type}")

        stats = client.get_cache_stats()
        print(f"\nCache hit rate: {stats['hit_rate']:.0%}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
