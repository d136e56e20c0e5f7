#!/usr/bin/env python3
"""
Basic expansion example showing both output shapes of GroupTreeLib.

This example demonstrates:
- Building a small directory in memory
- Flat expansion into distinct users
- Expanded (edge) output with levels and membership kinds
- Cycles and redundant nesting handled without special casing
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add parent directory to path for development
sys.path.insert(0, str(Path(__file__).parent.parent))

from grouptreelib.aio import expand_group_edges, expand_group_members, to_records
from grouptreelib.config import OutputIdentifier
from grouptreelib.testing import DirectoryBuilder


def build_directory():
    builder = DirectoryBuilder()
    builder.users('alice', 'bob', 'carol', 'dave')
    builder.group('Platform', 'alice', 'bob')
    builder.group('Data', 'bob', 'carol', 'Platform')
    builder.group('Engineering', 'Platform', 'Data', 'dave')
    builder.dynamic_group(
        'AllStaff',
        '(employeeType=Staff)',
        lambda obj: obj.display_name in {'dave', 'Engineering'},
    )
    # Closes a cycle: Engineering > Data > Leads > Engineering
    builder.group('Leads', 'Engineering')
    builder.add('Data', 'Leads')
    return builder.build()


async def main():
    """Expand one group both ways."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    client = build_directory()

    print("Flat expansion of AllStaff")
    print("-" * 50)
    flat = await expand_group_members(client, 'AllStaff')
    for member in flat.members:
        chain = ' > '.join(g.display_name for g in member.via)
        print(f"  {member.member.display_name:<8} via {chain}")

    print("\nExpanded edges of Engineering (3 levels)")
    print("-" * 50)
    expanded = await expand_group_edges(client, 'Engineering', levels_deep_to_go=3)
    for record in to_records(expanded, OutputIdentifier.DISTINGUISHED_NAME):
        parent = record['ParentGroup'].split(',')[0][3:]
        member = record['MemberKey'].split(',')[0][3:]
        print(f"  L{record['Level']} {parent:<12} -> {member:<12} {record['MembershipKind']}")

    stats = await client.get_stats()
    print(f"\nDirectory calls: {stats['expansions']} listings, "
          f"{stats['filter_evaluations']} filter evaluations")


if __name__ == "__main__":
    asyncio.run(main())
