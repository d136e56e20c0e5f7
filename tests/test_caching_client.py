"""
Test suite for CachingDirectoryClient with focus on concurrent access patterns.

Tests the caching layer's ability to:
1. Prevent duplicate concurrent listings
2. Share results between waiting tasks
3. Share listings across the roots of a batch
4. Leave dynamic groups uncached
"""

import asyncio

import pytest

from grouptreelib.aio import CachingDirectoryClient, expand_groups
from grouptreelib.config import ExpansionConfig
from grouptreelib.exceptions import NotFound
from grouptreelib.testing import member_names


async def collect(aiter):
    return [item async for item in aiter]


@pytest.fixture
def shared(builder):
    """Two roots that both nest the large group Shared."""
    builder.users('a', 'b', 'c')
    builder.group('Shared', 'a', 'b')
    builder.group('RootOne', 'Shared')
    builder.group('RootTwo', 'Shared', 'c')
    return builder


class TestCoalescing:

    @pytest.mark.asyncio
    async def test_concurrent_listings_share_one_call(self, shared):
        base = shared.build(latency=0.05)
        cached = CachingDirectoryClient(base)

        results = await asyncio.gather(*[
            collect(cached.list_direct_members(shared['Shared'])) for _ in range(5)
        ])

        assert base.expansion_counts[shared['Shared'].key] == 1
        assert all(r == results[0] for r in results)
        assert cached.concurrent_waits == 4

    @pytest.mark.asyncio
    async def test_second_listing_is_a_cache_hit(self, shared):
        base = shared.build()
        cached = CachingDirectoryClient(base)

        await collect(cached.list_direct_members(shared['Shared']))
        await collect(cached.list_direct_members(shared['Shared']))

        stats = cached.get_cache_stats()
        assert stats['cache_hits'] == 1
        assert stats['cache_misses'] == 1
        assert base.expansion_counts[shared['Shared'].key] == 1

    @pytest.mark.asyncio
    async def test_errors_reach_waiters_and_are_not_cached(self, shared):
        base = shared.build(latency=0.02)
        base.fail_on(shared['Shared'].key, NotFound("gone", "Shared"))
        cached = CachingDirectoryClient(base)

        results = await asyncio.gather(
            collect(cached.list_direct_members(shared['Shared'])),
            collect(cached.list_direct_members(shared['Shared'])),
            return_exceptions=True,
        )

        assert all(isinstance(r, NotFound) for r in results)
        assert cached.get_cache_stats()['members_cache_size'] == 0

    @pytest.mark.asyncio
    async def test_clear_cache(self, shared):
        cached = CachingDirectoryClient(shared.build())
        await collect(cached.list_direct_members(shared['Shared']))
        cached.clear_cache()

        stats = cached.get_cache_stats()
        assert stats['members_cache_size'] == 0
        assert stats['cache_hits'] == stats['cache_misses'] == 0


class TestWrapping:

    def test_inherits_capabilities(self, shared):
        cached = CachingDirectoryClient(shared.build())
        assert cached.supports_capability('domain_routing')
        assert cached.supports_capability('caching')

    @pytest.mark.asyncio
    async def test_resolution_is_cached(self, shared):
        cached = CachingDirectoryClient(shared.build())
        first = await cached.resolve_group('RootOne')
        second = await cached.resolve_group('rootone')
        assert first is second
        assert cached.cache_hits == 1

    @pytest.mark.asyncio
    async def test_dynamic_groups_are_not_cached(self, dynamic_sales):
        base = dynamic_sales.build()
        cached = CachingDirectoryClient(base)

        for _ in range(2):
            await collect(cached.get_members(dynamic_sales['DynamicSales']))

        assert base.filter_evaluations['(department=Sales)'] == 2

    @pytest.mark.asyncio
    async def test_batch_lists_shared_group_once(self, shared):
        base = shared.build()
        cached = CachingDirectoryClient(base)

        results = await expand_groups(cached, ['RootOne', 'RootTwo'], ExpansionConfig.flat())

        assert [member_names(r) for r in results] == [{'a', 'b'}, {'a', 'b', 'c'}]
        assert base.expansion_counts[shared['Shared'].key] == 1

    @pytest.mark.asyncio
    async def test_close_closes_base(self, shared):
        base = shared.build()
        closed = []

        async def close():
            closed.append(True)

        base.close = close
        async with CachingDirectoryClient(base):
            pass
        assert closed == [True]
