"""Shared fixtures for the GroupTreeLib test suite."""

import pytest

from grouptreelib.testing import DirectoryBuilder


def pytest_configure(config):
    config.addinivalue_line("markers", "slow: long-running forest-scale tests")


@pytest.fixture
def builder():
    return DirectoryBuilder()


@pytest.fixture
def scenario_a(builder):
    """G1 contains U1 and G2; G2 contains U1 and U2."""
    builder.users('U1', 'U2')
    builder.group('G2', 'U1', 'U2')
    builder.group('G1', 'U1', 'G2')
    return builder


@pytest.fixture
def self_cycle(builder):
    """G3 lists itself (and one user)."""
    builder.user('U3')
    builder.group('G3', 'U3')
    builder.add('G3', 'G3')
    return builder


@pytest.fixture
def chain(builder):
    """L0 -> L1 -> ... -> L5, each level also holding one user."""
    builder.user('u5')
    builder.group('L5', 'u5')
    for level in range(4, -1, -1):
        builder.user(f'u{level}')
        builder.group(f'L{level}', f'u{level}', f'L{level + 1}')
    return builder


@pytest.fixture
def dynamic_sales(builder):
    """DynamicSales matches alice, bob and the static group SalesTeam."""
    builder.users('alice', 'bob', 'carol', 'dave')
    builder.group('SalesTeam', 'carol')
    builder.dynamic_group(
        'DynamicSales',
        '(department=Sales)',
        lambda obj: obj.display_name in {'alice', 'bob', 'SalesTeam'},
    )
    return builder
