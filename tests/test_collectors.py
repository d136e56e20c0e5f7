"""
Tests for result collectors and record shaping.
"""

import pytest

from grouptreelib.aio.core import (
    DirectoryObjectRef,
    EdgeCollector,
    FlatMemberCollector,
    MembershipEdge,
    MembershipKind,
    ObjectKind,
    TraversalResult,
    collapse_flat_records,
    sort_edges,
    to_records,
)
from grouptreelib.config import OutputIdentifier, TraversalMode


def ref(name, kind=ObjectKind.USER):
    return DirectoryObjectRef(
        key=f'key-{name.lower()}', identifier=f'CN={name},DC=contoso,DC=com', kind=kind
    )


ROOT = ref('Root', ObjectKind.STATIC_GROUP)
TEAM = ref('Team', ObjectKind.STATIC_GROUP)


class TestDirectoryObjectRef:

    def test_identity_is_key_and_kind(self):
        renamed = DirectoryObjectRef(
            key='key-root', identifier='CN=Renamed,DC=contoso,DC=com',
            kind=ObjectKind.STATIC_GROUP,
        )
        assert renamed == ROOT
        assert hash(renamed) == hash(ROOT)
        assert ref('Root') != ROOT  # same key, different kind

    def test_label(self):
        assert ROOT.label() == 'key-root'
        assert ROOT.label(OutputIdentifier.DISTINGUISHED_NAME) == 'CN=Root,DC=contoso,DC=com'

    def test_edge_level_must_be_positive(self):
        with pytest.raises(ValueError):
            MembershipEdge(ROOT, TEAM, 0, MembershipKind.DIRECT)


class TestFlatMemberCollector:

    def test_first_writer_wins(self):
        collector = FlatMemberCollector(ROOT)
        alice = ref('alice')

        assert collector.collect(alice, (ROOT,)) is True
        assert collector.collect(alice, (ROOT, TEAM)) is False

        [member] = collector.get_result()
        assert member.via == (ROOT,)
        assert member.discovered_by == ROOT
        assert alice.key in collector

    def test_reset(self):
        collector = FlatMemberCollector(ROOT)
        collector.collect(ref('alice'), (ROOT,))
        collector.reset()
        assert collector.get_result() == []


class TestEdgeCollector:

    def test_keeps_emission_order(self):
        collector = EdgeCollector()
        edges = [
            MembershipEdge(ROOT, ref('b'), 1, MembershipKind.DIRECT),
            MembershipEdge(ROOT, ref('a'), 1, MembershipKind.DIRECT),
        ]
        for edge in edges:
            collector.collect(edge)
        assert collector.get_result() == edges


class TestShaping:

    def test_sort_edges(self):
        edges = [
            MembershipEdge(TEAM, ref('zed'), 2, MembershipKind.NESTED),
            MembershipEdge(ROOT, ref('Bob'), 1, MembershipKind.DIRECT),
            MembershipEdge(ROOT, ref('alice'), 1, MembershipKind.DIRECT),
        ]
        ordered = sort_edges(edges, OutputIdentifier.DISTINGUISHED_NAME)
        assert [e.member.identifier.split(',')[0] for e in ordered] == [
            'CN=alice', 'CN=Bob', 'CN=zed'
        ]

    def test_records_for_expanded_result(self):
        result = TraversalResult(
            root_identifier='Root', root=ROOT, mode=TraversalMode.EXPANDED,
            edges=[
                MembershipEdge(TEAM, ref('alice'), 2, MembershipKind.REDUNDANTLY_NESTED),
                MembershipEdge(ROOT, TEAM, 1, MembershipKind.DIRECT),
            ],
        )
        records = to_records(result)
        assert records == [
            {'ParentGroup': 'key-root', 'MemberKey': 'key-team', 'MemberType': 'StaticGroup',
             'Level': 1, 'MembershipKind': 'Direct'},
            {'ParentGroup': 'key-team', 'MemberKey': 'key-alice', 'MemberType': 'User',
             'Level': 2, 'MembershipKind': 'RedundantlyNested'},
        ]

    def test_collapse_flat_records(self):
        def flat(*names):
            collector = FlatMemberCollector(ROOT)
            for name in names:
                collector.collect(ref(name), (ROOT,))
            return TraversalResult(
                root_identifier='Root', root=ROOT, mode=TraversalMode.FLAT,
                members=collector.get_result(),
            )

        failed = TraversalResult(
            root_identifier='Missing', root=None, mode=TraversalMode.FLAT, complete=False,
            incomplete_reason='root_not_found',
        )

        records = collapse_flat_records([flat('bob', 'alice'), flat('alice', 'carol'), failed])

        assert records == [{
            'RootGroup': 'key-root',
            'MemberKeys': 'key-alice;key-bob;key-carol',
            'MemberCount': 3,
        }]

    def test_collapse_rejects_expanded_results(self):
        expanded = TraversalResult(root_identifier='Root', root=ROOT, mode=TraversalMode.EXPANDED)
        with pytest.raises(ValueError):
            collapse_flat_records([expanded])

    def test_result_length_and_keys(self):
        result = TraversalResult(
            root_identifier='Root', root=ROOT, mode=TraversalMode.EXPANDED,
            edges=[MembershipEdge(ROOT, TEAM, 1, MembershipKind.DIRECT)],
        )
        assert len(result) == 1
        assert result.member_keys == ['key-team']
