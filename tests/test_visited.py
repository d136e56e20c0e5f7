"""
Tests for the traversal-scoped visited set.
"""

import threading

from grouptreelib.aio.core import DirectoryObjectRef, ObjectKind, VisitedTracker


def group(name):
    return DirectoryObjectRef(
        key=name, identifier=f'CN={name},DC=contoso,DC=com', kind=ObjectKind.STATIC_GROUP
    )


class TestVisitedTracker:

    def test_first_mark_wins(self):
        tracker = VisitedTracker()
        g = group('G1')
        assert tracker.try_mark(g) is True
        assert tracker.try_mark(g) is False
        assert 'G1' in tracker
        assert len(tracker) == 1

    def test_pending_until_finished(self):
        tracker = VisitedTracker()
        g1, g2 = group('G1'), group('G2')
        tracker.try_mark(g1)
        tracker.try_mark(g2)
        tracker.finish(g1)

        assert tracker.pending() == [g2]
        assert tracker.expanded_count() == 1

    def test_seed_counts_as_visited_not_expanded(self):
        root = group('Root')
        tracker = VisitedTracker(seed=[root])

        assert tracker.try_mark(root) is False
        assert tracker.pending() == []
        assert tracker.expanded_count() == 0

    def test_concurrent_marking_admits_exactly_once(self):
        tracker = VisitedTracker()
        g = group('Contended')
        winners = []
        barrier = threading.Barrier(16)

        def worker():
            barrier.wait()
            if tracker.try_mark(g):
                winners.append(threading.get_ident())

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(winners) == 1
