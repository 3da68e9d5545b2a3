import unittest
from datetime import timedelta

from games.live_stats import StatsSource, compute_live_stats, event_rate, rank
from utils.clock import ManualClock


class TestRank(unittest.TestCase):

    def test_descending_with_first_seen_ties(self):
        ranked = rank({"b": 1, "a": 3, "c": 1, "d": 2}, top_n=10)
        self.assertEqual([r.name for r in ranked], ["a", "d", "b", "c"])

    def test_top_n(self):
        self.assertEqual(len(rank({str(i): i for i in range(8)}, top_n=5)), 5)


class TestLiveStats(unittest.TestCase):

    def test_rate(self):
        self.assertEqual(event_rate(10, 4), 2.5)
        self.assertEqual(event_rate(1, 3), 0.33)
        self.assertEqual(event_rate(5, 0), 0.0)

    def test_compute(self):
        clock = ManualClock()
        source = StatsSource(
            events=6,
            phase_started_at=clock.now(),
            contributors={"ann": 4, "bob": 2},
            items={"x": 1},
        )
        stats = compute_live_stats(source, clock.now() + timedelta(seconds=3), top_n=1)
        self.assertEqual(stats.elapsed_seconds, 3)
        self.assertEqual(stats.rate, 2.0)
        self.assertEqual([c.name for c in stats.top_contributors], ["ann"])
        self.assertEqual(source.contributors, {"ann": 4, "bob": 2})

    def test_clock_before_phase_start(self):
        clock = ManualClock()
        source = StatsSource(events=3, phase_started_at=clock.now())
        stats = compute_live_stats(source, clock.now() - timedelta(seconds=1))
        self.assertEqual(stats.elapsed_seconds, 0)
        self.assertEqual(stats.rate, 0)
