"""
Live stats aggregation for in-flight games.

Read-side only: every game hands over a StatsSource built from its current
records and this module ranks it. Nothing here mutates game state, so status
polling can call it at any frequency.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List

from models.game import LiveStats, RankedCount


@dataclass
class StatsSource:
    events: int
    phase_started_at: datetime
    # Insertion order is first-seen order; it breaks ties in the rankings.
    contributors: Dict[str, float] = field(default_factory=dict)
    items: Dict[str, float] = field(default_factory=dict)


def rank(counts: Dict[str, float], top_n: int) -> List[RankedCount]:
    """Descending by count; sorted() is stable so ties keep first-seen order."""
    ordered = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
    return [RankedCount(name=name, count=count) for name, count in ordered[:top_n]]


def event_rate(events: int, elapsed_seconds: float) -> float:
    if elapsed_seconds <= 0:
        return 0.0
    return round(events / elapsed_seconds, 2)


def compute_live_stats(source: StatsSource, now: datetime, top_n: int = 5) -> LiveStats:
    elapsed = max(0.0, (now - source.phase_started_at).total_seconds())
    return LiveStats(
        events=source.events,
        elapsed_seconds=round(elapsed, 3),
        rate=event_rate(source.events, elapsed),
        top_contributors=rank(source.contributors, top_n),
        popular_items=rank(source.items, top_n),
    )
