import logging
from typing import Any, Dict, List, Optional, Set

from games.base import BaseGame
from games.live_stats import StatsSource
from games.matcher import MatchResult, match_lucky_wheel
from models.game import Entry, GameStatus, GameType, LuckyWheelResult, LuckyWheelSnapshot
from models.settings import LuckyWheelConfig
from utils.profile import pick_avatar_url

logger = logging.getLogger(__name__)


class LuckyWheelGame(BaseGame):
    """
    Collect keyword entries until the deadline, then spin once.

    One entry per participant (the first matching comment wins). The winner is
    a uniform random pick over the entries present at end time.
    """

    game_type = GameType.LUCKY_WHEEL
    config: LuckyWheelConfig

    def __init__(self, session_id: str, config: LuckyWheelConfig, **kwargs):
        super().__init__(session_id, config, **kwargs)
        self.entries: List[Entry] = []
        self._entrants: Set[str] = set()
        self.winner: Optional[Entry] = None

    def _begin(self) -> None:
        self.status = GameStatus.COLLECTING
        self._arm_phase(self.config.duration)

    def match(self, text: str) -> Optional[MatchResult]:
        if self.status != GameStatus.COLLECTING:
            return None
        return match_lucky_wheel(self.config.keyword, text)

    def ingest(
        self,
        participant_id: str,
        match: Optional[MatchResult],
        profile: Optional[Dict[str, Any]] = None,
    ) -> bool:
        if self.status != GameStatus.COLLECTING or match is None:
            return False
        if participant_id in self._entrants:
            logger.debug(f"[{self.session_id}] Duplicate wheel entry from {participant_id} ignored")
            return False

        entry = Entry(
            participant_id=participant_id,
            text=match.text,
            avatar_url=pick_avatar_url(profile),
            entered_at=self._clock.now(),
        )
        self.entries.append(entry)
        self._entrants.add(participant_id)
        logger.info(
            f"[{self.session_id}] Wheel entry: {participant_id} "
            f"(avatar={'yes' if entry.avatar_url else 'no'}, total={len(self.entries)})"
        )
        return True

    def end_phase(self) -> LuckyWheelResult:
        if self.is_ended:
            # Never re-spin
            logger.debug(f"[{self.session_id}] Wheel {self.game_id} already ended — returning cached result")
            return self._result

        if self.entries:
            self.winner = self.entries[self._rng.randrange(len(self.entries))]
            logger.info(
                f"[{self.session_id}] Wheel winner: {self.winner.participant_id} "
                f"({len(self.entries)} total entries)"
            )
        else:
            logger.info(f"[{self.session_id}] Wheel ended with no entries")

        return self._finish(LuckyWheelResult(
            winner=self.winner,
            entries=list(self.entries),
            total_entries=len(self.entries),
        ))

    def stats_source(self) -> StatsSource:
        return StatsSource(
            events=len(self.entries),
            phase_started_at=self.phase_started_at,
            contributors={e.participant_id: 1 for e in self.entries},
        )

    def snapshot(self, now=None) -> LuckyWheelSnapshot:
        return LuckyWheelSnapshot(
            **self._snapshot_fields(now),
            keyword=self.config.keyword,
            entries=list(self.entries),
            entries_count=len(self.entries),
            winner=self.winner,
        )

    def _winner_name(self) -> Optional[str]:
        return self.winner.participant_id if self.winner else None

    def _participant_ids(self) -> list:
        return [e.participant_id for e in self.entries]
