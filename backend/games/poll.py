import logging
import math
from typing import Any, Dict, List, Optional

from games.base import BaseGame
from games.live_stats import StatsSource
from games.matcher import MatchResult, match_poll
from models.game import GameStatus, GameType, PollOptionResult, PollResult, PollSnapshot
from models.settings import PollConfig

logger = logging.getLogger(__name__)


def vote_percentage(count: int, total: int) -> int:
    """Share of total votes, rounded half up; 0 when nobody voted."""
    if total <= 0:
        return 0
    return math.floor(count * 100 / total + 0.5)


class PollGame(BaseGame):
    """
    Multiple-choice poll. One vote per participant, first vote wins.

    The winner is the option with the most votes; on a tie the option listed
    first wins, because the tally keeps the first maximum it meets.
    """

    game_type = GameType.POLL
    config: PollConfig

    def __init__(self, session_id: str, config: PollConfig, **kwargs):
        super().__init__(session_id, config, **kwargs)
        self.votes: Dict[str, str] = {}  # participant_id -> option id
        self._voters_by_option: Dict[str, List[str]] = {o.id: [] for o in config.options}
        self.results: List[PollOptionResult] = []
        self.winner: Optional[PollOptionResult] = None

    def _begin(self) -> None:
        self.status = GameStatus.ACTIVE
        self._arm_phase(self.config.duration)

    def match(self, text: str) -> Optional[MatchResult]:
        if self.status != GameStatus.ACTIVE:
            return None
        return match_poll(self.config.options, text)

    def ingest(
        self,
        participant_id: str,
        match: Optional[MatchResult],
        profile: Optional[Dict[str, Any]] = None,
    ) -> bool:
        if self.status != GameStatus.ACTIVE or match is None:
            return False
        if participant_id in self.votes:
            return False
        option_id = match.payload
        if option_id not in self._voters_by_option:
            return False

        self.votes[participant_id] = option_id
        self._voters_by_option[option_id].append(participant_id)
        logger.info(f"[{self.session_id}] Poll vote: {participant_id} → {option_id}")
        return True

    def tally(self) -> List[PollOptionResult]:
        total = len(self.votes)
        results = []
        for option in self.config.options:
            count = len(self._voters_by_option[option.id])
            results.append(PollOptionResult(
                id=option.id,
                text=option.text,
                keyword=option.keyword,
                vote_count=count,
                percentage=vote_percentage(count, total),
            ))
        return results

    def end_phase(self) -> PollResult:
        if self.is_ended:
            return self._result

        self.results = self.tally()
        winner = self.results[0]
        for option in self.results[1:]:
            if option.vote_count > winner.vote_count:
                winner = option
        self.winner = winner

        logger.info(
            f"[{self.session_id}] Poll ended: \"{winner.text}\" won with "
            f"{winner.vote_count} of {len(self.votes)} votes"
        )
        return self._finish(PollResult(
            results=self.results,
            winner=self.winner,
            total_votes=len(self.votes),
        ))

    def stats_source(self) -> StatsSource:
        return StatsSource(
            events=len(self.votes),
            phase_started_at=self.phase_started_at,
            contributors={pid: 1 for pid in self.votes},
            items={
                option.id: len(self._voters_by_option[option.id])
                for option in self.config.options
            },
        )

    def snapshot(self, now=None) -> PollSnapshot:
        return PollSnapshot(
            **self._snapshot_fields(now),
            question=self.config.question,
            options=self.results if self.is_ended else self.tally(),
            total_votes=len(self.votes),
            winner=self.winner,
        )

    def _winner_name(self) -> Optional[str]:
        return self.winner.id if self.winner else None

    def _participant_ids(self) -> list:
        return list(self.votes)
