import logging
from typing import Any, Callable, Dict, List, Optional

from games.base import BaseGame
from games.live_stats import StatsSource
from games.matcher import MatchResult, match_race
from models.game import GameStatus, GameType, RaceParticipant, RaceResult, RaceSnapshot
from models.settings import RaceConfig

logger = logging.getLogger(__name__)

RUNNER_AVATARS = ("🏃‍♂️", "🏃‍♀️")


class RaceGame(BaseGame):
    """
    Comment race: every comment moves its author forward by a random step.

    The first participant to reach the finish line wins and ends the race on
    the spot. Otherwise the deadline ends it and the furthest participant wins,
    earliest joiner first on a tie.
    """

    game_type = GameType.RACE
    config: RaceConfig

    def __init__(
        self,
        session_id: str,
        config: RaceConfig,
        step: Optional[Callable[[], float]] = None,
        **kwargs,
    ):
        super().__init__(session_id, config, **kwargs)
        # step() yields the distance one comment is worth
        self._step = step or (lambda: self._rng.uniform(config.min_step, config.max_step))
        self.participants: Dict[str, RaceParticipant] = {}
        self.comments = 0
        self.winner: Optional[RaceParticipant] = None

    def _begin(self) -> None:
        self.status = GameStatus.ACTIVE
        self._arm_phase(self.config.duration)

    def match(self, text: str) -> Optional[MatchResult]:
        if self.status != GameStatus.ACTIVE:
            return None
        return match_race(text)

    def ingest(
        self,
        participant_id: str,
        match: Optional[MatchResult],
        profile: Optional[Dict[str, Any]] = None,
    ) -> bool:
        if self.status != GameStatus.ACTIVE or match is None:
            return False

        now = self._clock.now()
        runner = self.participants.get(participant_id)
        if runner is None:
            runner = RaceParticipant(
                participant_id=participant_id,
                speed=self._rng.uniform(1, 3),
                last_event_at=now,
                avatar=self._rng.choice(RUNNER_AVATARS),
            )
            self.participants[participant_id] = runner

        distance = self.config.race_distance
        runner.position = min(distance, runner.position + max(0.0, self._step()))
        runner.comment_count += 1
        runner.last_event_at = now
        self.comments += 1
        logger.debug(f"[{self.session_id}] {participant_id} moved to {runner.position:.1f}")

        if runner.position >= distance and self.winner is None:
            self.winner = runner
            logger.info(f"[{self.session_id}] {participant_id} crossed the finish line")
            self.end_phase()
        return True

    def standings(self) -> List[RaceParticipant]:
        # Stable sort: equal positions keep join order
        return sorted(self.participants.values(), key=lambda p: p.position, reverse=True)

    def end_phase(self) -> RaceResult:
        if self.is_ended:
            return self._result

        ranked = self.standings()
        if self.winner is None and ranked:
            self.winner = ranked[0]

        logger.info(
            f"[{self.session_id}] Race ended: "
            f"{self.winner.participant_id if self.winner else 'no winner'} "
            f"({len(ranked)} participants)"
        )
        return self._finish(RaceResult(
            winner=self.winner,
            participants=ranked,
            total_participants=len(ranked),
        ))

    def stats_source(self) -> StatsSource:
        return StatsSource(
            events=self.comments,
            phase_started_at=self.phase_started_at,
            contributors={pid: p.comment_count for pid, p in self.participants.items()},
            items={pid: round(p.position, 1) for pid, p in self.participants.items()},
        )

    def snapshot(self, now=None) -> RaceSnapshot:
        return RaceSnapshot(
            **self._snapshot_fields(now),
            race_distance=self.config.race_distance,
            participants=self.standings(),
            winner=self.winner,
        )

    def _winner_name(self) -> Optional[str]:
        return self.winner.participant_id if self.winner else None

    def _participant_ids(self) -> list:
        return list(self.participants)
