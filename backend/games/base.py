"""
Shared lifecycle for every mini-game state machine.

A game is created by the registry, started once, fed matched events through
ingest(), and moved along by end_phase() when the scheduler's deadline fires.
The terminal transition runs exactly once: _finish() caches the result and
every later end_phase()/end() call returns that cached result untouched.
"""
import logging
import math
import random
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel

from games.live_stats import StatsSource, compute_live_stats
from games.matcher import MatchResult
from models.game import GameSnapshot, GameStatus, GameType, HistoryRecord, new_game_id
from utils.clock import SystemClock

logger = logging.getLogger(__name__)

EndHook = Callable[["BaseGame"], None]


class BaseGame:
    game_type: GameType

    def __init__(
        self,
        session_id: str,
        config: BaseModel,
        clock=None,
        rng=None,
        on_end: Optional[EndHook] = None,
        stats_top_n: int = 5,
    ):
        self.game_id = new_game_id()
        self.session_id = session_id
        self.config = config
        self._clock = clock or SystemClock()
        self._rng = rng or random
        self._on_end = on_end
        self._stats_top_n = stats_top_n

        self.status: Optional[GameStatus] = None
        now = self._clock.now()
        self.started_at: datetime = now
        self.phase_started_at: datetime = now
        self.deadline: datetime = now
        self.ended_at: Optional[datetime] = None
        self._result: Optional[BaseModel] = None

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    @property
    def is_ended(self) -> bool:
        return self.status == GameStatus.ENDED

    @property
    def result(self) -> Optional[BaseModel]:
        """Terminal result, None until the game has ended."""
        return self._result

    def start(self) -> GameSnapshot:
        if self.status is not None:
            raise RuntimeError(f"Game {self.game_id} already started")
        self.started_at = self._clock.now()
        self._begin()
        logger.info(
            f"[{self.session_id}] {self.game_type.value} {self.game_id} started "
            f"(deadline in {self.time_remaining():.0f}s)"
        )
        return self.snapshot()

    def _begin(self) -> None:
        raise NotImplementedError

    def _arm_phase(self, seconds: float) -> None:
        now = self._clock.now()
        self.phase_started_at = now
        self.deadline = now + timedelta(seconds=seconds)

    def _finish(self, result: BaseModel) -> BaseModel:
        self.status = GameStatus.ENDED
        self.ended_at = self._clock.now()
        self._result = result
        if self._on_end is not None:
            try:
                self._on_end(self)
            except Exception:
                logger.exception("[%s] end hook failed for game %s", self.session_id, self.game_id)
        return result

    # ── Event handling ────────────────────────────────────────────────────────

    def match(self, text: str) -> Optional[MatchResult]:
        raise NotImplementedError

    def ingest(
        self,
        participant_id: str,
        match: Optional[MatchResult],
        profile: Optional[Dict[str, Any]] = None,
    ) -> bool:
        raise NotImplementedError

    def end_phase(self) -> BaseModel:
        """Deadline transition. Idempotent once the game has ended."""
        raise NotImplementedError

    def end(self) -> BaseModel:
        """Terminal transition used by an explicit stop."""
        return self.end_phase()

    # ── Read side ─────────────────────────────────────────────────────────────

    def time_remaining(self, now: Optional[datetime] = None) -> float:
        if self.is_ended:
            return 0.0
        now = now or self._clock.now()
        return max(0.0, (self.deadline - now).total_seconds())

    def stats_source(self) -> StatsSource:
        raise NotImplementedError

    def snapshot(self, now: Optional[datetime] = None) -> GameSnapshot:
        raise NotImplementedError

    def _snapshot_fields(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or self._clock.now()
        remaining = self.time_remaining(now)
        return {
            "game_id": self.game_id,
            "session_id": self.session_id,
            "status": self.status,
            "started_at": self.started_at,
            "phase_started_at": self.phase_started_at,
            "deadline": self.deadline,
            "ended_at": self.ended_at,
            "time_remaining": round(remaining, 3),
            "time_remaining_seconds": math.ceil(remaining),
            "live_stats": compute_live_stats(self.stats_source(), now, self._stats_top_n),
        }

    def history_record(self) -> HistoryRecord:
        return HistoryRecord(
            game_id=self.game_id,
            session_id=self.session_id,
            type=self.game_type,
            started_at=self.started_at,
            ended_at=self.ended_at or self._clock.now(),
            winner=self._winner_name(),
            participants=self._participant_ids(),
            config=self.config.model_dump(mode="json"),
            result=self._result.model_dump(mode="json") if self._result is not None else {},
        )

    def _winner_name(self) -> Optional[str]:
        return None

    def _participant_ids(self) -> list:
        return []
