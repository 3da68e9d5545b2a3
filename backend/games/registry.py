"""
Session Game Registry: the one owner of live game state.

Responsibilities:
- At most one game per stream session; starting a game retires the previous one
- Routing chat events: resolve game → match → ingest
- Arming/re-arming phase deadlines and running the transition when they fire
- Publishing each finished game to the history sink exactly once
- Cleanup of ended games after a short retention window

Every read or write of a session's game happens under that session's lock, and
deadline callbacks take the same lock, so a transition never interleaves with
an ingest for the same game. An event still in flight when its deadline fires
simply finds the game ended and is dropped.
"""
import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel

from config import settings as app_settings
from games.base import BaseGame
from games.dj_game import DJGame
from games.lucky_wheel import LuckyWheelGame
from games.poll import PollGame
from games.race import RaceGame
from games.scheduler import DeadlineKey, PhaseScheduler
from models.errors import GameNotFoundError, InvalidGameConfigError
from models.game import GameSnapshot, GameType, HistoryRecord, PlaylistEntry
from models.settings import GameSettings
from services.history import HistorySink
from services.settings_provider import SettingsProvider
from utils.clock import SystemClock

logger = logging.getLogger(__name__)

GAME_CLASSES: Dict[GameType, Type[BaseGame]] = {
    GameType.LUCKY_WHEEL: LuckyWheelGame,
    GameType.POLL: PollGame,
    GameType.RACE: RaceGame,
    GameType.DJ_GAME: DJGame,
}


class SessionGameRegistry:
    def __init__(
        self,
        settings_provider: Optional[SettingsProvider] = None,
        history: Optional[HistorySink] = None,
        clock=None,
        scheduler: Optional[PhaseScheduler] = None,
        rng=None,
        race_step: Optional[Callable[[], float]] = None,
        retention_seconds: Optional[float] = None,
        stats_top_n: Optional[int] = None,
    ):
        self._clock = clock or SystemClock()
        self.settings = settings_provider or SettingsProvider()
        self.history = history or HistorySink()
        self.scheduler = scheduler or PhaseScheduler(clock=self._clock)
        self._rng = rng
        self._race_step = race_step
        self._retention = timedelta(
            seconds=app_settings.retention_seconds if retention_seconds is None else retention_seconds
        )
        self._stats_top_n = app_settings.live_stats_top_n if stats_top_n is None else stats_top_n

        self._games: Dict[str, BaseGame] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def _lock(self, session_id: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = self._locks[session_id] = threading.RLock()
            return lock

    # ── Control API ───────────────────────────────────────────────────────────

    def start_game(
        self,
        session_id: str,
        game_type: Any,
        config: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Start a new game for the session, ending any game it already has."""
        if not session_id:
            raise InvalidGameConfigError("session_id is required")
        try:
            game_type = GameType(game_type)
        except ValueError:
            raise InvalidGameConfigError(f"Unknown game type: {game_type}")
        # Resolve first so a bad config never disturbs the running game
        resolved = self.settings.resolve(game_type, config)

        with self._lock(session_id):
            previous = self._games.get(session_id)
            if previous is not None:
                logger.info(
                    f"[{session_id}] Replacing {previous.game_type.value} {previous.game_id}"
                )
                self._retire(previous)

            game = self._build(session_id, game_type, resolved)
            self._games[session_id] = game
            game.start()
            self._arm(game)
        return game.game_id

    def stop(self, session_id: str) -> BaseModel:
        """Terminal transition for the session's running game."""
        if session_id not in self._games:
            raise GameNotFoundError(session_id)
        with self._lock(session_id):
            game = self._games.get(session_id)
            if game is None or game.is_ended:
                raise GameNotFoundError(session_id)
            self.scheduler.cancel(self._key(game))
            result = game.end()
            logger.info(f"[{session_id}] Stopped {game.game_type.value} {game.game_id}")
            return result

    def cleanup(self, now: Optional[datetime] = None) -> List[str]:
        """Drop games that ended more than the retention window ago."""
        now = now or self._clock.now()
        removed: List[str] = []
        for session_id, game in list(self._games.items()):
            with self._lock(session_id):
                if self._games.get(session_id) is not game:
                    continue
                if not game.is_ended and now > game.deadline + self._retention:
                    # Deadline long gone without a transition: force it to end
                    logger.warning(f"[{session_id}] Ending stuck {game.game_type.value} {game.game_id}")
                    self.scheduler.cancel(self._key(game))
                    game.end()
                if game.is_ended and game.ended_at is not None and now - game.ended_at > self._retention:
                    del self._games[session_id]
                    removed.append(session_id)
                    logger.info(f"[{session_id}] Cleaned up ended {game.game_type.value} {game.game_id}")
            if session_id in removed:
                with self._locks_guard:
                    if session_id not in self._games:
                        self._locks.pop(session_id, None)
        return removed

    async def refresh_settings(self) -> GameSettings:
        return await self.settings.refresh()

    # ── Event ingestion ───────────────────────────────────────────────────────

    def ingest(
        self,
        session_id: str,
        participant_id: str,
        text: str,
        profile: Optional[Dict[str, Any]] = None,
    ) -> bool:
        if session_id not in self._games:
            return False
        with self._lock(session_id):
            game = self._games.get(session_id)
            if game is None:
                return False
            match = game.match(text)
            if match is None:
                return False
            return game.ingest(participant_id, match, profile)

    # ── Read side ─────────────────────────────────────────────────────────────

    def get_game(self, session_id: str) -> Optional[BaseGame]:
        return self._games.get(session_id)

    def status(self, session_id: str) -> GameSnapshot:
        if session_id not in self._games:
            raise GameNotFoundError(session_id)
        with self._lock(session_id):
            game = self._games.get(session_id)
            if game is None:
                raise GameNotFoundError(session_id)
            return game.snapshot(self._clock.now())

    def active_games(self) -> Dict[str, GameSnapshot]:
        snapshots: Dict[str, GameSnapshot] = {}
        for session_id in list(self._games):
            try:
                snapshots[session_id] = self.status(session_id)
            except GameNotFoundError:
                continue  # cleaned up meanwhile
        return snapshots

    def playlist(self, session_id: str) -> List[PlaylistEntry]:
        if session_id not in self._games:
            raise GameNotFoundError(session_id)
        with self._lock(session_id):
            game = self._games.get(session_id)
            if game is None:
                raise GameNotFoundError(session_id)
            if not isinstance(game, DJGame):
                return []
            return list(game.playlist)

    def get_history(self, session_id: Optional[str] = None, limit: Optional[int] = None) -> List[HistoryRecord]:
        return self.history.query(session_id, limit or app_settings.history_default_limit)

    # ── Deadlines ─────────────────────────────────────────────────────────────

    def run_due(self) -> int:
        """Fire due deadlines against the registry clock (virtual-clock driving)."""
        return self.scheduler.run_due()

    def shutdown(self) -> None:
        self.scheduler.cancel_all()

    @staticmethod
    def _key(game: BaseGame) -> DeadlineKey:
        return (game.session_id, game.game_id)

    def _arm(self, game: BaseGame) -> None:
        if not game.is_ended:
            self.scheduler.arm(self._key(game), game.deadline, self._on_deadline)

    def _on_deadline(self, key: DeadlineKey) -> None:
        session_id, game_id = key
        with self._lock(session_id):
            game = self._games.get(session_id)
            if game is None or game.game_id != game_id:
                logger.debug(f"[{session_id}] Stale deadline for game {game_id} ignored")
                return
            if game.is_ended:
                return
            logger.info(f"[{session_id}] Deadline reached for {game.game_type.value} {game_id}")
            game.end_phase()
            self._arm(game)

    # ── Internals ─────────────────────────────────────────────────────────────

    def _build(self, session_id: str, game_type: GameType, config: BaseModel) -> BaseGame:
        kwargs: Dict[str, Any] = {
            "clock": self._clock,
            "rng": self._rng,
            "on_end": self._on_game_end,
            "stats_top_n": self._stats_top_n,
        }
        if game_type == GameType.RACE and self._race_step is not None:
            kwargs["step"] = self._race_step
        return GAME_CLASSES[game_type](session_id, config, **kwargs)

    def _retire(self, game: BaseGame) -> None:
        self.scheduler.cancel(self._key(game))
        if not game.is_ended:
            game.end()

    def _on_game_end(self, game: BaseGame) -> None:
        self.scheduler.cancel(self._key(game))
        self.history.append(game.history_record())


_registry: Optional[SessionGameRegistry] = None


def get_registry() -> SessionGameRegistry:
    """Lazy singleton. Use as a FastAPI dependency: Depends(get_registry)"""
    global _registry
    if _registry is None:
        store = None
        if app_settings.use_firestore:
            from services.firestore_service import get_firestore_service
            store = get_firestore_service()
        _registry = SessionGameRegistry(
            settings_provider=SettingsProvider(store=store),
            history=HistorySink(store=store),
        )
    return _registry
