"""
Settings provider: defaults per game type plus stored overrides.

The current snapshot is an immutable GameSettings. refresh() swaps in a new
snapshot; games already running keep the config they resolved at start.
"""
import logging
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, ValidationError

from models.errors import InvalidGameConfigError
from models.game import GameType
from models.settings import (
    DJGameConfig, GameSettings, LuckyWheelConfig, PollConfig, RaceConfig, merge_overrides,
)

logger = logging.getLogger(__name__)

_SECTIONS: Dict[GameType, str] = {
    GameType.LUCKY_WHEEL: "lucky_wheel",
    GameType.POLL: "poll",
    GameType.RACE: "race",
    GameType.DJ_GAME: "dj_game",
}

_CONFIGS: Dict[GameType, Type[BaseModel]] = {
    GameType.LUCKY_WHEEL: LuckyWheelConfig,
    GameType.POLL: PollConfig,
    GameType.RACE: RaceConfig,
    GameType.DJ_GAME: DJGameConfig,
}


class SettingsProvider:
    def __init__(self, store=None, initial: Optional[GameSettings] = None):
        self._store = store
        self._settings = initial or GameSettings()

    @property
    def current(self) -> GameSettings:
        return self._settings

    def get(self, game_type: GameType) -> BaseModel:
        return getattr(self._settings, _SECTIONS[game_type])

    def resolve(self, game_type: GameType, overrides: Optional[Dict[str, Any]] = None) -> BaseModel:
        """Config for a new game: current settings overlaid with start parameters."""
        data = merge_overrides(self.get(game_type), overrides)
        try:
            return _CONFIGS[game_type].model_validate(data)
        except ValidationError as exc:
            raise InvalidGameConfigError(
                f"Invalid {game_type.value} config: {exc.errors(include_url=False)}"
            ) from exc

    def load(self, data: Optional[Dict[str, Any]]) -> GameSettings:
        """Replace the snapshot from a stored settings document (None → defaults)."""
        self._settings = GameSettings.model_validate(_drop_falsy(data or {}))
        return self._settings

    async def refresh(self) -> GameSettings:
        if self._store is None:
            logger.info("Settings: no store configured, keeping current settings")
            return self._settings
        try:
            data = await self._store.get_game_settings()
        except Exception:
            logger.warning("Settings: could not load game settings, keeping current", exc_info=True)
            return self._settings
        if data is None:
            logger.info("Settings: none stored, using defaults")
        try:
            self.load(data)
        except ValidationError:
            logger.warning("Settings: stored game settings are invalid, keeping current", exc_info=True)
            return self._settings
        s = self._settings
        logger.info(
            f"Settings loaded: wheel keyword \"{s.lucky_wheel.keyword}\" ({s.lucky_wheel.duration}s), "
            f"dj request/vote {s.dj_game.request_duration}s/{s.dj_game.voting_duration}s"
        )
        return s


def _drop_falsy(data: Dict[str, Any]) -> Dict[str, Any]:
    # Stored documents use empty values for "not set"; those fall back to defaults
    cleaned: Dict[str, Any] = {}
    for section, values in data.items():
        if isinstance(values, dict):
            cleaned[section] = {k: v for k, v in values.items() if not _unset(v)}
        else:
            cleaned[section] = values
    return cleaned


def _unset(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    return value is None or value == "" or value == 0
