"""
Per-game-type configuration.

`*Settings` models hold the defaults a host can override from the settings
store. `*Config` models are what a game actually runs with: the settings
snapshot at start time merged with the start request's own parameters.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

DJ_LABELS = ("A", "B", "C", "D")


class _StoredSettings(BaseModel):
    # The settings store writes camelCase keys (maxOptions, requestDuration);
    # start parameters and code use the field names.
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class LuckyWheelSettings(_StoredSettings):
    duration: float = Field(10, gt=0)  # seconds
    keyword: str = Field("GAME", min_length=1)


class PollSettings(_StoredSettings):
    duration: float = Field(30, gt=0)
    max_options: int = Field(4, ge=2)


class RaceSettings(_StoredSettings):
    duration: float = Field(20, gt=0)
    race_distance: float = Field(100, gt=0)
    min_step: float = Field(3, ge=0)
    max_step: float = Field(8, gt=0)

    @model_validator(mode="after")
    def _check_steps(self) -> "RaceSettings":
        if self.max_step < self.min_step:
            raise ValueError("max_step must be >= min_step")
        return self


class DJGameSettings(_StoredSettings):
    request_duration: float = Field(30, gt=0)
    voting_duration: float = Field(30, gt=0)
    cooldown: float = Field(5, ge=0)  # break between auto-looped rounds
    auto_loop: bool = True
    top_songs: int = Field(len(DJ_LABELS), ge=1, le=len(DJ_LABELS))


class GameSettings(BaseModel):
    """Full settings document, keyed the way the settings store keeps it."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    lucky_wheel: LuckyWheelSettings = Field(default_factory=LuckyWheelSettings, alias="luckyWheel")
    poll: PollSettings = Field(default_factory=PollSettings)
    race: RaceSettings = Field(default_factory=RaceSettings)
    dj_game: DJGameSettings = Field(default_factory=DJGameSettings, alias="djGame")


# ── Start-time configs ────────────────────────────────────────────────────────

class PollOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    text: str = ""
    keyword: str = ""

    @model_validator(mode="before")
    @classmethod
    def _default_keyword(cls, data: Any) -> Any:
        # An option without its own keyword is voted for by its id
        if isinstance(data, dict) and not data.get("keyword") and data.get("id"):
            data = {**data, "keyword": data["id"]}
        if isinstance(data, dict) and not data.get("text") and data.get("id"):
            data = {**data, "text": data["id"]}
        return data


class LuckyWheelConfig(LuckyWheelSettings):
    pass


class PollConfig(PollSettings):
    question: str = ""
    options: List[PollOption] = []

    @model_validator(mode="after")
    def _check_options(self) -> "PollConfig":
        if len(self.options) < 2:
            raise ValueError("A poll needs at least 2 options")
        if len(self.options) > self.max_options:
            raise ValueError(f"A poll accepts at most {self.max_options} options")
        ids = [o.id for o in self.options]
        if len(set(ids)) != len(ids):
            raise ValueError("Poll option ids must be unique")
        return self


class RaceConfig(RaceSettings):
    pass


class DJGameConfig(DJGameSettings):
    pass


def merge_overrides(defaults: BaseModel, overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Defaults overlaid with every override that is not None."""
    data = defaults.model_dump()
    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value
    return data
