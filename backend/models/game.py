from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any, Literal
from enum import Enum
from datetime import datetime, timezone
import uuid


def _utcnow() -> datetime:
    """Timezone-aware UTC datetime (replaces deprecated datetime.utcnow)."""
    return datetime.now(timezone.utc)


def new_game_id() -> str:
    return str(uuid.uuid4())[:8].upper()


class GameType(str, Enum):
    LUCKY_WHEEL = "luckywheel"
    POLL = "poll"
    RACE = "race"
    DJ_GAME = "djgame"


class GameStatus(str, Enum):
    COLLECTING = "collecting"   # lucky wheel
    ACTIVE = "active"           # poll, race
    REQUESTING = "requesting"   # dj game, phase 1
    VOTING = "voting"           # dj game, phase 2
    ENDED = "ended"


# ── Participant records ───────────────────────────────────────────────────────

class Entry(BaseModel):
    participant_id: str
    text: str
    avatar_url: Optional[str] = None  # captured from the event's profile at entry time
    entered_at: datetime = Field(default_factory=_utcnow)


class RaceParticipant(BaseModel):
    participant_id: str
    position: float = 0.0
    speed: float = 1.0  # cosmetic, drawn once on join
    comment_count: int = 0
    last_event_at: datetime = Field(default_factory=_utcnow)
    avatar: str = "🏃"


class SongRequest(BaseModel):
    song: str
    count: int = 0
    participants: List[str] = []  # one contribution per participant


class TopSong(BaseModel):
    label: str
    song: str
    request_count: int


class VoteTally(BaseModel):
    label: str
    count: int = 0
    voters: List[str] = []


class PlaylistEntry(BaseModel):
    song: str
    label: str
    vote_count: int
    request_count: int = 0
    round: int
    added_at: datetime = Field(default_factory=_utcnow)


# ── Live stats ────────────────────────────────────────────────────────────────

class RankedCount(BaseModel):
    name: str
    count: float


class LiveStats(BaseModel):
    events: int = 0
    elapsed_seconds: float = 0.0
    rate: float = 0.0  # events per second in the current phase
    top_contributors: List[RankedCount] = []
    popular_items: List[RankedCount] = []


# ── Results (returned by end-of-phase transitions) ────────────────────────────

class LuckyWheelResult(BaseModel):
    type: Literal[GameType.LUCKY_WHEEL] = GameType.LUCKY_WHEEL
    winner: Optional[Entry] = None
    entries: List[Entry] = []
    total_entries: int = 0


class PollOptionResult(BaseModel):
    id: str
    text: str
    keyword: str
    vote_count: int = 0
    percentage: int = 0


class PollResult(BaseModel):
    type: Literal[GameType.POLL] = GameType.POLL
    results: List[PollOptionResult] = []
    winner: Optional[PollOptionResult] = None
    total_votes: int = 0


class RaceResult(BaseModel):
    type: Literal[GameType.RACE] = GameType.RACE
    winner: Optional[RaceParticipant] = None
    participants: List[RaceParticipant] = []  # ranked by position
    total_participants: int = 0


class DJGameResult(BaseModel):
    type: Literal[GameType.DJ_GAME] = GameType.DJ_GAME
    status: GameStatus
    round: int
    top_songs: List[TopSong] = []
    round_winner: Optional[PlaylistEntry] = None
    playlist: List[PlaylistEntry] = []
    total_rounds: int = 0
    ended: bool = False


# ── Status snapshots ──────────────────────────────────────────────────────────

class GameSnapshot(BaseModel):
    game_id: str
    session_id: str
    status: GameStatus
    started_at: datetime
    phase_started_at: datetime
    deadline: datetime
    ended_at: Optional[datetime] = None
    time_remaining: float = 0.0  # seconds
    time_remaining_seconds: int = 0
    live_stats: LiveStats = Field(default_factory=LiveStats)


class LuckyWheelSnapshot(GameSnapshot):
    type: Literal[GameType.LUCKY_WHEEL] = GameType.LUCKY_WHEEL
    keyword: str
    entries: List[Entry] = []
    entries_count: int = 0
    winner: Optional[Entry] = None


class PollSnapshot(GameSnapshot):
    type: Literal[GameType.POLL] = GameType.POLL
    question: str
    options: List[PollOptionResult] = []
    total_votes: int = 0
    winner: Optional[PollOptionResult] = None


class RaceSnapshot(GameSnapshot):
    type: Literal[GameType.RACE] = GameType.RACE
    race_distance: float
    participants: List[RaceParticipant] = []
    winner: Optional[RaceParticipant] = None


class DJGameSnapshot(GameSnapshot):
    type: Literal[GameType.DJ_GAME] = GameType.DJ_GAME
    round: int
    auto_loop: bool
    between_rounds: bool = False
    song_requests: List[SongRequest] = []
    top_songs: List[TopSong] = []
    votes: List[VoteTally] = []
    round_winner: Optional[PlaylistEntry] = None
    playlist: List[PlaylistEntry] = []
    participants: List[str] = []
    total_requests: int = 0


# ── History ───────────────────────────────────────────────────────────────────

class HistoryRecord(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    game_id: str
    session_id: str
    type: GameType
    started_at: datetime
    ended_at: datetime
    winner: Optional[str] = None  # participant id, option id or song title
    participants: List[str] = []
    config: Dict[str, Any] = {}
    result: Dict[str, Any] = {}


# ── HTTP request/response models ──────────────────────────────────────────────

class StartGameRequest(BaseModel):
    type: GameType
    duration: Optional[float] = None
    keyword: Optional[str] = None
    question: Optional[str] = None
    options: Optional[List[Dict[str, Any]]] = None
    request_duration: Optional[float] = None
    voting_duration: Optional[float] = None
    cooldown: Optional[float] = None
    auto_loop: Optional[bool] = None

    def overrides(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"type"}, exclude_none=True)


class StartGameResponse(BaseModel):
    game_id: str
    session_id: str
    type: GameType


class IngestEventRequest(BaseModel):
    participant_id: str
    text: str
    profile: Optional[Dict[str, Any]] = None


class IngestEventResponse(BaseModel):
    accepted: bool
