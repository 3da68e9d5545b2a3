"""
DJ Game: multi-round song request + vote.

Round cycle:
  REQUESTING → chat requests songs ("play: song name"); one contribution per
               participant per song.
  VOTING     → the top requested songs get labels A–D; chat votes with the bare
               letter, one vote per participant per round.
  cool-down  → with auto_loop on, the round winner is added to the playlist and
               the next REQUESTING phase starts after config.cooldown seconds.
               Status stays VOTING meanwhile but votes are refused.

The game ends when a round has no requests, when a vote gets no ballots, when
auto_loop is off after the first round, or on an explicit stop.
"""
import logging
from typing import Any, Dict, List, Optional, Set, Tuple

from games.base import BaseGame
from games.live_stats import StatsSource
from games.matcher import MatchResult, match_dj_vote, match_song_request
from models.game import (
    DJGameResult, DJGameSnapshot, GameStatus, GameType,
    PlaylistEntry, SongRequest, TopSong, VoteTally,
)
from models.settings import DJ_LABELS, DJGameConfig

logger = logging.getLogger(__name__)


class DJGame(BaseGame):
    game_type = GameType.DJ_GAME
    config: DJGameConfig

    def __init__(self, session_id: str, config: DJGameConfig, **kwargs):
        super().__init__(session_id, config, **kwargs)
        self.round = 1
        self.song_requests: Dict[str, SongRequest] = {}
        self._contributions: Set[Tuple[str, str]] = set()  # (song, participant_id)
        self._round_requesters: Dict[str, int] = {}
        self.top_songs: List[TopSong] = []
        self.votes: Dict[str, VoteTally] = {}
        self._round_voters: Dict[str, None] = {}  # ordered set, first vote first
        self.round_winner: Optional[PlaylistEntry] = None
        self.playlist: List[PlaylistEntry] = []
        self.between_rounds = False

        # Whole-game counters
        self.participants: Dict[str, None] = {}  # ordered set
        self.total_requests = 0

    @property
    def auto_loop(self) -> bool:
        return self.config.auto_loop

    def _begin(self) -> None:
        self.status = GameStatus.REQUESTING
        self._arm_phase(self.config.request_duration)

    # ── Ingestion ─────────────────────────────────────────────────────────────

    def match(self, text: str) -> Optional[MatchResult]:
        if self.status == GameStatus.REQUESTING:
            return match_song_request(text)
        if self.status == GameStatus.VOTING and not self.between_rounds:
            return match_dj_vote([s.label for s in self.top_songs], text)
        return None

    def ingest(
        self,
        participant_id: str,
        match: Optional[MatchResult],
        profile: Optional[Dict[str, Any]] = None,
    ) -> bool:
        if match is None:
            return False
        if self.status == GameStatus.REQUESTING:
            return self._add_request(participant_id, match.payload)
        if self.status == GameStatus.VOTING and not self.between_rounds:
            return self._add_vote(participant_id, match.payload)
        return False

    def _add_request(self, participant_id: str, song: str) -> bool:
        if (song, participant_id) in self._contributions:
            return False
        request = self.song_requests.get(song)
        if request is None:
            request = self.song_requests[song] = SongRequest(song=song)
        request.count += 1
        request.participants.append(participant_id)
        self._contributions.add((song, participant_id))
        self._round_requesters[participant_id] = self._round_requesters.get(participant_id, 0) + 1

        self.participants[participant_id] = None
        self.total_requests += 1
        logger.info(
            f"[{self.session_id}] Song request: \"{song}\" by {participant_id} "
            f"(total: {request.count}, participants: {len(self.participants)})"
        )
        return True

    def _add_vote(self, participant_id: str, label: str) -> bool:
        if participant_id in self._round_voters:
            return False
        if label not in {s.label for s in self.top_songs}:
            return False
        tally = self.votes.get(label)
        if tally is None:
            tally = self.votes[label] = VoteTally(label=label)
        tally.count += 1
        tally.voters.append(participant_id)
        self._round_voters[participant_id] = None
        self.participants[participant_id] = None
        logger.info(f"[{self.session_id}] Vote {label} by {participant_id} (total: {tally.count})")
        return True

    # ── Transitions ───────────────────────────────────────────────────────────

    def end_phase(self) -> DJGameResult:
        if self.is_ended:
            return self._result
        if self.status == GameStatus.REQUESTING:
            return self._close_requests()
        if self.between_rounds:
            return self._start_next_round()
        return self._close_voting()

    def end(self) -> DJGameResult:
        if self.is_ended:
            return self._result
        return self._end_game()

    def _close_requests(self) -> DJGameResult:
        # Stable sort: equal counts keep first-requested order
        ranked = sorted(self.song_requests.values(), key=lambda r: r.count, reverse=True)
        ranked = ranked[:self.config.top_songs]
        if not ranked:
            logger.info(f"[{self.session_id}] DJ round {self.round}: no song requests, ending game")
            return self._end_game()

        self.top_songs = [
            TopSong(label=label, song=request.song, request_count=request.count)
            for label, request in zip(DJ_LABELS, ranked)
        ]
        self.votes = {}
        self._round_voters = {}
        self.status = GameStatus.VOTING
        self._arm_phase(self.config.voting_duration)

        logger.info(
            f"[{self.session_id}] DJ round {self.round} voting: "
            + ", ".join(f"{s.label}={s.song} ({s.request_count})" for s in self.top_songs)
        )
        return self._round_result()

    def _close_voting(self) -> DJGameResult:
        winner: Optional[TopSong] = None
        max_votes = 0
        for song in self.top_songs:
            tally = self.votes.get(song.label)
            if tally and tally.count > max_votes:
                max_votes = tally.count
                winner = song

        if winner is None:
            logger.info(f"[{self.session_id}] DJ round {self.round}: no votes, ending game")
            return self._end_game()

        self.round_winner = PlaylistEntry(
            song=winner.song,
            label=winner.label,
            vote_count=max_votes,
            request_count=winner.request_count,
            round=self.round,
            added_at=self._clock.now(),
        )
        self.playlist.append(self.round_winner)
        logger.info(
            f"[{self.session_id}] DJ round {self.round} winner: \"{winner.song}\" "
            f"({winner.label}) with {max_votes} votes"
        )

        if not self.auto_loop:
            return self._end_game()

        self.between_rounds = True
        self._arm_phase(self.config.cooldown)
        return self._round_result()

    def _start_next_round(self) -> DJGameResult:
        self.round += 1
        self.song_requests = {}
        self._contributions = set()
        self._round_requesters = {}
        self.top_songs = []
        self.votes = {}
        self._round_voters = {}
        self.round_winner = None
        self.between_rounds = False
        self.status = GameStatus.REQUESTING
        self._arm_phase(self.config.request_duration)
        logger.info(f"[{self.session_id}] DJ round {self.round}: song requests open")
        return self._round_result()

    def _end_game(self) -> DJGameResult:
        self.between_rounds = False
        logger.info(
            f"[{self.session_id}] DJ game ended after {self.round} rounds "
            f"with {len(self.playlist)} songs"
        )
        result = DJGameResult(
            status=GameStatus.ENDED,
            round=self.round,
            top_songs=list(self.top_songs),
            round_winner=self.round_winner,
            playlist=list(self.playlist),
            total_rounds=self.round,
            ended=True,
        )
        return self._finish(result)

    def _round_result(self) -> DJGameResult:
        return DJGameResult(
            status=self.status,
            round=self.round,
            top_songs=list(self.top_songs),
            round_winner=self.round_winner,
            playlist=list(self.playlist),
            total_rounds=self.round,
            ended=False,
        )

    # ── Read side ─────────────────────────────────────────────────────────────

    def stats_source(self) -> StatsSource:
        if self.status == GameStatus.VOTING or (self.is_ended and self.top_songs):
            return StatsSource(
                events=len(self._round_voters),
                phase_started_at=self.phase_started_at,
                contributors={pid: 1 for pid in self._round_voters},
                items={
                    s.label: self.votes[s.label].count if s.label in self.votes else 0
                    for s in self.top_songs
                },
            )
        return StatsSource(
            events=sum(r.count for r in self.song_requests.values()),
            phase_started_at=self.phase_started_at,
            contributors=dict(self._round_requesters),
            items={song: r.count for song, r in self.song_requests.items()},
        )

    def snapshot(self, now=None) -> DJGameSnapshot:
        return DJGameSnapshot(
            **self._snapshot_fields(now),
            round=self.round,
            auto_loop=self.auto_loop,
            between_rounds=self.between_rounds,
            song_requests=list(self.song_requests.values()),
            top_songs=list(self.top_songs),
            votes=[self.votes[s.label] for s in self.top_songs if s.label in self.votes],
            round_winner=self.round_winner,
            playlist=list(self.playlist),
            participants=list(self.participants),
            total_requests=self.total_requests,
        )

    def _winner_name(self) -> Optional[str]:
        return self.playlist[-1].song if self.playlist else None

    def _participant_ids(self) -> list:
        return list(self.participants)
