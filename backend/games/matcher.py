"""
Entry/vote matching: pure functions, no side effects.

Each matcher decides whether one chat text counts toward a game in its current
phase and extracts the normalized payload the game records:
  lucky wheel  → the original text (keyword must appear as a whole word)
  poll         → the id of the first option whose keyword is a substring
  race         → the original text (any non-empty comment)
  dj request   → the normalized song title
  dj vote      → the label A–D, only if a song holds that label
"""
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Optional, Sequence

from models.settings import DJ_LABELS, PollOption

SONG_PREFIXES = ("PLAY:", "SONG:", "REQUEST:", "MUSIC:")
MIN_SONG_LENGTH = 2

_WORD_START = re.compile(r"\b\w")


@dataclass(frozen=True)
class MatchResult:
    payload: str  # what the game records (text, option id, song title, label)
    text: str     # the raw chat text


@lru_cache(maxsize=256)
def _keyword_pattern(keyword: str) -> "re.Pattern[str]":
    return re.compile(r"\b" + re.escape(keyword.upper()) + r"\b")


def match_lucky_wheel(keyword: str, text: str) -> Optional[MatchResult]:
    if not keyword or not text:
        return None
    if _keyword_pattern(keyword).search(text.upper()):
        return MatchResult(payload=text, text=text)
    return None


def match_poll(options: Sequence[PollOption], text: str) -> Optional[MatchResult]:
    if not text:
        return None
    upper = text.upper()
    for option in options:
        if option.keyword and option.keyword.upper() in upper:
            return MatchResult(payload=option.id, text=text)
    return None


def match_race(text: str) -> Optional[MatchResult]:
    if not text or not text.strip():
        return None
    return MatchResult(payload=text, text=text)


def normalize_song(text: str) -> Optional[str]:
    """Strip one request prefix and title-case the rest; None if too short."""
    song = (text or "").strip()
    upper = song.upper()
    for prefix in SONG_PREFIXES:
        if upper.startswith(prefix):
            song = song[len(prefix):].strip()
            break
    if len(song) < MIN_SONG_LENGTH:
        return None
    return _WORD_START.sub(lambda m: m.group(0).upper(), song.lower())


def match_song_request(text: str) -> Optional[MatchResult]:
    song = normalize_song(text)
    if song is None:
        return None
    return MatchResult(payload=song, text=text)


def match_dj_vote(occupied_labels: Iterable[str], text: str) -> Optional[MatchResult]:
    vote = (text or "").strip().upper()
    if vote not in DJ_LABELS:
        return None
    if vote not in set(occupied_labels):
        return None
    return MatchResult(payload=vote, text=text)
