import unittest

from games.matcher import (
    match_dj_vote, match_lucky_wheel, match_poll, match_race,
    match_song_request, normalize_song,
)
from models.settings import PollOption


class TestLuckyWheelMatch(unittest.TestCase):

    def test_keyword_as_separate_word(self):
        result = match_lucky_wheel("GAME", "i play GAME now")
        self.assertIsNotNone(result)
        self.assertEqual(result.payload, "i play GAME now")

    def test_case_insensitive(self):
        self.assertIsNotNone(match_lucky_wheel("game", "Game on!"))
        self.assertIsNotNone(match_lucky_wheel("GAME", "game"))

    def test_keyword_inside_word_does_not_match(self):
        self.assertIsNone(match_lucky_wheel("GAME", "GAMES tonight"))
        self.assertIsNone(match_lucky_wheel("GAME", "endgame"))

    def test_regex_characters_are_literal(self):
        self.assertIsNone(match_lucky_wheel("G.ME", "GAME"))
        self.assertIsNotNone(match_lucky_wheel("G.ME", "join G.ME"))

    def test_empty_text(self):
        self.assertIsNone(match_lucky_wheel("GAME", ""))


class TestPollMatch(unittest.TestCase):

    def setUp(self):
        self.options = [PollOption(id="A", text="Cats"), PollOption(id="B", text="Dogs")]

    def test_substring_match_returns_option_id(self):
        self.assertEqual(match_poll(self.options, "b").payload, "B")

    def test_first_option_in_declaration_order_wins(self):
        # "banana" contains both A and B
        self.assertEqual(match_poll(self.options, "banana").payload, "A")

    def test_custom_keywords(self):
        options = [
            PollOption(id="1", text="Pizza", keyword="pizza"),
            PollOption(id="2", text="Tacos", keyword="taco"),
        ]
        self.assertEqual(match_poll(options, "TACO TUESDAY").payload, "2")
        self.assertIsNone(match_poll(options, "burgers"))


class TestRaceMatch(unittest.TestCase):

    def test_any_non_empty_text(self):
        self.assertIsNotNone(match_race("go go go"))

    def test_blank_text(self):
        self.assertIsNone(match_race(""))
        self.assertIsNone(match_race("   "))


class TestSongRequestMatch(unittest.TestCase):

    def test_prefix_stripped_and_title_cased(self):
        self.assertEqual(normalize_song("PLAY: never gonna give you up"), "Never Gonna Give You Up")

    def test_prefix_is_case_insensitive(self):
        self.assertEqual(normalize_song("request:  bohemian RHAPSODY "), "Bohemian Rhapsody")

    def test_variants_normalize_to_one_key(self):
        self.assertEqual(normalize_song("song a"), normalize_song("SONG: Song A"))

    def test_too_short(self):
        self.assertIsNone(normalize_song("song:x"))
        self.assertIsNone(match_song_request("a"))

    def test_plain_text_is_a_request(self):
        self.assertEqual(match_song_request("thunderstruck").payload, "Thunderstruck")


class TestDJVoteMatch(unittest.TestCase):

    def test_label_with_song(self):
        self.assertEqual(match_dj_vote(["A", "B"], " b ").payload, "B")

    def test_label_without_song(self):
        self.assertIsNone(match_dj_vote(["A", "B"], "C"))

    def test_not_a_bare_label(self):
        self.assertIsNone(match_dj_vote(["A", "B"], "A please"))
        self.assertIsNone(match_dj_vote(["A", "B"], "E"))
