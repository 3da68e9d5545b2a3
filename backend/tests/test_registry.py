import threading
import unittest

from games.registry import SessionGameRegistry
from games.scheduler import PhaseScheduler
from models.errors import GameNotFoundError, InvalidGameConfigError
from models.game import GameStatus, GameType
from services.history import HistorySink
from services.settings_provider import SettingsProvider
from utils.clock import ManualClock

from fakes import FakeStore, FixedRandom

POLL = {"question": "Best pet?", "options": [{"id": "A", "text": "Cats"}, {"id": "B", "text": "Dogs"}]}


def make_registry(store=None, race_step=None):
    clock = ManualClock()
    registry = SessionGameRegistry(
        settings_provider=SettingsProvider(store=store),
        history=HistorySink(),
        clock=clock,
        scheduler=PhaseScheduler(clock=clock, use_tasks=False),
        rng=FixedRandom(),
        race_step=race_step,
        retention_seconds=60,
        stats_top_n=5,
    )
    return registry, clock


class TestRegistryLifecycle(unittest.TestCase):

    def setUp(self):
        self.registry, self.clock = make_registry(race_step=lambda: 5)

    def _advance(self, seconds):
        self.clock.advance(seconds)
        return self.registry.run_due()

    def test_lucky_wheel_scenario(self):
        self.registry.start_game("s1", "luckywheel", {"duration": 10})
        self.assertTrue(self.registry.ingest("s1", "alice", "i play GAME now"))
        self.assertFalse(self.registry.ingest("s1", "alice", "GAME GAME"))

        self._advance(10)
        snapshot = self.registry.status("s1")
        self.assertEqual(snapshot.status, GameStatus.ENDED)
        self.assertEqual(snapshot.winner.participant_id, "alice")
        self.assertEqual(len(self.registry.get_history("s1")), 1)

    def test_poll_scenario(self):
        self.registry.start_game("s1", GameType.POLL, POLL)
        self.registry.ingest("s1", "bob", "A")
        self.registry.ingest("s1", "carol", "B")
        self.assertFalse(self.registry.ingest("s1", "bob", "B"))
        self._advance(30)
        snapshot = self.registry.status("s1")
        self.assertEqual([o.percentage for o in snapshot.options], [50, 50])
        self.assertEqual(snapshot.winner.id, "A")

    def test_race_scenario(self):
        self.registry.start_game("s1", "race", {"duration": 20})
        for _ in range(3):
            self.registry.ingest("s1", "dan", "faster!")
        self._advance(20)
        snapshot = self.registry.status("s1")
        self.assertEqual(snapshot.winner.participant_id, "dan")
        self.assertEqual(snapshot.winner.position, 15)

    def test_dj_scenario_through_deadlines(self):
        self.registry.start_game("s1", "djgame", {
            "request_duration": 30, "voting_duration": 30, "cooldown": 5, "auto_loop": True,
        })
        for user in ("u1", "u2", "u3"):
            self.registry.ingest("s1", user, "play: song a")
        self.registry.ingest("s1", "u4", "song: song b")

        self._advance(30)
        self.assertEqual(self.registry.status("s1").status, GameStatus.VOTING)
        self.registry.ingest("s1", "v1", "A")
        self.registry.ingest("s1", "v2", "A")
        self.registry.ingest("s1", "v3", "B")

        self._advance(30)
        playlist = self.registry.playlist("s1")
        self.assertEqual([(e.song, e.vote_count) for e in playlist], [("Song A", 2)])

        self._advance(5)
        snapshot = self.registry.status("s1")
        self.assertEqual((snapshot.round, snapshot.status), (2, GameStatus.REQUESTING))
        self.assertEqual(len(self.registry.get_history("s1")), 0)

        self._advance(30)  # no requests in round 2
        self.assertEqual(self.registry.status("s1").status, GameStatus.ENDED)
        history = self.registry.get_history("s1")
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0].winner, "Song A")
        self.assertEqual(len(self.registry.playlist("s1")), 1)

    def test_race_finish_line_cancels_deadline(self):
        self.registry, self.clock = make_registry(race_step=lambda: 50)
        game_id = self.registry.start_game("s1", "race")
        self.registry.ingest("s1", "ann", "go")
        self.registry.ingest("s1", "ann", "go")
        self.assertEqual(self.registry.status("s1").status, GameStatus.ENDED)
        self.assertIsNone(self.registry.scheduler.pending(("s1", game_id)))
        self.assertEqual(len(self.registry.get_history()), 1)


class TestRegistryControl(unittest.TestCase):

    def setUp(self):
        self.registry, self.clock = make_registry()

    def test_start_replaces_previous_game(self):
        old_id = self.registry.start_game("s1", "luckywheel")
        self.registry.ingest("s1", "alice", "GAME")
        old_game = self.registry.get_game("s1")

        new_id = self.registry.start_game("s1", "poll", POLL)
        self.assertNotEqual(old_id, new_id)
        self.assertTrue(old_game.is_ended)
        self.assertIsNone(self.registry.scheduler.pending(("s1", old_id)))
        self.assertEqual(len(self.registry.scheduler), 1)

        history = self.registry.get_history("s1")
        self.assertEqual([(h.game_id, h.winner) for h in history], [(old_id, "alice")])

        # Old game's deadline is inert even if it still reaches the registry
        self.registry._on_deadline(("s1", old_id))
        self.assertEqual(self.registry.status("s1").status, GameStatus.ACTIVE)

        self.clock.advance(10)
        self.assertEqual(self.registry.run_due(), 0)
        self.assertEqual(self.registry.status("s1").game_id, new_id)

    def test_sessions_are_independent(self):
        self.registry.start_game("s1", "luckywheel")
        self.registry.start_game("s2", "luckywheel", {"keyword": "SPIN"})
        self.assertTrue(self.registry.ingest("s1", "a", "GAME"))
        self.assertFalse(self.registry.ingest("s2", "a", "GAME"))
        self.assertEqual(set(self.registry.active_games()), {"s1", "s2"})

    def test_stop(self):
        self.registry.start_game("s1", "luckywheel")
        self.registry.ingest("s1", "alice", "GAME")
        result = self.registry.stop("s1")
        self.assertEqual(result.winner.participant_id, "alice")
        self.assertEqual(len(self.registry.scheduler), 0)
        with self.assertRaises(GameNotFoundError):
            self.registry.stop("s1")
        self.assertEqual(len(self.registry.get_history()), 1)

    def test_stop_dj_mid_round(self):
        self.registry.start_game("s1", "djgame")
        self.registry.ingest("s1", "u1", "play: tune")
        result = self.registry.stop("s1")
        self.assertTrue(result.ended)
        self.assertEqual(result.playlist, [])

    def test_idle_session(self):
        with self.assertRaises(GameNotFoundError):
            self.registry.stop("nobody")
        with self.assertRaises(GameNotFoundError):
            self.registry.status("nobody")
        with self.assertRaises(GameNotFoundError):
            self.registry.playlist("nobody")
        self.assertFalse(self.registry.ingest("nobody", "a", "GAME"))

    def test_playlist_of_other_game_types_is_empty(self):
        self.registry.start_game("s1", "luckywheel")
        self.assertEqual(self.registry.playlist("s1"), [])

    def test_invalid_config_leaves_state_untouched(self):
        game_id = self.registry.start_game("s1", "luckywheel")
        with self.assertRaises(InvalidGameConfigError):
            self.registry.start_game("s1", "poll", {"options": [{"id": "A"}]})
        with self.assertRaises(InvalidGameConfigError):
            self.registry.start_game("s1", "luckywheel", {"duration": -1})
        with self.assertRaises(InvalidGameConfigError):
            self.registry.start_game("s1", "bingo")
        game = self.registry.get_game("s1")
        self.assertEqual(game.game_id, game_id)
        self.assertFalse(game.is_ended)
        self.assertEqual(len(self.registry.get_history()), 0)


class TestRegistryConcurrency(unittest.TestCase):

    def test_threaded_ingest_against_deadline(self):
        registry, clock = make_registry()
        game_id = registry.start_game("s1", "luckywheel", {"duration": 10})
        registry.ingest("s1", "first", "GAME")
        clock.advance(10)

        barrier = threading.Barrier(5)
        accepted = []

        def chat(worker):
            barrier.wait()
            for i in range(200):
                # Overlapping ids: every participant is sent by two workers
                if registry.ingest("s1", f"p{(worker * 100 + i) % 400}", "GAME"):
                    accepted.append(worker)

        def deadline():
            barrier.wait()
            registry.run_due()

        threads = [threading.Thread(target=chat, args=(w,)) for w in range(4)]
        threads.append(threading.Thread(target=deadline))
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        game = registry.get_game("s1")
        self.assertEqual(game.game_id, game_id)
        self.assertTrue(game.is_ended)
        ids = [e.participant_id for e in game.entries]
        self.assertEqual(len(ids), len(set(ids)))
        self.assertEqual(len(ids), len(accepted) + 1)
        self.assertIn(game.winner, game.entries)
        self.assertEqual(game.result.total_entries, len(game.entries))
        self.assertEqual(len(registry.get_history("s1")), 1)
        self.assertFalse(registry.ingest("s1", "late", "GAME"))

    def test_threaded_ingest_without_deadline(self):
        registry, clock = make_registry()
        registry.start_game("s1", "poll", POLL)
        barrier = threading.Barrier(4)
        accepted = []

        def vote(worker):
            barrier.wait()
            for i in range(100):
                if registry.ingest("s1", f"p{i}", "A" if worker % 2 else "B"):
                    accepted.append(worker)

        threads = [threading.Thread(target=vote, args=(w,)) for w in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        result = registry.stop("s1")
        self.assertEqual(len(accepted), 100)
        self.assertEqual(result.total_votes, 100)
        self.assertEqual(sum(r.vote_count for r in result.results), 100)


class TestRegistryCleanup(unittest.TestCase):

    def setUp(self):
        self.registry, self.clock = make_registry()

    def test_ended_game_kept_for_retention_window(self):
        self.registry.start_game("s1", "luckywheel", {"duration": 10})
        self.clock.advance(10)
        self.registry.run_due()

        self.clock.advance(60)
        self.assertEqual(self.registry.cleanup(), [])
        self.assertEqual(self.registry.status("s1").status, GameStatus.ENDED)

        self.clock.advance(1)
        self.assertEqual(self.registry.cleanup(), ["s1"])
        with self.assertRaises(GameNotFoundError):
            self.registry.status("s1")
        self.assertEqual(len(self.registry.get_history("s1")), 1)

    def test_running_game_is_not_removed(self):
        self.registry.start_game("s1", "poll", POLL)
        self.clock.advance(20)
        self.assertEqual(self.registry.cleanup(), [])
        self.assertEqual(self.registry.status("s1").status, GameStatus.ACTIVE)

    def test_stuck_game_is_forced_to_end(self):
        self.registry.start_game("s1", "luckywheel", {"duration": 10})
        self.clock.advance(10 + 61)  # deadline never driven
        self.assertEqual(self.registry.cleanup(), [])
        self.assertEqual(self.registry.status("s1").status, GameStatus.ENDED)
        self.assertEqual(len(self.registry.get_history()), 1)

        self.clock.advance(61)
        self.assertEqual(self.registry.cleanup(), ["s1"])
        self.assertEqual(len(self.registry.get_history()), 1)


class TestRegistrySettings(unittest.IsolatedAsyncioTestCase):

    async def test_refresh_applies_to_new_games_only(self):
        store = FakeStore(game_settings={"luckyWheel": {"keyword": "SPIN", "duration": 15}})
        registry, clock = make_registry(store=store)

        registry.start_game("s1", "luckywheel")
        running = registry.get_game("s1")
        await registry.refresh_settings()

        self.assertEqual(running.config.keyword, "GAME")
        self.assertTrue(registry.ingest("s1", "a", "GAME"))

        registry.start_game("s2", "luckywheel")
        self.assertEqual(registry.get_game("s2").config.keyword, "SPIN")
        self.assertEqual(registry.get_game("s2").config.duration, 15)

    async def test_start_parameters_beat_settings(self):
        store = FakeStore(game_settings={"luckyWheel": {"keyword": "SPIN"}})
        registry, clock = make_registry(store=store)
        await registry.refresh_settings()
        registry.start_game("s1", "luckywheel", {"keyword": "WIN"})
        self.assertEqual(registry.get_game("s1").config.keyword, "WIN")
