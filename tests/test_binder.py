import unittest
from datetime import datetime, timezone
from kinosync.binder import PlaybackBinder
from kinosync.models import ClientSession, WatchRecord
from kinosync.storage import LocalStorage
from kinosync.state import PlaybackStore

T1 = datetime(2025, 3, 1, 20, 15, tzinfo=timezone.utc)

class TestPlaybackBinder(unittest.TestCase):
    def setUp(self):
        self.store = PlaybackStore(LocalStorage("unused.json", persist=False), key="media")
        self.session = ClientSession()
        self.binder = PlaybackBinder(self.store, self.session, clock=lambda: T1)

    def test_progress_tick_writes_record(self):
        self.store.set_name("v1", "Alien")
        self.binder.select_media("v1")
        self.binder.on_time_update(12.5)
        self.binder.on_time_update(13.75)

        self.assertEqual(self.session.most_recent_id, "v1")
        self.assertEqual(self.store.get("v1"), WatchRecord(name="Alien", played_for=13.75, viewed_at=T1))

    def test_tick_without_selection_is_ignored(self):
        self.binder.on_time_update(5)
        self.assertEqual(len(self.store), 0)

    def test_resume_offset(self):
        self.binder.select_media("v1")
        self.assertIsNone(self.binder.on_loaded())

        self.binder.on_time_update(600)
        self.binder.select_media("v2")
        self.binder.select_media("v1")
        self.assertEqual(self.binder.on_loaded(), 600)

    def test_resume_from_start_when_played_at_zero(self):
        self.binder.select_media("v1")
        self.binder.on_time_update(0)
        self.assertEqual(self.binder.on_loaded(), 0)

    def test_non_finite_tick_is_ignored(self):
        self.binder.select_media("v1")
        self.binder.on_time_update(30)
        self.binder.on_time_update(float("inf"))
        self.assertEqual(self.binder.on_loaded(), 30)

if __name__ == '__main__':
    unittest.main()
