import unittest
from types import SimpleNamespace
import httpx
from fastapi.testclient import TestClient
from kinosync import server
from kinosync.binder import PlaybackBinder
from kinosync.clients.gallery_client import GalleryClient
from kinosync.config import settings
from kinosync.context import ContextBuilder
from kinosync.models import ClientSession
from kinosync.storage import LocalStorage
from kinosync.state import PlaybackStore
from kinosync.sync_client import SyncClient

class TestServer(unittest.TestCase):
    def setUp(self):
        settings.HTTP_SERVER_TOKEN = None
        session = ClientSession(session_id="s1")
        store = PlaybackStore(LocalStorage("unused.json", persist=False), key="media")
        recommendation = {"ID": "v7", "Name": "Stalker", "MIMEType": "video/mp4"}
        self.service = SimpleNamespace(
            session=session,
            store=store,
            binder=PlaybackBinder(store, session),
            sync_client=SyncClient(ContextBuilder(store, session), url="ws://kino.local/gallery/ws"),
            gallery=GalleryClient(
                "http://kino.local",
                transport=httpx.MockTransport(lambda r: httpx.Response(200, json=recommendation)),
            ),
        )
        server.app.state.service = self.service
        self.client = TestClient(server.app)

    def tearDown(self):
        del server.app.state.service
        settings.HTTP_SERVER_TOKEN = None

    def test_healthz_reports_connection(self):
        body = self.client.get("/healthz").json()
        self.assertEqual(body["status"], "disconnected")
        self.assertEqual(body["connection"], "closed")
        self.assertFalse(body["reconnect_pending"])

    def test_healthz_before_startup(self):
        del server.app.state.service
        self.assertEqual(self.client.get("/healthz").json(), {"status": "starting"})
        server.app.state.service = self.service

    def test_playback_flow(self):
        resp = self.client.post("/playback/progress", json={"currentTime": 3})
        self.assertEqual(resp.status_code, 409)

        resp = self.client.post("/playback/select", json={"id": "v1"})
        self.assertEqual(resp.json(), {"id": "v1", "resume_at": None})

        resp = self.client.post("/playback/progress", json={"currentTime": 61.5})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.client.get("/playback/resume").json(), {"id": "v1", "resume_at": 61.5})

        status = self.client.get("/status").json()
        self.assertEqual(status["session_id"], "s1")
        self.assertEqual(status["total_tracked_items"], 1)
        self.assertEqual(status["connection"], "closed")

    def test_negative_progress_rejected(self):
        self.client.post("/playback/select", json={"id": "v1"})
        resp = self.client.post("/playback/progress", json={"currentTime": -1})
        self.assertEqual(resp.status_code, 422)

    def test_infinite_progress_rejected(self):
        self.client.post("/playback/select", json={"id": "v1"})
        resp = self.client.post(
            "/playback/progress",
            content='{"currentTime": Infinity}',
            headers={"Content-Type": "application/json"},
        )
        self.assertEqual(resp.status_code, 422)
        resp = self.client.post(
            "/playback/progress",
            content='{"currentTime": NaN}',
            headers={"Content-Type": "application/json"},
        )
        self.assertEqual(resp.status_code, 422)
        self.assertEqual(len(self.service.store), 0)

    def test_token_required_when_configured(self):
        settings.HTTP_SERVER_TOKEN = "secret"
        self.assertEqual(self.client.get("/status").status_code, 401)
        self.assertEqual(self.client.get("/status", headers={"X-Token": "secret"}).status_code, 200)
        # Health stays open for probes
        self.assertEqual(self.client.get("/healthz").status_code, 200)

    def test_recommend_selects_item(self):
        resp = self.client.post("/recommend", json={"request": "something slow"})
        self.assertEqual(resp.json()["recommendation"]["ID"], "v7")
        self.assertEqual(self.service.session.most_recent_id, "v7")

        self.assertEqual(self.client.post("/recommend", json={"request": " "}).status_code, 400)

if __name__ == '__main__':
    unittest.main()
