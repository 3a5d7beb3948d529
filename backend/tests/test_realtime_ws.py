from uuid import uuid4

from fastapi.testclient import TestClient

from dmscout.api.v1 import dependencies
from dmscout.main import app
from tests.fakes import StubFetcher


def test_authenticated_socket_receives_published_events():
    user_id = f"user_{uuid4().hex[:12]}"
    client = TestClient(app)

    with client.websocket_connect("/ws") as ws:
        ws.send_text("{not json")
        ws.send_json({"type": "authenticate", "userId": user_id})
        assert ws.receive_json() == {"type": "authenticated", "userId": user_id}

        event = {"type": "job_progress", "jobId": "job_x", "completed": 1, "failed": 0, "total": 2}
        dependencies.get_notification_bus().publish(user_id, event)

        assert ws.receive_json() == event


def test_extraction_progress_is_pushed_to_the_owner(monkeypatch):
    stub = StubFetcher({"https://acme.com": '<a href="https://instagram.com/acme">IG</a>'})
    monkeypatch.setattr(dependencies, "get_page_fetcher", lambda: stub)
    user_id = f"user_{uuid4().hex[:12]}"
    client = TestClient(app)

    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "authenticate", "userId": user_id})
        ws.receive_json()

        resp = client.post("/v1/extractions", json={"domains": ["acme.com", "down.dev"]}, headers={"X-User-Id": user_id})
        assert resp.status_code == 200
        job_id = resp.json()["jobId"]

        progress = ws.receive_json()
        completed = ws.receive_json()

    assert progress == {"type": "job_progress", "jobId": job_id, "completed": 1, "failed": 1, "total": 2}
    assert completed == {"type": "job_completed", "jobId": job_id, "completed": 1, "failed": 1, "total": 2}
