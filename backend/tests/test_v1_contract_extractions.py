from uuid import uuid4

import pytest

from dmscout.api.v1 import dependencies
from dmscout.main import app
from tests.fakes import StubFetcher
from tests.http_client import SyncASGIClient

PAGES = {
    "https://acme.com": '<header><a href="https://instagram.com/acme">Instagram</a></header>',
    "https://bravo.io": "<p>Follow us @bravo_studio for daily drops</p>",
    "https://plain.org": "<p>We are not on social media.</p>",
}


@pytest.fixture
def fetcher(monkeypatch) -> StubFetcher:
    stub = StubFetcher(PAGES)
    monkeypatch.setattr(dependencies, "get_page_fetcher", lambda: stub)
    return stub


def _client() -> SyncASGIClient:
    return SyncASGIClient(app, user_id=f"user_{uuid4().hex[:12]}")


def test_extraction_batch_runs_to_completion(fetcher: StubFetcher):
    client = _client()

    created = client.post(
        "/v1/extractions",
        json={"filename": "leads.csv", "domains": ["https://www.acme.com/", "bravo.io", "plain.org", "gone.net"]},
    )
    assert created.status_code == 200
    body = created.json()
    assert body["status"] == "accepted"
    assert body["uploadId"].startswith("upl_")
    job_id = body["jobId"]

    job = client.get(f"/v1/extractions/{job_id}")
    assert job.status_code == 200
    assert job.json()["status"] == "completed"
    assert (job.json()["total"], job.json()["completed"], job.json()["failed"]) == (4, 3, 1)

    results = client.get(f"/v1/extractions/{job_id}/results").json()["results"]
    assert [(r["domain"], r["status"], r["igHandle"]) for r in results] == [
        ("acme.com", "found", "@acme"),
        ("bravo.io", "found", "@bravo_studio"),
        ("plain.org", "not_found", None),
        ("gone.net", "error", None),
    ]
    assert [r["confidence"] for r in results] == [95.0, 85.0, 0.0, 0.0]

    me = client.get("/v1/me").json()
    assert me["extractsUsedToday"] == 4
    assert me["dailyExtractQuota"] == 150

    listed = client.get("/v1/extractions").json()["jobs"]
    assert [row["jobId"] for row in listed] == [job_id]

    recent = client.get("/v1/results/recent", params={"limit": 2}).json()["results"]
    assert len(recent) == 2


def test_batch_larger_than_remaining_quota_is_rejected(fetcher: StubFetcher):
    client = _client()

    resp = client.post("/v1/extractions", json={"domains": [f"site{i}.com" for i in range(151)]})

    assert resp.status_code == 429
    detail = resp.json()["detail"]
    assert detail["required"] == 151
    assert detail["remaining"] == 150
    assert detail["message"]
    assert fetcher.requested == []
    assert client.get("/v1/me").json()["extractsUsedToday"] == 0


def test_no_valid_domains_is_a_validation_error(fetcher: StubFetcher):
    resp = _client().post("/v1/extractions", json={"domains": ["not a domain", "  "]})

    assert resp.status_code == 422


def test_jobs_are_private_to_their_owner(fetcher: StubFetcher):
    owner = _client()
    job_id = owner.post("/v1/extractions", json={"domains": ["acme.com"]}).json()["jobId"]

    stranger = _client()
    assert stranger.get(f"/v1/extractions/{job_id}").status_code == 404
    assert stranger.get(f"/v1/extractions/{job_id}/results").status_code == 404
    assert stranger.get("/v1/extractions").json()["jobs"] == []


def test_requests_without_identity_are_rejected():
    resp = SyncASGIClient(app).get("/v1/me")

    assert resp.status_code == 401
