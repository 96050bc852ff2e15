import asyncio

import pytest
from fastapi.testclient import TestClient

from queue_manager.domain.states import JobLocation
from queue_manager.main import create_app
from queue_manager.settings import Settings

from conftest import NOW, make_job

BASE = "/queue_manager"


@pytest.fixture
def client(store):
    store.add(
        make_job("r1", JobLocation.RETRY, job_class="MailWorker", failed_at=NOW - 60, retry_at=NOW + 60),
        make_job("r2", JobLocation.RETRY, job_class="ReportWorker", failed_at=NOW - 60, retry_at=NOW + 30),
        make_job("x1", JobLocation.DEAD, failed_at=NOW - 10),
        make_job("s1", JobLocation.SCHEDULED, at=NOW + 100),
    )
    settings = Settings(
        CRITICAL_QUEUES=["critical"],
        QUEUE_PRIORITIES={"critical": 10},
        REFRESH_INTERVAL_MS=100,
    )
    return TestClient(create_app(settings, store=store))


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_metrics_envelope(client):
    resp = client.get(f"{BASE}/metrics")

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert set(body["data"]) == {"global_stats", "queues", "timestamp"}
    assert body["data"]["global_stats"]["retry_size"] == 2
    assert "no-cache" in resp.headers["cache-control"]


def test_metrics_backend_failure_is_503(client, store):
    store.fail("stat_totals")

    resp = client.get(f"{BASE}/metrics")

    assert resp.status_code == 503
    assert resp.json()["error"] == "BackendUnavailable"


def test_prometheus_exposition(client):
    client.get(f"{BASE}/metrics")

    resp = client.get(f"{BASE}/metrics/prometheus")

    assert resp.status_code == 200
    assert "queue_manager_queue_size" in resp.text


def test_pause_and_resume(client, store):
    resp = client.post(f"{BASE}/queues/default/pause")
    assert resp.status_code == 200
    assert resp.json()["message"] == "Queue 'default' paused successfully"

    status = client.get(f"{BASE}/queues/default/status").json()
    assert status["data"]["paused"] is True

    assert client.post(f"{BASE}/queues/default/resume").json()["success"] is True


def test_unknown_queue_is_404(client, store):
    resp = client.post(f"{BASE}/queues/ghost/pause")

    assert resp.status_code == 404
    assert resp.json()["error"] == "InvalidQueue"
    assert store.mutating_calls() == []


def test_critical_queue_is_422(client):
    resp = client.post(f"{BASE}/queues/critical/clear")

    assert resp.status_code == 422
    assert resp.json()["message"] == "Cannot clear critical queue 'critical'"


def test_bulk_pause_all(client):
    body = client.post(f"{BASE}/queues/pause_all").json()

    assert body["data"] == {"paused": 2, "skipped": 1, "failed": []}

    body = client.post(f"{BASE}/queues/resume_all").json()
    assert body["data"] == {"resumed": 2, "skipped": 1, "failed": []}


def test_summary(client):
    body = client.get(f"{BASE}/queues/summary").json()

    assert body["data"]["total_queues"] == 3
    assert body["data"]["total_enqueued"] == 5
    assert body["data"]["critical_queues"] == 1


def test_limits(client, store):
    assert client.post(f"{BASE}/queues/default/set_limit", json={"limit": 5}).status_code == 200

    resp = client.post(f"{BASE}/queues/default/set_limit", json={"limit": -1})
    assert resp.status_code == 400
    assert resp.json()["error"] == "InvalidLimit"

    assert client.get(f"{BASE}/metrics").json()["data"]["queues"]["default"]["limit"] == 5

    assert client.delete(f"{BASE}/queues/default/remove_limit").status_code == 200
    assert client.post(f"{BASE}/queues/default/set_process_limit", json={"limit": 2}).status_code == 200
    assert client.delete(f"{BASE}/queues/default/remove_process_limit").status_code == 200
    assert client.post(f"{BASE}/queues/default/block").status_code == 200
    assert client.post(f"{BASE}/queues/default/unblock").status_code == 200


def test_queue_jobs_and_delete_job(client, store):
    body = client.get(f"{BASE}/queues/default/jobs", params={"page": 1, "per_page": 2}).json()
    assert [job["jid"] for job in body["data"]["jobs"]] == ["d1", "d2"]
    assert body["data"]["pagination"]["has_next"] is True

    resp = client.request("DELETE", f"{BASE}/queues/default/delete_job", json={"job_id": "d1"})
    assert resp.status_code == 200
    assert "d1" not in store.jobs

    resp = client.request("DELETE", f"{BASE}/queues/default/delete_job", json={"job_id": ""})
    assert resp.status_code == 400


def test_clear_and_delete_queue(client, store):
    assert client.post(f"{BASE}/queues/mailers/clear").json()["data"] == {"jobs_cleared": 1}

    resp = client.delete(f"{BASE}/queues/default")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"jobs_cleared": 3}
    assert "default" not in client.get(f"{BASE}/metrics").json()["data"]["queues"]


def test_list_job_sets(client):
    retries = client.get(f"{BASE}/retries").json()
    assert [job["jid"] for job in retries["data"]["jobs"]] == ["r2", "r1"]

    filtered = client.get(f"{BASE}/retries", params={"filter": "Mail"}).json()
    assert filtered["data"]["filtered_count"] == 1
    assert filtered["data"]["total_count"] == 2

    assert client.get(f"{BASE}/dead").json()["data"]["jobs"][0]["jid"] == "x1"
    assert client.get(f"{BASE}/scheduled").json()["data"]["jobs"][0]["jid"] == "s1"


def test_job_transitions(client, store):
    assert client.post(f"{BASE}/retries/r1/kill").json()["message"] == "Job r1 moved to dead set"
    assert client.post(f"{BASE}/dead/r1/resurrect").status_code == 200
    assert client.post(f"{BASE}/retries/r1/retry").status_code == 200
    assert client.post(f"{BASE}/scheduled/s1/enqueue").status_code == 200
    assert client.delete(f"{BASE}/dead/x1").status_code == 200

    assert store.jobs["r1"].location == JobLocation.ENQUEUED
    assert store.jobs["s1"].location == JobLocation.ENQUEUED
    assert "x1" not in store.jobs


def test_missing_job_is_404(client):
    resp = client.post(f"{BASE}/retries/nope/kill")

    assert resp.status_code == 404
    assert resp.json()["message"] == "Retry job nope not found"


def test_bulk_job_set_operations(client, store):
    body = client.post(f"{BASE}/retries/retry_all", json={"filter": "Report"}).json()
    assert body["data"] == {"jobs_retried": 1, "failed": []}

    body = client.post(f"{BASE}/dead/resurrect_all").json()
    assert body["data"] == {"jobs_resurrected": 1, "failed": []}

    body = client.post(f"{BASE}/retries/clear").json()
    assert body["data"] == {"jobs_cleared": 2, "failed": []}


def test_missing_bodies_fail_with_the_envelope(client, store):
    resp = client.request("DELETE", f"{BASE}/queues/default/delete_job")
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "InvalidJobId"
    assert body["message"] == "Invalid job ID"
    assert "timestamp" in body
    assert store.mutating_calls() == []

    resp = client.post(f"{BASE}/queues/default/set_limit")
    assert resp.status_code == 400
    assert resp.json()["error"] == "InvalidLimit"

    resp = client.post(f"{BASE}/queues/default/set_process_limit")
    assert resp.status_code == 400
    assert resp.json()["error"] == "InvalidLimit"


def test_malformed_body_fails_with_the_envelope(client, store):
    resp = client.post(
        f"{BASE}/queues/default/set_limit",
        content="{not json",
        headers={"content-type": "application/json"},
    )

    assert resp.status_code == 400
    body = resp.json()
    assert "detail" not in body
    assert body["success"] is False
    assert body["error"] == "InvalidRequest"
    assert body["message"].startswith("Invalid request: body")
    assert "timestamp" in body
    assert store.mutating_calls() == []


def test_malformed_paging_is_clamped(client):
    body = client.get(f"{BASE}/dead", params={"page": "abc", "per_page": "lots"}).json()

    assert body["success"] is True
    assert body["data"]["pagination"]["current_page"] == 1
    assert body["data"]["pagination"]["per_page"] == 1

    body = client.get(f"{BASE}/queues/default/jobs", params={"page": "-3"}).json()
    assert body["data"]["pagination"]["current_page"] == 1


def test_unhandled_error_is_a_backend_unavailable_envelope(store):
    app = create_app(Settings(), store=store)

    @app.get(f"{BASE}/explode")
    async def explode():
        raise RuntimeError("kaboom")

    resp = TestClient(app, raise_server_exceptions=False).get(f"{BASE}/explode")

    assert resp.status_code == 503
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "BackendUnavailable"
    assert body["message"] == "An unexpected error occurred: kaboom"


async def test_live_route_streams_metrics_events(store):
    app = create_app(Settings(REFRESH_INTERVAL_MS=50), store=store)
    first_chunk = asyncio.Event()
    request_read = False
    messages = []

    async def receive():
        nonlocal request_read
        if not request_read:
            request_read = True
            return {"type": "http.request", "body": b"", "more_body": False}
        # The client hangs up once the first frame arrives
        await first_chunk.wait()
        return {"type": "http.disconnect"}

    async def send(message):
        messages.append(message)
        if message["type"] == "http.response.body" and message.get("body"):
            first_chunk.set()

    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": f"{BASE}/live",
        "raw_path": f"{BASE}/live".encode(),
        "root_path": "",
        "query_string": b"",
        "headers": [(b"host", b"testserver"), (b"accept", b"text/event-stream")],
        "client": ("testclient", 50000),
        "server": ("testserver", 80),
    }
    await asyncio.wait_for(app(scope, receive, send), timeout=5)

    start = messages[0]
    headers = dict(start["headers"])
    assert start["type"] == "http.response.start"
    assert start["status"] == 200
    assert headers[b"content-type"].startswith(b"text/event-stream")
    assert headers[b"cache-control"] == b"no-cache, no-store, must-revalidate"

    chunks = [m["body"] for m in messages if m["type"] == "http.response.body" and m.get("body")]
    frame = chunks[0].decode()
    assert frame.startswith("event: metrics\ndata: ")
    assert frame.endswith("\n\n")
