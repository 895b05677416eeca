from __future__ import annotations

from fastapi.testclient import TestClient

from ratekeeper.main import app


def test_preserves_incoming_request_id_header():
    incoming_id = "test-request-id-123"
    with TestClient(app) as client:
        resp = client.get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_when_missing():
    with TestClient(app) as client:
        resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID")
    assert resp.headers.get("X-Request-Duration-ms") is not None


def test_rejected_requests_still_carry_request_id():
    with TestClient(app) as client:
        for _ in range(2):
            client.get("/api/hello", headers={"X-Client-ID": "client-2"})
        resp = client.get(
            "/api/hello",
            headers={"X-Client-ID": "client-2", "X-Request-ID": "req-429"},
        )

    assert resp.status_code == 429
    assert resp.headers["X-Request-ID"] == "req-429"
    assert resp.json()["error"]["request_id"] == "req-429"
