from __future__ import annotations

from fastapi.testclient import TestClient

from lockvault.api.app import create_app


def test_request_size_limit_returns_413(monkeypatch):
    # Make limit very small for test determinism.
    monkeypatch.setenv("LOCKVAULT_MAX_REQUEST_BYTES", "128")
    monkeypatch.delenv("LOCKVAULT_SIZE_LIMIT_DISABLE", raising=False)

    c = TestClient(create_app(boot_runtime=False))

    payload = {"op": "DEPOSIT", "caller": "alice", "value": 1, "payload": {"pad": "x" * 500}}
    r = c.post("/v1/calls", json=payload)
    assert r.status_code == 413

    j = r.json()
    assert j.get("ok") is False
    assert j["error"].get("code") == "call_too_large"


def test_health_is_exempt_from_size_limit(monkeypatch):
    monkeypatch.setenv("LOCKVAULT_MAX_REQUEST_BYTES", "1")
    c = TestClient(create_app(boot_runtime=False))
    assert c.get("/v1/health").status_code == 200


def test_request_id_is_echoed(monkeypatch):
    monkeypatch.delenv("LOCKVAULT_LOG_REQUESTS", raising=False)
    c = TestClient(create_app(boot_runtime=False))
    r = c.get("/v1/health", headers={"x-request-id": "req-123"})
    assert r.headers.get("x-request-id") == "req-123"
