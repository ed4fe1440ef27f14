from __future__ import annotations

from fastapi.testclient import TestClient

from flashledger.api.app import create_app


def test_request_size_limit_returns_413(monkeypatch):
    # Make limit very small for test determinism.
    monkeypatch.setenv("FLASH_MAX_REQUEST_BYTES", "128")
    monkeypatch.delenv("FLASH_SIZE_LIMIT_DISABLE", raising=False)
    monkeypatch.delenv("FLASH_CORS_ORIGINS", raising=False)

    c = TestClient(create_app(boot_runtime=False))

    payload = {"tx_type": "TRANSFER", "signer": "0x" + "11" * 20, "payload": {"memo": "x" * 500}}
    r = c.post("/v1/tx/submit", json=payload)
    assert r.status_code == 413

    j = r.json()
    assert j.get("ok") is False
    assert j["error"].get("code") == "tx_too_large"


def test_small_requests_pass_the_limiter(monkeypatch):
    monkeypatch.setenv("FLASH_MAX_REQUEST_BYTES", "128")
    monkeypatch.delenv("FLASH_CORS_ORIGINS", raising=False)

    c = TestClient(create_app(boot_runtime=False))
    # reaches the route, which then reports the missing executor
    r = c.post("/v1/tx/submit", json={"tx_type": "BURN", "signer": "0x" + "11" * 20, "payload": {"amount": 1}})
    assert r.status_code == 500
    assert r.json()["error"]["code"] == "not_ready"
