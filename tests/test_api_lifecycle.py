from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient


class _FakeExecutor(SimpleNamespace):
    """Minimal executor stub for API lifecycle tests."""


def test_create_app_boot_runtime_false_does_not_attach_executor() -> None:
    from flashledger.api.app import create_app

    app = create_app(boot_runtime=False)
    assert getattr(app.state, "executor", None) is None

    with TestClient(app) as client:
        r = client.get("/v1/health")
        assert r.status_code == 200
        assert r.json()["executor_attached"] is False

        r = client.get("/v1/token")
        assert r.status_code == 500
        assert r.json()["error"]["code"] == "not_ready"


def test_create_app_boot_runtime_true_attaches_executor(monkeypatch: pytest.MonkeyPatch) -> None:
    from flashledger.api import app as api_app

    def _fake_build_executor():
        return _FakeExecutor(chain_id="flash-test")

    monkeypatch.setattr(api_app, "build_executor", _fake_build_executor)

    app = api_app.create_app(boot_runtime=True)
    assert getattr(app.state.executor, "chain_id", "") == "flash-test"

    with TestClient(app) as client:
        assert client.get("/v1/health").json()["chain_id"] == "flash-test"


def test_wildcard_cors_rejected_in_prod(monkeypatch: pytest.MonkeyPatch) -> None:
    from flashledger.api.app import create_app

    monkeypatch.setenv("FLASH_MODE", "prod")
    monkeypatch.setenv("FLASH_CORS_ORIGINS", "*")
    with pytest.raises(RuntimeError):
        create_app(boot_runtime=False)


def test_docs_only_outside_prod(monkeypatch: pytest.MonkeyPatch) -> None:
    from flashledger.api.app import create_app

    monkeypatch.delenv("FLASH_CORS_ORIGINS", raising=False)
    monkeypatch.setenv("FLASH_MODE", "prod")
    with TestClient(create_app(boot_runtime=False)) as client:
        assert client.get("/openapi.json").status_code == 404

    monkeypatch.setenv("FLASH_MODE", "dev")
    with TestClient(create_app(boot_runtime=False)) as client:
        assert client.get("/openapi.json").status_code == 200
