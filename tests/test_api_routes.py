from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from eth_account import Account

from flashledger.crypto.sig import sign_tx_envelope_dict
from flashledger.runtime import metrics
from flashledger.runtime.executor import FlashLedgerExecutor

OWNER_KEY = "0x" + "a1" * 32
ALICE_KEY = "0x" + "b2" * 32
OWNER = Account.from_key(OWNER_KEY).address
ALICE = Account.from_key(ALICE_KEY).address
BOB_KEY = "0x" + "c3" * 32
BOB = Account.from_key(BOB_KEY).address


class _Clock:
    def __init__(self, t: int) -> None:
        self.t = t

    def __call__(self) -> int:
        return self.t


@pytest.fixture()
def clock() -> _Clock:
    return _Clock(1_000)


@pytest.fixture()
def client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, clock: _Clock):
    from flashledger.api import app as api_app

    monkeypatch.setenv("FLASH_MODE", "dev")
    monkeypatch.delenv("FLASH_CORS_ORIGINS", raising=False)

    ex = FlashLedgerExecutor(db_path=str(tmp_path / "api.db"), chain_id="flash-api", owner=OWNER, clock=clock, require_signatures=False)
    monkeypatch.setattr(api_app, "build_executor", lambda: ex)

    with TestClient(api_app.create_app(boot_runtime=True)) as c:
        yield c


def _submit(client: TestClient, tx_type: str, signer: str, payload: dict, now: int | None = None):
    body = {"tx_type": tx_type, "signer": signer, "payload": payload}
    if now is not None:
        body["now"] = now
    return client.post("/v1/tx/submit", json=body)


def test_mint_transfer_and_read_back(client: TestClient) -> None:
    r = _submit(client, "FLASH_MINT", OWNER, {"to": ALICE, "amount": "100", "expires_at": 5_000})
    assert r.status_code == 200, r.text
    assert r.json()["receipt"]["seq"] == 1

    r = _submit(client, "TRANSFER", ALICE, {"to": BOB, "amount": 40})
    assert r.status_code == 200

    body = client.get(f"/v1/accounts/{ALICE.lower()}").json()
    assert body["address"] == ALICE
    assert (body["balance"], body["active"], body["expired"]) == ("60", "60", "0")

    fb = client.get(f"/v1/accounts/{BOB}/flash-balances").json()
    assert fb["tranches"] == [{"amount": "40", "expires_at": 5_000, "active": True}]

    tok = client.get("/v1/token").json()["token"]
    assert tok["total_supply"] == "100"
    assert tok["owner"] == OWNER
    assert tok["symbol"] == "USDT"


def test_balances_at_a_later_time(client: TestClient) -> None:
    _submit(client, "FLASH_MINT", OWNER, {"to": ALICE, "amount": 7, "expires_at": 2_000})

    body = client.get(f"/v1/accounts/{ALICE}", params={"at": 2_000}).json()
    assert (body["active"], body["expired"], body["balance"]) == ("0", "7", "7")


def test_rejections_map_to_http_errors(client: TestClient) -> None:
    r = _submit(client, "FLASH_MINT", BOB, {"to": ALICE, "amount": 1, "expires_at": 5_000})
    assert r.status_code == 403
    err = r.json()["error"]
    assert err["code"] == "forbidden"
    assert err["details"]["seq"] == 1

    r = _submit(client, "TRANSFER", ALICE, {"to": BOB, "amount": 1})
    assert r.status_code == 409
    assert r.json()["error"]["message"] == "insufficient_active_balance"

    r = _submit(client, "FLASH_MINT", OWNER, {"to": ALICE, "amount": 1, "expires_at": 10})
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "expiry_not_in_future"

    # rejected receipts are still queryable
    rec = client.get("/v1/tx/receipt/2").json()["receipt"]
    assert rec["ok"] is False
    assert rec["code"] == "insufficient_balance"

    assert client.get("/v1/tx/receipt/99").status_code == 404


def test_submit_body_is_validated(client: TestClient) -> None:
    r = client.post("/v1/tx/submit", json={"tx_type": "BURN", "signer": ALICE, "payload": {}, "extra": 1})
    assert r.status_code == 422
    r = client.post("/v1/tx/submit", json={"tx_type": "BURN"})
    assert r.status_code == 422


def test_bad_address_in_path(client: TestClient) -> None:
    r = client.get("/v1/accounts/alice")
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "bad_address"


def test_allowance_route(client: TestClient) -> None:
    _submit(client, "APPROVE", ALICE, {"spender": BOB, "amount": 12})
    body = client.get(f"/v1/accounts/{ALICE}/allowance/{BOB}").json()
    assert body["allowance"] == "12"


def test_now_override_and_events(client: TestClient, clock: _Clock) -> None:
    _submit(client, "FLASH_MINT", OWNER, {"to": ALICE, "amount": 3, "expires_at": 1_050})
    r = _submit(client, "BURN_EXPIRED", BOB, {"account": ALICE}, now=1_050)
    assert r.json()["receipt"]["result"]["burned"] == 3

    evs = client.get("/v1/events").json()
    assert [e["event"] for e in evs["events"]] == ["Transfer", "FlashMinted", "ExpiredBalanceBurned", "Transfer"]
    assert evs["next_since"] == evs["events"][-1]["event_id"]

    page = client.get("/v1/events", params={"since": evs["events"][1]["event_id"], "limit": 1}).json()
    assert [e["event"] for e in page["events"]] == ["ExpiredBalanceBurned"]

    status = client.get("/v1/status").json()
    assert status["seq"] == 2
    assert status["ledger_time"] == 1_050
    assert status["chain_id"] == "flash-api"




def test_metrics_route(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("FLASH_METRICS_ENABLED", raising=False)
    assert client.get("/v1/metrics").status_code == 404

    metrics.reset()
    monkeypatch.setenv("FLASH_METRICS_ENABLED", "1")
    _submit(client, "FLASH_MINT", OWNER, {"to": ALICE, "amount": 5, "expires_at": 5_000})
    text = client.get("/v1/metrics").text
    assert 'flashledger_tx_applied_total{tx_type="FLASH_MINT"} 1' in text
    assert "# TYPE flashledger_tx_applied_total counter" in text
    assert "flashledger_total_supply 5" in text


def test_request_id_is_echoed_or_minted(client: TestClient) -> None:
    r = client.get("/v1/health", headers={"x-request-id": "req-42"})
    assert r.headers["x-request-id"] == "req-42"

    r = client.get("/v1/health")
    assert len(r.headers["x-request-id"]) == 32


# ----------------------------
# prod: signed envelopes only
# ----------------------------


@pytest.fixture()
def prod_client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    from flashledger.api import app as api_app

    monkeypatch.setenv("FLASH_MODE", "prod")
    monkeypatch.delenv("FLASH_CORS_ORIGINS", raising=False)
    ex = FlashLedgerExecutor(db_path=str(tmp_path / "p.db"), chain_id="p", owner=OWNER, clock=lambda: 1_000)
    monkeypatch.setattr(api_app, "build_executor", lambda: ex)

    with TestClient(api_app.create_app()) as c:
        yield c


def _signed(tx_type: str, signer: str, payload: dict, key: str, nonce: int, chain_id: str = "p") -> dict:
    tx = {"tx_type": tx_type, "signer": signer, "payload": payload, "nonce": nonce}
    return sign_tx_envelope_dict(tx=tx, chain_id=chain_id, private_key=key)


def test_prod_refuses_anonymous_and_forged_callers(prod_client: TestClient) -> None:
    mint = {"to": BOB, "amount": 10**24, "expires_at": 9_000}

    r = _submit(prod_client, "FLASH_MINT", OWNER, mint)
    assert r.status_code == 403
    assert r.json()["error"]["message"] == "missing_signature"

    r = prod_client.post("/v1/tx/submit", json=_signed("FLASH_MINT", OWNER, mint, BOB_KEY, nonce=1))
    assert r.status_code == 403
    assert r.json()["error"]["message"] == "bad_signature"

    # a signature from another ledger does not carry over
    r = prod_client.post("/v1/tx/submit", json=_signed("FLASH_MINT", OWNER, mint, OWNER_KEY, nonce=1, chain_id="q"))
    assert r.status_code == 403

    tok = prod_client.get("/v1/token").json()["token"]
    assert tok["total_supply"] == "0"


def test_prod_signed_flow(prod_client: TestClient) -> None:
    r = prod_client.post(
        "/v1/tx/submit",
        json=_signed("FLASH_MINT", OWNER, {"to": ALICE, "amount": 50, "expires_at": 9_000}, OWNER_KEY, nonce=1),
    )
    assert r.status_code == 200, r.text

    # someone else spending ALICE's balance
    forged = _signed("TRANSFER", ALICE, {"to": BOB, "amount": 50}, BOB_KEY, nonce=1)
    assert prod_client.post("/v1/tx/submit", json=forged).status_code == 403

    pay = _signed("TRANSFER", ALICE, {"to": BOB, "amount": 20}, ALICE_KEY, nonce=1)
    assert prod_client.post("/v1/tx/submit", json=pay).status_code == 200

    replay = prod_client.post("/v1/tx/submit", json=pay)
    assert replay.status_code == 409
    assert replay.json()["error"]["code"] == "bad_nonce"

    body = prod_client.get(f"/v1/accounts/{ALICE}").json()
    assert (body["balance"], body["nonce"]) == ("30", 1)
    assert prod_client.get(f"/v1/accounts/{BOB}").json()["balance"] == "20"


def test_now_override_ignored_in_prod(prod_client: TestClient) -> None:
    body = _signed("FLASH_MINT", OWNER, {"to": ALICE, "amount": 1, "expires_at": 1_500}, OWNER_KEY, nonce=1)
    body["now"] = 9_999
    r = prod_client.post("/v1/tx/submit", json=body)
    assert r.json()["receipt"]["time"] == 1_000


def test_prod_refuses_an_unsigned_executor(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    from flashledger.api import app as api_app

    monkeypatch.setenv("FLASH_MODE", "prod")
    ex = FlashLedgerExecutor(
        db_path=str(tmp_path / "u.db"), chain_id="p", owner=OWNER, clock=lambda: 1_000, require_signatures=False
    )
    monkeypatch.setattr(api_app, "build_executor", lambda: ex)

    with pytest.raises(RuntimeError, match="unsigned"):
        api_app.create_app()
