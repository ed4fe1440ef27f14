from __future__ import annotations

import pytest

from flashledger.ledger.address import normalize_address
from flashledger.ledger.state import TokenView
from flashledger.runtime.apply.token import sync_expiry
from flashledger.runtime.domain_dispatch import ApplyError, apply_tx
from flashledger.runtime.state_invariants import check_ledger_invariants, ensure_state

OWNER = normalize_address("0x" + "aa" * 20)
ALICE = normalize_address("0x" + "11" * 20)
BOB = normalize_address("0x" + "22" * 20)
CAROL = normalize_address("0x" + "33" * 20)

NOW = 1_700_000_000


def _state(now: int = NOW) -> dict:
    return ensure_state({"time": now, "params": {"owner": OWNER}})


def _tx(st: dict, tx_type: str, signer: str, **payload) -> dict:
    return apply_tx(st, {"tx_type": tx_type, "signer": signer, "payload": payload})


def _mint(st: dict, to: str, amount: int, expires_at: int) -> None:
    _tx(st, "FLASH_MINT", OWNER, to=to, amount=amount, expires_at=expires_at)


def test_mint_then_expire_then_burn_expired() -> None:
    st = _state()
    _mint(st, ALICE, 100, NOW + 3600)

    view = TokenView.from_ledger(st)
    assert view.active_balance_of(ALICE) == 100
    assert view.expired_balance_of(ALICE) == 0

    st["time"] = NOW + 3601
    view = TokenView.from_ledger(st)
    assert view.active_balance_of(ALICE) == 0
    assert view.expired_balance_of(ALICE) == 100
    # balance is not touched until someone syncs the account
    assert view.balance_of(ALICE) == 100

    out = _tx(st, "BURN_EXPIRED", BOB, account=ALICE)
    assert out["burned"] == 100
    assert TokenView.from_ledger(st).balance_of(ALICE) == 0
    assert TokenView.from_ledger(st).total_supply == 0
    assert [e["event"] for e in out["events"]] == ["ExpiredBalanceBurned", "Transfer"]


def test_burn_expired_twice_burns_nothing_the_second_time() -> None:
    st = _state()
    _mint(st, ALICE, 10, NOW + 10)
    st["time"] = NOW + 10

    assert _tx(st, "BURN_EXPIRED", ALICE, account=ALICE)["burned"] == 10
    out = _tx(st, "BURN_EXPIRED", ALICE, account=ALICE)
    assert out["burned"] == 0
    assert out["events"] == []


def test_burn_expired_on_unknown_account_is_a_noop() -> None:
    st = _state()
    out = _tx(st, "BURN_EXPIRED", BOB, account=CAROL)
    assert out["burned"] == 0
    assert CAROL not in st["accounts"]


def test_expired_value_is_never_transferable_again() -> None:
    st = _state()
    _mint(st, ALICE, 10, NOW + 5)
    st["time"] = NOW + 5

    with pytest.raises(ApplyError):
        _tx(st, "TRANSFER", ALICE, to=BOB, amount=1)

    # Moving time backwards in a raw state does not revive value once burned.
    _tx(st, "BURN_EXPIRED", BOB, account=ALICE)
    st["time"] = NOW
    assert TokenView.from_ledger(st).active_balance_of(ALICE) == 0
    with pytest.raises(ApplyError):
        _tx(st, "TRANSFER", ALICE, to=BOB, amount=1)


def test_sync_expiry_keeps_active_tranches() -> None:
    st = _state()
    _mint(st, ALICE, 1, NOW + 1)
    _mint(st, ALICE, 2, NOW + 100)
    _mint(st, ALICE, 3, NOW + 2)
    st["time"] = NOW + 50

    events: list = []
    assert sync_expiry(st, ALICE, events) == 4
    assert [(t.amount, t.expires_at) for t in TokenView.from_ledger(st).flash_balances_of(ALICE)] == [(2, NOW + 100)]
    check_ledger_invariants(st)


def test_sweep_expired_burns_across_accounts() -> None:
    st = _state()
    _mint(st, ALICE, 10, NOW + 5)
    _mint(st, BOB, 20, NOW + 5)
    _mint(st, BOB, 1, NOW + 500)
    _mint(st, CAROL, 30, NOW + 500)

    st["time"] = NOW + 6
    assert TokenView.from_ledger(st).accounts_with_expired() == sorted([ALICE, BOB])

    out = _tx(st, "SWEEP_EXPIRED", CAROL, accounts=[ALICE, BOB, CAROL, ALICE])
    assert out["burned"] == {ALICE: 10, BOB: 20}
    view = TokenView.from_ledger(st)
    assert view.total_supply == 31
    assert view.accounts_with_expired() == []
    check_ledger_invariants(st)


def test_sweep_expired_rejects_bad_entries_atomically() -> None:
    st = _state()
    _mint(st, ALICE, 10, NOW + 5)
    st["time"] = NOW + 6

    with pytest.raises(ApplyError) as e:
        _tx(st, "SWEEP_EXPIRED", BOB, accounts=[ALICE, "bogus"])
    assert e.value.reason == "bad_address"
    assert TokenView.from_ledger(st).balance_of(ALICE) == 10

    with pytest.raises(ApplyError) as e:
        _tx(st, "SWEEP_EXPIRED", BOB, accounts=ALICE)
    assert e.value.reason == "accounts_not_list"
