from __future__ import annotations

import copy
import random

import pytest

from flashledger.ledger.address import normalize_address
from flashledger.ledger.state import TokenView
from flashledger.runtime.domain_dispatch import ApplyError, apply_tx
from flashledger.runtime.state_invariants import ensure_state, ledger_violations

OWNER = normalize_address("0x" + "aa" * 20)
HOLDERS = [normalize_address("0x" + f"{i:02x}" * 20) for i in range(1, 6)]


def _random_op(rng: random.Random, now: int) -> dict:
    kind = rng.choice(["FLASH_MINT", "FLASH_MINT", "TRANSFER", "TRANSFER", "BURN", "BURN_EXPIRED"])
    a = rng.choice(HOLDERS)
    b = rng.choice(HOLDERS)
    if kind == "FLASH_MINT":
        payload = {"to": a, "amount": rng.randint(1, 1_000), "expires_at": now + rng.choice([1, 5, 30, 120])}
        return {"tx_type": kind, "signer": OWNER, "payload": payload}
    if kind == "TRANSFER":
        return {"tx_type": kind, "signer": a, "payload": {"to": b, "amount": rng.randint(1, 800)}}
    if kind == "BURN":
        return {"tx_type": kind, "signer": a, "payload": {"amount": rng.randint(1, 300)}}
    return {"tx_type": kind, "signer": b, "payload": {"account": a}}


@pytest.mark.parametrize("seed", [1, 7, 42, 1337])
def test_random_operation_sequences_hold_ledger_invariants(seed: int) -> None:
    rng = random.Random(seed)
    now = 1_000
    st = ensure_state({"time": now, "params": {"owner": OWNER}})

    for _ in range(400):
        now += rng.choice([0, 0, 1, 3, 10])
        st["time"] = now
        env = _random_op(rng, now)

        before = copy.deepcopy(st)
        try:
            apply_tx(st, env)
        except ApplyError as e:
            # failures never leave partial writes
            assert e.code in {"insufficient_balance", "invalid_payload"}
            assert st == before

        # conservation: tranche sums match balances and supply
        assert ledger_violations(st) == []

        view = TokenView.from_ledger(st)
        for h in HOLDERS:
            for t in (now - 5, now, now + 7, now + 200):
                assert view.active_balance_of(h, t) + view.expired_balance_of(h, t) == view.balance_of(h)


@pytest.mark.parametrize("seed", [3, 11])
def test_expired_value_never_reaches_a_receiver(seed: int) -> None:
    rng = random.Random(seed)
    now = 5_000
    st = ensure_state({"time": now, "params": {"owner": OWNER}})
    sender, receiver = HOLDERS[0], HOLDERS[1]

    for _ in range(100):
        now += rng.randint(0, 4)
        st["time"] = now
        apply_tx(
            st,
            {
                "tx_type": "FLASH_MINT",
                "signer": OWNER,
                "payload": {"to": sender, "amount": rng.randint(1, 50), "expires_at": now + rng.randint(1, 6)},
            },
        )
        view = TokenView.from_ledger(st)
        sent_before = view.active_balance_of(sender, now)
        recv_before = view.active_balance_of(receiver, now)
        amount = rng.randint(1, 80)
        try:
            apply_tx(st, {"tx_type": "TRANSFER", "signer": sender, "payload": {"to": receiver, "amount": amount}})
        except ApplyError:
            assert amount > sent_before
            continue

        # only active value moves, and it arrives still active
        view = TokenView.from_ledger(st)
        assert view.active_balance_of(sender, now) == sent_before - amount
        assert view.active_balance_of(receiver, now) == recv_before + amount
        assert view.expired_balance_of(receiver, now) == 0
