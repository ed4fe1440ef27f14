#!/usr/bin/env python3

"""Burn every expired flash tranche on the ledger.

Finds all accounts holding expired tranches at the current ledger time and
submits SWEEP_EXPIRED in batches. Anyone may sweep; each batch is signed
with the key in FLASH_SWEEPER_KEY (or the variable named by --key-env) and
uses the next nonce of that key's address.

Usage:
  FLASH_SWEEPER_KEY=0x... python3 scripts/sweep_expired.py
  python3 scripts/sweep_expired.py --signer 0x...   # dev with allow_unsigned only

Reads the same FLASH_* configuration as the API (FLASH_DB_PATH, FLASH_OWNER,
FLASH_CHAIN_CONFIG_PATH, ...), including a .env file if present. It is safe
to run next to a live API process on the same database: each side re-reads
the snapshot when the other has committed.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from eth_account import Account  # noqa: E402

from flashledger.env import load_dotenv_if_present  # noqa: E402
from flashledger.ledger.address import normalize_address  # noqa: E402
from flashledger.runtime.chain_config import load_chain_config  # noqa: E402
from flashledger.runtime.executor_boot import build_executor  # noqa: E402
from flashledger.runtime.ledger_logging import configure_structured_logging  # noqa: E402
from flashledger.runtime.sweeper import sweep_all  # noqa: E402


def main() -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--signer", default=None, help="Unsigned sweep caller (dev with allow_unsigned only)")
    ap.add_argument("--key-env", default="FLASH_SWEEPER_KEY", help="Env var holding the sweeper private key")
    ap.add_argument("--batch-size", type=int, default=100, help="Accounts per SWEEP_EXPIRED")
    ap.add_argument("--config", default=None, help="Chain config JSON (else FLASH_CHAIN_CONFIG_PATH)")
    args = ap.parse_args()

    load_dotenv_if_present()
    cfg = load_chain_config(config_path=args.config)
    configure_structured_logging(cfg.log_level)

    key = (os.environ.get(args.key_env) or "").strip() or None
    if key:
        signer = Account.from_key(key).address
        if args.signer and normalize_address(args.signer) != signer:
            raise SystemExit(f"❌ --signer {args.signer} does not match the key in {args.key_env}")
    elif args.signer:
        signer = normalize_address(args.signer)
        if not signer:
            raise SystemExit(f"❌ --signer is not a valid address: {args.signer!r}")
        if not cfg.allow_unsigned:
            raise SystemExit(f"❌ unsigned sweeps need allow_unsigned; set {args.key_env} instead")
    else:
        raise SystemExit(f"❌ set {args.key_env} (or --signer with allow_unsigned in dev)")

    ex = build_executor(cfg)
    receipts = sweep_all(ex, signer=signer, private_key=key, batch_size=args.batch_size)

    burned = 0
    failed = 0
    for r in receipts:
        if not r.get("ok"):
            failed += 1
            continue
        burned += sum(int(v) for v in (r.get("result") or {}).get("burned", {}).values())

    print(json.dumps({"batches": len(receipts), "failed": failed, "burned": str(burned)}, sort_keys=True))
    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
