# src/flashledger/runtime/chain_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from flashledger.ledger.address import is_zero_address, normalize_address
from flashledger.ledger.constants import DEFAULT_TOKEN_NAME, DEFAULT_TOKEN_SYMBOL, TOKEN_DECIMALS

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if not s:
        return bool(default)
    return s in {"1", "true", "yes", "y", "on"}


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


@dataclass(frozen=True)
class ChainConfig:
    chain_id: str
    mode: str  # one of MODES

    # Single SQLite DB file path for ledger snapshot, receipts and events.
    db_path: str

    # Minting authority at genesis (OWNERSHIP_TRANSFER can move it later).
    owner: str

    token_name: str
    token_symbol: str
    token_decimals: int

    api_host: str
    api_port: int

    log_level: str

    # Accept envelopes without a signature. Only valid in dev.
    allow_unsigned: bool = False


MODES = ("dev", "testnet", "prod")


def chain_config_problems(cfg: ChainConfig) -> List[str]:
    """Every reason `cfg` is unusable; empty when it is fine."""
    problems: List[str] = []
    if not str(cfg.chain_id or "").strip():
        problems.append("chain_id is empty")
    if str(cfg.mode or "").strip().lower() not in MODES:
        problems.append(f"mode {cfg.mode!r} is not one of {', '.join(MODES)}")

    owner = normalize_address(cfg.owner)
    if not owner or is_zero_address(owner):
        problems.append(f"owner {cfg.owner!r} is not a non-zero EVM address")

    if not str(cfg.db_path or "").strip():
        problems.append("db_path is empty")
    if not 0 <= int(cfg.token_decimals) <= 36:
        problems.append(f"token_decimals {cfg.token_decimals} is outside 0..36")
    if not 1 <= int(cfg.api_port) <= 65535:
        problems.append(f"api_port {cfg.api_port} is outside 1..65535")
    if cfg.allow_unsigned and str(cfg.mode).strip().lower() != "dev":
        problems.append(f"allow_unsigned is only permitted in dev mode, not {cfg.mode!r}")
    return problems


def validate_chain_config(cfg: ChainConfig) -> None:
    problems = chain_config_problems(cfg)
    if problems:
        raise ValueError("invalid chain config: " + "; ".join(problems))


def default_chain_config() -> ChainConfig:
    return ChainConfig(
        chain_id="flash-dev",
        # Production-safe default: never silently drop into a dev posture.
        mode="prod",
        db_path="./data/flashledger.db",
        owner="",
        token_name=DEFAULT_TOKEN_NAME,
        token_symbol=DEFAULT_TOKEN_SYMBOL,
        token_decimals=TOKEN_DECIMALS,
        api_host="127.0.0.1",
        api_port=8080,
        log_level="INFO",
    )


def _overlay(base: ChainConfig, raw: Json) -> ChainConfig:
    return ChainConfig(
        chain_id=_as_str(raw.get("chain_id"), base.chain_id),
        mode=_as_str(raw.get("mode"), base.mode).strip().lower(),
        db_path=_as_str(raw.get("db_path"), base.db_path),
        owner=_as_str(raw.get("owner"), base.owner).strip(),
        token_name=_as_str(raw.get("token_name"), base.token_name),
        token_symbol=_as_str(raw.get("token_symbol"), base.token_symbol),
        token_decimals=_as_int(raw.get("token_decimals"), base.token_decimals),
        api_host=_as_str(raw.get("api_host"), base.api_host),
        api_port=_as_int(raw.get("api_port"), base.api_port),
        log_level=_as_str(raw.get("log_level"), base.log_level).strip().upper(),
        allow_unsigned=_as_bool(raw.get("allow_unsigned"), base.allow_unsigned),
    )


def read_chain_config_file(path: str) -> ChainConfig:
    """Defaults overlaid with the keys of a JSON object file. Unknown keys are ignored."""
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: chain config must be a JSON object, got {type(raw).__name__}")
    return _overlay(default_chain_config(), raw)


_ENV_KEYS = {
    "chain_id": "FLASH_CHAIN_ID",
    "mode": "FLASH_MODE",
    "db_path": "FLASH_DB_PATH",
    "owner": "FLASH_OWNER",
    "token_name": "FLASH_TOKEN_NAME",
    "token_symbol": "FLASH_TOKEN_SYMBOL",
    "token_decimals": "FLASH_TOKEN_DECIMALS",
    "api_host": "FLASH_API_HOST",
    "api_port": "FLASH_API_PORT",
    "log_level": "FLASH_LOG_LEVEL",
    "allow_unsigned": "FLASH_ALLOW_UNSIGNED",
}


def _env_overrides() -> Json:
    out: Json = {}
    for field_name, env_name in _ENV_KEYS.items():
        v = os.environ.get(env_name)
        if v is not None and v.strip():
            out[field_name] = v.strip()
    return out


def load_chain_config(*, config_path: Optional[str] = None) -> ChainConfig:
    """Load config: JSON file (if any), then FLASH_* environment overrides.

    Environment wins so an operator can point at a shared file and still
    override db_path or owner per deployment.
    """
    p = config_path or os.environ.get("FLASH_CHAIN_CONFIG_PATH")
    cfg = read_chain_config_file(p) if p else default_chain_config()
    cfg = _overlay(cfg, _env_overrides())
    cfg = replace(cfg, owner=normalize_address(cfg.owner) or cfg.owner)

    validate_chain_config(cfg)
    return cfg
