# src/flashledger/runtime/executor_boot.py

from __future__ import annotations

from typing import Optional

from flashledger.runtime.chain_config import ChainConfig, load_chain_config
from flashledger.runtime.executor import FlashLedgerExecutor


def build_executor(cfg: Optional[ChainConfig] = None) -> FlashLedgerExecutor:
    """
    Build a FlashLedgerExecutor from an explicit config or, if omitted, from
    FLASH_CHAIN_CONFIG_PATH / FLASH_* environment variables.

    `flashledger.api.app` calls this with no args in production.
    """
    c = cfg or load_chain_config()
    return FlashLedgerExecutor(
        db_path=c.db_path,
        chain_id=c.chain_id,
        owner=c.owner,
        token_name=c.token_name,
        token_symbol=c.token_symbol,
        token_decimals=c.token_decimals,
        require_signatures=not c.allow_unsigned,
    )
