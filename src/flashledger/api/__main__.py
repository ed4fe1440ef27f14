# src/flashledger/api/__main__.py
from __future__ import annotations

import uvicorn

from flashledger.env import load_dotenv_if_present
from flashledger.runtime.ledger_logging import configure_structured_logging


def main() -> None:
    # .env first so FLASH_* vars exist before any config is read
    load_dotenv_if_present()

    from flashledger.api.app import create_app
    from flashledger.runtime.chain_config import load_chain_config

    cfg = load_chain_config()
    configure_structured_logging(cfg.log_level)

    uvicorn.run(create_app(), host=cfg.api_host, port=cfg.api_port, log_config=None)


if __name__ == "__main__":
    main()
