from __future__ import annotations

import json
import logging
import os
from pathlib import Path

import pytest

from flashledger import env
from flashledger.runtime.ledger_logging import JsonLineFormatter, log_event


def test_dotenv_loads_once_and_never_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    p = tmp_path / ".env"
    p.write_text("FLASH_TEST_A=from_file\nFLASH_TEST_B=from_file\n", encoding="utf-8")

    monkeypatch.setattr(env, "_LOADED", False)
    monkeypatch.delenv("FLASH_TEST_A", raising=False)
    monkeypatch.setenv("FLASH_TEST_B", "from_env")

    assert env.load_dotenv_if_present(str(p)) is True
    assert os.environ["FLASH_TEST_A"] == "from_file"
    assert os.environ["FLASH_TEST_B"] == "from_env"

    # second call is a no-op
    assert env.load_dotenv_if_present(str(p)) is False
    monkeypatch.delenv("FLASH_TEST_A", raising=False)


def test_dotenv_missing_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(env, "_LOADED", False)
    monkeypatch.setenv("FLASH_DOTENV_PATH", str(tmp_path / "nope.env"))
    assert env.load_dotenv_if_present() is False


def test_log_event_attaches_fields(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("flashledger.test")
    with caplog.at_level(logging.INFO, logger="flashledger.test"):
        log_event(logger, "tx_applied", seq=3, tx_type="TRANSFER")
        log_event(logger, "tx_rejected", level=logging.WARNING, seq=4)

    applied, rejected = caplog.records[-2:]
    assert applied.getMessage() == "tx_applied"
    assert applied.ledger_fields == {"event": "tx_applied", "seq": 3, "tx_type": "TRANSFER"}
    assert rejected.levelno == logging.WARNING


def test_json_line_formatter_renders_one_object() -> None:
    rec = logging.LogRecord("flashledger.executor", logging.INFO, __file__, 1, "tx_applied", None, None)
    rec.ledger_fields = {"event": "tx_applied", "seq": 7, "amount": 10**30}

    line = JsonLineFormatter().format(rec)
    assert "\n" not in line
    out = json.loads(line)
    assert out["event"] == "tx_applied"
    assert out["amount"] == 10**30
    assert out["level"] == "info"
    assert out["logger"] == "flashledger.executor"
    assert isinstance(out["ts_ms"], int)


def test_json_line_formatter_plain_records() -> None:
    rec = logging.LogRecord("uvicorn", logging.WARNING, __file__, 1, "port %d busy", (8080,), None)
    out = json.loads(JsonLineFormatter().format(rec))
    assert out["event"] == "message"
    assert out["message"] == "port 8080 busy"
