from __future__ import annotations

"""JSON-lines logging for the ledger runtime.

Structured fields travel on the LogRecord (`ledger_fields`) and are only
serialized by JsonLineFormatter, so test capture and third-party handlers
see plain messages while stdout gets one JSON object per line.
"""

import json
import logging
import os
import sys
from typing import Any, Dict, Optional

Json = Dict[str, Any]

FIELDS_ATTR = "ledger_fields"


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        out: Json = {
            "ts_ms": int(record.created * 1000),
            "level": record.levelname.lower(),
            "logger": record.name,
        }
        fields = getattr(record, FIELDS_ATTR, None)
        if isinstance(fields, dict):
            out.update(fields)
        else:
            out["event"] = "message"
            out["message"] = record.getMessage()
        if record.exc_info:
            out["exc"] = self.formatException(record.exc_info)
        # amounts are ints and addresses strs; anything else is stringified
        return json.dumps(out, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def configure_structured_logging(level: Optional[str] = None) -> None:
    """Route the root logger to stdout as JSON lines.

    Level comes from `level`, else FLASH_LOG_LEVEL, else INFO. Calling again
    only adjusts the level.
    """
    name = (level or os.environ.get("FLASH_LOG_LEVEL") or "INFO").strip().upper()
    lvl = logging.getLevelName(name)
    if not isinstance(lvl, int):
        lvl = logging.INFO

    root = logging.getLogger()
    root.setLevel(lvl)
    for h in root.handlers:
        if isinstance(h.formatter, JsonLineFormatter):
            h.setLevel(lvl)
            return

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(lvl)
    handler.setFormatter(JsonLineFormatter())
    root.handlers = [handler]


def log_event(logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """Log `event` with structured fields attached to the record."""
    body: Json = {"event": str(event)}
    body.update(fields)
    logger.log(level, str(event), extra={FIELDS_ATTR: body})
