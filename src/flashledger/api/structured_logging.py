# src/flashledger/api/structured_logging.py
from __future__ import annotations

import logging
import os
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from flashledger.runtime.ledger_logging import log_event

_OFF = {"0", "false", "no", "n", "off"}


def _level_for(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One `http_request` event per request, tagged with an x-request-id.

    The id is taken from the caller when supplied and echoed back on the
    response. FLASH_LOG_REQUESTS=0 turns the events off; the header is still set.
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        self._enabled = (os.environ.get("FLASH_LOG_REQUESTS") or "1").strip().lower() not in _OFF
        self._logger = logging.getLogger("flashledger.http")

    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = rid
        t0 = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            self._emit(request, rid, 500, t0, error=f"{type(e).__name__}: {e}")
            raise

        response.headers.setdefault("x-request-id", rid)
        self._emit(request, rid, int(response.status_code), t0)
        return response

    def _emit(self, request: Request, rid: str, status: int, t0: float, error: str = "") -> None:
        if not self._enabled:
            return
        fields = {
            "request_id": rid,
            "method": request.method,
            "path": request.url.path,
            "status": status,
            "duration_ms": round((time.perf_counter() - t0) * 1000, 2),
        }
        if error:
            fields["error"] = error
        log_event(self._logger, "http_request", level=_level_for(status), **fields)
