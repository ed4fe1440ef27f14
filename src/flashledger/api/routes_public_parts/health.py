from __future__ import annotations

import time

from fastapi import APIRouter, Request

router = APIRouter()


def _now_ms() -> int:
    return int(time.time() * 1000)


@router.get("/health")
def v1_health(request: Request) -> dict[str, object]:
    # health must never crash
    ex = getattr(request.app.state, "executor", None)
    return {
        "ok": True,
        "service": "flashledger",
        "version": "v1",
        "ts_ms": _now_ms(),
        "chain_id": getattr(ex, "chain_id", None),
        "executor_attached": ex is not None,
    }
