from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Request

from flashledger.api.routes_public_parts.common import _executor, _int_param

router = APIRouter()

_MAX_LIMIT = 500


@router.get("/events")
def v1_events(
    request: Request,
    since: Optional[str] = None,
    limit: Optional[str] = None,
    name: Optional[str] = None,
) -> Dict[str, Any]:
    """Event log page, oldest first. Pass the last event_id back as `since`."""
    since_id = max(0, _int_param(since, 0))
    n = min(_MAX_LIMIT, max(1, _int_param(limit, 100)))
    items = _executor(request).events(since_id=since_id, limit=n, name=(name or "").strip())
    next_since = items[-1]["event_id"] if items else since_id
    return {"ok": True, "events": items, "next_since": next_since}
