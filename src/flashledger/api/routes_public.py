# src/flashledger/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from flashledger.api.routes_public_parts.accounts import router as accounts_router
from flashledger.api.routes_public_parts.events import router as events_router
from flashledger.api.routes_public_parts.health import router as health_router
from flashledger.api.routes_public_parts.metrics import router as metrics_router
from flashledger.api.routes_public_parts.status import router as status_router
from flashledger.api.routes_public_parts.token import router as token_router
from flashledger.api.routes_public_parts.tx import router as tx_router

public_router = APIRouter()

# Versioned API surface
public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(status_router, prefix="/v1", tags=["status"])
public_router.include_router(token_router, prefix="/v1", tags=["token"])
public_router.include_router(accounts_router, prefix="/v1", tags=["accounts"])
public_router.include_router(tx_router, prefix="/v1", tags=["tx"])
public_router.include_router(events_router, prefix="/v1", tags=["events"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])
