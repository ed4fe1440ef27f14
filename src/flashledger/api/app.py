from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flashledger.api.config import load_api_config
from flashledger.api.errors import ApiError, api_error_handler
from flashledger.api.routes_public import public_router
from flashledger.api.security import RequestSizeLimitMiddleware
from flashledger.api.structured_logging import RequestLogMiddleware
from flashledger.runtime import executor_boot


def build_executor():
    """Executor for the API process; tests monkeypatch this name."""
    return executor_boot.build_executor()


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Build the ledger HTTP app.

    With boot_runtime=False no executor is attached and ledger routes answer
    500 not_ready; health still works.
    """
    cfg = load_api_config()

    docs = {} if not cfg.is_prod else {"docs_url": None, "redoc_url": None, "openapi_url": None}
    app = FastAPI(title="Flash Ledger API", **docs)
    app.state.cfg = cfg
    app.state.executor = build_executor() if boot_runtime else None
    if cfg.is_prod and not getattr(app.state.executor, "require_signatures", True):
        raise RuntimeError("refusing to serve an executor that accepts unsigned txs in prod")

    app.add_exception_handler(ApiError, api_error_handler)

    # added last runs first: CORS, then request logging, then the size gate
    app.add_middleware(
        RequestSizeLimitMiddleware,
        max_bytes=cfg.max_request_bytes,
        enabled=cfg.size_limit_enabled,
    )
    app.add_middleware(RequestLogMiddleware)
    if cfg.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cfg.cors_origins,
            allow_credentials=cfg.cors_origins != ["*"],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type", "X-Request-Id"],
            expose_headers=["X-Request-Id"],
        )

    app.include_router(public_router)
    return app
