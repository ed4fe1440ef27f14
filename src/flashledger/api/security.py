from __future__ import annotations

from typing import Optional, Tuple

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from flashledger.api.errors import error_response

_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})
_EXEMPT = ("/docs", "/openapi.json", "/v1/health")


def _declared_length(request: Request) -> Optional[int]:
    raw = request.headers.get("content-length")
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject oversized request bodies with 413 tx_too_large.

    A ledger envelope is a few hundred bytes. The declared Content-Length is
    checked first; write methods then have their buffered body measured,
    which also covers chunked uploads.
    """

    def __init__(
        self,
        app,
        *,
        max_bytes: int = 64_000,
        enabled: bool = True,
        exempt_prefixes: Tuple[str, ...] = _EXEMPT,
    ) -> None:
        super().__init__(app)
        self.max_bytes = int(max_bytes)
        self.enabled = bool(enabled)
        self.exempt_prefixes = tuple(exempt_prefixes)

    def _reject(self, size: int):
        return error_response(
            413,
            "tx_too_large",
            "Request body too large",
            {"max_bytes": self.max_bytes, "size": size},
        )

    async def dispatch(self, request: Request, call_next):
        if not self.enabled or request.url.path.startswith(self.exempt_prefixes):
            return await call_next(request)

        declared = _declared_length(request)
        if declared is not None and declared > self.max_bytes:
            return self._reject(declared)

        if request.method.upper() in _BODY_METHODS:
            body = await request.body()
            if len(body) > self.max_bytes:
                return self._reject(len(body))

        return await call_next(request)
